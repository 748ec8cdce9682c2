"""Worked examples with hand-checked numbers."""

import pytest

from bizcase.engine.calculator import CalculationEngine
from bizcase.engine.metrics import IRR_NO_SOLUTION, calculate_npv
from bizcase.evidence import EvidenceContext, build_evidence_trail
from bizcase.sensitivity import DriverState, SensitivityEngine
from tests.conftest import make_driver, make_leaf


@pytest.fixture
def break_even_doc():
    """Nothing sells for five months, then 130 units a month at 10 each."""
    return {
        "meta": {"business_model": "unit_sales", "periods": 12},
        "assumptions": {
            "pricing": {"avg_unit_price": make_leaf(10, "EUR")},
            "financial": {"interest_rate": make_leaf(0.0, "%")},
            "customers": {
                "segments": [
                    {
                        "id": "launch",
                        "label": "Launch",
                        "volume": {
                            "type": "time_series",
                            "series": [
                                {"period": 1, "value": 0},
                                {"period": 5, "value": 0},
                                {"period": 6, "value": 130},
                            ],
                        },
                    }
                ]
            },
            "opex": [{"name": "Team", "value": make_leaf(500, "EUR")}],
        },
        "drivers": [
            make_driver("team", "assumptions.opex[0].value.value", [300, 400, 500, 600, 700]),
        ],
    }


class TestGrowthScenario:
    def test_geometric_volume_and_revenue(self, scenario_doc):
        result = CalculationEngine().calculate(scenario_doc)
        volumes = [r.sales_volume for r in result.monthly_data]
        assert volumes[0] == 100
        assert volumes[11] == pytest.approx(285.31, abs=0.01)
        assert result.monthly_data[0].revenue == 1000
        assert result.monthly_data[0].ebitda == 1000

    def test_npv_discounts_by_fraction_of_year(self, scenario_doc):
        result = CalculationEngine().calculate(scenario_doc)
        expected = sum(1000 * 1.1 ** (p - 1) / 1.1 ** (p / 12) for p in range(1, 13))
        assert result.npv == pytest.approx(expected)

    def test_no_sign_change_has_no_irr(self, scenario_doc):
        assert CalculationEngine().calculate(scenario_doc).irr == IRR_NO_SOLUTION


class TestBreakEvenScenario:
    def test_schedule(self, break_even_doc):
        records = CalculationEngine().monthly_data(break_even_doc)
        assert [r.sales_volume for r in records[:6]] == [0, 0, 0, 0, 0, 130]
        assert [r.ebitda for r in records[:6]] == [-500] * 5 + [800]

    def test_investment_metrics(self, break_even_doc):
        result = CalculationEngine().calculate(break_even_doc)
        assert result.break_even_month == 6
        assert result.payback_period == 9
        assert result.total_investment_required == 2500
        assert result.net_profit == 3100
        assert result.npv == pytest.approx(3100)
        assert abs(calculate_npv([r.net_cash_flow for r in result.monthly_data], result.irr)) < 1e-3

    def test_break_even_evidence(self, break_even_doc):
        metrics = CalculationEngine().calculate(break_even_doc)
        root = build_evidence_trail(break_even_doc, metrics, EvidenceContext("breakEvenMonth")).root
        assert root.value == 6
        assert [c.value for c in root.children] == [-500, 800]

    def test_cheaper_team_breaks_even_earlier_in_cash(self, break_even_doc):
        engine = SensitivityEngine()
        outcomes = engine.sweep(break_even_doc, DriverState.from_document(break_even_doc), "team")
        paybacks = [o.metrics.payback_period for o in outcomes]
        assert paybacks == sorted(paybacks)
        assert outcomes[2].metrics.payback_period == 9


class TestCostSavingsScenario:
    def test_hand_checked_metrics(self, cost_savings_doc):
        result = CalculationEngine().calculate(cost_savings_doc)
        assert result.monthly_data[0].net_cash_flow == pytest.approx(-30750)
        assert result.break_even_month == 2
        assert result.payback_period == 10
        assert result.total_investment_required == pytest.approx(30750)

    def test_savings_driver_moves_payback(self, cost_savings_doc):
        engine = SensitivityEngine()
        outcomes = engine.sweep(
            cost_savings_doc, DriverState.from_document(cost_savings_doc), "support_savings"
        )
        paybacks = [o.metrics.payback_period for o in outcomes]
        assert paybacks == sorted(paybacks, reverse=True)
        assert paybacks[0] > paybacks[-1]
