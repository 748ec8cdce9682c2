"""Tests for five-point sweeps and tornado ranking."""

import pytest

from bizcase.config.settings import Settings
from bizcase.engine.calculator import CalculationEngine
from bizcase.engine.errors import EngineError
from bizcase.models.enums import SCENARIO_POINTS, ScenarioPoint
from bizcase.sensitivity import DriverState, SensitivityEngine
from bizcase.sensitivity.engine import metric_value


@pytest.fixture
def engine():
    return SensitivityEngine(Settings())


class TestSweep:
    def test_five_points_in_order(self, engine, recurring_doc):
        state = DriverState.from_document(recurring_doc)
        outcomes = engine.sweep(recurring_doc, state, "price")
        assert [o.point for o in outcomes] == list(SCENARIO_POINTS)
        assert [o.value for o in outcomes] == [40, 45, 50, 55, 60]

    def test_higher_price_raises_npv(self, engine, recurring_doc):
        state = DriverState.from_document(recurring_doc)
        npvs = [o.metrics.npv for o in engine.sweep(recurring_doc, state, "price")]
        assert npvs == sorted(npvs)
        assert npvs[0] < npvs[-1]

    def test_base_point_matches_plain_calculation(self, engine, recurring_doc):
        state = DriverState.from_document(recurring_doc)
        outcomes = engine.sweep(recurring_doc, state, "price")
        base = CalculationEngine(Settings()).calculate(recurring_doc)
        assert outcomes[2].point is ScenarioPoint.BASE
        assert outcomes[2].metrics.npv == pytest.approx(base.npv)

    def test_other_overrides_stay_applied(self, engine, recurring_doc):
        state = DriverState.from_document(recurring_doc).set_override("growth", 0.09)
        swept = engine.sweep(recurring_doc, state, "price")
        plain = engine.sweep(recurring_doc, DriverState.from_document(recurring_doc), "price")
        assert swept[2].metrics.total_revenue > plain[2].metrics.total_revenue

    def test_sweep_does_not_touch_document(self, engine, recurring_doc):
        state = DriverState.from_document(recurring_doc)
        engine.sweep(recurring_doc, state, "price")
        assert recurring_doc["assumptions"]["pricing"]["avg_unit_price"]["value"] == 50

    def test_unknown_driver(self, engine, recurring_doc):
        with pytest.raises(EngineError):
            engine.sweep(recurring_doc, DriverState.from_document(recurring_doc), "churn")

    def test_outcome_serialization(self, engine, cost_savings_doc):
        state = DriverState.from_document(cost_savings_doc)
        outcome = engine.sweep(cost_savings_doc, state, "support_savings")[0]
        data = outcome.to_dict()
        assert data["point"] == "very_low"
        assert data["value"] == 10
        assert "monthlyData" not in data["metrics"]
        assert len(outcome.to_dict(include_monthly=True)["metrics"]["monthlyData"]) == 24


class TestTornado:
    def test_sorted_by_swing(self, engine, recurring_doc):
        bars = engine.tornado(recurring_doc, DriverState.from_document(recurring_doc))
        assert {b.driver_key for b in bars} == {"price", "growth"}
        swings = [b.swing for b in bars]
        assert swings == sorted(swings, reverse=True)

    def test_bar_endpoints(self, engine, recurring_doc):
        state = DriverState.from_document(recurring_doc)
        bars = {b.driver_key: b for b in engine.tornado(recurring_doc, state)}
        price = bars["price"]
        assert (price.low_input, price.high_input) == (40, 60)
        assert price.swing == pytest.approx(abs(price.high_output - price.low_output))
        sweep = engine.sweep(recurring_doc, state, "price")
        assert price.low_output == pytest.approx(sweep[0].metrics.npv)
        assert price.high_output == pytest.approx(sweep[-1].metrics.npv)

    def test_other_metric(self, engine, recurring_doc):
        bars = engine.tornado(recurring_doc, DriverState.from_document(recurring_doc), "totalRevenue")
        base = CalculationEngine(Settings()).calculate(recurring_doc)
        assert bars[0].base_output == pytest.approx(base.total_revenue)
        assert bars[0].to_dict()["swing"] == pytest.approx(bars[0].swing)

    def test_unknown_metric(self, engine, recurring_doc):
        with pytest.raises(EngineError, match="Unknown metric"):
            engine.tornado(recurring_doc, DriverState.from_document(recurring_doc), "ltv")

    def test_no_drivers(self, engine, scenario_doc):
        assert engine.tornado(scenario_doc, DriverState.from_document(scenario_doc)) == []


class TestMetricValue:
    def test_wire_and_attribute_names(self, recurring_doc):
        metrics = CalculationEngine(Settings()).calculate(recurring_doc)
        assert metric_value(metrics, "netProfit") == metrics.net_profit
        assert metric_value(metrics, "net_profit") == metrics.net_profit
