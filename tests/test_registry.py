"""Tests for the evidence metric registry."""

from bizcase.evidence import trail  # noqa: F401
from bizcase.evidence.registry import get_all_metrics, get_metric, snake_case


class TestRegistry:
    def test_month_and_total_metrics_registered(self):
        metrics = get_all_metrics()
        for key in ("revenue", "salesVolume", "cogs", "grossProfit", "totalOpex", "ebitda",
                    "capex", "netCashFlow", "costSavings", "efficiencyGains", "totalCAC"):
            assert metrics[key].per_period and metrics[key].horizon

    def test_investment_metrics_are_horizon_only(self):
        for key in ("npv", "irr", "paybackPeriod", "breakEvenMonth",
                    "totalInvestmentRequired", "netProfit"):
            assert not get_metric(key).per_period

    def test_month_only_metrics(self):
        assert not get_metric("unitPrice").horizon
        assert not get_metric("cumulativeBenefit").horizon

    def test_aliases(self):
        assert get_metric("total_revenue").key == "revenue"
        assert get_metric("totalBenefits").key == "revenue"
        assert get_metric("gross_profit").key == "grossProfit"
        assert get_metric("cac").key == "totalCAC"

    def test_unknown(self):
        assert get_metric("ltv") is None

    def test_snake_case(self):
        assert snake_case("totalInvestmentRequired") == "total_investment_required"
        assert snake_case("npv") == "npv"

    def test_units(self):
        assert get_metric("irr").unit == "%"
        assert get_metric("paybackPeriod").unit == "months"
        assert get_metric("salesVolume").unit == "units"
