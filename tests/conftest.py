"""Shared test fixtures for the bizcase test suite."""

import pytest

from bizcase.config.settings import Settings


def make_leaf(value, unit="", rationale=""):
    """Helper to create a numeric {value, unit, rationale} leaf."""
    return {"value": value, "unit": unit, "rationale": rationale}


def make_driver(key, path, values, rationale=""):
    return {"key": key, "path": path, "range": list(values), "rationale": rationale}


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def scenario_doc() -> dict:
    """Single geometric segment, flat price, no costs.

    100 units growing 10% a month at 10 per unit over 12 months.
    """
    return {
        "meta": {"business_model": "unit_sales", "periods": 12, "currency": "EUR"},
        "assumptions": {
            "pricing": {"avg_unit_price": make_leaf(10, "EUR")},
            "financial": {"interest_rate": make_leaf(0.1, "%")},
            "customers": {
                "segments": [
                    {
                        "id": "core",
                        "label": "Core",
                        "volume": {
                            "type": "pattern",
                            "pattern_type": "geom_growth",
                            "base_value": make_leaf(100, "units"),
                            "monthly_growth": make_leaf(0.10, "%"),
                        },
                    }
                ]
            },
            "unit_economics": {"cogs_pct": make_leaf(0.0, "%")},
            "opex": [],
            "capex": [],
        },
        "drivers": [],
    }


@pytest.fixture
def recurring_doc() -> dict:
    """Subscription business with churn, CAC, mixed OPEX and one-off CAPEX."""
    return {
        "schema_version": "1.0",
        "meta": {
            "title": "SaaS launch",
            "business_model": "recurring",
            "currency": "EUR",
            "periods": 24,
            "frequency": "monthly",
            "start_date": "2026-01-01",
        },
        "assumptions": {
            "pricing": {
                "avg_unit_price": make_leaf(50, "EUR", "List price"),
                "yearly_adjustments": {
                    "pricing_factors": [{"year": 2, "factor": 1.1, "rationale": "Price rise"}],
                    "price_overrides": [{"period": 6, "price": 55, "rationale": "Promo"}],
                },
            },
            "financial": {"interest_rate": make_leaf(0.10, "%", "WACC")},
            "customers": {
                "churn_pct": make_leaf(0.02, "%"),
                "segments": [
                    {
                        "id": "smb",
                        "label": "SMB",
                        "volume": {
                            "type": "pattern",
                            "pattern_type": "geom_growth",
                            "start": make_leaf(100, "customers"),
                            "monthly_growth": make_leaf(0.05, "%"),
                        },
                    }
                ],
            },
            "unit_economics": {
                "cogs_pct": make_leaf(0.2, "%"),
                "cac": make_leaf(30, "EUR"),
            },
            "opex": [
                {
                    "name": "Sales & Marketing",
                    "cost_structure": {
                        "fixed_component": make_leaf(2000, "EUR"),
                        "variable_revenue_rate": make_leaf(0.05, "%"),
                    },
                },
                {"name": "R&D", "value": make_leaf(3000, "EUR")},
                {
                    "name": "G&A",
                    "cost_structure": {
                        "fixed_component": make_leaf(1000, "EUR"),
                        "variable_volume_rate": make_leaf(2, "EUR"),
                    },
                },
            ],
            "capex": [
                {
                    "name": "Platform build",
                    "timeline": {
                        "type": "time_series",
                        "series": [
                            {"period": 1, "value": 20000},
                            {"period": 13, "value": 5000},
                        ],
                    },
                }
            ],
        },
        "drivers": [
            make_driver(
                "price",
                "assumptions.pricing.avg_unit_price.value",
                [40, 45, 50, 55, 60],
            ),
            make_driver(
                "growth",
                "assumptions.customers.segments[0].volume.monthly_growth.value",
                [0.01, 0.03, 0.05, 0.07, 0.09],
            ),
        ],
    }


@pytest.fixture
def unit_sales_doc() -> dict:
    """Two segments: linear with yearly factor + override, seasonal via growth_settings."""
    return {
        "meta": {"business_model": "unit_sales", "currency": "USD", "periods": 36},
        "assumptions": {
            "pricing": {"avg_unit_price": make_leaf(20, "USD")},
            "financial": {"interest_rate": make_leaf(0.08, "%")},
            "customers": {
                "segments": [
                    {
                        "id": "retail",
                        "label": "Retail",
                        "volume": {
                            "type": "pattern",
                            "pattern_type": "linear_growth",
                            "start": make_leaf(200, "units"),
                            "monthly_flat_increase": make_leaf(10, "units"),
                            "yearly_adjustments": {
                                "volume_factors": [{"year": 2, "factor": 1.2}],
                                "volume_overrides": [{"period": 13, "volume": 999}],
                            },
                        },
                    },
                    {
                        "id": "wholesale",
                        "label": "Wholesale",
                        "volume": {"type": "pattern", "pattern_type": "seasonal_growth"},
                    },
                ]
            },
            "growth_settings": {
                "seasonal_growth": {
                    "base_year_total": make_leaf(1200, "units"),
                    "seasonality_index_12": {
                        "value": [0.8, 0.8, 0.9, 1.0, 1.0, 1.1, 1.2, 1.2, 1.1, 1.0, 0.9, 1.0],
                        "unit": "index",
                        "rationale": "Holiday peak",
                    },
                    "yoy_growth": make_leaf(0.1, "%"),
                }
            },
            "unit_economics": {"cogs_pct": make_leaf(0.4, "%"), "cac": make_leaf(5, "USD")},
            "opex": [
                {"name": "Marketing", "value": make_leaf(1500, "USD")},
                {
                    "name": "Logistics",
                    "cost_structure": {"variable_volume_rate": make_leaf(1.5, "USD")},
                },
            ],
            "capex": [
                {
                    "name": "Tooling",
                    "timeline": {"type": "time_series", "series": [{"period": 1, "value": 50000}]},
                }
            ],
        },
        "drivers": [
            make_driver(
                "retail_start",
                "assumptions.customers.segments[0].volume.start.value",
                [100, 150, 200, 250, 300],
            ),
        ],
    }


@pytest.fixture
def cost_savings_doc() -> dict:
    """Automation project: baseline cost savings and an efficiency gain, ramped in."""
    return {
        "meta": {"business_model": "cost_savings", "currency": "EUR", "periods": 24},
        "assumptions": {
            "financial": {"interest_rate": make_leaf(0.05, "%")},
            "cost_savings": {
                "baseline_costs": [
                    {
                        "id": "support",
                        "label": "Support staff",
                        "category": "operational",
                        "current_monthly_cost": make_leaf(10000, "EUR"),
                        "savings_potential_pct": make_leaf(30, "percentage"),
                        "implementation_timeline": {
                            "start_month": 1,
                            "ramp_up_months": 4,
                            "full_implementation_month": 5,
                        },
                    },
                    {
                        "id": "licences",
                        "label": "Licences",
                        "category": "technology",
                        "current_monthly_cost": make_leaf(8000, "EUR"),
                        "savings_potential_pct": make_leaf(0.25),
                        "implementation_timeline": {"start_month": 3, "ramp_up_months": 6},
                    },
                ],
                "efficiency_gains": [
                    {
                        "id": "tickets",
                        "label": "Tickets resolved",
                        "metric": "tickets per agent",
                        "baseline_value": make_leaf(60, "tickets"),
                        "improved_value": make_leaf(100, "tickets"),
                        "value_per_unit": make_leaf(15, "EUR"),
                        "implementation_timeline": {"start_month": 2, "ramp_up_months": 2},
                    }
                ],
            },
            "opex": [{"name": "Automation platform", "value": make_leaf(1500, "EUR")}],
            "capex": [
                {
                    "name": "Implementation",
                    "timeline": {"type": "time_series", "series": [{"period": 1, "value": 30000}]},
                }
            ],
        },
        "drivers": [
            make_driver(
                "support_savings",
                "assumptions.cost_savings.baseline_costs[0].savings_potential_pct.value",
                [10, 20, 30, 40, 50],
            )
        ],
    }
