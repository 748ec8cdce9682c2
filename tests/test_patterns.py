"""Tests for growth pattern expansion and override layering."""

import math

import pytest

from bizcase.engine.errors import PatternError
from bizcase.engine.patterns import (
    Adjustment,
    GrowthSpec,
    Param,
    SeriesPoint,
    apply_layers,
    base_pattern_value,
    expand_pattern,
    geometric_growth,
    linear_growth,
    pattern_formula,
    seasonal_growth,
    seasonal_pattern_value,
    time_series_value,
    trace_period,
    year_of,
)
from bizcase.models.enums import PatternType, ValueSource


def geom(start, growth):
    return GrowthSpec(
        PatternType.GEOM_GROWTH,
        params={"start": Param(start, "Start"), "monthly_growth": Param(growth, "Growth")},
    )


def series(*pairs):
    return tuple(SeriesPoint(p, v) for p, v in pairs)


class TestFormulas:
    def test_geometric(self):
        assert geometric_growth(100, 0.1, 1) == 100
        assert geometric_growth(100, 0.1, 12) == pytest.approx(100 * 1.1**11)

    def test_geometric_zero_growth_is_flat(self):
        assert expand_pattern(geom(250, 0.0), 24) == [250] * 24

    def test_negative_growth_not_clamped(self):
        assert geometric_growth(100, -0.5, 3) == 25
        assert linear_growth(10, -4, 5) == -6

    def test_linear(self):
        assert linear_growth(200, 10, 1) == 200
        assert linear_growth(200, 10, 13) == 320

    def test_seasonal(self):
        index = [0.5] * 6 + [1.5] * 6
        assert seasonal_growth(1200, index, 0.1, 1) == pytest.approx(50)
        assert seasonal_growth(1200, index, 0.1, 7) == pytest.approx(150)
        # Year 2 grows by yoy once
        assert seasonal_growth(1200, index, 0.1, 13) == pytest.approx(55)
        assert seasonal_growth(1200, index, 0.1, 25) == pytest.approx(50 * 1.21)

    def test_seasonal_wrong_length(self):
        with pytest.raises(PatternError, match="exactly 12"):
            seasonal_growth(1200, [1.0] * 11, 0.0, 1)

    def test_seasonal_pattern_compounds_monthly(self):
        index = [2.0] + [1.0] * 11
        assert seasonal_pattern_value(100, index, 0.0, 1) == 200
        assert seasonal_pattern_value(100, index, 0.1, 2) == pytest.approx(110)
        assert seasonal_pattern_value(100, index, 0.1, 13) == pytest.approx(200 * 1.1**12)

    def test_year_of(self):
        assert [year_of(p) for p in (1, 12, 13, 24, 25)] == [1, 1, 2, 2, 3]


class TestTimeSeries:
    def test_exact_points(self):
        pts = series((1, 10), (4, 40))
        assert time_series_value(pts, 1) == 10
        assert time_series_value(pts, 4) == 40

    def test_interpolates_between_neighbours(self):
        pts = series((1, 10), (4, 40))
        assert time_series_value(pts, 2) == pytest.approx(20)
        assert time_series_value(pts, 3) == pytest.approx(30)

    def test_flat_extrapolation(self):
        pts = series((3, 30), (5, 50))
        assert time_series_value(pts, 1) == 30
        assert time_series_value(pts, 12) == 50

    def test_unsorted_input(self):
        pts = series((5, 50), (1, 10))
        assert time_series_value(pts, 3) == pytest.approx(30)

    def test_empty_series(self):
        with pytest.raises(PatternError, match="no points"):
            time_series_value((), 1)


class TestLayering:
    def test_precedence_pattern_then_factor_then_override(self):
        spec = geom(100, 0.0)
        factors = {2: Adjustment(1.5)}
        overrides = {13: Adjustment(7.0)}
        values = expand_pattern(spec, 24, factors, overrides)
        assert values[11] == 100
        assert values[12] == 7.0
        assert values[13] == 150

    def test_factor_compounds_with_growth(self):
        spec = geom(100, 0.1)
        step = trace_period(spec, 14, {2: Adjustment(2.0)})
        assert step.value == pytest.approx(100 * 1.1**13 * 2.0)
        assert step.source is ValueSource.YEARLY

    def test_override_is_absolute(self):
        step = apply_layers(500.0, 13, {2: Adjustment(3.0)}, {13: Adjustment(42.0)})
        assert step.value == 42.0
        assert step.base == 500.0
        assert step.factor == 3.0
        assert step.source is ValueSource.OVERRIDE

    def test_default_factor_is_one(self):
        step = apply_layers(80.0, 5)
        assert step.factor == 1.0
        assert step.value == 80.0
        assert step.source is ValueSource.PATTERN

    def test_periods_are_one_based(self):
        with pytest.raises(PatternError):
            base_pattern_value(geom(1, 0), 0)


class TestPatternFormula:
    def test_geometric_formula_substitutes_numbers(self):
        assert pattern_formula(geom(100, 0.1), 12) == "100 × (1 + 0.1)^11"

    def test_time_series_formula_mentions_neighbours(self):
        spec = GrowthSpec(PatternType.TIME_SERIES, series=series((1, 10), (4, 40)))
        assert "(2 - 1) / (4 - 1)" in pattern_formula(spec, 2)
        assert pattern_formula(spec, 9) == "Held flat from period 4"

    def test_seasonal_formula(self):
        spec = GrowthSpec(
            PatternType.SEASONAL_GROWTH,
            params={"base_year_total": Param(1200, "Total"), "yoy_growth": Param(0.1, "YoY")},
        )
        formula = pattern_formula(spec, 13)
        assert formula.startswith("(1200 / 12) × 1")
        assert formula.endswith("^1")
        assert math.isclose(base_pattern_value(spec, 13), 110)

    def test_short_seasonal_formula(self):
        spec = GrowthSpec(
            PatternType.SEASONAL_GROWTH,
            params={"start": Param(100, "Base"), "monthly_growth": Param(0.1, "Growth")},
        )
        assert pattern_formula(spec, 3) == "100 × 1 × (1 + 0.1)^2"
        assert math.isclose(base_pattern_value(spec, 3), 121)
