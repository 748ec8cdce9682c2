"""Growth pattern expansion.

Turns a sparse growth specification into per-period values. Periods are
1-based throughout. Each period value is produced in three stages, in this
order:

1. the base pattern value (geometric, linear, seasonal or time series),
2. multiplied by the yearly factor for year ``(p - 1) // 12 + 1`` if one is
   defined,
3. replaced outright by a single-period override if one is defined.

Yearly factors multiply a value that is already growing, so they compound
with the pattern.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Optional

from bizcase.engine.errors import PatternError
from bizcase.models.enums import PatternType, ValueSource

logger = logging.getLogger(__name__)

FLAT_SEASONALITY: tuple[float, ...] = (1.0,) * 12


@dataclass(frozen=True)
class Param:
    """A resolved numeric input together with where it came from."""

    value: float
    label: str
    path: Optional[str] = None
    unit: str = ""
    rationale: str = ""


@dataclass(frozen=True)
class SeriesPoint:
    period: int
    value: float
    path: Optional[str] = None
    rationale: str = ""


@dataclass(frozen=True)
class GrowthSpec:
    """One authoritative growth model, fully resolved.

    ``params`` is keyed by the canonical parameter name of the pattern family:
    ``start``/``monthly_growth`` (geometric), ``start``/``monthly_flat_increase``
    (linear), ``base_year_total``/``yoy_growth`` (seasonal). The short
    seasonal form uses ``start``/``monthly_growth``, with ``start`` a monthly
    base value.
    """

    pattern_type: PatternType
    params: Mapping[str, Param] = field(default_factory=dict)
    seasonality: tuple[float, ...] = FLAT_SEASONALITY
    seasonality_path: Optional[str] = None
    series: tuple[SeriesPoint, ...] = ()

    def param(self, name: str) -> float:
        p = self.params.get(name)
        return p.value if p is not None else 0.0


@dataclass(frozen=True)
class Adjustment:
    """A yearly factor or single-period override taken from the document."""

    value: float
    path: Optional[str] = None
    rationale: str = ""


@dataclass(frozen=True)
class ExpansionStep:
    """Every stage of one period's value, for provenance."""

    period: int
    base: float
    year: int
    factor: float
    factor_adjustment: Optional[Adjustment]
    override: Optional[Adjustment]
    value: float

    @property
    def source(self) -> ValueSource:
        if self.override is not None:
            return ValueSource.OVERRIDE
        if self.factor_adjustment is not None:
            return ValueSource.YEARLY
        return ValueSource.PATTERN


def year_of(period: int) -> int:
    return (period - 1) // 12 + 1


def geometric_growth(start: float, monthly_growth: float, period: int) -> float:
    return start * (1 + monthly_growth) ** (period - 1)


def linear_growth(start: float, monthly_flat_increase: float, period: int) -> float:
    return start + monthly_flat_increase * (period - 1)


def seasonal_growth(
    base_year_total: float,
    seasonality_index_12: Sequence[float],
    yoy_growth: float,
    period: int,
) -> float:
    """Monthly share of the base-year total, seasonalised and grown per year.

    The index is expected to average 1.0; this is not enforced.
    """
    if len(seasonality_index_12) != 12:
        raise PatternError(
            f"Seasonality index must have exactly 12 values, got {len(seasonality_index_12)}"
        )
    return (
        (base_year_total / 12)
        * seasonality_index_12[(period - 1) % 12]
        * (1 + yoy_growth) ** ((period - 1) // 12)
    )


def seasonal_pattern_value(
    base_value: float,
    seasonal_pattern: Sequence[float],
    monthly_growth: float,
    period: int,
) -> float:
    """Monthly base value, seasonalised, compounding monthly."""
    if len(seasonal_pattern) != 12:
        raise PatternError(
            f"Seasonality index must have exactly 12 values, got {len(seasonal_pattern)}"
        )
    return (
        base_value
        * seasonal_pattern[(period - 1) % 12]
        * (1 + monthly_growth) ** (period - 1)
    )


def time_series_neighbours(
    series: Sequence[SeriesPoint], period: int
) -> tuple[SeriesPoint, ...]:
    """The one or two defined points a period's value is read from."""
    if not series:
        raise PatternError("Time series has no points")
    ordered = sorted(series, key=lambda s: s.period)
    for point in ordered:
        if point.period == period:
            return (point,)
    before = [s for s in ordered if s.period < period]
    after = [s for s in ordered if s.period > period]
    if not before:
        return (after[0],)
    if not after:
        return (before[-1],)
    return (before[-1], after[0])


def time_series_value(series: Sequence[SeriesPoint], period: int) -> float:
    """Exact point, else linear interpolation, else flat extrapolation."""
    points = time_series_neighbours(series, period)
    if len(points) == 1:
        return points[0].value
    p1, p2 = points
    ratio = (period - p1.period) / (p2.period - p1.period)
    return p1.value + (p2.value - p1.value) * ratio


def base_pattern_value(spec: GrowthSpec, period: int) -> float:
    """Stage 1: the raw pattern value for ``period``."""
    if period < 1:
        raise PatternError(f"Periods are 1-based, got {period}")
    kind = spec.pattern_type
    if kind is PatternType.GEOM_GROWTH:
        return geometric_growth(spec.param("start"), spec.param("monthly_growth"), period)
    if kind is PatternType.LINEAR_GROWTH:
        return linear_growth(spec.param("start"), spec.param("monthly_flat_increase"), period)
    if kind is PatternType.SEASONAL_GROWTH and "start" in spec.params:
        return seasonal_pattern_value(
            spec.param("start"), spec.seasonality, spec.param("monthly_growth"), period
        )
    if kind is PatternType.SEASONAL_GROWTH:
        return seasonal_growth(
            spec.param("base_year_total"), spec.seasonality, spec.param("yoy_growth"), period
        )
    if kind is PatternType.TIME_SERIES:
        return time_series_value(spec.series, period)
    raise PatternError(f"Unsupported pattern type: {kind}")


def pattern_formula(spec: GrowthSpec, period: int) -> str:
    """Human-readable stage-1 arithmetic with the numbers substituted."""
    kind = spec.pattern_type
    n = period - 1
    if kind is PatternType.GEOM_GROWTH:
        return f"{spec.param('start'):g} × (1 + {spec.param('monthly_growth'):g})^{n}"
    if kind is PatternType.LINEAR_GROWTH:
        return f"{spec.param('start'):g} + {spec.param('monthly_flat_increase'):g} × {n}"
    if kind is PatternType.SEASONAL_GROWTH:
        index = spec.seasonality[n % 12] if len(spec.seasonality) == 12 else float("nan")
        if "start" in spec.params:
            return (
                f"{spec.param('start'):g} × {index:g}"
                f" × (1 + {spec.param('monthly_growth'):g})^{n}"
            )
        return (
            f"({spec.param('base_year_total'):g} / 12) × {index:g}"
            f" × (1 + {spec.param('yoy_growth'):g})^{n // 12}"
        )
    points = time_series_neighbours(spec.series, period)
    if len(points) == 1:
        if points[0].period == period:
            return f"Series value at period {period}"
        return f"Held flat from period {points[0].period}"
    p1, p2 = points
    return (
        f"{p1.value:g} + ({p2.value:g} - {p1.value:g}) × "
        f"({period} - {p1.period}) / ({p2.period} - {p1.period})"
    )


def first_by_key(items: Iterable[tuple[int, Adjustment]]) -> dict[int, Adjustment]:
    """Index adjustments by year/period; the first entry for a key wins."""
    indexed: dict[int, Adjustment] = {}
    for key, adjustment in items:
        indexed.setdefault(key, adjustment)
    return indexed


def apply_layers(
    base: float,
    period: int,
    factors: Optional[Mapping[int, Adjustment]] = None,
    overrides: Optional[Mapping[int, Adjustment]] = None,
) -> ExpansionStep:
    """Stages 2 and 3 on top of a base value."""
    year = year_of(period)
    factor_adj = factors.get(year) if factors else None
    factor = factor_adj.value if factor_adj is not None else 1.0
    value = base * factor
    override = overrides.get(period) if overrides else None
    if override is not None:
        value = override.value
    return ExpansionStep(
        period=period,
        base=base,
        year=year,
        factor=factor,
        factor_adjustment=factor_adj,
        override=override,
        value=value,
    )


def trace_period(
    spec: GrowthSpec,
    period: int,
    factors: Optional[Mapping[int, Adjustment]] = None,
    overrides: Optional[Mapping[int, Adjustment]] = None,
) -> ExpansionStep:
    return apply_layers(base_pattern_value(spec, period), period, factors, overrides)


def expand_pattern(
    spec: GrowthSpec,
    periods: int,
    factors: Optional[Mapping[int, Adjustment]] = None,
    overrides: Optional[Mapping[int, Adjustment]] = None,
) -> list[float]:
    """Dense values for periods 1..``periods``."""
    return [trace_period(spec, p, factors, overrides).value for p in range(1, periods + 1)]
