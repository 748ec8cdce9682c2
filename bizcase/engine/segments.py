"""Segment volume and unit price resolution.

Each customer segment has exactly one authoritative growth model. Segment
level parameters win; ``assumptions.growth_settings`` only fills in the
parameters a segment declares a pattern for but does not supply itself.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from bizcase.engine.errors import PatternError
from bizcase.engine.patterns import (
    FLAT_SEASONALITY,
    Adjustment,
    ExpansionStep,
    GrowthSpec,
    Param,
    SeriesPoint,
    apply_layers,
    first_by_key,
    trace_period,
)
from bizcase.models.document import (
    BusinessDocument,
    CustomerSegment,
    GrowthSettings,
    PricingAdjustments,
    SeriesSpec,
    ValueWithRationale,
    VolumeAdjustments,
)
from bizcase.models.enums import PatternType, ValueSource

logger = logging.getLogger(__name__)

PATTERN_ALIASES: dict[str, PatternType] = {
    "geom_growth": PatternType.GEOM_GROWTH,
    "geometric_growth": PatternType.GEOM_GROWTH,
    "linear_growth": PatternType.LINEAR_GROWTH,
    "seasonal_growth": PatternType.SEASONAL_GROWTH,
    "time_series": PatternType.TIME_SERIES,
}

# Segment-level field names accepted for each canonical parameter, in priority order.
_SEGMENT_FIELDS: dict[PatternType, dict[str, tuple[str, ...]]] = {
    PatternType.GEOM_GROWTH: {
        "start": ("start", "base_value"),
        "monthly_growth": ("monthly_growth", "monthly_growth_rate", "growth_rate"),
    },
    PatternType.LINEAR_GROWTH: {
        "start": ("start", "base_value"),
        "monthly_flat_increase": ("monthly_flat_increase", "growth_rate"),
    },
    PatternType.SEASONAL_GROWTH: {
        "base_year_total": ("base_year_total",),
        "yoy_growth": ("yoy_growth", "growth_rate"),
    },
}

# Short seasonal form: a monthly base value with monthly compounding growth.
_SEASONAL_SHORT_FIELDS: dict[str, tuple[str, ...]] = {
    "start": ("base_value", "start"),
    "monthly_growth": ("growth_rate", "monthly_growth_rate", "monthly_growth"),
}

_PARAM_LABELS = {
    "start": "Starting Volume",
    "monthly_growth": "Monthly Growth Rate",
    "monthly_flat_increase": "Monthly Increase",
    "base_year_total": "Base Year Total",
    "yoy_growth": "Year-over-Year Growth",
}

_GLOBAL_SECTION = "assumptions.growth_settings"


@dataclass(frozen=True)
class TrajectoryPoint:
    period: int
    value: float
    source: ValueSource


def segment_path(index: int) -> str:
    return f"assumptions.customers.segments[{index}].volume"


def normalize_pattern_type(raw: Optional[str]) -> Optional[PatternType]:
    if raw is None:
        return None
    try:
        return PATTERN_ALIASES[raw]
    except KeyError:
        raise PatternError(f"Unsupported pattern_type '{raw}'") from None


def _param(
    leaf: ValueWithRationale, name: str, path: Optional[str], label: Optional[str] = None
) -> Param:
    return Param(
        value=leaf.value,
        label=label or _PARAM_LABELS.get(name, name),
        path=f"{path}.value" if path else None,
        unit=leaf.unit,
        rationale=leaf.rationale,
    )


def _global_param(
    settings: Optional[GrowthSettings], kind: PatternType, name: str
) -> Optional[Param]:
    if settings is None:
        return None
    family = getattr(settings, kind.value, None)
    leaf = getattr(family, name, None) if family is not None else None
    if leaf is None:
        return None
    return _param(leaf, name, f"{_GLOBAL_SECTION}.{kind.value}.{name}")


def _global_seasonality(
    settings: Optional[GrowthSettings],
) -> tuple[tuple[float, ...], Optional[str]]:
    family = settings.seasonal_growth if settings is not None else None
    if family is not None and family.seasonality_index_12 is not None:
        return (
            tuple(family.seasonality_index_12.value),
            f"{_GLOBAL_SECTION}.seasonal_growth.seasonality_index_12.value",
        )
    return FLAT_SEASONALITY, None


def detect_global_pattern(settings: Optional[GrowthSettings]) -> PatternType:
    """First usable growth_settings family: seasonal, then geometric, then linear."""
    if settings is not None:
        seasonal = settings.seasonal_growth
        if seasonal and seasonal.base_year_total and seasonal.base_year_total.value > 0:
            return PatternType.SEASONAL_GROWTH
        geom = settings.geom_growth
        if geom and geom.start and geom.start.value > 0:
            return PatternType.GEOM_GROWTH
        linear = settings.linear_growth
        if linear and linear.start and linear.start.value > 0:
            return PatternType.LINEAR_GROWTH
    raise PatternError("Segment declares a pattern but growth_settings has no usable family")


def _series_points(volume: SeriesSpec, base: Optional[str]) -> tuple[SeriesPoint, ...]:
    return tuple(
        SeriesPoint(
            period=point.period,
            value=point.value,
            path=f"{base}.series[{i}].value" if base else None,
            rationale=point.rationale,
        )
        for i, point in enumerate(volume.series)
    )


def _pattern_spec(
    volume: SeriesSpec,
    kind: PatternType,
    base: Optional[str],
    settings: Optional[GrowthSettings],
) -> GrowthSpec:
    table = _SEGMENT_FIELDS[kind]
    if kind is PatternType.SEASONAL_GROWTH and volume.base_year_total is None and (
        volume.base_value is not None or volume.start is not None
    ):
        table = _SEASONAL_SHORT_FIELDS

    params: dict[str, Param] = {}
    for name, fields in table.items():
        for field_name in fields:
            leaf = getattr(volume, field_name)
            if leaf is not None:
                params[name] = _param(leaf, name, f"{base}.{field_name}" if base else None)
                break
        else:
            fallback = _global_param(settings, kind, name)
            if fallback is not None:
                params[name] = fallback

    if kind is not PatternType.SEASONAL_GROWTH:
        return GrowthSpec(pattern_type=kind, params=params)
    if "base_year_total" not in params and "start" not in params:
        raise PatternError(
            "Seasonal growth needs base_year_total or base_value", path=base
        )

    for field_name in ("seasonality_index_12", "seasonal_pattern"):
        index = getattr(volume, field_name)
        if index is not None:
            seasonality = tuple(index)
            seasonality_path = f"{base}.{field_name}" if base else None
            break
    else:
        seasonality, seasonality_path = _global_seasonality(settings)
    if len(seasonality) != 12:
        raise PatternError(
            f"Seasonality index must have exactly 12 values, got {len(seasonality)}",
            path=seasonality_path,
        )
    return GrowthSpec(
        pattern_type=kind,
        params=params,
        seasonality=seasonality,
        seasonality_path=seasonality_path,
    )


def resolve_growth_spec(
    volume: SeriesSpec,
    settings: Optional[GrowthSettings] = None,
    base: Optional[str] = None,
) -> GrowthSpec:
    """Pick the single authoritative growth model of a volume/timeline spec."""
    kind = normalize_pattern_type(volume.pattern_type)

    if volume.type == "time_series" or kind is PatternType.TIME_SERIES:
        if not volume.series:
            raise PatternError("Time series has no points", path=base)
        return GrowthSpec(PatternType.TIME_SERIES, series=_series_points(volume, base))

    if kind is not None or volume.type == "pattern":
        if kind is None:
            kind = detect_global_pattern(settings)
        return _pattern_spec(volume, kind, base, settings)

    if volume.type is not None:
        raise PatternError(f"Unsupported volume type '{volume.type}'", path=base)

    if volume.base_year_total is not None:
        params = {
            "base_year_total": _param(
                volume.base_year_total, "base_year_total", f"{base}.base_year_total" if base else None
            )
        }
        if volume.yoy_growth is not None:
            params["yoy_growth"] = _param(
                volume.yoy_growth, "yoy_growth", f"{base}.yoy_growth" if base else None
            )
        return GrowthSpec(PatternType.SEASONAL_GROWTH, params=params)

    if volume.series:
        return GrowthSpec(PatternType.TIME_SERIES, series=_series_points(volume, base))

    raise PatternError("Volume spec defines no growth model", path=base)


def volume_factors(
    adjustments: Optional[VolumeAdjustments], base: Optional[str]
) -> dict[int, Adjustment]:
    if adjustments is None:
        return {}
    prefix = f"{base}.yearly_adjustments.volume_factors" if base else None
    return first_by_key(
        (
            f.year,
            Adjustment(f.factor, f"{prefix}[{i}].factor" if prefix else None, f.rationale),
        )
        for i, f in enumerate(adjustments.volume_factors)
    )


def volume_overrides(
    adjustments: Optional[VolumeAdjustments], base: Optional[str]
) -> dict[int, Adjustment]:
    if adjustments is None:
        return {}
    prefix = f"{base}.yearly_adjustments.volume_overrides" if base else None
    return first_by_key(
        (
            o.period,
            Adjustment(o.volume, f"{prefix}[{i}].volume" if prefix else None, o.rationale),
        )
        for i, o in enumerate(adjustments.volume_overrides)
    )


@dataclass(frozen=True)
class ResolvedSegment:
    """A segment with its growth model and adjustments resolved once."""

    index: int
    segment: CustomerSegment
    spec: Optional[GrowthSpec]
    factors: dict[int, Adjustment]
    overrides: dict[int, Adjustment]

    @property
    def label(self) -> str:
        return self.segment.label or self.segment.id or f"Segment {self.index + 1}"

    @property
    def path(self) -> str:
        return segment_path(self.index)

    def step(self, period: int) -> ExpansionStep:
        if self.spec is None:
            return apply_layers(0.0, period)
        return trace_period(self.spec, period, self.factors, self.overrides)


def resolve_segment(
    segment: CustomerSegment,
    doc: BusinessDocument,
    index: Optional[int] = None,
) -> ResolvedSegment:
    base = segment_path(index) if index is not None else None
    volume = segment.volume
    if volume is None:
        return ResolvedSegment(index or 0, segment, None, {}, {})
    spec = resolve_growth_spec(volume, doc.assumptions.growth_settings, base)
    return ResolvedSegment(
        index=index or 0,
        segment=segment,
        spec=spec,
        factors=volume_factors(volume.yearly_adjustments, base),
        overrides=volume_overrides(volume.yearly_adjustments, base),
    )


def resolve_segments(doc: BusinessDocument) -> list[ResolvedSegment]:
    segments = doc.assumptions.customers.segments
    logger.debug("Resolving %d customer segments", len(segments))
    return [resolve_segment(s, doc, i) for i, s in enumerate(segments)]


def calculate_dynamic_segment_volume(
    segment: CustomerSegment, period: int, doc: BusinessDocument
) -> float:
    """Volume of one segment in 1-based ``period``."""
    return resolve_segment(segment, doc).step(period).value


def calculate_total_volume(doc: BusinessDocument, period: int) -> float:
    return sum(s.step(period).value for s in resolve_segments(doc))


@dataclass(frozen=True)
class ResolvedPricing:
    base: Param
    factors: dict[int, Adjustment]
    overrides: dict[int, Adjustment]

    def step(self, period: int) -> ExpansionStep:
        return apply_layers(self.base.value, period, self.factors, self.overrides)


def resolve_pricing(doc: BusinessDocument) -> ResolvedPricing:
    pricing = doc.assumptions.pricing
    leaf = pricing.avg_unit_price or ValueWithRationale()
    base = Param(
        value=leaf.value,
        label="Average Unit Price",
        path="assumptions.pricing.avg_unit_price.value" if pricing.avg_unit_price else None,
        unit=leaf.unit,
        rationale=leaf.rationale,
    )
    adjustments = pricing.yearly_adjustments or PricingAdjustments()
    prefix = "assumptions.pricing.yearly_adjustments"
    factors = first_by_key(
        (f.year, Adjustment(f.factor, f"{prefix}.pricing_factors[{i}].factor", f.rationale))
        for i, f in enumerate(adjustments.pricing_factors)
    )
    overrides = first_by_key(
        (o.period, Adjustment(o.price, f"{prefix}.price_overrides[{i}].price", o.rationale))
        for i, o in enumerate(adjustments.price_overrides)
    )
    return ResolvedPricing(base=base, factors=factors, overrides=overrides)


def calculate_dynamic_unit_price(doc: BusinessDocument, period: int) -> float:
    """Unit price in 1-based ``period``: base, then yearly factor, then override."""
    return resolve_pricing(doc).step(period).value


def get_volume_trajectory(
    segment: CustomerSegment, periods: int, doc: BusinessDocument
) -> list[TrajectoryPoint]:
    resolved = resolve_segment(segment, doc)
    steps = (resolved.step(p) for p in range(1, periods + 1))
    return [TrajectoryPoint(s.period, s.value, s.source) for s in steps]


def get_pricing_trajectory(doc: BusinessDocument, periods: int) -> list[TrajectoryPoint]:
    pricing = resolve_pricing(doc)
    points = []
    for p in range(1, periods + 1):
        step = pricing.step(p)
        source = ValueSource.BASE if step.source is ValueSource.PATTERN else step.source
        points.append(TrajectoryPoint(p, step.value, source))
    return points
