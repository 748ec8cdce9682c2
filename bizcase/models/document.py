"""Pydantic models for the assumption document.

The document arrives as JSON from the UI/template layer. Every numeric
assumption is a ``{value, unit, rationale}`` leaf; the engine only reads
``value``. Bare numbers are accepted wherever a leaf is expected so that the
short segment-level pattern form validates too.

The root is a tagged union on ``meta.business_model`` so the aggregator's
model-specific branches are exhaustive.
"""

from __future__ import annotations

from datetime import date
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    ValidationError,
    model_validator,
)

from bizcase.engine.errors import DocumentError
from bizcase.models.enums import BusinessModel

DEFAULT_START_DATE = date(2026, 1, 1)


class _DocModel(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)


class ValueWithRationale(_DocModel):
    """Numeric leaf: the engine computes with ``value`` only."""

    value: float = 0.0
    unit: str = ""
    rationale: str = ""

    @model_validator(mode="before")
    @classmethod
    def coerce_bare_number(cls, data: Any) -> Any:
        if isinstance(data, (int, float)):
            return {"value": data}
        return data


class SeriesLeaf(_DocModel):
    """Leaf whose value is a list, e.g. a global seasonality index."""

    value: list[float] = Field(default_factory=list)
    unit: str = ""
    rationale: str = ""

    @model_validator(mode="before")
    @classmethod
    def coerce_bare_list(cls, data: Any) -> Any:
        if isinstance(data, (list, tuple)):
            return {"value": list(data)}
        return data


class TimeSeriesPoint(_DocModel):
    period: int
    value: float
    rationale: str = ""


class YearFactor(_DocModel):
    year: int
    factor: float
    rationale: str = ""


class VolumeOverride(_DocModel):
    period: int
    volume: float = Field(validation_alias=AliasChoices("volume", "value"))
    rationale: str = ""


class PriceOverride(_DocModel):
    period: int
    price: float = Field(validation_alias=AliasChoices("price", "value"))
    rationale: str = ""


class VolumeAdjustments(_DocModel):
    volume_factors: list[YearFactor] = Field(default_factory=list)
    volume_overrides: list[VolumeOverride] = Field(default_factory=list)


class PricingAdjustments(_DocModel):
    pricing_factors: list[YearFactor] = Field(default_factory=list)
    price_overrides: list[PriceOverride] = Field(default_factory=list)


class SeriesSpec(_DocModel):
    """A sparse growth specification (segment volume or CAPEX timeline).

    Either ``type="time_series"`` with explicit points, ``type="pattern"``
    with a ``pattern_type`` and its parameters, or the legacy
    ``{base_year_total, yoy_growth}`` shape without a type.
    """

    type: Optional[str] = None
    pattern_type: Optional[str] = None
    series: list[TimeSeriesPoint] = Field(default_factory=list)

    start: Optional[ValueWithRationale] = None
    base_value: Optional[ValueWithRationale] = None
    base_year_total: Optional[ValueWithRationale] = None

    monthly_growth: Optional[ValueWithRationale] = None
    monthly_growth_rate: Optional[ValueWithRationale] = None
    monthly_flat_increase: Optional[ValueWithRationale] = None
    yoy_growth: Optional[ValueWithRationale] = None
    growth_rate: Optional[ValueWithRationale] = None

    seasonality_index_12: Optional[list[float]] = None
    seasonal_pattern: Optional[list[float]] = None

    yearly_adjustments: Optional[VolumeAdjustments] = None


class CustomerSegment(_DocModel):
    id: str = ""
    label: str = ""
    rationale: str = ""
    volume: Optional[SeriesSpec] = None


class CustomerAssumptions(_DocModel):
    churn_pct: Optional[ValueWithRationale] = None
    segments: list[CustomerSegment] = Field(default_factory=list)


class GeomGrowthSettings(_DocModel):
    start: Optional[ValueWithRationale] = None
    monthly_growth: Optional[ValueWithRationale] = None


class LinearGrowthSettings(_DocModel):
    start: Optional[ValueWithRationale] = None
    monthly_flat_increase: Optional[ValueWithRationale] = None


class SeasonalGrowthSettings(_DocModel):
    base_year_total: Optional[ValueWithRationale] = None
    seasonality_index_12: Optional[SeriesLeaf] = None
    yoy_growth: Optional[ValueWithRationale] = None


class GrowthSettings(_DocModel):
    """Document-wide fallback parameters per pattern family."""

    geom_growth: Optional[GeomGrowthSettings] = None
    linear_growth: Optional[LinearGrowthSettings] = None
    seasonal_growth: Optional[SeasonalGrowthSettings] = None


class PricingAssumptions(_DocModel):
    avg_unit_price: Optional[ValueWithRationale] = None
    yearly_adjustments: Optional[PricingAdjustments] = None


class FinancialAssumptions(_DocModel):
    interest_rate: Optional[ValueWithRationale] = None


class UnitEconomics(_DocModel):
    cogs_pct: Optional[ValueWithRationale] = None
    cac: Optional[ValueWithRationale] = None


class CostStructure(_DocModel):
    fixed_component: Optional[ValueWithRationale] = None
    variable_revenue_rate: Optional[ValueWithRationale] = None
    variable_volume_rate: Optional[ValueWithRationale] = None


class OpexItem(_DocModel):
    """An operating expense line; legacy items carry a flat ``value``."""

    name: str = ""
    value: Optional[ValueWithRationale] = None
    cost_structure: Optional[CostStructure] = None


class CapexItem(_DocModel):
    name: str = ""
    timeline: Optional[SeriesSpec] = None


class ImplementationTimeline(_DocModel):
    start_month: int = 1
    ramp_up_months: int = 0
    full_implementation_month: Optional[int] = None


class BaselineCost(_DocModel):
    id: str = ""
    label: str = ""
    category: str = "other"
    current_monthly_cost: ValueWithRationale = Field(default_factory=ValueWithRationale)
    savings_potential_pct: ValueWithRationale = Field(default_factory=ValueWithRationale)
    implementation_timeline: Optional[ImplementationTimeline] = None


class EfficiencyGain(_DocModel):
    id: str = ""
    label: str = ""
    metric: str = ""
    baseline_value: Optional[ValueWithRationale] = None
    improved_value: ValueWithRationale = Field(default_factory=ValueWithRationale)
    value_per_unit: ValueWithRationale = Field(default_factory=ValueWithRationale)
    implementation_timeline: Optional[ImplementationTimeline] = None


class CostSavingsAssumptions(_DocModel):
    baseline_costs: list[BaselineCost] = Field(default_factory=list)
    efficiency_gains: list[EfficiencyGain] = Field(default_factory=list)


class Assumptions(_DocModel):
    pricing: PricingAssumptions = Field(default_factory=PricingAssumptions)
    financial: FinancialAssumptions = Field(default_factory=FinancialAssumptions)
    customers: CustomerAssumptions = Field(default_factory=CustomerAssumptions)
    unit_economics: UnitEconomics = Field(default_factory=UnitEconomics)
    opex: list[OpexItem] = Field(default_factory=list)
    capex: list[CapexItem] = Field(default_factory=list)
    cost_savings: CostSavingsAssumptions = Field(default_factory=CostSavingsAssumptions)
    growth_settings: Optional[GrowthSettings] = None


class Driver(_DocModel):
    """A sensitivity override target with five scenario points."""

    key: str
    path: str
    range: list[float] = Field(min_length=5, max_length=5)
    rationale: str = ""
    label: Optional[str] = None
    unit: Optional[str] = None


class _MetaBase(_DocModel):
    title: str = ""
    description: str = ""
    currency: str = "EUR"
    periods: Optional[int] = Field(default=None, ge=0)
    frequency: str = "monthly"
    start_date: date = DEFAULT_START_DATE


class RecurringMeta(_MetaBase):
    business_model: Literal["recurring"] = "recurring"


class UnitSalesMeta(_MetaBase):
    business_model: Literal["unit_sales"] = "unit_sales"


class CostSavingsMeta(_MetaBase):
    business_model: Literal["cost_savings"] = "cost_savings"


class _DocumentBase(_DocModel):
    schema_version: Optional[str] = None
    assumptions: Assumptions = Field(default_factory=Assumptions)
    drivers: list[Driver] = Field(default_factory=list)

    @property
    def business_model(self) -> BusinessModel:
        return BusinessModel(self.meta.business_model)  # type: ignore[attr-defined]

    @property
    def currency(self) -> str:
        return self.meta.currency  # type: ignore[attr-defined]

    def period_count(self, default_periods: int, max_periods: int) -> int:
        periods = self.meta.periods  # type: ignore[attr-defined]
        if periods is None:
            periods = default_periods
        return max(0, min(periods, max_periods))

    def driver_paths(self) -> frozenset[str]:
        return frozenset(d.path for d in self.drivers)


class RecurringDocument(_DocumentBase):
    meta: RecurringMeta = Field(default_factory=RecurringMeta)


class UnitSalesDocument(_DocumentBase):
    meta: UnitSalesMeta = Field(default_factory=UnitSalesMeta)


class CostSavingsDocument(_DocumentBase):
    meta: CostSavingsMeta = Field(default_factory=CostSavingsMeta)


BusinessDocument = Union[RecurringDocument, UnitSalesDocument, CostSavingsDocument]


def _business_model_tag(raw: Any) -> str:
    if isinstance(raw, dict):
        meta = raw.get("meta") or {}
        tag = meta.get("business_model") if isinstance(meta, dict) else None
    else:
        tag = getattr(getattr(raw, "meta", None), "business_model", None)
    return tag or BusinessModel.UNIT_SALES.value


AssumptionDocument = Annotated[
    Union[
        Annotated[RecurringDocument, Tag(BusinessModel.RECURRING.value)],
        Annotated[UnitSalesDocument, Tag(BusinessModel.UNIT_SALES.value)],
        Annotated[CostSavingsDocument, Tag(BusinessModel.COST_SAVINGS.value)],
    ],
    Discriminator(_business_model_tag),
]

_DOCUMENT_ADAPTER: TypeAdapter[BusinessDocument] = TypeAdapter(AssumptionDocument)


def load_document(raw: Any) -> BusinessDocument:
    """Parse a JSON-compatible document into its typed business-model variant."""
    if isinstance(raw, _DocumentBase):
        return raw  # type: ignore[return-value]
    if not isinstance(raw, dict):
        raise DocumentError(f"Assumption document must be an object, got {type(raw).__name__}")
    try:
        return _DOCUMENT_ADAPTER.validate_python(raw)
    except ValidationError as e:
        raise DocumentError(f"Invalid assumption document: {e}") from e
