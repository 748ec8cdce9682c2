"""Monthly aggregation: volumes, prices and cost lines into one record per period."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from bizcase.engine.patterns import (
    Adjustment,
    GrowthSpec,
    SeriesPoint,
    first_by_key,
    trace_period,
)
from bizcase.engine.result import MonthlyRecord, OpexLine
from bizcase.engine.segments import (
    ResolvedPricing,
    ResolvedSegment,
    resolve_growth_spec,
    resolve_pricing,
    resolve_segments,
    volume_factors,
)
from bizcase.models.document import (
    BaselineCost,
    BusinessDocument,
    CapexItem,
    EfficiencyGain,
    ImplementationTimeline,
    OpexItem,
    ValueWithRationale,
)
from bizcase.models.enums import BusinessModel, PatternType

logger = logging.getLogger(__name__)


def period_date(start: date, month: int) -> date:
    """Calendar date of 1-based ``month`` counted from ``start``."""
    offset = start.month - 1 + (month - 1)
    year = start.year + offset // 12
    mon = offset % 12 + 1
    # Clamp the day for short months (e.g. a 31st start date).
    for day in (start.day, 30, 29, 28):
        try:
            return date(year, mon, day)
        except ValueError:
            continue
    return date(year, mon, 28)


def implementation_ramp(timeline: Optional[ImplementationTimeline], month: int) -> float:
    """Adoption fraction in 1-based ``month``: 0 before start, linear ramp, then 1."""
    if timeline is None:
        return 1.0
    if month < timeline.start_month:
        return 0.0
    full = timeline.full_implementation_month
    if full is not None and month >= full:
        return 1.0
    return min(1.0, (month - timeline.start_month + 1) / max(1, timeline.ramp_up_months))


def leaf_value(leaf: Optional[ValueWithRationale]) -> float:
    return leaf.value if leaf is not None else 0.0


def opex_components(
    item: OpexItem, revenue: float, volume: float
) -> tuple[float, float, float]:
    """(fixed, revenue-driven, volume-driven) parts of one OPEX item.

    A cost structure takes precedence over a legacy flat ``value``.
    """
    structure = item.cost_structure
    if structure is None:
        return leaf_value(item.value), 0.0, 0.0
    return (
        leaf_value(structure.fixed_component),
        revenue * leaf_value(structure.variable_revenue_rate),
        volume * leaf_value(structure.variable_volume_rate),
    )


def opex_item_amount(item: OpexItem, revenue: float, volume: float) -> float:
    fixed, by_revenue, by_volume = opex_components(item, revenue, volume)
    return fixed + by_revenue + by_volume


def opex_line_name(item: OpexItem, index: int) -> str:
    return item.name or f"OPEX {index + 1}"


PERCENT_UNITS = frozenset({"%", "percent", "percentage"})


def is_whole_percent(leaf: ValueWithRationale) -> bool:
    return leaf.unit.strip().lower() in PERCENT_UNITS


def savings_rate(cost: BaselineCost) -> float:
    """Savings potential as a fraction.

    Leaves declared in percent (``"%"``, ``"percentage"``) hold whole numbers
    (``30`` = 30%) and are divided by 100; unitless leaves are already fractions.
    """
    leaf = cost.savings_potential_pct
    if is_whole_percent(leaf):
        return leaf.value / 100
    return leaf.value


def baseline_saving(cost: BaselineCost, month: int) -> float:
    return (
        cost.current_monthly_cost.value
        * savings_rate(cost)
        * implementation_ramp(cost.implementation_timeline, month)
    )


def efficiency_gain(gain: EfficiencyGain, month: int) -> float:
    return (
        gain.improved_value.value
        * gain.value_per_unit.value
        * implementation_ramp(gain.implementation_timeline, month)
    )


def capex_path(index: int) -> str:
    return f"assumptions.capex[{index}].timeline"


@dataclass(frozen=True)
class ResolvedCapex:
    """A CAPEX item's timeline resolved once per calculation."""

    index: int
    item: CapexItem
    spec: Optional[GrowthSpec]
    factors: dict[int, Adjustment]

    @property
    def label(self) -> str:
        return self.item.name or f"CAPEX {self.index + 1}"

    def point(self, period: int) -> Optional[SeriesPoint]:
        """The listed time-series entry for ``period``, if any."""
        if self.spec is None or self.spec.pattern_type is not PatternType.TIME_SERIES:
            return None
        for p in self.spec.series:
            if p.period == period:
                return p
        return None

    def investment(self, period: int) -> float:
        """Positive amount invested in ``period``.

        Time series are one-off investments: unlisted periods contribute 0.
        """
        if self.spec is None:
            return 0.0
        if self.spec.pattern_type is PatternType.TIME_SERIES:
            point = self.point(period)
            return point.value if point is not None else 0.0
        return trace_period(self.spec, period, self.factors).value


def resolve_capex(doc: BusinessDocument) -> list[ResolvedCapex]:
    resolved = []
    for i, item in enumerate(doc.assumptions.capex):
        timeline = item.timeline
        if timeline is None:
            resolved.append(ResolvedCapex(i, item, None, {}))
            continue
        base = capex_path(i)
        spec = resolve_growth_spec(timeline, None, base)
        resolved.append(
            ResolvedCapex(i, item, spec, volume_factors(timeline.yearly_adjustments, base))
        )
    return resolved


@dataclass(frozen=True)
class Projection:
    """Everything the aggregator resolved from a document, reused by evidence."""

    doc: BusinessDocument
    periods: int
    segments: list[ResolvedSegment]
    pricing: ResolvedPricing
    capex: list[ResolvedCapex]

    @property
    def business_model(self) -> BusinessModel:
        return self.doc.business_model


def resolve_projection(doc: BusinessDocument, periods: int) -> Projection:
    model = doc.business_model
    segments = [] if model is BusinessModel.COST_SAVINGS else resolve_segments(doc)
    return Projection(
        doc=doc,
        periods=periods,
        segments=segments,
        pricing=resolve_pricing(doc),
        capex=resolve_capex(doc),
    )


def capex_outflow(projection: Projection, month: int) -> float:
    return sum(-c.investment(month) for c in projection.capex)


def generate_monthly_data(projection: Projection) -> list[MonthlyRecord]:
    """One record per period 1..N; every record is computed fresh."""
    doc = projection.doc
    assumptions = doc.assumptions
    model = projection.business_model
    start = doc.meta.start_date
    cogs_pct = leaf_value(assumptions.unit_economics.cogs_pct)
    cac = leaf_value(assumptions.unit_economics.cac)
    churn = leaf_value(assumptions.customers.churn_pct)

    logger.debug(
        "Aggregating %d periods for %s model (%d segments, %d opex, %d capex)",
        projection.periods,
        model.value,
        len(projection.segments),
        len(assumptions.opex),
        len(projection.capex),
    )

    records: list[MonthlyRecord] = []
    previous_total = 0.0
    cumulative = 0.0
    for month in range(1, projection.periods + 1):
        new_customers = existing_customers = 0.0
        savings_fields: dict[str, float] = {}

        if model is BusinessModel.COST_SAVINGS:
            savings = assumptions.cost_savings
            baseline = sum(c.current_monthly_cost.value for c in savings.baseline_costs)
            cost_savings = sum(baseline_saving(c, month) for c in savings.baseline_costs)
            gains = sum(efficiency_gain(g, month) for g in savings.efficiency_gains)
            revenue = cost_savings + gains
            savings_fields = dict(
                baseline_costs=baseline,
                cost_savings=cost_savings,
                efficiency_gains=gains,
                total_benefits=revenue,
            )
            volume = 0.0
            unit_price = 0.0
            cogs = 0.0
            acquisitions = 0.0
            cac_rate = 0.0
        else:
            volume = sum(s.step(month).value for s in projection.segments)
            unit_price = projection.pricing.step(month).value
            revenue = volume * unit_price
            cogs = revenue * cogs_pct
            if model is BusinessModel.RECURRING:
                retained = previous_total * (1 - churn)
                new_customers = max(0.0, volume - retained)
                existing_customers = volume - new_customers
                previous_total = volume
                acquisitions = new_customers
            else:
                acquisitions = volume
            cac_rate = cac

        gross_profit = revenue - cogs
        driver_volume = new_customers if model is BusinessModel.RECURRING else volume
        opex_lines = tuple(
            OpexLine(opex_line_name(item, i), opex_item_amount(item, revenue, driver_volume))
            for i, item in enumerate(assumptions.opex)
        )
        total_cac = acquisitions * cac_rate
        total_opex = sum(line.amount for line in opex_lines) + total_cac
        ebitda = gross_profit - total_opex
        capex = capex_outflow(projection, month)
        net_cash_flow = ebitda + capex

        if model is BusinessModel.COST_SAVINGS:
            cumulative += net_cash_flow
            savings_fields["cumulative_benefit"] = cumulative

        records.append(
            MonthlyRecord(
                month=month,
                date=period_date(start, month),
                sales_volume=volume,
                new_customers=new_customers,
                existing_customers=existing_customers,
                unit_price=unit_price,
                revenue=revenue,
                cogs=cogs,
                gross_profit=gross_profit,
                opex_lines=opex_lines,
                total_cac=total_cac,
                total_opex=total_opex,
                ebitda=ebitda,
                capex=capex,
                net_cash_flow=net_cash_flow,
                **savings_fields,
            )
        )
    return records
