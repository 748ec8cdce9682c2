"""Evidence builders: one per explainable metric.

Each month-level builder rebuilds a number from the same resolved growth
models and cost functions the aggregator uses, and states with ``operator``
how the children combine. Totals decompose into yearly subtotals, then months.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from itertools import groupby
from typing import Optional

from bizcase.config.settings import Settings
from bizcase.engine.aggregator import (
    Projection,
    ResolvedCapex,
    baseline_saving,
    efficiency_gain,
    implementation_ramp,
    is_whole_percent,
    opex_line_name,
    savings_rate,
)
from bizcase.engine.metrics import (
    IRR_NO_SOLUTION,
    calculate_break_even,
    calculate_irr,
    calculate_npv,
    calculate_payback_period,
    cumulative,
    describe_irr,
    discount_factor,
    investment_trough,
)
from bizcase.engine.patterns import (
    Adjustment,
    ExpansionStep,
    GrowthSpec,
    Param,
    pattern_formula,
    time_series_neighbours,
    trace_period,
    year_of,
)
from bizcase.engine.result import MonthlyRecord
from bizcase.engine.segments import ResolvedSegment
from bizcase.evidence.nodes import EvidenceNode
from bizcase.evidence.registry import register_metric
from bizcase.models.document import BaselineCost, ImplementationTimeline, ValueWithRationale
from bizcase.models.enums import (
    BusinessModel,
    EvidenceNodeType,
    EvidenceOperator,
    PatternType,
)

logger = logging.getLogger(__name__)

CALCULATED = EvidenceNodeType.CALCULATED
FORMULA = EvidenceNodeType.FORMULA
ASSUMPTION = EvidenceNodeType.ASSUMPTION
INPUT = EvidenceNodeType.INPUT
DRIVER = EvidenceNodeType.DRIVER

SUM = EvidenceOperator.SUM
PRODUCT = EvidenceOperator.PRODUCT
DIFFERENCE = EvidenceOperator.DIFFERENCE

_PATTERN_NAMES = {
    PatternType.GEOM_GROWTH: "Geometric Growth",
    PatternType.LINEAR_GROWTH: "Linear Growth",
    PatternType.SEASONAL_GROWTH: "Seasonal Growth",
    PatternType.TIME_SERIES: "Time Series",
}


@dataclass(frozen=True)
class TrailContext:
    """Inputs shared by every builder for one evidence request."""

    projection: Projection
    records: Sequence[MonthlyRecord]
    driver_paths: frozenset[str]
    settings: Settings

    @property
    def currency(self) -> str:
        return self.projection.doc.currency

    @property
    def is_cost_savings(self) -> bool:
        return self.projection.business_model is BusinessModel.COST_SAVINGS

    @property
    def is_recurring(self) -> bool:
        return self.projection.business_model is BusinessModel.RECURRING

    def record(self, month: int) -> MonthlyRecord:
        return self.records[month - 1]

    def cash_flows(self) -> list[float]:
        return [r.net_cash_flow for r in self.records]

    def interest_rate(self) -> Optional[ValueWithRationale]:
        return self.projection.doc.assumptions.financial.interest_rate

    def source(
        self,
        id: str,
        label: str,
        value: float,
        path: Optional[str],
        unit: Optional[str] = None,
        rationale: Optional[str] = None,
        type: EvidenceNodeType = ASSUMPTION,
    ) -> EvidenceNode:
        """A leaf read from the document; active driver paths are flagged."""
        is_driver = path is not None and path in self.driver_paths
        return EvidenceNode(
            id=id,
            type=DRIVER if is_driver else type,
            label=label,
            value=value,
            unit=unit or None,
            rationale=rationale or None,
            path=path,
            is_driver=is_driver,
        )

    def leaf(
        self,
        id: str,
        label: str,
        leaf: Optional[ValueWithRationale],
        path: str,
        unit: Optional[str] = None,
    ) -> EvidenceNode:
        if leaf is None:
            return self.source(id, label, 0.0, None, unit, "Not specified; treated as 0")
        return self.source(
            id, label, leaf.value, f"{path}.value", leaf.unit or unit, leaf.rationale
        )

    def param(self, id: str, param: Param) -> EvidenceNode:
        return self.source(id, param.label, param.value, param.path, param.unit, param.rationale)

    def reference(
        self, id: str, label: str, value: float, unit: Optional[str] = None
    ) -> EvidenceNode:
        """An already-computed value reused as an input."""
        return EvidenceNode(id=id, type=INPUT, label=label, value=value, unit=unit)


# --------------------------------------------------------------------------
# Growth models
# --------------------------------------------------------------------------


def _pattern_node(
    ctx: TrailContext, spec: GrowthSpec, period: int, base: float, id: str, label: str, unit: str
) -> EvidenceNode:
    children: list[EvidenceNode] = []
    if spec.pattern_type is PatternType.TIME_SERIES:
        for point in time_series_neighbours(spec.series, period):
            children.append(
                ctx.source(
                    f"{id}-p{point.period}",
                    f"Series Value (Period {point.period})",
                    point.value,
                    point.path,
                    unit,
                    point.rationale,
                    type=INPUT,
                )
            )
    else:
        for name, param in spec.params.items():
            children.append(ctx.param(f"{id}-{name}", param))
        if spec.pattern_type is PatternType.SEASONAL_GROWTH:
            slot = (period - 1) % 12
            path = f"{spec.seasonality_path}[{slot}]" if spec.seasonality_path else None
            children.append(
                ctx.source(
                    f"{id}-season",
                    f"Seasonality Index (Month {slot + 1} of 12)",
                    spec.seasonality[slot],
                    path,
                    rationale=None if path else "Flat seasonality",
                )
            )
    return EvidenceNode(
        id=id,
        type=FORMULA,
        label=f"{label} ({_PATTERN_NAMES[spec.pattern_type]})",
        value=base,
        unit=unit,
        formula=pattern_formula(spec, period),
        children=tuple(children),
    )


def _factor_node(ctx: TrailContext, adjustment: Optional[Adjustment], year: int, id: str) -> EvidenceNode:
    if adjustment is None:
        return ctx.reference(id, f"Year {year} Factor", 1.0)
    return ctx.source(
        id, f"Year {year} Factor", adjustment.value, adjustment.path,
        rationale=adjustment.rationale, type=INPUT,
    )


def _expansion_node(
    ctx: TrailContext,
    step: ExpansionStep,
    spec: Optional[GrowthSpec],
    id: str,
    label: str,
    unit: str,
    base_node: Optional[EvidenceNode] = None,
) -> EvidenceNode:
    """Pattern value x yearly factor, unless an absolute override replaced it."""
    if step.override is not None:
        override = ctx.source(
            f"{id}-override",
            f"Override (Period {step.period})",
            step.override.value,
            step.override.path,
            unit,
            step.override.rationale,
            type=INPUT,
        )
        return EvidenceNode(
            id=id,
            type=CALCULATED,
            label=label,
            value=step.value,
            unit=unit,
            formula="Absolute override for this period",
            operator=SUM,
            children=(override,),
        )
    if base_node is None:
        assert spec is not None
        base_node = _pattern_node(ctx, spec, step.period, step.base, f"{id}-pattern", label, unit)
    factor = _factor_node(ctx, step.factor_adjustment, step.year, f"{id}-factor")
    return EvidenceNode(
        id=id,
        type=CALCULATED,
        label=label,
        value=step.value,
        unit=unit,
        formula=f"{base_node.label} × Year {step.year} Factor",
        operator=PRODUCT,
        children=(base_node, factor),
    )


def _segment_node(ctx: TrailContext, seg: ResolvedSegment, month: int) -> EvidenceNode:
    id = f"segment{seg.index}-m{month}"
    label = f"{seg.label} Volume (Month {month})"
    if seg.spec is None:
        return ctx.reference(id, label, 0.0, "units")
    return _expansion_node(ctx, seg.step(month), seg.spec, id, label, "units")


# --------------------------------------------------------------------------
# Month-level trees
# --------------------------------------------------------------------------


def _not_applicable(ctx: TrailContext, id: str, label: str, value: float, why: str) -> EvidenceNode:
    return EvidenceNode(id=id, type=CALCULATED, label=label, value=value, formula=why)


def sales_volume_node(ctx: TrailContext, month: int) -> EvidenceNode:
    rec = ctx.record(month)
    children = tuple(_segment_node(ctx, seg, month) for seg in ctx.projection.segments)
    return EvidenceNode(
        id=f"salesVolume-m{month}",
        type=CALCULATED,
        label=f"Sales Volume (Month {month})",
        value=rec.sales_volume,
        unit="units",
        formula=" + ".join(c.label for c in children) or "No customer segments",
        operator=SUM,
        children=children,
    )


def unit_price_node(ctx: TrailContext, month: int) -> EvidenceNode:
    id = f"unitPrice-m{month}"
    label = f"Unit Price (Month {month})"
    if ctx.is_cost_savings:
        return _not_applicable(ctx, id, label, 0.0, "Not used by cost-savings models")
    pricing = ctx.projection.pricing
    base = ctx.param(f"{id}-base", pricing.base)
    return _expansion_node(ctx, pricing.step(month), None, id, label, ctx.currency, base)


def _ramp_node(
    ctx: TrailContext, timeline: Optional[ImplementationTimeline], path: str, month: int, id: str
) -> EvidenceNode:
    value = implementation_ramp(timeline, month)
    label = f"Implementation Ramp (Month {month})"
    if timeline is None:
        return ctx.reference(id, label, value)
    children = [
        ctx.source(f"{id}-start", "Start Month", timeline.start_month,
                   f"{path}.start_month", type=INPUT),
        ctx.source(f"{id}-ramp", "Ramp-up Months", timeline.ramp_up_months,
                   f"{path}.ramp_up_months", type=INPUT),
    ]
    if timeline.full_implementation_month is not None:
        children.append(
            ctx.source(f"{id}-full", "Full Implementation Month",
                       timeline.full_implementation_month,
                       f"{path}.full_implementation_month", type=INPUT)
        )
    return EvidenceNode(
        id=id,
        type=FORMULA,
        label=label,
        value=value,
        formula=(
            f"0 before month {timeline.start_month}, then "
            f"min(1, ({month} - {timeline.start_month} + 1) / {max(1, timeline.ramp_up_months)})"
        ),
        children=tuple(children),
    )


def _savings_rate_node(
    ctx: TrailContext, cost: BaselineCost, path: str, id: str, name: str
) -> EvidenceNode:
    leaf = cost.savings_potential_pct
    if not is_whole_percent(leaf):
        return ctx.leaf(id, f"{name} Savings Potential", leaf, path, "%")
    whole = ctx.source(
        f"{id}-whole", f"{name} Savings Potential (whole %)", leaf.value, f"{path}.value",
        rationale=leaf.rationale,
    )
    return EvidenceNode(
        id=id,
        type=CALCULATED,
        label=f"{name} Savings Potential",
        value=savings_rate(cost),
        unit="%",
        formula=f"{leaf.value:g} / 100",
        operator=PRODUCT,
        children=(whole, ctx.reference(f"{id}-scale", "Percent to Fraction", 0.01)),
    )


def cost_savings_node(ctx: TrailContext, month: int) -> EvidenceNode:
    rec = ctx.record(month)
    id = f"costSavings-m{month}"
    label = f"Cost Savings (Month {month})"
    if rec.cost_savings is None:
        return _not_applicable(ctx, id, label, 0.0, "Only cost-savings models have savings")
    children = []
    for i, cost in enumerate(ctx.projection.doc.assumptions.cost_savings.baseline_costs):
        base = f"assumptions.cost_savings.baseline_costs[{i}]"
        cid = f"{id}-c{i}"
        name = cost.label or cost.id or f"Cost {i + 1}"
        children.append(
            EvidenceNode(
                id=cid,
                type=CALCULATED,
                label=f"{name} Savings",
                value=baseline_saving(cost, month),
                unit=ctx.currency,
                formula="Current Monthly Cost × Savings Potential × Ramp",
                operator=PRODUCT,
                children=(
                    ctx.leaf(f"{cid}-cost", f"{name} Current Monthly Cost",
                             cost.current_monthly_cost, f"{base}.current_monthly_cost",
                             ctx.currency),
                    _savings_rate_node(ctx, cost, f"{base}.savings_potential_pct", f"{cid}-pct", name),
                    _ramp_node(ctx, cost.implementation_timeline,
                               f"{base}.implementation_timeline", month, f"{cid}-ramp"),
                ),
            )
        )
    return EvidenceNode(
        id=id,
        type=CALCULATED,
        label=label,
        value=rec.cost_savings,
        unit=ctx.currency,
        formula="Σ baseline cost savings",
        operator=SUM,
        children=tuple(children),
    )


def efficiency_gains_node(ctx: TrailContext, month: int) -> EvidenceNode:
    rec = ctx.record(month)
    id = f"efficiencyGains-m{month}"
    label = f"Efficiency Gains (Month {month})"
    if rec.efficiency_gains is None:
        return _not_applicable(ctx, id, label, 0.0, "Only cost-savings models have efficiency gains")
    children = []
    for i, gain in enumerate(ctx.projection.doc.assumptions.cost_savings.efficiency_gains):
        base = f"assumptions.cost_savings.efficiency_gains[{i}]"
        gid = f"{id}-g{i}"
        name = gain.label or gain.id or f"Gain {i + 1}"
        rationale = None
        if gain.baseline_value is not None:
            rationale = f"Baseline {gain.metric or 'value'}: {gain.baseline_value.value:g}"
        children.append(
            EvidenceNode(
                id=gid,
                type=CALCULATED,
                label=f"{name} Value",
                value=efficiency_gain(gain, month),
                unit=ctx.currency,
                formula="Improved Value × Value per Unit × Ramp",
                rationale=rationale,
                operator=PRODUCT,
                children=(
                    ctx.leaf(f"{gid}-improved", f"{name} Improved Value",
                             gain.improved_value, f"{base}.improved_value"),
                    ctx.leaf(f"{gid}-vpu", f"{name} Value per Unit",
                             gain.value_per_unit, f"{base}.value_per_unit", ctx.currency),
                    _ramp_node(ctx, gain.implementation_timeline,
                               f"{base}.implementation_timeline", month, f"{gid}-ramp"),
                ),
            )
        )
    return EvidenceNode(
        id=id,
        type=CALCULATED,
        label=label,
        value=rec.efficiency_gains,
        unit=ctx.currency,
        formula="Σ efficiency gains",
        operator=SUM,
        children=tuple(children),
    )


def revenue_node(ctx: TrailContext, month: int) -> EvidenceNode:
    rec = ctx.record(month)
    if ctx.is_cost_savings:
        return EvidenceNode(
            id=f"revenue-m{month}",
            type=CALCULATED,
            label=f"Total Benefits (Month {month})",
            value=rec.revenue,
            unit=ctx.currency,
            formula="Cost Savings + Efficiency Gains",
            operator=SUM,
            children=(cost_savings_node(ctx, month), efficiency_gains_node(ctx, month)),
        )
    return EvidenceNode(
        id=f"revenue-m{month}",
        type=CALCULATED,
        label=f"Revenue (Month {month})",
        value=rec.revenue,
        unit=ctx.currency,
        formula="Sales Volume × Unit Price",
        operator=PRODUCT,
        children=(sales_volume_node(ctx, month), unit_price_node(ctx, month)),
    )


def cogs_node(ctx: TrailContext, month: int) -> EvidenceNode:
    rec = ctx.record(month)
    id = f"cogs-m{month}"
    label = f"COGS (Month {month})"
    if ctx.is_cost_savings:
        return _not_applicable(ctx, id, label, rec.cogs, "COGS does not apply to cost-savings models")
    pct = ctx.leaf(
        f"{id}-pct", "COGS %", ctx.projection.doc.assumptions.unit_economics.cogs_pct,
        "assumptions.unit_economics.cogs_pct", "%",
    )
    return EvidenceNode(
        id=id,
        type=CALCULATED,
        label=label,
        value=rec.cogs,
        unit=ctx.currency,
        formula="Revenue × COGS %",
        operator=PRODUCT,
        children=(revenue_node(ctx, month), pct),
    )


def gross_profit_node(ctx: TrailContext, month: int) -> EvidenceNode:
    rec = ctx.record(month)
    return EvidenceNode(
        id=f"grossProfit-m{month}",
        type=CALCULATED,
        label=f"Gross Profit (Month {month})",
        value=rec.gross_profit,
        unit=ctx.currency,
        formula="Revenue - COGS",
        operator=DIFFERENCE,
        children=(revenue_node(ctx, month), cogs_node(ctx, month)),
    )


def _driver_volume(ctx: TrailContext, rec: MonthlyRecord) -> tuple[str, float]:
    if ctx.is_recurring:
        return "New Customers", rec.new_customers
    return "Sales Volume", rec.sales_volume


def _opex_item_node(ctx: TrailContext, index: int, month: int) -> EvidenceNode:
    rec = ctx.record(month)
    item = ctx.projection.doc.assumptions.opex[index]
    base = f"assumptions.opex[{index}]"
    id = f"opex{index}-m{month}"
    name = opex_line_name(item, index)
    structure = item.cost_structure

    children: list[EvidenceNode] = []
    if structure is None:
        children.append(ctx.leaf(f"{id}-flat", f"{name} Monthly Amount", item.value,
                                 f"{base}.value", ctx.currency))
        formula = "Flat monthly amount"
    else:
        parts = []
        sbase = f"{base}.cost_structure"
        if structure.fixed_component is not None:
            children.append(ctx.leaf(f"{id}-fixed", f"{name} Fixed Cost",
                                     structure.fixed_component, f"{sbase}.fixed_component",
                                     ctx.currency))
            parts.append("Fixed")
        if structure.variable_revenue_rate is not None:
            children.append(
                EvidenceNode(
                    id=f"{id}-byrevenue",
                    type=CALCULATED,
                    label=f"{name} Revenue-Driven Cost",
                    value=rec.revenue * structure.variable_revenue_rate.value,
                    unit=ctx.currency,
                    formula="Revenue × Variable Revenue Rate",
                    operator=PRODUCT,
                    children=(
                        ctx.reference(f"{id}-revenue", f"Revenue (Month {month})",
                                      rec.revenue, ctx.currency),
                        ctx.leaf(f"{id}-revrate", f"{name} Variable Revenue Rate",
                                 structure.variable_revenue_rate,
                                 f"{sbase}.variable_revenue_rate", "%"),
                    ),
                )
            )
            parts.append("Revenue × Rate")
        if structure.variable_volume_rate is not None:
            volume_label, volume = _driver_volume(ctx, rec)
            children.append(
                EvidenceNode(
                    id=f"{id}-byvolume",
                    type=CALCULATED,
                    label=f"{name} Volume-Driven Cost",
                    value=volume * structure.variable_volume_rate.value,
                    unit=ctx.currency,
                    formula=f"{volume_label} × Variable Volume Rate",
                    operator=PRODUCT,
                    children=(
                        ctx.reference(f"{id}-volume", f"{volume_label} (Month {month})",
                                      volume, "units"),
                        ctx.leaf(f"{id}-volrate", f"{name} Variable Volume Rate",
                                 structure.variable_volume_rate,
                                 f"{sbase}.variable_volume_rate", ctx.currency),
                    ),
                )
            )
            parts.append(f"{volume_label} × Rate")
        formula = " + ".join(parts) or "No cost components"
    return EvidenceNode(
        id=id,
        type=CALCULATED,
        label=f"{name} (Month {month})",
        value=rec.opex_lines[index].amount,
        unit=ctx.currency,
        formula=formula,
        operator=SUM,
        children=tuple(children),
    )


def cac_node(ctx: TrailContext, month: int) -> EvidenceNode:
    rec = ctx.record(month)
    id = f"totalCAC-m{month}"
    label = f"Customer Acquisition Cost (Month {month})"
    if ctx.is_cost_savings:
        return _not_applicable(ctx, id, label, rec.total_cac, "No acquisition cost in cost-savings models")
    volume_label, volume = _driver_volume(ctx, rec)
    return EvidenceNode(
        id=id,
        type=CALCULATED,
        label=label,
        value=rec.total_cac,
        unit=ctx.currency,
        formula=f"{volume_label} × CAC",
        operator=PRODUCT,
        children=(
            ctx.reference(f"{id}-volume", f"{volume_label} (Month {month})", volume, "units"),
            ctx.leaf(f"{id}-cac", "CAC", ctx.projection.doc.assumptions.unit_economics.cac,
                     "assumptions.unit_economics.cac", ctx.currency),
        ),
    )


def total_opex_node(ctx: TrailContext, month: int) -> EvidenceNode:
    rec = ctx.record(month)
    children = [_opex_item_node(ctx, i, month) for i in range(len(rec.opex_lines))]
    if not ctx.is_cost_savings:
        children.append(cac_node(ctx, month))
    return EvidenceNode(
        id=f"totalOpex-m{month}",
        type=CALCULATED,
        label=f"Total OPEX (Month {month})",
        value=rec.total_opex,
        unit=ctx.currency,
        formula=" + ".join(c.label.rsplit(" (Month", 1)[0] for c in children) or "No OPEX items",
        operator=SUM,
        children=tuple(children),
    )


def ebitda_node(ctx: TrailContext, month: int) -> EvidenceNode:
    rec = ctx.record(month)
    return EvidenceNode(
        id=f"ebitda-m{month}",
        type=CALCULATED,
        label=f"EBITDA (Month {month})",
        value=rec.ebitda,
        unit=ctx.currency,
        formula="Gross Profit - Total OPEX",
        operator=DIFFERENCE,
        children=(gross_profit_node(ctx, month), total_opex_node(ctx, month)),
    )


def _capex_item_node(ctx: TrailContext, item: ResolvedCapex, month: int) -> EvidenceNode:
    id = f"capex{item.index}-m{month}"
    label = f"{item.label} Investment (Month {month})"
    invested = item.investment(month)
    if item.spec is None:
        investment = ctx.reference(f"{id}-amount", label, 0.0, ctx.currency)
    elif item.spec.pattern_type is PatternType.TIME_SERIES:
        point = item.point(month)
        if point is None:
            investment = EvidenceNode(
                id=f"{id}-amount", type=INPUT, label=label, value=0.0, unit=ctx.currency,
                rationale=f"No investment listed for period {month}",
            )
        else:
            investment = ctx.source(f"{id}-amount", label, point.value, point.path,
                                    ctx.currency, point.rationale, type=INPUT)
    else:
        step = trace_period(item.spec, month, item.factors)
        investment = _expansion_node(ctx, step, item.spec, f"{id}-amount", label, ctx.currency)
    return EvidenceNode(
        id=id,
        type=CALCULATED,
        label=f"{item.label} (Month {month})",
        value=-invested,
        unit=ctx.currency,
        formula="Cash outflow: -(investment)",
        children=(investment,),
    )


def capex_node(ctx: TrailContext, month: int) -> EvidenceNode:
    rec = ctx.record(month)
    children = tuple(_capex_item_node(ctx, c, month) for c in ctx.projection.capex)
    return EvidenceNode(
        id=f"capex-m{month}",
        type=CALCULATED,
        label=f"CAPEX (Month {month})",
        value=rec.capex,
        unit=ctx.currency,
        formula="Σ capital expenditure outflows" if children else "No CAPEX items",
        operator=SUM,
        children=children,
    )


def net_cash_flow_node(ctx: TrailContext, month: int) -> EvidenceNode:
    rec = ctx.record(month)
    return EvidenceNode(
        id=f"netCashFlow-m{month}",
        type=CALCULATED,
        label=f"Net Cash Flow (Month {month})",
        value=rec.net_cash_flow,
        unit=ctx.currency,
        formula="EBITDA + CAPEX",
        operator=SUM,
        children=(ebitda_node(ctx, month), capex_node(ctx, month)),
    )


def new_customers_node(ctx: TrailContext, month: int) -> EvidenceNode:
    rec = ctx.record(month)
    id = f"newCustomers-m{month}"
    label = f"New Customers (Month {month})"
    if not ctx.is_recurring:
        return _not_applicable(ctx, id, label, rec.new_customers,
                               "Only recurring models split new and existing customers")
    previous = ctx.record(month - 1).sales_volume if month > 1 else 0.0
    churn = ctx.projection.doc.assumptions.customers.churn_pct
    return EvidenceNode(
        id=id,
        type=CALCULATED,
        label=label,
        value=rec.new_customers,
        unit="units",
        formula="max(0, Total Customers - Previous Customers × (1 - Churn))",
        children=(
            sales_volume_node(ctx, month),
            ctx.reference(f"{id}-previous", f"Customers (Month {month - 1})", previous, "units"),
            ctx.leaf(f"{id}-churn", "Monthly Churn", churn, "assumptions.customers.churn_pct", "%"),
        ),
    )


def _cumulative_node(
    ctx: TrailContext, through: int, id: str, label: str
) -> EvidenceNode:
    flows = ctx.cash_flows()[:through]
    children = tuple(
        ctx.reference(f"{id}-m{p}", f"Net Cash Flow (Month {p})", cf, ctx.currency)
        for p, cf in enumerate(flows, start=1)
    )
    return EvidenceNode(
        id=id,
        type=CALCULATED,
        label=label,
        value=cumulative(flows)[-1] if flows else 0.0,
        unit=ctx.currency,
        formula=f"Σ Net Cash Flow, months 1-{through}",
        operator=SUM,
        children=children,
    )


def cumulative_benefit_node(ctx: TrailContext, month: int) -> EvidenceNode:
    return _cumulative_node(ctx, month, f"cumulativeBenefit-m{month}",
                            f"Cumulative Benefit (Month {month})")


# --------------------------------------------------------------------------
# Totals
# --------------------------------------------------------------------------


PeriodBuilder = Callable[[TrailContext, int], EvidenceNode]


def horizon_total(
    ctx: TrailContext, key: str, label: str, unit: Optional[str], period_builder: PeriodBuilder
) -> EvidenceNode:
    """Total over the horizon, split into yearly subtotals of month trees."""
    months = range(1, len(ctx.records) + 1)
    years = []
    for year, group in groupby(months, key=year_of):
        in_year = list(group)
        kids = tuple(period_builder(ctx, m) for m in in_year)
        years.append(
            EvidenceNode(
                id=f"{key}-y{year}",
                type=CALCULATED,
                label=f"{label} (Year {year})",
                value=sum(k.value for k in kids),  # type: ignore[misc]
                unit=unit,
                formula=f"Σ months {in_year[0]}-{in_year[-1]}",
                operator=SUM,
                children=kids,
            )
        )
    return EvidenceNode(
        id=f"{key}-total",
        type=CALCULATED,
        label=f"Total {label}",
        value=sum(_record_values(ctx, key)),
        unit=unit,
        formula="Σ yearly totals" if years else "No periods",
        operator=SUM,
        children=tuple(years),
    )


_RECORD_ATTRIBUTES = {
    "revenue": "revenue",
    "salesVolume": "sales_volume",
    "newCustomers": "new_customers",
    "cogs": "cogs",
    "grossProfit": "gross_profit",
    "totalOpex": "total_opex",
    "totalCAC": "total_cac",
    "ebitda": "ebitda",
    "capex": "capex",
    "netCashFlow": "net_cash_flow",
    "netProfit": "net_cash_flow",
    "costSavings": "cost_savings",
    "efficiencyGains": "efficiency_gains",
}


def _record_values(ctx: TrailContext, key: str) -> list[float]:
    attr = _RECORD_ATTRIBUTES[key]
    return [getattr(r, attr) or 0.0 for r in ctx.records]


def _period_or_total(
    key: str, label: str, unit_kind: Optional[str], builder: PeriodBuilder
) -> Callable[[TrailContext, Optional[int]], EvidenceNode]:
    def build(ctx: TrailContext, month: Optional[int] = None) -> EvidenceNode:
        if month is not None:
            return builder(ctx, month)
        unit = ctx.currency if unit_kind == "currency" else unit_kind
        return horizon_total(ctx, key, label, unit, builder)

    return build


register_metric("revenue", "Revenue", aliases=("totalRevenue", "total_revenue",
                                               "totalBenefits", "total_benefits"))(
    _period_or_total("revenue", "Revenue", "currency", revenue_node)
)
register_metric("salesVolume", "Sales Volume", unit="units")(
    _period_or_total("salesVolume", "Sales Volume", "units", sales_volume_node)
)
register_metric("newCustomers", "New Customers", unit="units")(
    _period_or_total("newCustomers", "New Customers", "units", new_customers_node)
)
register_metric("unitPrice", "Unit Price", horizon=False)(
    lambda ctx, month: unit_price_node(ctx, month)
)
register_metric("cogs", "COGS")(_period_or_total("cogs", "COGS", "currency", cogs_node))
register_metric("grossProfit", "Gross Profit")(
    _period_or_total("grossProfit", "Gross Profit", "currency", gross_profit_node)
)
register_metric("totalOpex", "Total OPEX")(
    _period_or_total("totalOpex", "Total OPEX", "currency", total_opex_node)
)
register_metric("totalCAC", "Customer Acquisition Cost", aliases=("total_cac", "cac"))(
    _period_or_total("totalCAC", "Customer Acquisition Cost", "currency", cac_node)
)
register_metric("ebitda", "EBITDA")(_period_or_total("ebitda", "EBITDA", "currency", ebitda_node))
register_metric("capex", "CAPEX")(_period_or_total("capex", "CAPEX", "currency", capex_node))
register_metric("netCashFlow", "Net Cash Flow")(
    _period_or_total("netCashFlow", "Net Cash Flow", "currency", net_cash_flow_node)
)
register_metric("costSavings", "Cost Savings")(
    _period_or_total("costSavings", "Cost Savings", "currency", cost_savings_node)
)
register_metric("efficiencyGains", "Efficiency Gains")(
    _period_or_total("efficiencyGains", "Efficiency Gains", "currency", efficiency_gains_node)
)
register_metric("cumulativeBenefit", "Cumulative Benefit", horizon=False)(
    lambda ctx, month: cumulative_benefit_node(ctx, month)
)


# --------------------------------------------------------------------------
# Investment metrics (horizon only)
# --------------------------------------------------------------------------


@register_metric("netProfit", "Net Profit", per_period=False)
def net_profit(ctx: TrailContext, month: Optional[int] = None) -> EvidenceNode:
    return horizon_total(ctx, "netProfit", "Net Profit", ctx.currency, net_cash_flow_node)


@register_metric("npv", "Net Present Value", per_period=False)
def npv(ctx: TrailContext, month: Optional[int] = None) -> EvidenceNode:
    rate_leaf = ctx.interest_rate()
    rate = rate_leaf.value if rate_leaf is not None else 0.0
    flows = ctx.cash_flows()
    children = []
    for p, cf in enumerate(flows, start=1):
        df = discount_factor(rate, p)
        children.append(
            EvidenceNode(
                id=f"npv-m{p}",
                type=CALCULATED,
                label=f"Discounted Cash Flow (Month {p})",
                value=cf * df,
                unit=ctx.currency,
                formula="Net Cash Flow × Discount Factor",
                operator=PRODUCT,
                children=(
                    ctx.reference(f"npv-m{p}-ncf", f"Net Cash Flow (Month {p})", cf, ctx.currency),
                    EvidenceNode(
                        id=f"npv-m{p}-df",
                        type=FORMULA,
                        label=f"Discount Factor (Month {p})",
                        value=df,
                        formula=f"1 / (1 + {rate:g})^({p}/12)",
                        children=(
                            ctx.leaf(f"npv-m{p}-rate", "Annual Discount Rate", rate_leaf,
                                     "assumptions.financial.interest_rate", "%"),
                        ),
                    ),
                ),
            )
        )
    return EvidenceNode(
        id="npv",
        type=CALCULATED,
        label="Net Present Value",
        value=calculate_npv(flows, rate),
        unit=ctx.currency,
        formula="Σ Net Cash Flow(p) / (1 + r)^(p/12)",
        operator=SUM,
        children=tuple(children),
    )


@register_metric("irr", "Internal Rate of Return", unit="%", per_period=False)
def irr(ctx: TrailContext, month: Optional[int] = None) -> EvidenceNode:
    s = ctx.settings
    flows = ctx.cash_flows()
    value = calculate_irr(
        flows,
        lower=s.irr_lower_bound,
        upper=s.irr_upper_bound,
        tolerance=s.irr_tolerance,
        max_iterations=s.irr_max_iterations,
    )
    children = tuple(
        ctx.reference(f"irr-m{p}", f"Net Cash Flow (Month {p})", cf, ctx.currency)
        for p, cf in enumerate(flows, start=1)
    )
    return EvidenceNode(
        id="irr",
        type=CALCULATED,
        label="Internal Rate of Return",
        value=value,
        unit="%" if value != IRR_NO_SOLUTION else None,
        formula="Annual rate r where Σ Net Cash Flow(p) / (1 + r)^(p/12) = 0",
        rationale=describe_irr(value),
        children=children,
    )


@register_metric("paybackPeriod", "Payback Period", unit="months", per_period=False)
def payback_period(ctx: TrailContext, month: Optional[int] = None) -> EvidenceNode:
    flows = ctx.cash_flows()
    value = calculate_payback_period(flows)
    through = value or len(flows)
    return EvidenceNode(
        id="paybackPeriod",
        type=CALCULATED,
        label="Payback Period",
        value=value,
        unit="months",
        formula="First month where cumulative net cash flow ≥ 0",
        rationale=None if value else "Cumulative net cash flow never reaches 0 in the horizon",
        children=(
            _cumulative_node(ctx, through, "paybackPeriod-cumulative",
                             f"Cumulative Net Cash Flow (Month {through})"),
        ) if through else (),
    )


@register_metric("breakEvenMonth", "Break-even Month", unit="months", per_period=False)
def break_even_month(ctx: TrailContext, month: Optional[int] = None) -> EvidenceNode:
    value = calculate_break_even([r.ebitda for r in ctx.records])
    children: tuple[EvidenceNode, ...] = ()
    if value:
        shown = [value - 1, value] if value > 1 else [value]
        children = tuple(ebitda_node(ctx, m) for m in shown)
    return EvidenceNode(
        id="breakEvenMonth",
        type=CALCULATED,
        label="Break-even Month",
        value=value,
        unit="months",
        formula="First month where EBITDA ≥ 0",
        rationale=None if value else "EBITDA stays negative for the whole horizon",
        children=children,
    )


@register_metric("totalInvestmentRequired", "Total Investment Required", per_period=False)
def total_investment_required(ctx: TrailContext, month: Optional[int] = None) -> EvidenceNode:
    trough_period, trough = investment_trough(ctx.cash_flows())
    children: tuple[EvidenceNode, ...] = ()
    if trough_period:
        children = (
            _cumulative_node(ctx, trough_period, "totalInvestmentRequired-trough",
                             f"Cumulative Net Cash Flow (Month {trough_period})"),
        )
    return EvidenceNode(
        id="totalInvestmentRequired",
        type=CALCULATED,
        label="Total Investment Required",
        value=abs(trough),
        unit=ctx.currency,
        formula="|Lowest cumulative net cash flow before payback|",
        rationale=None if trough_period else "Cumulative net cash flow never goes negative",
        children=children,
    )
