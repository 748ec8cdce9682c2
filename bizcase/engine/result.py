"""Immutable projection results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional


@dataclass(frozen=True)
class OpexLine:
    """One OPEX item's amount in one period."""

    name: str
    amount: float


@dataclass(frozen=True)
class MonthlyRecord:
    """The P&L / cash-flow row for a single period.

    Costs (``cogs``, ``total_opex``) are positive amounts; ``capex`` is a
    negative cash outflow. No value is rounded.
    """

    month: int
    date: date
    sales_volume: float
    new_customers: float
    existing_customers: float
    unit_price: float
    revenue: float
    cogs: float
    gross_profit: float
    opex_lines: tuple[OpexLine, ...]
    total_cac: float
    total_opex: float
    ebitda: float
    capex: float
    net_cash_flow: float
    baseline_costs: Optional[float] = None
    cost_savings: Optional[float] = None
    efficiency_gains: Optional[float] = None
    total_benefits: Optional[float] = None
    cumulative_benefit: Optional[float] = None

    def opex_amount(self, index: int) -> float:
        return self.opex_lines[index].amount if index < len(self.opex_lines) else 0.0

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "month": self.month,
            "date": self.date.isoformat(),
            "salesVolume": self.sales_volume,
            "newCustomers": self.new_customers,
            "existingCustomers": self.existing_customers,
            "unitPrice": self.unit_price,
            "revenue": self.revenue,
            "cogs": self.cogs,
            "grossProfit": self.gross_profit,
            "salesMarketing": self.opex_amount(0),
            "rd": self.opex_amount(1),
            "ga": self.opex_amount(2),
            "opexBreakdown": {line.name: line.amount for line in self.opex_lines},
            "totalCAC": self.total_cac,
            "totalOpex": self.total_opex,
            "ebitda": self.ebitda,
            "capex": self.capex,
            "netCashFlow": self.net_cash_flow,
        }
        if self.total_benefits is not None:
            data.update(
                baselineCosts=self.baseline_costs,
                costSavings=self.cost_savings,
                efficiencyGains=self.efficiency_gains,
                totalBenefits=self.total_benefits,
                cumulativeBenefit=self.cumulative_benefit,
            )
        return data


@dataclass(frozen=True)
class CalculatedMetrics:
    """Monthly schedule plus the scalar investment metrics derived from it."""

    monthly_data: tuple[MonthlyRecord, ...] = field(default_factory=tuple)
    total_revenue: float = 0.0
    net_profit: float = 0.0
    npv: float = 0.0
    irr: float = 0.0
    payback_period: int = 0
    break_even_month: int = 0
    total_investment_required: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "monthlyData": [r.to_dict() for r in self.monthly_data],
            "totalRevenue": self.total_revenue,
            "netProfit": self.net_profit,
            "npv": self.npv,
            "irr": self.irr,
            "paybackPeriod": self.payback_period,
            "breakEvenMonth": self.break_even_month,
            "totalInvestmentRequired": self.total_investment_required,
        }
