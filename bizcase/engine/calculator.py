"""Core calculation engine.

Takes an assumption document -> produces CalculatedMetrics (monthly schedule
plus scalar investment metrics).
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from bizcase.config.settings import Settings, get_settings
from bizcase.engine.aggregator import Projection, generate_monthly_data, resolve_projection
from bizcase.engine.metrics import (
    calculate_break_even,
    calculate_investment_required,
    calculate_irr,
    calculate_npv,
    calculate_payback_period,
)
from bizcase.engine.result import CalculatedMetrics, MonthlyRecord
from bizcase.models.document import BusinessDocument, load_document

logger = logging.getLogger(__name__)


class CalculationEngine:
    """Stateless engine that runs the projection pipeline."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def project(self, doc: Any) -> Projection:
        """Parse ``doc`` and resolve its growth models for the configured horizon."""
        document = load_document(doc)
        periods = document.period_count(self.settings.default_periods, self.settings.max_periods)
        if periods == 0:
            logger.warning("Document has zero periods; returning an empty schedule")
        return resolve_projection(document, periods)

    def monthly_data(self, doc: Any) -> list[MonthlyRecord]:
        return generate_monthly_data(self.project(doc))

    def calculate(self, doc: Any) -> CalculatedMetrics:
        """Run the full projection and reduce it to investment metrics."""
        projection = self.project(doc)
        records = generate_monthly_data(projection)
        return self.summarize(projection.doc, records)

    def summarize(
        self, document: BusinessDocument, records: list[MonthlyRecord]
    ) -> CalculatedMetrics:
        s = self.settings
        cash_flows = [r.net_cash_flow for r in records]
        rate_leaf = document.assumptions.financial.interest_rate
        rate = rate_leaf.value if rate_leaf is not None else 0.0
        return CalculatedMetrics(
            monthly_data=tuple(records),
            total_revenue=sum(r.revenue for r in records),
            net_profit=sum(cash_flows),
            npv=calculate_npv(cash_flows, rate),
            irr=calculate_irr(
                cash_flows,
                lower=s.irr_lower_bound,
                upper=s.irr_upper_bound,
                tolerance=s.irr_tolerance,
                max_iterations=s.irr_max_iterations,
            ),
            payback_period=calculate_payback_period(cash_flows),
            break_even_month=calculate_break_even([r.ebitda for r in records]),
            total_investment_required=calculate_investment_required(cash_flows),
        )


def calculate_business_metrics(doc: Any, settings: Optional[Settings] = None) -> CalculatedMetrics:
    """Convenience wrapper around ``CalculationEngine().calculate``."""
    return CalculationEngine(settings).calculate(doc)
