"""Evidence trail entry point."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any, Optional, Union

# Ensure all builders are registered on import
import bizcase.evidence.builders  # noqa: F401
from bizcase.config.settings import Settings, get_settings
from bizcase.engine.aggregator import resolve_projection
from bizcase.engine.result import CalculatedMetrics, MonthlyRecord
from bizcase.evidence.builders import TrailContext
from bizcase.evidence.nodes import (
    EvidenceContext,
    EvidenceNode,
    EvidenceTrail,
    verify_evidence_tree,
)
from bizcase.evidence.registry import get_metric
from bizcase.models.document import load_document
from bizcase.models.enums import EvidenceNodeType

logger = logging.getLogger(__name__)


def _external(metric_key: str, reason: str) -> EvidenceNode:
    return EvidenceNode(
        id=metric_key or "unknown",
        type=EvidenceNodeType.EXTERNAL,
        label=metric_key or "Unknown metric",
        rationale=reason,
    )


def build_evidence_trail(
    doc: Any,
    monthly_data: Union[Sequence[MonthlyRecord], CalculatedMetrics],
    context: Union[EvidenceContext, Mapping[str, Any]],
    settings: Optional[Settings] = None,
) -> EvidenceTrail:
    """Explain one number from ``monthly_data`` as a tree rooted at the metric.

    ``monthly_data`` must be the schedule computed from ``doc``. Unknown
    metric keys and months outside the schedule give an ``external`` leaf.
    """
    if not isinstance(context, EvidenceContext):
        context = EvidenceContext.from_dict(dict(context))
    if isinstance(monthly_data, CalculatedMetrics):
        monthly_data = monthly_data.monthly_data
    records = list(monthly_data)
    key, month = context.metric_key, context.month

    definition = get_metric(key)
    if definition is None:
        logger.debug("No evidence builder for metric %r", key)
        return EvidenceTrail(context, _external(key, f"No calculation trail for '{key}'"))

    if not definition.per_period:
        month = None
    elif month is not None and not 1 <= month <= len(records):
        return EvidenceTrail(
            context, _external(key, f"Month {month} is outside 1-{len(records)}")
        )
    if month is None and not definition.horizon:
        return EvidenceTrail(
            context, _external(key, f"'{key}' is only explained for a single month")
        )

    document = load_document(doc)
    driver_paths = context.active_driver_paths
    if driver_paths is None:
        driver_paths = document.driver_paths()
    ctx = TrailContext(
        projection=resolve_projection(document, len(records)),
        records=records,
        driver_paths=frozenset(driver_paths),
        settings=settings or get_settings(),
    )
    root = definition.builder(ctx, month)
    mismatched = verify_evidence_tree(root, ctx.settings.evidence_tolerance)  # type: ignore[arg-type]
    if mismatched:
        logger.warning("Evidence for %s does not reproduce nodes %s", key, mismatched)
    return EvidenceTrail(context, root, document.currency)  # type: ignore[arg-type]
