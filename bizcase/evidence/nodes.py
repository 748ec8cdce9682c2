"""Evidence tree structures.

An evidence node explains one number. When ``operator`` is set, the node's
``value`` is the in-order combination of its children's values, so every such
node can be checked mechanically with ``verify_evidence_tree``.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from bizcase.engine.formatting import format_evidence_value
from bizcase.models.enums import EvidenceNodeType, EvidenceOperator


@dataclass(frozen=True)
class EvidenceNode:
    id: str
    type: EvidenceNodeType
    label: str
    value: Optional[Union[float, str]] = None
    unit: Optional[str] = None
    formula: Optional[str] = None
    rationale: Optional[str] = None
    path: Optional[str] = None
    is_driver: bool = False
    operator: Optional[EvidenceOperator] = None
    children: tuple[EvidenceNode, ...] = ()

    def walk(self) -> Iterable[EvidenceNode]:
        yield self
        for child in self.children:
            yield from child.walk()

    def to_dict(self, currency: str = "EUR") -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id, "type": self.type.value, "label": self.label}
        for key, value in (
            ("value", self.value),
            ("unit", self.unit),
            ("formula", self.formula),
            ("rationale", self.rationale),
            ("path", self.path),
        ):
            if value is not None:
                data[key] = value
        if self.value is not None:
            data["displayValue"] = format_evidence_value(self.value, self.unit, currency)
        if self.is_driver:
            data["isDriver"] = True
        if self.operator is not None:
            data["operator"] = self.operator.value
        data["children"] = [c.to_dict(currency) for c in self.children]
        return data


@dataclass(frozen=True)
class EvidenceContext:
    """Which number to explain.

    ``active_driver_paths=None`` means "use the document's own drivers".
    """

    metric_key: str
    month: Optional[int] = None
    active_driver_paths: Optional[frozenset[str]] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EvidenceContext:
        paths = data.get("activeDriverPaths", data.get("active_driver_paths"))
        return cls(
            metric_key=data.get("metricKey", data.get("metric_key", "")),
            month=data.get("month"),
            active_driver_paths=frozenset(paths) if paths is not None else None,
        )


@dataclass(frozen=True)
class EvidenceTrail:
    context: EvidenceContext
    root: EvidenceNode
    currency: str = "EUR"

    def to_dict(self) -> dict[str, Any]:
        return {
            "metricKey": self.context.metric_key,
            "month": self.context.month,
            "root": self.root.to_dict(self.currency),
        }


def combine(operator: EvidenceOperator, values: list[float]) -> float:
    """Combine child values in order, exactly as the calculation does."""
    if operator is EvidenceOperator.SUM:
        return sum(values)
    if operator is EvidenceOperator.PRODUCT:
        result = 1.0
        for v in values:
            result *= v
        return result
    if not values:
        return 0.0
    result = values[0]
    for v in values[1:]:
        result -= v
    return result


def verify_evidence_tree(node: EvidenceNode, tolerance: float = 1e-6) -> list[str]:
    """Ids of nodes whose operator does not reproduce their value."""
    failures = []
    for current in node.walk():
        if current.operator is None:
            continue
        values = [c.value for c in current.children]
        if not isinstance(current.value, (int, float)) or not all(
            isinstance(v, (int, float)) for v in values
        ):
            failures.append(current.id)
            continue
        expected = combine(current.operator, values)  # type: ignore[arg-type]
        if not math.isclose(current.value, expected, rel_tol=tolerance, abs_tol=tolerance):
            failures.append(current.id)
    return failures
