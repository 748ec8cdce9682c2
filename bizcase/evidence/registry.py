from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Optional

# Global registry -- maps metric key -> MetricDefinition
_REGISTRY: dict[str, MetricDefinition] = {}
_ALIASES: dict[str, str] = {}


@dataclass(frozen=True)
class MetricDefinition:
    """A metric the evidence builder knows how to explain."""

    key: str
    label: str
    builder: Callable[..., object]
    unit: str = "currency"
    per_period: bool = True
    horizon: bool = True


def snake_case(key: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()


def register_metric(
    key: str,
    label: str,
    unit: str = "currency",
    per_period: bool = True,
    horizon: bool = True,
    aliases: tuple[str, ...] = (),
) -> Callable:
    """Decorator to register an evidence builder for a metric key.

    The snake_case form of ``key`` is registered as an alias automatically.
    """

    def decorator(fn: Callable[..., object]) -> Callable[..., object]:
        _REGISTRY[key] = MetricDefinition(
            key=key,
            label=label,
            builder=fn,
            unit=unit,
            per_period=per_period,
            horizon=horizon,
        )
        for alias in (snake_case(key), *aliases):
            _ALIASES[alias] = key
        return fn

    return decorator


def get_metric(key: str) -> Optional[MetricDefinition]:
    """Look up a metric by camelCase key or any alias."""
    return _REGISTRY.get(key) or _REGISTRY.get(_ALIASES.get(key, ""))


def get_all_metrics() -> dict[str, MetricDefinition]:
    """Return the full registry (read-only copy)."""
    return dict(_REGISTRY)
