"""Driver overrides: write scalar values into assumption paths.

A driver's currently applied value is caller-side state (``DriverState``),
never stored on the document or on the driver itself.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any, Optional

from pydantic import ValidationError

from bizcase.engine.errors import DocumentError, EngineError, PathError
from bizcase.engine.paths import Key, get_nested_value, parse_path, set_nested_value
from bizcase.models.document import Driver

logger = logging.getLogger(__name__)


def _as_driver(driver: Any) -> Driver:
    if isinstance(driver, Driver):
        return driver
    try:
        return Driver.model_validate(driver)
    except ValidationError as e:
        raise DocumentError(f"Invalid driver definition: {e}") from e


def validate_driver_path(doc: Any, path: str) -> float:
    """Return the current numeric value at ``path`` or raise PathError.

    A driver path must end in a ``value`` key and resolve to a number.
    """
    segments = parse_path(path)
    if segments[-1] != Key("value"):
        raise PathError(f"Driver path '{path}' must end in '.value'", path=path)
    current = get_nested_value(doc, path)
    if isinstance(current, bool) or not isinstance(current, (int, float)):
        raise PathError(f"Driver path '{path}' does not resolve to a number", path=path)
    return current


def apply_driver_value(doc: Any, driver: Any, value: float) -> Any:
    """New document with ``value`` written at the driver's path."""
    path = _as_driver(driver).path
    validate_driver_path(doc, path)
    return set_nested_value(doc, path, value)


def apply_driver_values(
    doc: Any, drivers: Iterable[Any], overrides: Mapping[str, float]
) -> Any:
    """Apply every override, one driver after another, in driver order."""
    by_key = {d.key: d for d in map(_as_driver, drivers)}
    unknown = set(overrides) - set(by_key)
    if unknown:
        raise EngineError(f"Overrides reference unknown drivers: {sorted(unknown)}")
    result = doc
    for key, driver in by_key.items():
        if key in overrides:
            validate_driver_path(result, driver.path)
            result = set_nested_value(result, driver.path, overrides[key])
    return result


@dataclass(frozen=True)
class DriverState:
    """The caller's active drivers and the scalar override applied to each."""

    drivers: tuple[Driver, ...] = ()
    overrides: Mapping[str, float] = field(default_factory=dict)

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> DriverState:
        """The document's own drivers; each path must already hold a number."""
        drivers = tuple(_as_driver(d) for d in doc.get("drivers") or ())
        for driver in drivers:
            validate_driver_path(doc, driver.path)
        return cls(drivers=drivers)

    def get(self, key: str) -> Driver:
        for driver in self.drivers:
            if driver.key == key:
                return driver
        raise EngineError(f"Unknown driver '{key}'")

    @property
    def active_paths(self) -> frozenset[str]:
        return frozenset(d.path for d in self.drivers)

    def add_driver(self, doc: Any, driver: Any) -> DriverState:
        """Register a driver after checking its path exists in ``doc``.

        Re-adding a key replaces the previous definition and keeps its override.
        """
        driver = _as_driver(driver)
        validate_driver_path(doc, driver.path)
        drivers = tuple(d for d in self.drivers if d.key != driver.key) + (driver,)
        return replace(self, drivers=drivers)

    def remove_driver(self, key: str) -> DriverState:
        """Forget a driver and its override; documents are left untouched."""
        drivers = tuple(d for d in self.drivers if d.key != key)
        overrides = {k: v for k, v in self.overrides.items() if k != key}
        return replace(self, drivers=drivers, overrides=overrides)

    def set_override(self, key: str, value: float) -> DriverState:
        self.get(key)
        return replace(self, overrides={**self.overrides, key: value})

    def clear_override(self, key: str) -> DriverState:
        return replace(self, overrides={k: v for k, v in self.overrides.items() if k != key})

    def current_value(self, doc: Any, key: str) -> Optional[float]:
        """The override if one is set, else the document's value."""
        if key in self.overrides:
            return self.overrides[key]
        return get_nested_value(doc, self.get(key).path)

    def apply(self, doc: Any, extra: Optional[Mapping[str, float]] = None) -> Any:
        """``doc`` with every override (plus ``extra``) written in."""
        overrides = {**self.overrides, **(extra or {})}
        if overrides:
            logger.debug("Applying %d driver overrides", len(overrides))
        return apply_driver_values(doc, self.drivers, overrides)
