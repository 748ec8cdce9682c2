from .drivers import (
    DriverState,
    apply_driver_value,
    apply_driver_values,
    validate_driver_path,
)
from .engine import ScenarioOutcome, SensitivityEngine, TornadoBar

__all__ = [
    "DriverState",
    "apply_driver_value",
    "apply_driver_values",
    "validate_driver_path",
    "ScenarioOutcome",
    "SensitivityEngine",
    "TornadoBar",
]
