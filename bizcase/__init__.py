from .engine.calculator import CalculationEngine, calculate_business_metrics
from .engine.paths import get_nested_value, set_nested_value
from .evidence.trail import build_evidence_trail
from .sensitivity.drivers import apply_driver_value, apply_driver_values

__all__ = [
    "CalculationEngine",
    "calculate_business_metrics",
    "build_evidence_trail",
    "get_nested_value",
    "set_nested_value",
    "apply_driver_value",
    "apply_driver_values",
]
