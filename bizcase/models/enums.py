from enum import Enum


class BusinessModel(str, Enum):
    RECURRING = "recurring"
    UNIT_SALES = "unit_sales"
    COST_SAVINGS = "cost_savings"


class PatternType(str, Enum):
    GEOM_GROWTH = "geom_growth"
    LINEAR_GROWTH = "linear_growth"
    SEASONAL_GROWTH = "seasonal_growth"
    TIME_SERIES = "time_series"


class ValueSource(str, Enum):
    """Which expansion stage produced a per-period value."""

    BASE = "base"
    PATTERN = "pattern"
    YEARLY = "yearly"
    OVERRIDE = "override"


class EvidenceNodeType(str, Enum):
    CALCULATED = "calculated"
    FORMULA = "formula"
    ASSUMPTION = "assumption"
    INPUT = "input"
    DRIVER = "driver"
    EXTERNAL = "external"


class EvidenceOperator(str, Enum):
    """How a node's value combines its children's values, in order."""

    SUM = "sum"
    PRODUCT = "product"
    DIFFERENCE = "difference"


class ScenarioPoint(str, Enum):
    VERY_LOW = "very_low"
    LOW = "low"
    BASE = "base"
    HIGH = "high"
    VERY_HIGH = "very_high"


SCENARIO_POINTS: tuple[ScenarioPoint, ...] = tuple(ScenarioPoint)
