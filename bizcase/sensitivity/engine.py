"""Five-point sensitivity sweeps and tornado ranking."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from bizcase.config.settings import Settings
from bizcase.engine.calculator import CalculationEngine
from bizcase.engine.errors import EngineError
from bizcase.engine.result import CalculatedMetrics
from bizcase.models.enums import SCENARIO_POINTS, ScenarioPoint
from bizcase.sensitivity.drivers import DriverState

logger = logging.getLogger(__name__)

# Scalar outputs a sweep can rank by, keyed by both wire and attribute names.
METRIC_ATTRIBUTES = {
    "totalRevenue": "total_revenue",
    "netProfit": "net_profit",
    "npv": "npv",
    "irr": "irr",
    "paybackPeriod": "payback_period",
    "breakEvenMonth": "break_even_month",
    "totalInvestmentRequired": "total_investment_required",
}
METRIC_ATTRIBUTES.update({v: v for v in list(METRIC_ATTRIBUTES.values())})


def metric_value(metrics: CalculatedMetrics, metric: str) -> float:
    try:
        return getattr(metrics, METRIC_ATTRIBUTES[metric])
    except KeyError:
        raise EngineError(f"Unknown metric '{metric}'") from None


@dataclass(frozen=True)
class ScenarioOutcome:
    point: ScenarioPoint
    value: float
    metrics: CalculatedMetrics

    def to_dict(self, include_monthly: bool = False) -> dict[str, Any]:
        metrics = self.metrics.to_dict()
        if not include_monthly:
            metrics.pop("monthlyData")
        return {"point": self.point.value, "value": self.value, "metrics": metrics}


@dataclass(frozen=True)
class TornadoBar:
    """Output range of one driver between its very-low and very-high points."""

    driver_key: str
    label: str
    low_input: float
    high_input: float
    low_output: float
    high_output: float
    base_output: float

    @property
    def swing(self) -> float:
        return abs(self.high_output - self.low_output)

    def to_dict(self) -> dict[str, Any]:
        return {
            "driverKey": self.driver_key,
            "label": self.label,
            "lowInput": self.low_input,
            "highInput": self.high_input,
            "lowOutput": self.low_output,
            "highOutput": self.high_output,
            "baseOutput": self.base_output,
            "swing": self.swing,
        }


class SensitivityEngine:
    """Recomputes metrics for driver scenarios; holds no per-call state."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        calculator: Optional[CalculationEngine] = None,
    ):
        self.calculator = calculator or CalculationEngine(settings)

    def recalculate(self, doc: Any, state: DriverState) -> CalculatedMetrics:
        return self.calculator.calculate(state.apply(doc))

    def sweep(self, doc: Any, state: DriverState, driver_key: str) -> list[ScenarioOutcome]:
        """One full recomputation per range point of ``driver_key``.

        Every other driver stays at its current override.
        """
        driver = state.get(driver_key)
        outcomes = []
        for point, value in zip(SCENARIO_POINTS, driver.range):
            metrics = self.calculator.calculate(state.apply(doc, {driver_key: value}))
            outcomes.append(ScenarioOutcome(point=point, value=value, metrics=metrics))
        logger.debug("Swept driver %s over %d points", driver_key, len(outcomes))
        return outcomes

    def tornado(self, doc: Any, state: DriverState, metric: str = "npv") -> list[TornadoBar]:
        """Drivers ranked by how far ``metric`` moves between their extremes."""
        base_output = metric_value(self.recalculate(doc, state), metric)
        bars = []
        for driver in state.drivers:
            low, high = driver.range[0], driver.range[-1]
            low_metrics = self.calculator.calculate(state.apply(doc, {driver.key: low}))
            high_metrics = self.calculator.calculate(state.apply(doc, {driver.key: high}))
            bars.append(
                TornadoBar(
                    driver_key=driver.key,
                    label=driver.label or driver.key,
                    low_input=low,
                    high_input=high,
                    low_output=metric_value(low_metrics, metric),
                    high_output=metric_value(high_metrics, metric),
                    base_output=base_output,
                )
            )
        bars.sort(key=lambda b: (-b.swing, b.driver_key))
        return bars
