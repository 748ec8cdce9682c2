"""Scalar investment metrics over a monthly cash-flow schedule.

Rates are annual; period ``p`` (1-based, monthly) is discounted over ``p / 12``
years.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from typing import Optional

from bizcase.engine.errors import NumericError

logger = logging.getLogger(__name__)

IRR_NO_SOLUTION = -999.0

_BRACKET_STEPS = 200


def discount_factor(annual_rate: float, period: int) -> float:
    """``1 / (1 + r)^(p/12)``; 0 when ``1 + r`` is not positive."""
    base = 1 + annual_rate
    if base <= 0:
        return 0.0
    return base ** (-period / 12)


def calculate_npv(cash_flows: Sequence[float], annual_rate: float) -> float:
    return sum(cf * discount_factor(annual_rate, p) for p, cf in enumerate(cash_flows, start=1))


def _npv_derivative(cash_flows: Sequence[float], annual_rate: float) -> float:
    base = 1 + annual_rate
    return sum(
        -(p / 12) * cf * base ** (-p / 12 - 1) for p, cf in enumerate(cash_flows, start=1)
    )


def _has_sign_change(cash_flows: Sequence[float]) -> bool:
    return any(cf > 0 for cf in cash_flows) and any(cf < 0 for cf in cash_flows)


def _find_bracket(
    cash_flows: Sequence[float], lower: float, upper: float
) -> tuple[float, float]:
    """Scan ``[lower, upper]`` on a log(1 + r) grid for the first sign change."""
    lo_log = math.log1p(lower)
    hi_log = math.log1p(upper)
    prev_rate = lower
    prev_npv = calculate_npv(cash_flows, prev_rate)
    if prev_npv == 0:
        return prev_rate, prev_rate
    for i in range(1, _BRACKET_STEPS + 1):
        rate = math.expm1(lo_log + (hi_log - lo_log) * i / _BRACKET_STEPS)
        value = calculate_npv(cash_flows, rate)
        if value == 0:
            return rate, rate
        if (value > 0) != (prev_npv > 0):
            return prev_rate, rate
        prev_rate, prev_npv = rate, value
    raise NumericError(f"No IRR sign change between {lower} and {upper}")


def calculate_irr(
    cash_flows: Sequence[float],
    lower: float = -0.99,
    upper: float = 1000.0,
    tolerance: float = 1e-9,
    max_iterations: int = 200,
) -> float:
    """Annual rate at which the discounted cash flows sum to zero.

    Brackets the root first, then refines with Newton steps that fall back to
    bisection whenever a step would leave the bracket. Returns
    ``IRR_NO_SOLUTION`` when the flows never change sign or no bracket exists.
    """
    if not _has_sign_change(cash_flows):
        logger.warning("IRR undefined: cash flows never change sign")
        return IRR_NO_SOLUTION
    try:
        lo, hi = _find_bracket(cash_flows, lower, upper)
    except NumericError as e:
        logger.warning("IRR undefined: %s", e)
        return IRR_NO_SOLUTION
    if lo == hi:
        return lo

    scale = max(1.0, sum(abs(cf) for cf in cash_flows))
    f_lo = calculate_npv(cash_flows, lo)
    rate = (lo + hi) / 2
    for _ in range(max_iterations):
        value = calculate_npv(cash_flows, rate)
        if abs(value) <= tolerance * scale or hi - lo <= tolerance:
            break
        if (value > 0) == (f_lo > 0):
            lo, f_lo = rate, value
        else:
            hi = rate
        slope = _npv_derivative(cash_flows, rate)
        candidate = rate - value / slope if slope != 0 else None
        if candidate is None or not lo < candidate < hi:
            candidate = (lo + hi) / 2
        if abs(candidate - rate) <= tolerance:
            rate = candidate
            break
        rate = candidate
    logger.debug("IRR converged to %.6f in bracket [%.6f, %.6f]", rate, lo, hi)
    return rate


def is_irr_meaningful(irr: Optional[float]) -> bool:
    """False for the no-solution sentinel and for |irr| above 100%."""
    if irr is None or math.isnan(irr) or irr == IRR_NO_SOLUTION:
        return False
    return abs(irr) <= 1


def describe_irr(irr: Optional[float]) -> str:
    if irr is None or math.isnan(irr) or irr == IRR_NO_SOLUTION:
        return "Not meaningful: cash flows never change sign, so no rate returns them to zero"
    if abs(irr) > 1:
        return f"Not meaningful: {irr:.1%} is outside the plausible range (±100%)"
    return f"{irr:.1%} annual internal rate of return"


def cumulative(values: Sequence[float]) -> list[float]:
    running = 0.0
    out = []
    for v in values:
        running += v
        out.append(running)
    return out


def calculate_payback_period(cash_flows: Sequence[float]) -> int:
    """First 1-based period where cumulative cash flow is >= 0; 0 if never."""
    for p, total in enumerate(cumulative(cash_flows), start=1):
        if total >= 0:
            return p
    return 0


def calculate_break_even(ebitda: Sequence[float]) -> int:
    """First 1-based period with EBITDA >= 0 (first touch); 0 if never."""
    for p, value in enumerate(ebitda, start=1):
        if value >= 0:
            return p
    return 0


def investment_trough(cash_flows: Sequence[float]) -> tuple[int, float]:
    """(period, cumulative position) of the deepest funding gap before payback.

    Scans periods ``1..payback`` (the whole horizon if payback never happens).
    Returns ``(0, 0.0)`` when the cumulative position never goes negative.
    """
    payback = calculate_payback_period(cash_flows)
    horizon = cumulative(cash_flows)
    if payback:
        horizon = horizon[:payback]
    trough_period, trough = 0, 0.0
    for p, total in enumerate(horizon, start=1):
        if total < trough:
            trough_period, trough = p, total
    return trough_period, trough


def calculate_investment_required(cash_flows: Sequence[float]) -> float:
    return abs(investment_trough(cash_flows)[1])
