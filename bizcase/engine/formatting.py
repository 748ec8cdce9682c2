"""Presentation helpers used in evidence formula strings and API payloads."""

from __future__ import annotations

from typing import Optional, Union

CURRENCY_SYMBOLS = {
    "EUR": "€",
    "USD": "$",
    "GBP": "£",
    "JPY": "¥",
    "CHF": "CHF ",
}


def format_currency(amount: float, currency: str = "EUR", decimals: int = 0) -> str:
    symbol = CURRENCY_SYMBOLS.get(currency.upper(), f"{currency.upper()} ")
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{abs(amount):,.{decimals}f}"


def format_percent(fraction: float, decimals: int = 1) -> str:
    """0.25 -> '25.0%'."""
    return f"{fraction * 100:.{decimals}f}%"


def format_number(value: float, decimals: int = 0) -> str:
    return f"{value:,.{decimals}f}"


def format_evidence_value(
    value: Optional[Union[float, str]], unit: Optional[str] = None, currency: str = "EUR"
) -> str:
    if value is None:
        return "N/A"
    if isinstance(value, str):
        return value
    unit = (unit or "").strip()
    if unit in ("%", "percent", "percentage"):
        return format_percent(value)
    if unit.upper() in (currency.upper(), "CURRENCY") or unit.upper() in CURRENCY_SYMBOLS:
        code = currency if unit.upper() == "CURRENCY" else unit
        return format_currency(value, code, decimals=2 if abs(value) < 100 else 0)
    if unit in ("month", "months"):
        return f"Month {int(value)}" if value else "Not reached"
    text = format_number(value, 2 if abs(value) < 100 else 0)
    return f"{text} {unit}" if unit else text
