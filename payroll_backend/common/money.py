"""Decimal helpers shared by the calculator, the config store and the payslips.

All monetary arithmetic stays in ``Decimal``; ``round_money`` is the single
rounding primitive and is only applied when a breakdown is finalised.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    """Coerce DB/JSON values to Decimal without passing through binary float.

    ``None``, empty strings and unparsable values fall back to *default*.
    Floats are converted through ``repr`` so ``0.1`` stays ``Decimal("0.1")``.
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, Decimal):
        return value if value.is_finite() else default
    if isinstance(value, float):
        value = repr(value)
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return default
    return result if result.is_finite() else default


def round_money(value: Decimal, places: int = 2) -> Decimal:
    """Quantise *value* to *places* decimals, half away from zero."""
    exponent = Decimal(1).scaleb(-places)
    return value.quantize(exponent, rounding=ROUND_HALF_UP)


def percent_of(base: Decimal, rate: Decimal) -> Decimal:
    """``base * rate / 100`` without intermediate rounding."""
    return base * rate / HUNDRED


def safe_divide(numerator: Decimal, denominator: Decimal) -> Decimal:
    """Division that yields zero for a non-positive denominator."""
    if denominator <= ZERO:
        return ZERO
    return numerator / denominator


def format_money(value: Decimal, currency: str, places: int = 2) -> str:
    """Human form used in payslips: ``1,234.50 TND``."""
    return f"{round_money(value, places):,.{places}f} {currency}"


def truncate_error(message: str, limit: int = 500) -> str:
    """Trim an error message to the stored column width."""
    message = (message or "").strip()
    if len(message) <= limit:
        return message
    return message[: max(limit - 1, 0)] + "…"
