"""
Monetary precision helpers.

All persisted or compared amounts are `Decimal` quantized to 2 places with
ROUND_HALF_UP. Ratios used along the way (discount shares, tax bases) keep
full precision and are only rounded when a value is finalized.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, Union

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")

Number = Union[Decimal, int, str, float]


def to_decimal(value: Number | None, default: Decimal = ZERO) -> Decimal:
    """
    Convert to Decimal without rounding.

    Floats go through str() so 0.1 becomes Decimal("0.1"), not its binary
    expansion. Unparseable input returns `default`.
    """
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        return default
    try:
        if isinstance(value, float):
            result = Decimal(str(value))
        else:
            result = Decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        return default
    if not result.is_finite():
        return default
    return result


def round_money(value: Number | None) -> Decimal:
    """Quantize to cents, round-half-up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def clamp_non_negative(value: Decimal) -> Decimal:
    return value if value > 0 else ZERO


def clamp(value: Decimal, low: Decimal, high: Decimal) -> Decimal:
    if high < low:
        high = low
    return max(low, min(value, high))


def percent_of(amount: Decimal, percent: Number) -> Decimal:
    """`amount * percent / 100`, unrounded."""
    return amount * to_decimal(percent) / HUNDRED


def sum_money(values: Iterable[Decimal]) -> Decimal:
    return sum(values, ZERO)


def money_str(value: Decimal | None) -> str | None:
    """Serialize for JSON ("12.30"); None stays None."""
    if value is None:
        return None
    return str(round_money(value))
