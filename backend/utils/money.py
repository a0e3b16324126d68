"""Exact decimal helpers for USDC amounts.

Amounts travel through the system as decimal strings and are only ever
combined as ``Decimal`` values. Every computed amount is rendered with a
fixed number of fractional digits (8 for money) using ROUND_HALF_UP.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

from utils.errors import InvalidArgumentError

AMOUNT_PLACES = 8
PERCENT_PLACES = 2
ZERO_AMOUNT = "0.00000000"
HUNDRED = Decimal(100)

DecimalLike = Union[str, int, float, Decimal]


def to_decimal(value: DecimalLike, name: str = "amount") -> Decimal:
    """Parse a decimal-like value, rejecting malformed and non-finite input."""
    if isinstance(value, bool) or value is None:
        raise InvalidArgumentError(f"{name} must be a decimal value, got {value!r}")
    if isinstance(value, Decimal):
        parsed = value
    else:
        # floats go through str() so 0.1 stays 0.1 instead of its binary expansion
        text = str(value).strip()
        try:
            parsed = Decimal(text)
        except (InvalidOperation, ValueError) as exc:
            raise InvalidArgumentError(f"{name} is not a valid decimal: {value!r}") from exc
    if not parsed.is_finite():
        raise InvalidArgumentError(f"{name} must be finite, got {value!r}")
    return parsed


def quantize(value: DecimalLike, places: int = AMOUNT_PLACES) -> Decimal:
    exponent = Decimal(1).scaleb(-places)
    return to_decimal(value).quantize(exponent, rounding=ROUND_HALF_UP)


def format_amount(value: DecimalLike, places: int = AMOUNT_PLACES) -> str:
    """Render ``value`` with exactly ``places`` fractional digits."""
    return f"{quantize(value, places):.{places}f}"


def apply_percentage(amount: DecimalLike, percentage: DecimalLike) -> str:
    """``amount * percentage / 100`` rounded to 8 fractional digits."""
    result = to_decimal(amount) * to_decimal(percentage, "percentage") / HUNDRED
    return format_amount(result)


def add(*values: DecimalLike) -> str:
    total = sum((to_decimal(v) for v in values), Decimal(0))
    return format_amount(total)


def lte(a: DecimalLike, b: DecimalLike) -> bool:
    return to_decimal(a) <= to_decimal(b)


def gt(a: DecimalLike, b: DecimalLike) -> bool:
    return to_decimal(a) > to_decimal(b)


def is_positive(value: DecimalLike) -> bool:
    return gt(value, 0)


def require_positive(value: DecimalLike, name: str = "amount") -> Decimal:
    """Parse ``value`` and raise InvalidArgumentError unless it is > 0."""
    parsed = to_decimal(value, name)
    if parsed <= 0:
        raise InvalidArgumentError(f"{name} must be positive")
    return parsed
