# backend/rental_pricing/pricing/money.py
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, getcontext
from typing import Optional, Union

from .errors import InvalidDuration, InvalidPrice

getcontext().prec = 28

ZERO = Decimal("0")
HUNDRED = Decimal("100")

NumberLike = Optional[Union[int, float, str, Decimal]]


def to_decimal(x: NumberLike, default: Optional[Decimal] = ZERO) -> Optional[Decimal]:
    """None/'' -> default; floats go through str() to avoid binary noise."""
    if x is None or x == "":
        return default
    if isinstance(x, bool):
        raise TypeError("bool is not a number")
    if isinstance(x, Decimal):
        return x
    if isinstance(x, int):
        return Decimal(x)
    return Decimal(str(x))


def round_money(value: Decimal, quantum: Decimal = Decimal("0.01")) -> Decimal:
    return value.quantize(quantum, rounding=ROUND_HALF_UP)


def parse_hours(value: NumberLike, **context) -> Decimal:
    """Validate an extension duration; InvalidDuration on anything but a finite number > 0."""
    try:
        hours = to_decimal(value, default=None)
    except (TypeError, ValueError, InvalidOperation):
        raise InvalidDuration(f"Invalid extension hours: {value!r}", hours=value, **context)
    if hours is None or not hours.is_finite() or hours <= 0:
        raise InvalidDuration(f"Invalid extension hours: {value!r}", hours=value, **context)
    return hours


def parse_price(value: NumberLike, **context) -> Decimal:
    try:
        price = to_decimal(value, default=None)
    except (TypeError, ValueError, InvalidOperation):
        raise InvalidPrice(f"Invalid price: {value!r}", price=value, **context)
    if price is None or not price.is_finite() or price < 0:
        raise InvalidPrice(f"Invalid price: {value!r}", price=value, **context)
    return price
