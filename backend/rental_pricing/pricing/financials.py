# backend/rental_pricing/pricing/financials.py
"""
The money side of a rental.

``remaining_amount`` is a pure function of four stored fields and is
recomputed on every write of a Rental (see the mapper hook in ``models``).
``apply_extension`` is the only code that adds an extension to a rental.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from .errors import InvalidDuration
from .money import ZERO, NumberLike, to_decimal

PAID_IN_FULL = "paid_in_full"
PARTIALLY_PAID = "partially_paid"


@dataclass(frozen=True)
class FinancialState:
    total_amount: Decimal = ZERO
    overage_charge: Decimal = ZERO
    total_extension_price: Decimal = ZERO
    deposit_amount: Decimal = ZERO

    @classmethod
    def of(cls, rental: Any) -> "FinancialState":
        return cls(
            total_amount=to_decimal(rental.total_amount),
            overage_charge=to_decimal(rental.overage_charge),
            total_extension_price=to_decimal(rental.total_extension_price),
            deposit_amount=to_decimal(rental.deposit_amount),
        )

    @property
    def grand_total(self) -> Decimal:
        return self.total_amount + self.overage_charge + self.total_extension_price

    @property
    def remaining_amount(self) -> Decimal:
        return max(ZERO, self.grand_total - self.deposit_amount)


def recompute_remaining(rental: Any) -> Decimal:
    remaining = FinancialState.of(rental).remaining_amount
    rental.remaining_amount = remaining
    return remaining


def is_payment_complete(rental: Any, tolerance: Decimal = Decimal("0.01")) -> bool:
    remaining = FinancialState.of(rental).remaining_amount
    return remaining <= tolerance or rental.payment_status == PAID_IN_FULL


def apply_extension(
    rental: Any,
    hours: NumberLike,
    price: NumberLike,
    tolerance: Decimal = Decimal("0.01"),
) -> None:
    """Mutate the rental in memory; the caller owns the transaction."""
    hours = to_decimal(hours)
    price = to_decimal(price)
    new_end = add_hours(rental.end_date, hours)

    if rental.original_end_date is None:
        rental.original_end_date = rental.end_date
    rental.end_date = new_end
    rental.total_extension_price = to_decimal(rental.total_extension_price) + price
    rental.extension_count = int(rental.extension_count or 0) + 1
    rental.total_extended_hours = to_decimal(rental.total_extended_hours) + hours

    remaining = recompute_remaining(rental)
    if rental.payment_status == PAID_IN_FULL and remaining > tolerance:
        rental.payment_status = PARTIALLY_PAID


def add_hours(when: datetime, hours: Decimal) -> datetime:
    """InvalidDuration when the result falls outside the datetime range."""
    try:
        return when + timedelta(seconds=float(hours * 3600))
    except (OverflowError, ValueError) as e:
        raise InvalidDuration(
            f"Extension of {hours}h moves the end date out of range", hours=hours, end_date=when
        ) from e
