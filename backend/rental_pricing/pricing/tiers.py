# backend/rental_pricing/pricing/tiers.py
"""
Stepped (tiered) duration pricing.

A tier covers the half-open hour range ``[min_hours, max_hours)`` and either
discounts the base rate by a percentage or replaces it with a fixed hourly
rate. A request for N hours starting at hour ``elapsed`` is cut into segments,
one per tier it crosses, and every hour lands in exactly one segment:

* hours inside a tier are priced at that tier's rate;
* hours between two configured tiers (a gap) are priced at the base rate;
* hours past the last tier are priced at the last tier's rate, or at the base
  rate when no tiers are configured.

Subtotals are accumulated unrounded and the total is rounded once.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Literal, Optional, Sequence

from .errors import InvalidTierConfiguration
from .money import HUNDRED, ZERO, NumberLike, parse_hours, round_money, to_decimal

SegmentKind = Literal["base", "tier", "gap", "overflow"]


# ----------------- Domain models -----------------
@dataclass(frozen=True)
class Tier:
    min_hours: Decimal
    max_hours: Optional[Decimal]
    calculation_method: Literal["percentage", "fixed"]
    discount_percentage: Optional[Decimal] = None
    price_amount: Optional[Decimal] = None
    id: Optional[int] = None

    @classmethod
    def from_row(cls, row: Any) -> "Tier":
        """Build from a PricingTier ORM row (or anything with the same attributes)."""
        method = (getattr(row, "calculation_method", None) or "percentage").lower()
        return cls(
            min_hours=to_decimal(row.min_hours),
            max_hours=to_decimal(row.max_hours, default=None),
            calculation_method=method,  # type: ignore[arg-type]
            discount_percentage=to_decimal(getattr(row, "discount_percentage", None), default=None),
            price_amount=to_decimal(getattr(row, "price_amount", None), default=None),
            id=getattr(row, "id", None),
        )

    @property
    def label(self) -> str:
        lo = format(self.min_hours.normalize(), "f")
        if self.max_hours is None:
            return f"{lo}h+"
        hi = format(self.max_hours.normalize(), "f")
        return f"{lo}-{hi}h"

    def rate_for(self, base_rate: Decimal) -> Decimal:
        if self.calculation_method == "fixed":
            return self.price_amount
        return base_rate * (1 - (self.discount_percentage or ZERO) / HUNDRED)


@dataclass
class TierSegment:
    kind: SegmentKind
    start_hour: Decimal
    hours: Decimal
    rate: Decimal
    subtotal: Decimal
    discount_percentage: Decimal = ZERO
    tier_id: Optional[int] = None
    tier_label: Optional[str] = None

    @property
    def end_hour(self) -> Decimal:
        return self.start_hour + self.hours

    def to_dict(self, quantum: Decimal = Decimal("0.01")) -> Dict[str, Any]:
        out = asdict(self)
        out["rate"] = round_money(self.rate, quantum)
        out["subtotal"] = round_money(self.subtotal, quantum)
        out["end_hour"] = self.end_hour
        return out


@dataclass
class TierQuote:
    base_rate: Decimal
    hours: Decimal
    breakdown: List[TierSegment] = field(default_factory=list)
    unrounded_total: Decimal = ZERO
    total_price: Decimal = ZERO

    @property
    def full_price(self) -> Decimal:
        return self.base_rate * self.hours

    @property
    def tiers_applied(self) -> List[str]:
        return list(dict.fromkeys(s.tier_label for s in self.breakdown if s.tier_label))


# ----------------- Validation -----------------
def validate_tiers(tiers: Iterable[Tier]) -> List[Tier]:
    """Return tiers ordered by min_hours; raise on malformed or overlapping ranges."""
    ordered = sorted(tiers, key=lambda t: t.min_hours)
    prev: Optional[Tier] = None
    for t in ordered:
        if t.min_hours < 0:
            raise InvalidTierConfiguration(f"Tier {t.label} starts below zero", tier_id=t.id)
        if t.max_hours is not None and t.max_hours <= t.min_hours:
            raise InvalidTierConfiguration(f"Tier {t.label} has an empty range", tier_id=t.id)
        if t.calculation_method == "fixed":
            if t.price_amount is None or t.price_amount < 0:
                raise InvalidTierConfiguration(f"Fixed tier {t.label} needs a price_amount >= 0", tier_id=t.id)
        elif t.calculation_method == "percentage":
            pct = t.discount_percentage
            if pct is None or pct < 0 or pct > HUNDRED:
                raise InvalidTierConfiguration(
                    f"Percentage tier {t.label} needs a discount between 0 and 100", tier_id=t.id
                )
        else:
            raise InvalidTierConfiguration(
                f"Unknown calculation method {t.calculation_method!r}", tier_id=t.id
            )
        if prev is not None and (prev.max_hours is None or prev.max_hours > t.min_hours):
            raise InvalidTierConfiguration(f"Tiers {prev.label} and {t.label} overlap", tier_id=t.id)
        prev = t
    return ordered


# ----------------- Engine -----------------
class TierEngine:
    """Pure calculator; holds nothing but the rounding unit."""

    def __init__(self, quantum: Decimal = Decimal("0.01")) -> None:
        self.quantum = quantum

    def compute(
        self,
        base_rate: NumberLike,
        hours_already_elapsed: NumberLike,
        extension_hours: NumberLike,
        ordered_tiers: Sequence[Tier] = (),
    ) -> TierQuote:
        hours = parse_hours(extension_hours)
        rate = to_decimal(base_rate)
        elapsed = to_decimal(hours_already_elapsed)
        if rate < 0:
            raise ValueError(f"base rate must be >= 0, got {rate}")
        if elapsed < 0:
            raise ValueError(f"elapsed hours must be >= 0, got {elapsed}")

        tiers = validate_tiers(ordered_tiers)
        quote = TierQuote(base_rate=rate, hours=hours)

        cursor = elapsed
        remaining = hours
        end = elapsed + hours

        for tier in tiers:
            if remaining <= 0:
                break
            tier_end = tier.max_hours
            if tier_end is not None and tier_end <= cursor:
                continue  # tier lies entirely behind us
            if tier.min_hours >= end:
                break  # this and every later tier lie beyond the request

            if tier.min_hours > cursor:
                gap = tier.min_hours - cursor
                self._add(quote, "gap", cursor, gap, rate)
                cursor += gap
                remaining -= gap

            upper = end if tier_end is None else min(end, tier_end)
            span = upper - cursor
            if span > 0:
                self._add(quote, "tier", cursor, span, tier.rate_for(rate), tier)
                cursor += span
                remaining -= span

        if remaining > 0:
            last = tiers[-1] if tiers else None
            if last is None:
                self._add(quote, "base", cursor, remaining, rate)
            elif last.max_hours is not None and cursor >= last.max_hours:
                self._add(quote, "overflow", cursor, remaining, last.rate_for(rate), last)
            else:
                # stopped short of a tier that starts after the requested window
                self._add(quote, "gap", cursor, remaining, rate)
            remaining = ZERO

        quote.total_price = round_money(quote.unrounded_total, self.quantum)
        return quote

    @staticmethod
    def _add(
        quote: TierQuote,
        kind: SegmentKind,
        start: Decimal,
        hours: Decimal,
        unit_rate: Decimal,
        tier: Optional[Tier] = None,
    ) -> None:
        discount = ZERO
        if tier is not None and tier.calculation_method == "percentage":
            discount = tier.discount_percentage or ZERO
        subtotal = unit_rate * hours
        quote.breakdown.append(
            TierSegment(
                kind=kind,
                start_hour=start,
                hours=hours,
                rate=unit_rate,
                subtotal=subtotal,
                discount_percentage=discount,
                tier_id=tier.id if tier else None,
                tier_label=tier.label if tier else None,
            )
        )
        quote.unrounded_total += subtotal
