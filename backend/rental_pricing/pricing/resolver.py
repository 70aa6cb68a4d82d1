# backend/rental_pricing/pricing/resolver.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Literal, Optional, Union

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.config import Settings
from ..models import RATE_TYPES, BasePrice, PricingTier, Vehicle
from .errors import NoBasePriceConfigured
from .money import to_decimal
from .tiers import Tier

logger = logging.getLogger(__name__)

RateSource = Literal["base_price", "legacy_vehicle_rate"]


@dataclass(frozen=True)
class ResolvedRate:
    amount: Decimal
    rate_type: str
    source: RateSource
    record_id: Optional[int] = None

    requires_manual_entry = False


@dataclass(frozen=True)
class RequiresManualEntry:
    rate_type: str
    reason: str
    error_code: str = NoBasePriceConfigured.code

    requires_manual_entry = True

    def as_error(self, **context) -> NoBasePriceConfigured:
        return NoBasePriceConfigured(self.reason, rate_type=self.rate_type, **context)


Resolution = Union[ResolvedRate, RequiresManualEntry]


class PriceResolver:
    """
    Finds the rate for (vehicle model, rate type). Read-only.

    Order: active BasePrice row -> flat rate on the vehicle record (legacy,
    deprecated) -> RequiresManualEntry. A rate of zero or less counts as
    "not configured".
    """

    def __init__(self, db: Session, settings: Settings) -> None:
        self.db = db
        self.allow_legacy = settings.ALLOW_LEGACY_VEHICLE_RATES

    def resolve(
        self,
        vehicle_model_id: Optional[int],
        rate_type: str,
        vehicle_id: Optional[int] = None,
    ) -> Resolution:
        rate_type = (rate_type or "").lower()
        if rate_type not in RATE_TYPES:
            raise ValueError(f"Unknown rate type {rate_type!r}; expected one of {RATE_TYPES}")

        if vehicle_model_id is not None:
            record = self._active_base_price(vehicle_model_id, rate_type)
            if record is not None:
                amount = to_decimal(record.price)
                if amount > 0:
                    return ResolvedRate(amount=amount, rate_type=rate_type, source="base_price", record_id=record.id)
                logger.warning(
                    "Base price #%s for model %s/%s is %s; ignoring", record.id, vehicle_model_id, rate_type, amount
                )

        if self.allow_legacy and vehicle_id is not None:
            legacy = self._legacy_vehicle_rate(vehicle_id, rate_type)
            if legacy is not None:
                logger.warning(
                    "Using deprecated flat %s rate from vehicle %s (model %s has no active base price)",
                    rate_type, vehicle_id, vehicle_model_id,
                )
                return ResolvedRate(amount=legacy, rate_type=rate_type, source="legacy_vehicle_rate", record_id=vehicle_id)

        logger.info("No %s rate configured for model %s (vehicle %s)", rate_type, vehicle_model_id, vehicle_id)
        return RequiresManualEntry(
            rate_type=rate_type,
            reason=f"No {rate_type} pricing configured for this vehicle model",
        )

    def tiers_for(self, vehicle_model_id: Optional[int]) -> List[Tier]:
        """Active tiers of a model, ordered by min_hours."""
        if vehicle_model_id is None:
            return []
        rows = self.db.execute(
            select(PricingTier)
            .where(PricingTier.vehicle_model_id == vehicle_model_id, PricingTier.is_active.is_(True))
            .order_by(PricingTier.min_hours.asc(), PricingTier.id.asc())
        ).scalars().all()
        return [Tier.from_row(r) for r in rows]

    # ----------------- lookups -----------------
    def _active_base_price(self, vehicle_model_id: int, rate_type: str) -> Optional[BasePrice]:
        rows = self.db.execute(
            select(BasePrice)
            .where(
                BasePrice.vehicle_model_id == vehicle_model_id,
                BasePrice.rate_type == rate_type,
                BasePrice.is_active.is_(True),
            )
            .order_by(BasePrice.updated_at.desc(), BasePrice.id.desc())
        ).scalars().all()
        if len(rows) > 1:
            logger.warning(
                "%d active %s base prices for model %s; using #%s",
                len(rows), rate_type, vehicle_model_id, rows[0].id,
            )
        return rows[0] if rows else None

    def _legacy_vehicle_rate(self, vehicle_id: int, rate_type: str) -> Optional[Decimal]:
        vehicle = self.db.get(Vehicle, vehicle_id)
        if vehicle is None:
            return None
        amount = to_decimal(getattr(vehicle, f"{rate_type}_rate"), default=None)
        if amount is None or amount <= 0:
            return None
        return amount
