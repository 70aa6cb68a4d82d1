# backend/rental_pricing/pricing/admin.py
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import RATE_TYPES, BasePrice, PricingTier, RentalPackage, VehicleModel
from .errors import PersistenceFailure, VehicleModelNotFound
from .money import parse_price, to_decimal
from .tiers import Tier, validate_tiers

logger = logging.getLogger(__name__)


def _ensure_model(db: Session, vehicle_model_id: int) -> VehicleModel:
    vm = db.get(VehicleModel, vehicle_model_id)
    if vm is None:
        raise VehicleModelNotFound(vehicle_model_id=vehicle_model_id)
    return vm


def upsert_base_price(db: Session, vehicle_model_id: int, rate_type: str, price: Any) -> BasePrice:
    """Deactivate the current active price for (model, rate_type) and add a new one, atomically."""
    rate_type = (rate_type or "").lower()
    if rate_type not in RATE_TYPES:
        raise ValueError(f"Unknown rate type {rate_type!r}")
    amount = parse_price(price, vehicle_model_id=vehicle_model_id)
    _ensure_model(db, vehicle_model_id)

    try:
        db.execute(
            update(BasePrice)
            .where(
                BasePrice.vehicle_model_id == vehicle_model_id,
                BasePrice.rate_type == rate_type,
                BasePrice.is_active.is_(True),
            )
            .values(is_active=False)
            .execution_options(synchronize_session="fetch")
        )
        # the partial unique index sees the deactivation before the insert
        db.flush()
        row = BasePrice(vehicle_model_id=vehicle_model_id, rate_type=rate_type, price=amount, is_active=True)
        db.add(row)
        db.commit()
        db.refresh(row)
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceFailure(
            "Could not save base price", vehicle_model_id=vehicle_model_id, rate_type=rate_type, cause=e
        ) from e
    logger.info("Base price for model %s/%s set to %s (#%s)", vehicle_model_id, rate_type, amount, row.id)
    return row


def deactivate_base_price(db: Session, base_price_id: int) -> Optional[BasePrice]:
    row = db.get(BasePrice, base_price_id)
    if row is None:
        return None
    try:
        row.is_active = False
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceFailure("Could not deactivate base price", base_price_id=base_price_id, cause=e) from e
    return row


def replace_tiers(db: Session, vehicle_model_id: int, tiers: Iterable[Dict[str, Any]]) -> List[PricingTier]:
    """
    Swap a model's active tier set for a new one. The new set is validated
    (ordered, non-overlapping) before anything is written; old tiers are
    deactivated, not deleted.
    """
    _ensure_model(db, vehicle_model_id)
    incoming = [
        Tier(
            min_hours=to_decimal(t.get("min_hours")),
            max_hours=to_decimal(t.get("max_hours"), default=None),
            calculation_method=(t.get("calculation_method") or "percentage").lower(),
            discount_percentage=to_decimal(t.get("discount_percentage"), default=None),
            price_amount=to_decimal(t.get("price_amount"), default=None),
        )
        for t in tiers
    ]
    ordered = validate_tiers(incoming)

    try:
        db.execute(
            update(PricingTier)
            .where(PricingTier.vehicle_model_id == vehicle_model_id, PricingTier.is_active.is_(True))
            .values(is_active=False)
            .execution_options(synchronize_session="fetch")
        )
        rows = [
            PricingTier(
                vehicle_model_id=vehicle_model_id,
                min_hours=t.min_hours,
                max_hours=t.max_hours,
                calculation_method=t.calculation_method,
                discount_percentage=t.discount_percentage,
                price_amount=t.price_amount,
                is_active=True,
            )
            for t in ordered
        ]
        db.add_all(rows)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceFailure("Could not save pricing tiers", vehicle_model_id=vehicle_model_id, cause=e) from e
    logger.info("Model %s now has %d active tiers", vehicle_model_id, len(rows))
    return rows


def list_packages(db: Session, vehicle_model_id: int, include_inactive: bool = False) -> List[RentalPackage]:
    stmt = select(RentalPackage).where(RentalPackage.vehicle_model_id == vehicle_model_id)
    if not include_inactive:
        stmt = stmt.where(RentalPackage.is_active.is_(True))
    return list(db.execute(stmt.order_by(RentalPackage.included_kilometers.asc())).scalars().all())
