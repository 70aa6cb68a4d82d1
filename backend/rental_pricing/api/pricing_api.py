# backend/rental_pricing/api/pricing_api.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from pydantic import BaseModel, validator
from sqlalchemy.orm import Session

from ..core.config import Settings
from ..models import RATE_TYPES, VehicleModel
from ..pricing import admin
from ..pricing.errors import PricingError, VehicleModelNotFound
from ..pricing.resolver import PriceResolver, RequiresManualEntry
from .deps import CurrentUser, get_current_user, get_db, get_settings, http_error

router = APIRouter(prefix="/api/pricing", tags=["pricing"])


# ---------- Pydantic schemas ----------
class RateOut(BaseModel):
    vehicle_model_id: int
    rate_type: str
    amount: Optional[Decimal] = None
    source: Optional[str] = None
    record_id: Optional[int] = None
    requires_manual_entry: bool
    error_code: Optional[str] = None
    message: Optional[str] = None


class BasePriceIn(BaseModel):
    price: Decimal


class BasePriceOut(BaseModel):
    id: int
    vehicle_model_id: int
    rate_type: str
    price: Decimal
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TierIn(BaseModel):
    min_hours: Decimal
    max_hours: Optional[Decimal] = None
    calculation_method: str = "percentage"
    discount_percentage: Optional[Decimal] = None
    price_amount: Optional[Decimal] = None

    @validator("calculation_method")
    def _method_lower(cls, v: str) -> str:
        return (v or "").strip().lower()


class TierOut(BaseModel):
    id: int
    min_hours: Decimal
    max_hours: Optional[Decimal] = None
    calculation_method: str
    discount_percentage: Optional[Decimal] = None
    price_amount: Optional[Decimal] = None
    label: str
    is_active: bool

    class Config:
        from_attributes = True


class PackageOut(BaseModel):
    id: int
    name: str
    included_kilometers: Decimal
    extra_km_rate: Decimal
    base_price: Optional[Decimal] = None
    rate_type: Optional[str] = None
    is_active: bool

    class Config:
        from_attributes = True


def _check_rate_type(rate_type: str) -> str:
    rt = (rate_type or "").lower()
    if rt not in RATE_TYPES:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"rate_type must be one of {', '.join(RATE_TYPES)}",
        )
    return rt


# ---------- Endpoints ----------
@router.get(
    "/models/{model_id}/rates/{rate_type}",
    response_model=RateOut,
    summary="Resolve the effective rate for a vehicle model",
)
def resolve_rate(
    model_id: int = Path(..., ge=1),
    rate_type: str = Path(...),
    vehicle_id: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
    cfg: Settings = Depends(get_settings),
    _user: CurrentUser = Depends(get_current_user),
):
    rt = _check_rate_type(rate_type)
    if db.get(VehicleModel, model_id) is None:
        raise http_error(VehicleModelNotFound(vehicle_model_id=model_id))

    res = PriceResolver(db, cfg).resolve(model_id, rt, vehicle_id=vehicle_id)
    if isinstance(res, RequiresManualEntry):
        return RateOut(
            vehicle_model_id=model_id,
            rate_type=rt,
            requires_manual_entry=True,
            error_code=res.error_code,
            message=res.reason,
        )
    return RateOut(
        vehicle_model_id=model_id,
        rate_type=rt,
        amount=res.amount,
        source=res.source,
        record_id=res.record_id,
        requires_manual_entry=False,
    )


@router.put(
    "/models/{model_id}/base-prices/{rate_type}",
    response_model=BasePriceOut,
    summary="Set the active base price (previous one is deactivated)",
)
def put_base_price(
    body: BasePriceIn,
    model_id: int = Path(..., ge=1),
    rate_type: str = Path(...),
    db: Session = Depends(get_db),
    _user: CurrentUser = Depends(get_current_user),
):
    rt = _check_rate_type(rate_type)
    try:
        return admin.upsert_base_price(db, model_id, rt, body.price)
    except PricingError as e:
        raise http_error(e)


@router.put(
    "/models/{model_id}/tiers",
    response_model=List[TierOut],
    summary="Replace the active tier set of a vehicle model",
)
def put_tiers(
    body: List[TierIn],
    model_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    _user: CurrentUser = Depends(get_current_user),
):
    try:
        return admin.replace_tiers(db, model_id, [t.model_dump() for t in body])
    except PricingError as e:
        raise http_error(e)


@router.get(
    "/models/{model_id}/packages",
    response_model=List[PackageOut],
    summary="Kilometre packages of a vehicle model, smallest first",
)
def get_packages(
    model_id: int = Path(..., ge=1),
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
    _user: CurrentUser = Depends(get_current_user),
):
    return admin.list_packages(db, model_id, include_inactive=include_inactive)
