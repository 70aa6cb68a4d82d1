# backend/rental_pricing/api/overage_api.py
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..core.config import Settings
from ..pricing.errors import PricingError
from ..pricing.overage import RentalOverageService
from .deps import CurrentUser, get_current_user, get_db, get_settings, http_error

router = APIRouter(prefix="/api/rentals", tags=["overage"])


class OdometerIn(BaseModel):
    end_odometer: Decimal


class OverageCheckOut(BaseModel):
    computed: Decimal
    stored: Optional[Decimal] = None
    consistent: bool
    error_code: Optional[str] = None


class OdometerOut(BaseModel):
    rental_id: int
    total_distance: Decimal
    overage_charge: Decimal
    has_overage: bool
    package_id: Optional[int] = None
    previous: OverageCheckOut


@router.post(
    "/{rental_id}/odometer",
    response_model=OdometerOut,
    summary="Record the closing odometer and compute the km overage",
)
def record_odometer(
    body: OdometerIn,
    rental_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    cfg: Settings = Depends(get_settings),
    _user: CurrentUser = Depends(get_current_user),
):
    try:
        result = RentalOverageService(db, cfg).record_odometer(rental_id, body.end_odometer)
    except PricingError as e:
        raise http_error(e)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    return result.to_dict()


@router.get(
    "/{rental_id}/overage/audit",
    response_model=OverageCheckOut,
    summary="Compare the stored overage charge with a fresh computation",
)
def audit_overage(
    rental_id: int = Path(..., ge=1),
    repair: bool = Query(False, description="Overwrite the stored charge when they disagree"),
    db: Session = Depends(get_db),
    cfg: Settings = Depends(get_settings),
    _user: CurrentUser = Depends(get_current_user),
):
    try:
        check = RentalOverageService(db, cfg).audit_overage(rental_id, repair=repair)
    except PricingError as e:
        raise http_error(e)
    return check.to_dict()
