# backend/rental_pricing/api/extensions_api.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Path, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..core.config import Settings
from ..pricing.errors import PricingError
from ..pricing.extensions import ExtensionOrchestrator
from .deps import CurrentUser, can_auto_approve, get_current_user, get_db, get_settings, http_error

router = APIRouter(prefix="/api", tags=["extensions"])


# ---------- Pydantic schemas ----------
class TierSegmentOut(BaseModel):
    kind: str
    start_hour: Decimal
    end_hour: Decimal
    hours: Decimal
    rate: Decimal
    subtotal: Decimal
    discount_percentage: Decimal = Decimal("0")
    tier_id: Optional[int] = None
    tier_label: Optional[str] = None


class QuoteOut(BaseModel):
    rental_id: int
    extension_hours: Optional[Decimal] = None
    total_price: Decimal
    tier_breakdown: List[TierSegmentOut] = []
    new_end_date: Optional[datetime] = None
    total_savings: Decimal
    requires_manual_entry: bool
    error_code: Optional[str] = None
    message: Optional[str] = None
    base_rate: Optional[Decimal] = None
    rate_source: Optional[str] = None
    average_hourly_rate: Optional[Decimal] = None


class ExtensionCreate(BaseModel):
    extension_hours: Decimal
    manual_price: Optional[Decimal] = Field(None, description="Hand-entered price; skips tier pricing")
    extension_price: Optional[Decimal] = Field(None, description="Price shown to the customer in the quote")
    notes: Optional[str] = None


class ExtensionOut(BaseModel):
    id: int
    rental_id: int
    extension_hours: Decimal
    extension_price: Decimal
    status: str
    price_source: str
    tier_applied: Optional[str] = None
    tier_breakdown: Optional[List[Dict[str, Any]]] = None
    requested_by: Optional[str] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    applied_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ExtensionCreated(BaseModel):
    extension: ExtensionOut
    warnings: List[Dict[str, Any]] = []


class DecisionIn(BaseModel):
    notes: Optional[str] = None


# ---------- Endpoints ----------
@router.get(
    "/rentals/{rental_id}/extensions/quote",
    response_model=QuoteOut,
    summary="Price an extension (no writes)",
)
def quote_extension(
    rental_id: int = Path(..., ge=1),
    hours: str = Query(..., description="Extension length in hours"),
    db: Session = Depends(get_db),
    cfg: Settings = Depends(get_settings),
    _user: CurrentUser = Depends(get_current_user),
):
    # failures are reported inside the quote so the UI can fall back to manual entry
    return ExtensionOrchestrator(db, cfg).calculate_price(rental_id, hours).to_dict()


@router.post(
    "/rentals/{rental_id}/extensions",
    response_model=ExtensionCreated,
    status_code=status.HTTP_201_CREATED,
    summary="Request an extension (auto-approved for approver roles)",
)
def create_extension(
    body: ExtensionCreate,
    rental_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    cfg: Settings = Depends(get_settings),
    current: CurrentUser = Depends(get_current_user),
):
    data = body.model_dump()
    data.update(rental_id=rental_id, requested_by=current.id)
    try:
        result = ExtensionOrchestrator(db, cfg).submit(data, auto_approve=can_auto_approve(current, cfg))
    except PricingError as e:
        raise http_error(e)
    warnings = [result.inconsistency.to_dict()] if result.inconsistency else []
    return {"extension": ExtensionOut.model_validate(result.extension), "warnings": warnings}


@router.get(
    "/rentals/{rental_id}/extensions",
    response_model=List[ExtensionOut],
    summary="Extension history, newest first",
)
def list_extensions(
    rental_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    cfg: Settings = Depends(get_settings),
    _user: CurrentUser = Depends(get_current_user),
):
    return ExtensionOrchestrator(db, cfg).history(rental_id)


@router.post(
    "/extensions/{extension_id}/approve",
    summary="Approve a pending extension and apply it to the rental",
)
def approve_extension(
    extension_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    cfg: Settings = Depends(get_settings),
    current: CurrentUser = Depends(get_current_user),
):
    try:
        ext = ExtensionOrchestrator(db, cfg).approve(extension_id, current.id)
    except PricingError as e:
        raise http_error(e)
    return {"success": True, "rental_id": ext.rental_id}


@router.post(
    "/extensions/{extension_id}/reject",
    summary="Reject a pending extension",
)
def reject_extension(
    body: Optional[DecisionIn] = None,
    extension_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    cfg: Settings = Depends(get_settings),
    current: CurrentUser = Depends(get_current_user),
):
    try:
        ExtensionOrchestrator(db, cfg).reject(extension_id, current.id, notes=body.notes if body else None)
    except PricingError as e:
        raise http_error(e)
    return {"success": True}
