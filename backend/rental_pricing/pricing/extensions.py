# backend/rental_pricing/pricing/extensions.py
"""
Rental extensions: quote, request, approve, reject, apply.

    DRAFT (ExtensionRequest, in memory)
      -> PENDING (row in rental_extensions)
      -> APPROVED | REJECTED (terminal)

``apply`` is the only code path that moves a rental's end date and totals,
and it only ever runs inside the same transaction that flips the extension
to APPROVED. The flip is a conditional UPDATE (``WHERE status = 'pending'``)
and the rental row carries a version counter, so an extension is applied at
most once even when two approvers race.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, TypeVar, Union

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..core.config import Settings, settings as default_settings
from ..models import Rental, RentalExtension
from .errors import (
    AlreadyApproved,
    ConcurrentUpdate,
    DataInconsistency,
    ExtensionNotFound,
    InvalidDuration,
    InvalidStateTransition,
    InvalidTierConfiguration,
    NoBasePriceConfigured,
    PersistenceFailure,
    PricingError,
    RentalNotFound,
)
from .financials import add_hours, apply_extension
from .merge import merge_field
from .money import ZERO, NumberLike, parse_hours, parse_price, round_money, to_decimal
from .resolver import PriceResolver, RequiresManualEntry
from .tiers import TierEngine

logger = logging.getLogger(__name__)

T = TypeVar("T")

PENDING, APPROVED, REJECTED = "pending", "approved", "rejected"


# ----------------- Value objects -----------------
@dataclass
class ExtensionQuote:
    rental_id: int
    hours: Optional[Decimal]
    total_price: Decimal = ZERO
    tier_breakdown: List[Dict[str, Any]] = field(default_factory=list)
    new_end_date: Optional[datetime] = None
    total_savings: Decimal = ZERO
    requires_manual_entry: bool = False
    error_code: Optional[str] = None
    message: Optional[str] = None
    base_rate: Optional[Decimal] = None
    rate_source: Optional[str] = None
    tiers_applied: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error_code is None

    @property
    def average_hourly_rate(self) -> Optional[Decimal]:
        if not self.ok or not self.hours:
            return None
        return round_money(self.total_price / self.hours)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rental_id": self.rental_id,
            "extension_hours": self.hours,
            "total_price": self.total_price,
            "tier_breakdown": self.tier_breakdown,
            "new_end_date": self.new_end_date,
            "total_savings": self.total_savings,
            "requires_manual_entry": self.requires_manual_entry,
            "error_code": self.error_code,
            "message": self.message,
            "base_rate": self.base_rate,
            "rate_source": self.rate_source,
            "average_hourly_rate": self.average_hourly_rate,
        }


@dataclass
class ExtensionRequest:
    """An extension before it is persisted."""

    rental_id: int
    extension_hours: Any
    manual_price: Any = None
    quoted_price: Any = None
    requested_by: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def from_data(cls, data: Union["ExtensionRequest", Dict[str, Any]]) -> "ExtensionRequest":
        if isinstance(data, cls):
            return data
        manual = data.get("manual_price")
        quoted = data.get("extension_price")
        # legacy payloads flag a hand-typed price through price_source
        if manual is None and (data.get("price_source") or "").lower() == "manual":
            manual, quoted = quoted, None
        return cls(
            rental_id=data.get("rental_id"),
            extension_hours=data.get("extension_hours"),
            manual_price=manual,
            quoted_price=quoted,
            requested_by=data.get("requested_by"),
            notes=data.get("notes"),
        )


@dataclass
class SubmitResult:
    extension: RentalExtension
    applied: bool
    inconsistency: Optional[DataInconsistency] = None


# ----------------- Orchestrator -----------------
class ExtensionOrchestrator:
    def __init__(
        self,
        db: Session,
        settings: Settings,
        resolver: Optional[PriceResolver] = None,
        tier_engine: Optional[TierEngine] = None,
    ) -> None:
        self.db = db
        self.settings = settings
        self.resolver = resolver or PriceResolver(db, settings)
        self.tier_engine = tier_engine or TierEngine(settings.PRICE_QUANTUM)

    # ---------- pricing (no writes) ----------
    def calculate_price(self, rental_id: int, hours: NumberLike) -> ExtensionQuote:
        """Price an extension. Failures come back in the quote, never as exceptions."""
        try:
            hours_d = parse_hours(hours, rental_id=rental_id)
        except InvalidDuration as e:
            logger.info("Quote rejected: %s", e)
            return ExtensionQuote(rental_id=rental_id, hours=None, error_code=e.code, message=e.message)

        rental = self.db.get(Rental, rental_id)
        if rental is None:
            e = RentalNotFound(rental_id=rental_id)
            return ExtensionQuote(rental_id=rental_id, hours=hours_d, error_code=e.code, message=e.message)

        try:
            new_end = add_hours(rental.end_date, hours_d)
        except InvalidDuration as e:
            logger.info("Quote rejected: %s", e)
            return ExtensionQuote(rental_id=rental_id, hours=hours_d, error_code=e.code, message=e.message)
        model_id = rental.vehicle.vehicle_model_id if rental.vehicle else None
        rate_type = self.settings.EXTENSION_RATE_TYPE

        resolution = self.resolver.resolve(model_id, rate_type, vehicle_id=rental.vehicle_id)
        if isinstance(resolution, RequiresManualEntry):
            return ExtensionQuote(
                rental_id=rental_id,
                hours=hours_d,
                new_end_date=new_end,
                requires_manual_entry=True,
                error_code=resolution.error_code,
                message=resolution.reason,
            )

        try:
            tier_quote = self.tier_engine.compute(
                resolution.amount,
                self._elapsed_hours(rental),
                hours_d,
                self.resolver.tiers_for(model_id),
            )
        except InvalidTierConfiguration as e:
            logger.error("Tier configuration for model %s is invalid: %s", model_id, e)
            return ExtensionQuote(
                rental_id=rental_id,
                hours=hours_d,
                new_end_date=new_end,
                requires_manual_entry=True,
                error_code=e.code,
                message=e.message,
                base_rate=resolution.amount,
                rate_source=resolution.source,
            )

        quantum = self.settings.PRICE_QUANTUM
        savings = round_money(tier_quote.full_price, quantum) - tier_quote.total_price
        logger.debug(
            "Rental %s +%sh: %s at base %s/%s (%s)",
            rental_id, hours_d, tier_quote.total_price, resolution.amount, rate_type, resolution.source,
        )
        return ExtensionQuote(
            rental_id=rental_id,
            hours=hours_d,
            total_price=tier_quote.total_price,
            tier_breakdown=[s.to_dict(quantum) for s in tier_quote.breakdown],
            new_end_date=new_end,
            total_savings=savings,
            base_rate=resolution.amount,
            rate_source=resolution.source,
            tiers_applied=tier_quote.tiers_applied,
        )

    def _elapsed_hours(self, rental: Rental) -> Decimal:
        if self.settings.TIER_BASIS != "cumulative":
            return ZERO
        seconds = (rental.end_date - rental.start_date).total_seconds()
        return max(ZERO, Decimal(str(seconds)) / Decimal(3600))

    # ---------- commands ----------
    def submit(self, extension_data: Union[ExtensionRequest, Dict[str, Any]], auto_approve: bool = False) -> SubmitResult:
        """
        Persist a PENDING extension, or an APPROVED one applied in the same
        transaction when the caller is allowed to auto-approve.
        """
        req = ExtensionRequest.from_data(extension_data)
        hours = parse_hours(req.extension_hours, rental_id=req.rental_id)
        rental = self.db.get(Rental, req.rental_id) if req.rental_id is not None else None
        if rental is None:
            raise RentalNotFound(rental_id=req.rental_id)
        # a manual price skips the quote, so the new end date is checked here
        add_hours(rental.end_date, hours)

        manual = parse_price(req.manual_price, rental_id=req.rental_id) if req.manual_price is not None else None
        quote: Optional[ExtensionQuote] = None
        inconsistency: Optional[DataInconsistency] = None
        inferred = None

        if manual is None:
            quote = self.calculate_price(req.rental_id, hours)
            if quote.requires_manual_entry:
                raise NoBasePriceConfigured(
                    quote.message, rental_id=req.rental_id, hours=hours, cause=quote.error_code
                )
            if quote.error_code == InvalidDuration.code:
                raise InvalidDuration(quote.message, rental_id=req.rental_id, hours=hours)
            if not quote.ok:
                raise PricingError(quote.message, rental_id=req.rental_id, hours=hours, cause=quote.error_code)
            inferred = quote.total_price
            inconsistency = self._check_quoted(req, inferred)

        price = merge_field(manual=manual, inferred=inferred)
        price_source = "manual" if price.source == "manual" else "auto"

        def work() -> RentalExtension:
            ext = RentalExtension(
                rental_id=req.rental_id,
                extension_hours=hours,
                extension_price=price.value,
                status=APPROVED if auto_approve else PENDING,
                price_source=price_source,
                tier_applied=(", ".join(quote.tiers_applied) or None) if price_source == "auto" else None,
                tier_breakdown=_jsonable(quote.tier_breakdown) if price_source == "auto" else None,
                requested_by=req.requested_by,
                notes=req.notes,
            )
            if auto_approve:
                ext.approved_by = req.requested_by
                ext.approved_at = datetime.utcnow()
            self.db.add(ext)
            self.db.flush()
            if auto_approve:
                self.apply(ext)
            return ext

        ext = self._in_transaction(work, rental_id=req.rental_id, hours=hours)
        logger.info(
            "Extension #%s for rental %s: %sh at %s (%s, %s)",
            ext.id, ext.rental_id, hours, price.value, price_source, ext.status,
        )
        return SubmitResult(extension=ext, applied=auto_approve, inconsistency=inconsistency)

    def approve(self, extension_id: int, approver_id: Any) -> RentalExtension:
        def work() -> RentalExtension:
            ext = self._pending_extension(extension_id)
            self._transition(ext, APPROVED, approver_id)
            self.apply(ext)
            return ext

        ext = self._in_transaction(work, extension_id=extension_id)
        logger.info("Extension #%s approved by %s", extension_id, approver_id)
        return ext

    def reject(self, extension_id: int, approver_id: Any, notes: Optional[str] = None) -> RentalExtension:
        def work() -> RentalExtension:
            ext = self._pending_extension(extension_id)
            self._transition(ext, REJECTED, approver_id, notes=notes)
            return ext

        ext = self._in_transaction(work, extension_id=extension_id)
        logger.info("Extension #%s rejected by %s", extension_id, approver_id)
        return ext

    def apply(self, extension: Union[RentalExtension, int]) -> Rental:
        """
        Add an approved extension to its rental, at most once per extension.
        Runs inside the caller's transaction; the caller commits.
        """
        ext = extension if isinstance(extension, RentalExtension) else self._get_extension(extension)
        if ext.status != APPROVED:
            raise InvalidStateTransition(
                "Only approved extensions can be applied", extension_id=ext.id, status=ext.status
            )
        # claim the extension; a second apply finds applied_at already set
        res = self.db.execute(
            update(RentalExtension)
            .where(
                RentalExtension.id == ext.id,
                RentalExtension.status == APPROVED,
                RentalExtension.applied_at.is_(None),
            )
            .values(applied_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            raise AlreadyApproved(
                "Error: extension was already applied to the rental", extension_id=ext.id, rental_id=ext.rental_id
            )
        self.db.refresh(ext)

        rental = self.db.execute(
            select(Rental)
            .where(Rental.id == ext.rental_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if rental is None:
            raise RentalNotFound(rental_id=ext.rental_id, extension_id=ext.id)

        apply_extension(rental, ext.extension_hours, ext.extension_price, self.settings.PAYMENT_TOLERANCE)
        self.db.flush()
        return rental

    def history(self, rental_id: int) -> List[RentalExtension]:
        return list(
            self.db.execute(
                select(RentalExtension)
                .where(RentalExtension.rental_id == rental_id)
                .order_by(RentalExtension.created_at.desc(), RentalExtension.id.desc())
            ).scalars().all()
        )

    # ---------- helpers ----------
    def _get_extension(self, extension_id: int) -> RentalExtension:
        ext = self.db.get(RentalExtension, extension_id)
        if ext is None:
            raise ExtensionNotFound(extension_id=extension_id)
        return ext

    def _pending_extension(self, extension_id: int) -> RentalExtension:
        ext = self._get_extension(extension_id)
        _require_pending(ext)
        return ext

    def _transition(self, ext: RentalExtension, status: str, actor: Any, notes: Optional[str] = None) -> None:
        values: Dict[str, Any] = {
            "status": status,
            "approved_by": None if actor is None else str(actor),
            "approved_at": datetime.utcnow(),
            "updated_at": func.now(),
        }
        if notes is not None:
            values["notes"] = notes
        res = self.db.execute(
            update(RentalExtension)
            .where(RentalExtension.id == ext.id, RentalExtension.status == PENDING)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            # somebody else moved it first; report what it is now
            self.db.refresh(ext)
            _require_pending(ext)
        self.db.refresh(ext)

    def _check_quoted(self, req: ExtensionRequest, computed: Decimal) -> Optional[DataInconsistency]:
        """A price the client was shown earlier must still match a fresh quote."""
        if req.quoted_price is None:
            return None
        quoted = to_decimal(req.quoted_price, default=None)
        if quoted is not None and abs(quoted - computed) <= self.settings.PRICE_QUANTUM:
            return None
        issue = DataInconsistency(
            "Quoted extension price differs from current pricing; using current pricing",
            stored=quoted,
            computed=computed,
            rental_id=req.rental_id,
        )
        logger.warning("%s", issue)
        return issue

    def _in_transaction(self, work: Callable[[], T], **context: Any) -> T:
        """Run ``work`` and commit, rolling everything back on any failure."""
        attempts = max(1, self.settings.APPLY_MAX_RETRIES)
        for attempt in range(1, attempts + 1):
            try:
                result = work()
                self.db.commit()
                return result
            except StaleDataError as e:
                self.db.rollback()
                logger.warning("Concurrent rental update (attempt %d/%d): %s", attempt, attempts, context)
                if attempt == attempts:
                    raise ConcurrentUpdate(cause=e, **context) from e
            except PricingError:
                self.db.rollback()
                raise
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error("Write failed, rolled back (%s): %s", context, e)
                raise PersistenceFailure(cause=e, **context) from e
            except BaseException:
                self.db.rollback()
                raise
        raise AssertionError("unreachable")


def _require_pending(ext: RentalExtension) -> None:
    if ext.status == PENDING:
        return
    if ext.status == APPROVED:
        raise AlreadyApproved(extension_id=ext.id, rental_id=ext.rental_id)
    raise InvalidStateTransition(
        f"Extension is {ext.status}, not pending", extension_id=ext.id, rental_id=ext.rental_id
    )


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


# ----------------- Library entry points -----------------
def calculate_extension_price(db: Session, rental_id: int, hours: NumberLike, settings: Settings = None) -> Dict[str, Any]:
    return ExtensionOrchestrator(db, settings or default_settings).calculate_price(rental_id, hours).to_dict()


def create_extension_request(
    db: Session,
    extension_data: Dict[str, Any],
    auto_approve: bool = False,
    settings: Settings = None,
) -> Dict[str, Any]:
    result = ExtensionOrchestrator(db, settings or default_settings).submit(extension_data, auto_approve)
    out: Dict[str, Any] = {"extension": result.extension}
    if result.inconsistency is not None:
        out["warnings"] = [result.inconsistency.to_dict()]
    return out


def approve_extension(db: Session, extension_id: int, approver_id: Any, settings: Settings = None) -> Dict[str, Any]:
    ext = ExtensionOrchestrator(db, settings or default_settings).approve(extension_id, approver_id)
    return {"success": True, "rental_id": ext.rental_id}


def reject_extension(db: Session, extension_id: int, approver_id: Any, settings: Settings = None) -> Dict[str, Any]:
    ExtensionOrchestrator(db, settings or default_settings).reject(extension_id, approver_id)
    return {"success": True}


def get_extension_history(db: Session, rental_id: int, settings: Settings = None) -> Dict[str, Any]:
    return {"extensions": ExtensionOrchestrator(db, settings or default_settings).history(rental_id)}
