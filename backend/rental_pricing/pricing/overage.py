# backend/rental_pricing/pricing/overage.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import Settings
from ..models import Rental, RentalPackage
from .errors import DataInconsistency, PersistenceFailure, RentalNotFound
from .financials import recompute_remaining
from .merge import merge_field
from .money import ZERO, NumberLike, round_money, to_decimal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OverageCheck:
    computed: Decimal
    stored: Optional[Decimal]
    inconsistency: Optional[DataInconsistency] = None

    @property
    def consistent(self) -> bool:
        return self.inconsistency is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "computed": self.computed,
            "stored": self.stored,
            "consistent": self.consistent,
            "error_code": self.inconsistency.code if self.inconsistency else None,
        }


class OverageCalculator:
    """extra_km = max(0, driven - included); charge = extra_km * rate."""

    def __init__(self, tolerance: Decimal = Decimal("0.01"), quantum: Decimal = Decimal("0.01")) -> None:
        self.tolerance = tolerance
        self.quantum = quantum

    def compute(self, total_km_driven: NumberLike, included_km: NumberLike, extra_km_rate: NumberLike) -> Decimal:
        driven = to_decimal(total_km_driven)
        included = to_decimal(included_km)
        rate = to_decimal(extra_km_rate)
        if included < 0:
            raise ValueError(f"included kilometers must be >= 0, got {included}")
        if rate < 0:
            raise ValueError(f"extra km rate must be >= 0, got {rate}")
        extra = max(ZERO, driven - included)
        return round_money(extra * rate, self.quantum)

    def reconcile(self, stored: NumberLike, computed: Decimal, **context: Any) -> OverageCheck:
        """Compare a persisted overage with a fresh one. Never picks a winner silently."""
        stored_value = to_decimal(stored, default=None)
        if stored_value is None or abs(stored_value - computed) <= self.tolerance:
            return OverageCheck(computed=computed, stored=stored_value)

        issue = DataInconsistency(
            "Stored overage charge disagrees with recomputed value",
            stored=stored_value,
            computed=computed,
            **context,
        )
        logger.warning("%s", issue)
        return OverageCheck(computed=computed, stored=stored_value, inconsistency=issue)


# ----------------- Rental-level operations -----------------
@dataclass
class OdometerResult:
    rental_id: int
    total_distance: Decimal
    overage_charge: Decimal
    has_overage: bool
    package_id: Optional[int]
    previous: OverageCheck

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rental_id": self.rental_id,
            "total_distance": self.total_distance,
            "overage_charge": self.overage_charge,
            "has_overage": self.has_overage,
            "package_id": self.package_id,
            "previous": self.previous.to_dict(),
        }


class RentalOverageService:
    """Package assignment, odometer close-out and overage audits against stored rentals."""

    def __init__(self, db: Session, settings: Settings) -> None:
        self.db = db
        self.calculator = OverageCalculator(settings.OVERAGE_TOLERANCE, settings.PRICE_QUANTUM)

    def default_package(self, vehicle_model_id: Optional[int]) -> Optional[RentalPackage]:
        """Smallest active package (fewest included km) for the model."""
        if vehicle_model_id is None:
            return None
        return self.db.execute(
            select(RentalPackage)
            .where(RentalPackage.vehicle_model_id == vehicle_model_id, RentalPackage.is_active.is_(True))
            .order_by(RentalPackage.included_kilometers.asc(), RentalPackage.id.asc())
            .limit(1)
        ).scalars().first()

    def assign_package(self, rental: Rental) -> Optional[RentalPackage]:
        package = rental.package
        if package is None:
            model_id = rental.vehicle.vehicle_model_id if rental.vehicle else None
            package = self.default_package(model_id)
            if package is None:
                logger.info("No active package for rental %s (model %s)", rental.id, model_id)
                return None
            rental.package_id = package.id
            rental.package = package
            logger.info("Assigned package #%s to rental %s", package.id, rental.id)

        # staff-entered values already on the rental win over the package defaults
        rental.included_kilometers = merge_field(
            existing=rental.included_kilometers, inferred=package.included_kilometers
        ).value
        rental.extra_km_rate_applied = merge_field(
            existing=rental.extra_km_rate_applied, inferred=package.extra_km_rate
        ).value
        return package

    def check_stored(self, rental: Rental) -> OverageCheck:
        """Recompute from what is stored now and compare with the stored charge."""
        if rental.included_kilometers is None or rental.total_kilometers_driven is None:
            stored = to_decimal(rental.overage_charge, default=None)
            return OverageCheck(computed=stored if stored is not None else ZERO, stored=stored)
        computed = self.calculator.compute(
            rental.total_kilometers_driven, rental.included_kilometers, rental.extra_km_rate_applied
        )
        return self.calculator.reconcile(rental.overage_charge, computed, rental_id=rental.id)

    def record_odometer(self, rental_id: int, end_odometer: NumberLike) -> OdometerResult:
        rental = self.db.get(Rental, rental_id)
        if rental is None:
            raise RentalNotFound(rental_id=rental_id)
        end = to_decimal(end_odometer, default=None)
        start = to_decimal(rental.start_odometer)
        if end is None or end < start:
            raise ValueError(f"end odometer {end_odometer!r} is below start odometer {start}")

        previous = self.check_stored(rental)
        try:
            self.assign_package(rental)
            distance = end - start
            overage = ZERO
            if rental.included_kilometers is not None:
                overage = self.calculator.compute(
                    distance, rental.included_kilometers, rental.extra_km_rate_applied
                )

            rental.ending_odometer = end
            rental.total_kilometers_driven = distance
            rental.overage_charge = overage
            rental.has_kilometer_overage = overage > 0
            recompute_remaining(rental)
            if rental.vehicle is not None:
                rental.vehicle.current_odometer = end

            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Odometer update failed for rental %s: %s", rental_id, e)
            raise PersistenceFailure("Could not record odometer", rental_id=rental_id, cause=e) from e
        except BaseException:
            self.db.rollback()
            raise

        logger.info(
            "Rental %s: %s km driven, overage %s (package %s)",
            rental_id, distance, overage, rental.package_id,
        )
        return OdometerResult(
            rental_id=rental_id,
            total_distance=distance,
            overage_charge=overage,
            has_overage=overage > 0,
            package_id=rental.package_id,
            previous=previous,
        )

    def audit_overage(self, rental_id: int, repair: bool = False) -> OverageCheck:
        rental = self.db.get(Rental, rental_id)
        if rental is None:
            raise RentalNotFound(rental_id=rental_id)
        check = self.check_stored(rental)
        if check.consistent or not repair:
            return check

        try:
            logger.warning(
                "Repairing overage on rental %s: stored %s -> computed %s",
                rental_id, check.stored, check.computed,
            )
            rental.overage_charge = check.computed
            rental.has_kilometer_overage = check.computed > 0
            recompute_remaining(rental)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceFailure("Could not repair overage", rental_id=rental_id, cause=e) from e
        except BaseException:
            self.db.rollback()
            raise
        return check
