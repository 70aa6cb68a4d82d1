# backend/tests/conftest.py
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from rental_pricing.core.config import Settings
from rental_pricing.models import (
    Base,
    BasePrice,
    PricingTier,
    Rental,
    RentalPackage,
    Vehicle,
    VehicleModel,
)

START = datetime(2025, 3, 1, 9, 0, 0)


# -----------------------------
# Test DB: in-memory SQLite, one per test
# -----------------------------
@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def db(engine):
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def settings():
    return Settings(
        DATABASE_URL="sqlite://",
        TIER_BASIS="extension",
        EXTENSION_RATE_TYPE="hourly",
        ALLOW_LEGACY_VEHICLE_RATES=True,
        APPLY_MAX_RETRIES=3,
    )


# -----------------------------
# Factories
# -----------------------------
@pytest.fixture
def make_model(db):
    """Vehicle model + one vehicle; optional active hourly price and tiers."""

    def _make(hourly=None, tiers=(), legacy_hourly=None, name="Sedan"):
        vm = VehicleModel(name=name)
        db.add(vm)
        db.flush()
        vehicle = Vehicle(
            vehicle_model_id=vm.id,
            name=f"{name} #1",
            current_odometer=Decimal("1000"),
            hourly_rate=None if legacy_hourly is None else Decimal(str(legacy_hourly)),
        )
        db.add(vehicle)
        if hourly is not None:
            db.add(BasePrice(vehicle_model_id=vm.id, rate_type="hourly", price=Decimal(str(hourly)), is_active=True))
        for t in tiers:
            db.add(PricingTier(vehicle_model_id=vm.id, is_active=True, **t))
        db.commit()
        return vm, vehicle

    return _make


@pytest.fixture
def make_rental(db):
    def _make(vehicle, hours=24, total_amount="300", deposit_amount="0", overage_charge="0", **kw):
        r = Rental(
            vehicle_id=vehicle.id if vehicle is not None else None,
            rate_type="hourly",
            start_date=START,
            end_date=START + timedelta(hours=hours),
            total_amount=Decimal(total_amount),
            deposit_amount=Decimal(deposit_amount),
            overage_charge=Decimal(overage_charge),
            **kw,
        )
        db.add(r)
        db.commit()
        return r

    return _make


@pytest.fixture
def make_package(db):
    def _make(vm, included_km="200", extra_km_rate="2.5", name="Standard"):
        p = RentalPackage(
            vehicle_model_id=vm.id,
            name=name,
            included_kilometers=Decimal(included_km),
            extra_km_rate=Decimal(extra_km_rate),
        )
        db.add(p)
        db.commit()
        return p

    return _make


def tier(min_hours, max_hours, discount=None, price=None):
    """Row kwargs for a PricingTier."""
    if price is not None:
        return {
            "min_hours": Decimal(str(min_hours)),
            "max_hours": None if max_hours is None else Decimal(str(max_hours)),
            "calculation_method": "fixed",
            "price_amount": Decimal(str(price)),
        }
    return {
        "min_hours": Decimal(str(min_hours)),
        "max_hours": None if max_hours is None else Decimal(str(max_hours)),
        "calculation_method": "percentage",
        "discount_percentage": Decimal(str(discount or 0)),
    }
