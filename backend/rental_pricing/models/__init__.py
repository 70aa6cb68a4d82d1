# [BEGIN FILE] backend/rental_pricing/models/__init__.py
from decimal import Decimal

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    Index,
    CheckConstraint,
    func,
    text,
    Numeric,
    Boolean,
    JSON,
    event,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

RATE_TYPES = ("hourly", "daily", "weekly")
TIER_METHODS = ("percentage", "fixed")
EXTENSION_STATUSES = ("pending", "approved", "rejected")
PRICE_SOURCES = ("auto", "manual")

Money = Numeric(12, 2)
Hours = Numeric(10, 2)


def format_hours(value) -> str:
    """2.00 -> '2', 2.50 -> '2.5'"""
    return format(Decimal(str(value)).normalize(), "f")


# =========================
# Fleet
# =========================
class VehicleModel(Base):
    __tablename__ = "vehicle_models"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    model = Column(String(255), nullable=True)
    vehicle_type = Column(String(50), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="1")

    vehicles = relationship("Vehicle", back_populates="vehicle_model", lazy="selectin")
    base_prices = relationship("BasePrice", back_populates="vehicle_model", cascade="all, delete-orphan", lazy="selectin")
    tiers = relationship(
        "PricingTier",
        back_populates="vehicle_model",
        cascade="all, delete-orphan",
        order_by="PricingTier.min_hours",
        lazy="selectin",
    )
    packages = relationship("RentalPackage", back_populates="vehicle_model", cascade="all, delete-orphan", lazy="selectin")


class Vehicle(Base):
    __tablename__ = "vehicles"
    id = Column(Integer, primary_key=True, index=True)
    vehicle_model_id = Column(Integer, ForeignKey("vehicle_models.id", ondelete="SET NULL"), nullable=True)
    name = Column(String(255), nullable=False)
    plate_number = Column(String(50), nullable=True)
    current_odometer = Column(Numeric(12, 1), nullable=True)

    # Legacy flat rates; read only through PriceResolver's deprecated fallback
    hourly_rate = Column(Money, nullable=True)
    daily_rate = Column(Money, nullable=True)
    weekly_rate = Column(Money, nullable=True)

    vehicle_model = relationship("VehicleModel", back_populates="vehicles", lazy="selectin")

    __table_args__ = (Index("ix_vehicles_model", "vehicle_model_id"),)


# =========================
# Pricing configuration
# =========================
class BasePrice(Base):
    __tablename__ = "base_prices"
    id = Column(Integer, primary_key=True, index=True)
    vehicle_model_id = Column(Integer, ForeignKey("vehicle_models.id", ondelete="CASCADE"), nullable=False)
    rate_type = Column(String(20), nullable=False)
    price = Column(Money, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, server_default="1")

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    vehicle_model = relationship("VehicleModel", back_populates="base_prices", lazy="selectin")

    __table_args__ = (
        CheckConstraint("rate_type IN ('hourly','daily','weekly')", name="ck_base_price_rate_type"),
        CheckConstraint("price >= 0", name="ck_base_price_non_negative"),
        # at most one active price per (model, rate_type)
        Index(
            "uix_base_price_active",
            "vehicle_model_id",
            "rate_type",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )


class PricingTier(Base):
    __tablename__ = "pricing_tiers"
    id = Column(Integer, primary_key=True, index=True)
    vehicle_model_id = Column(Integer, ForeignKey("vehicle_models.id", ondelete="CASCADE"), nullable=False)
    min_hours = Column(Hours, nullable=False, default=0)
    max_hours = Column(Hours, nullable=True)  # NULL = unbounded
    calculation_method = Column(String(20), nullable=False, default="percentage")
    discount_percentage = Column(Numeric(5, 2), nullable=True)
    price_amount = Column(Money, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="1")

    vehicle_model = relationship("VehicleModel", back_populates="tiers", lazy="selectin")

    __table_args__ = (
        CheckConstraint("calculation_method IN ('percentage','fixed')", name="ck_tier_method"),
        CheckConstraint("min_hours >= 0", name="ck_tier_min_hours"),
        CheckConstraint("max_hours IS NULL OR max_hours > min_hours", name="ck_tier_range"),
        Index("ix_pricing_tiers_model", "vehicle_model_id", "min_hours"),
    )

    @property
    def label(self) -> str:
        if self.max_hours is None:
            return f"{format_hours(self.min_hours)}h+"
        return f"{format_hours(self.min_hours)}-{format_hours(self.max_hours)}h"


class RentalPackage(Base):
    __tablename__ = "rental_packages"
    id = Column(Integer, primary_key=True, index=True)
    vehicle_model_id = Column(Integer, ForeignKey("vehicle_models.id", ondelete="CASCADE"), nullable=True)
    name = Column(String(255), nullable=False)
    included_kilometers = Column(Numeric(12, 1), nullable=False, default=0)
    extra_km_rate = Column(Money, nullable=False, default=0)
    base_price = Column(Money, nullable=True)
    rate_type = Column(String(20), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="1")

    vehicle_model = relationship("VehicleModel", back_populates="packages", lazy="selectin")

    __table_args__ = (
        CheckConstraint("included_kilometers >= 0", name="ck_package_included_km"),
        CheckConstraint("extra_km_rate >= 0", name="ck_package_extra_rate"),
    )


# =========================
# Rentals & extensions
# =========================
class Rental(Base):
    __tablename__ = "rentals"
    id = Column(Integer, primary_key=True, index=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id", ondelete="SET NULL"), nullable=True)
    rate_type = Column(String(20), nullable=True)

    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    original_end_date = Column(DateTime, nullable=True)

    unit_price = Column(Money, nullable=True)
    total_amount = Column(Money, nullable=False, default=0)
    overage_charge = Column(Money, nullable=False, default=0)
    total_extension_price = Column(Money, nullable=False, default=0)
    extension_count = Column(Integer, nullable=False, default=0)
    total_extended_hours = Column(Hours, nullable=False, default=0)
    deposit_amount = Column(Money, nullable=False, default=0)
    # derived: see pricing.financials.recompute_remaining
    remaining_amount = Column(Money, nullable=False, default=0)
    payment_status = Column(String(30), nullable=False, default="unpaid")

    # kilometer package
    package_id = Column(Integer, ForeignKey("rental_packages.id", ondelete="SET NULL"), nullable=True)
    included_kilometers = Column(Numeric(12, 1), nullable=True)
    extra_km_rate_applied = Column(Money, nullable=True)
    start_odometer = Column(Numeric(12, 1), nullable=True)
    ending_odometer = Column(Numeric(12, 1), nullable=True)
    total_kilometers_driven = Column(Numeric(12, 1), nullable=True)
    has_kilometer_overage = Column(Boolean, nullable=False, default=False)

    version_id = Column(Integer, nullable=False)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    vehicle = relationship("Vehicle", lazy="selectin")
    package = relationship("RentalPackage", lazy="selectin")
    extensions = relationship(
        "RentalExtension",
        back_populates="rental",
        cascade="all, delete-orphan",
        order_by="RentalExtension.id",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version_id}

    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="ck_rental_dates"),
        CheckConstraint("remaining_amount >= 0", name="ck_rental_remaining_non_negative"),
        Index("ix_rentals_vehicle", "vehicle_id"),
    )


class RentalExtension(Base):
    __tablename__ = "rental_extensions"
    id = Column(Integer, primary_key=True, index=True)
    rental_id = Column(Integer, ForeignKey("rentals.id", ondelete="CASCADE"), nullable=False)
    extension_hours = Column(Hours, nullable=False)
    extension_price = Column(Money, nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    price_source = Column(String(20), nullable=False, default="auto")
    tier_applied = Column(String(255), nullable=True)
    tier_breakdown = Column(JSON, nullable=True)

    requested_by = Column(String(100), nullable=True)
    approved_by = Column(String(100), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    # set once, in the transaction that adds the extension to the rental
    applied_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    rental = relationship("Rental", back_populates="extensions", lazy="selectin")

    __table_args__ = (
        CheckConstraint("extension_hours > 0", name="ck_extension_hours_positive"),
        CheckConstraint("extension_price >= 0", name="ck_extension_price_non_negative"),
        CheckConstraint("status IN ('pending','approved','rejected')", name="ck_extension_status"),
        CheckConstraint("price_source IN ('auto','manual')", name="ck_extension_price_source"),
        Index("ix_rental_extensions_rental", "rental_id"),
        Index("ix_rental_extensions_status", "status"),
    )


# remaining_amount is never written by callers; it follows the source fields
@event.listens_for(Rental, "before_insert")
@event.listens_for(Rental, "before_update")
def _recompute_remaining(mapper, connection, target: Rental) -> None:
    from ..pricing.financials import recompute_remaining

    recompute_remaining(target)
