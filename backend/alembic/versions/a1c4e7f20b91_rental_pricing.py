"""rental pricing: fleet, base prices, tiers, packages, rentals, extensions

Revision ID: a1c4e7f20b91
Revises:
Create Date: 2026-10-17 10:12:41.508213
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "a1c4e7f20b91"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MONEY = sa.Numeric(12, 2)
HOURS = sa.Numeric(10, 2)
KM = sa.Numeric(12, 1)


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    insp = sa.inspect(bind)

    # ---------- fleet ----------
    if not insp.has_table("vehicle_models"):
        op.create_table(
            "vehicle_models",
            sa.Column("id", sa.Integer, primary_key=True),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("model", sa.String(255), nullable=True),
            sa.Column("vehicle_type", sa.String(50), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        )

    if not insp.has_table("vehicles"):
        op.create_table(
            "vehicles",
            sa.Column("id", sa.Integer, primary_key=True),
            sa.Column("vehicle_model_id", sa.Integer, nullable=True),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("plate_number", sa.String(50), nullable=True),
            sa.Column("current_odometer", KM, nullable=True),
            sa.Column("hourly_rate", MONEY, nullable=True),
            sa.Column("daily_rate", MONEY, nullable=True),
            sa.Column("weekly_rate", MONEY, nullable=True),
            sa.ForeignKeyConstraint(["vehicle_model_id"], ["vehicle_models.id"], ondelete="SET NULL"),
        )
        op.create_index("ix_vehicles_model", "vehicles", ["vehicle_model_id"], unique=False)

    # ---------- pricing configuration ----------
    if not insp.has_table("base_prices"):
        op.create_table(
            "base_prices",
            sa.Column("id", sa.Integer, primary_key=True),
            sa.Column("vehicle_model_id", sa.Integer, nullable=False),
            sa.Column("rate_type", sa.String(20), nullable=False),
            sa.Column("price", MONEY, nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
            *_timestamps(),
            sa.ForeignKeyConstraint(["vehicle_model_id"], ["vehicle_models.id"], ondelete="CASCADE"),
            sa.CheckConstraint("rate_type IN ('hourly','daily','weekly')", name="ck_base_price_rate_type"),
            sa.CheckConstraint("price >= 0", name="ck_base_price_non_negative"),
        )
        # one active price per (model, rate_type)
        op.create_index(
            "uix_base_price_active",
            "base_prices",
            ["vehicle_model_id", "rate_type"],
            unique=True,
            sqlite_where=sa.text("is_active = 1"),
            postgresql_where=sa.text("is_active"),
        )

    if not insp.has_table("pricing_tiers"):
        op.create_table(
            "pricing_tiers",
            sa.Column("id", sa.Integer, primary_key=True),
            sa.Column("vehicle_model_id", sa.Integer, nullable=False),
            sa.Column("min_hours", HOURS, nullable=False, server_default="0"),
            sa.Column("max_hours", HOURS, nullable=True),
            sa.Column("calculation_method", sa.String(20), nullable=False, server_default="percentage"),
            sa.Column("discount_percentage", sa.Numeric(5, 2), nullable=True),
            sa.Column("price_amount", MONEY, nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
            sa.ForeignKeyConstraint(["vehicle_model_id"], ["vehicle_models.id"], ondelete="CASCADE"),
            sa.CheckConstraint("calculation_method IN ('percentage','fixed')", name="ck_tier_method"),
            sa.CheckConstraint("min_hours >= 0", name="ck_tier_min_hours"),
            sa.CheckConstraint("max_hours IS NULL OR max_hours > min_hours", name="ck_tier_range"),
        )
        op.create_index("ix_pricing_tiers_model", "pricing_tiers", ["vehicle_model_id", "min_hours"], unique=False)

    if not insp.has_table("rental_packages"):
        op.create_table(
            "rental_packages",
            sa.Column("id", sa.Integer, primary_key=True),
            sa.Column("vehicle_model_id", sa.Integer, nullable=True),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("included_kilometers", KM, nullable=False, server_default="0"),
            sa.Column("extra_km_rate", MONEY, nullable=False, server_default="0"),
            sa.Column("base_price", MONEY, nullable=True),
            sa.Column("rate_type", sa.String(20), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
            sa.ForeignKeyConstraint(["vehicle_model_id"], ["vehicle_models.id"], ondelete="CASCADE"),
            sa.CheckConstraint("included_kilometers >= 0", name="ck_package_included_km"),
            sa.CheckConstraint("extra_km_rate >= 0", name="ck_package_extra_rate"),
        )

    # ---------- rentals ----------
    if not insp.has_table("rentals"):
        op.create_table(
            "rentals",
            sa.Column("id", sa.Integer, primary_key=True),
            sa.Column("vehicle_id", sa.Integer, nullable=True),
            sa.Column("rate_type", sa.String(20), nullable=True),
            sa.Column("start_date", sa.DateTime(), nullable=False),
            sa.Column("end_date", sa.DateTime(), nullable=False),
            sa.Column("original_end_date", sa.DateTime(), nullable=True),
            sa.Column("unit_price", MONEY, nullable=True),
            sa.Column("total_amount", MONEY, nullable=False, server_default="0"),
            sa.Column("overage_charge", MONEY, nullable=False, server_default="0"),
            sa.Column("total_extension_price", MONEY, nullable=False, server_default="0"),
            sa.Column("extension_count", sa.Integer, nullable=False, server_default="0"),
            sa.Column("total_extended_hours", HOURS, nullable=False, server_default="0"),
            sa.Column("deposit_amount", MONEY, nullable=False, server_default="0"),
            sa.Column("remaining_amount", MONEY, nullable=False, server_default="0"),
            sa.Column("payment_status", sa.String(30), nullable=False, server_default="unpaid"),
            sa.Column("package_id", sa.Integer, nullable=True),
            sa.Column("included_kilometers", KM, nullable=True),
            sa.Column("extra_km_rate_applied", MONEY, nullable=True),
            sa.Column("start_odometer", KM, nullable=True),
            sa.Column("ending_odometer", KM, nullable=True),
            sa.Column("total_kilometers_driven", KM, nullable=True),
            sa.Column("has_kilometer_overage", sa.Boolean(), nullable=False, server_default=sa.text("0")),
            sa.Column("version_id", sa.Integer, nullable=False, server_default="1"),
            *_timestamps(),
            sa.ForeignKeyConstraint(["vehicle_id"], ["vehicles.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["package_id"], ["rental_packages.id"], ondelete="SET NULL"),
            sa.CheckConstraint("end_date >= start_date", name="ck_rental_dates"),
            sa.CheckConstraint("remaining_amount >= 0", name="ck_rental_remaining_non_negative"),
        )
        op.create_index("ix_rentals_vehicle", "rentals", ["vehicle_id"], unique=False)

    if not insp.has_table("rental_extensions"):
        op.create_table(
            "rental_extensions",
            sa.Column("id", sa.Integer, primary_key=True),
            sa.Column("rental_id", sa.Integer, nullable=False),
            sa.Column("extension_hours", HOURS, nullable=False),
            sa.Column("extension_price", MONEY, nullable=False),
            sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
            sa.Column("price_source", sa.String(20), nullable=False, server_default="auto"),
            sa.Column("tier_applied", sa.String(255), nullable=True),
            sa.Column("tier_breakdown", sa.JSON(), nullable=True),
            sa.Column("requested_by", sa.String(100), nullable=True),
            sa.Column("approved_by", sa.String(100), nullable=True),
            sa.Column("approved_at", sa.DateTime(), nullable=True),
            sa.Column("applied_at", sa.DateTime(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["rental_id"], ["rentals.id"], ondelete="CASCADE"),
            sa.CheckConstraint("extension_hours > 0", name="ck_extension_hours_positive"),
            sa.CheckConstraint("extension_price >= 0", name="ck_extension_price_non_negative"),
            sa.CheckConstraint("status IN ('pending','approved','rejected')", name="ck_extension_status"),
            sa.CheckConstraint("price_source IN ('auto','manual')", name="ck_extension_price_source"),
        )
        op.create_index("ix_rental_extensions_rental", "rental_extensions", ["rental_id"], unique=False)
        op.create_index("ix_rental_extensions_status", "rental_extensions", ["status"], unique=False)


def downgrade() -> None:
    # children first
    op.drop_table("rental_extensions")
    op.drop_table("rentals")
    op.drop_table("rental_packages")
    op.drop_table("pricing_tiers")
    op.drop_index("uix_base_price_active", table_name="base_prices")
    op.drop_table("base_prices")
    op.drop_table("vehicles")
    op.drop_table("vehicle_models")
