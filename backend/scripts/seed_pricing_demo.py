# backend/scripts/seed_pricing_demo.py
import argparse
import sys
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from rental_pricing.core.config import SessionLocal, engine  # noqa: E402
from rental_pricing.models import Base, Rental, RentalPackage, Vehicle, VehicleModel  # noqa: E402
from rental_pricing.pricing import admin  # noqa: E402


def main():
    p = argparse.ArgumentParser(description="Seed one vehicle model with prices, tiers, a package and a rental")
    p.add_argument("--hourly", type=str, default="50.00", help="hourly base price")
    p.add_argument("--create-tables", action="store_true", help="create tables without running migrations")
    args = p.parse_args()

    if args.create_tables:
        Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        vm = VehicleModel(name="Demo Sedan", model="2024", vehicle_type="car")
        db.add(vm)
        db.flush()
        vehicle = Vehicle(vehicle_model_id=vm.id, name="Demo Sedan #1", plate_number="DEMO-001",
                          current_odometer=Decimal("10000"))
        package = RentalPackage(vehicle_model_id=vm.id, name="Standard 200 km",
                                included_kilometers=Decimal("200"), extra_km_rate=Decimal("0.50"))
        db.add_all([vehicle, package])
        db.commit()

        admin.upsert_base_price(db, vm.id, "hourly", args.hourly)
        admin.replace_tiers(db, vm.id, [
            {"min_hours": 0, "max_hours": 2, "calculation_method": "percentage", "discount_percentage": 0},
            {"min_hours": 2, "max_hours": 6, "calculation_method": "percentage", "discount_percentage": 10},
            {"min_hours": 6, "max_hours": None, "calculation_method": "percentage", "discount_percentage": 20},
        ])

        start = datetime.utcnow().replace(microsecond=0)
        rental = Rental(vehicle_id=vehicle.id, rate_type="hourly", start_date=start,
                        end_date=start + timedelta(hours=24), total_amount=Decimal("500.00"),
                        deposit_amount=Decimal("200.00"), start_odometer=Decimal("10000"))
        db.add(rental)
        db.commit()

        print(f"Vehicle model #{vm.id} ({vm.name}), vehicle #{vehicle.id}, package #{package.id}")
        print(f"Hourly base price: {args.hourly}; tiers 0-2h 0%, 2-6h 10%, 6h+ 20%")
        print(f"Rental #{rental.id}: {rental.start_date} -> {rental.end_date}, remaining {rental.remaining_amount}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
