# backend/scripts/audit_overage.py
import argparse
import sys
from pathlib import Path

from sqlalchemy import select

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from rental_pricing.core.config import SessionLocal, settings  # noqa: E402
from rental_pricing.core.logging import setup_logging  # noqa: E402
from rental_pricing.models import Rental  # noqa: E402
from rental_pricing.pricing.overage import RentalOverageService  # noqa: E402


def main():
    p = argparse.ArgumentParser(description="Compare stored km overage charges with recomputed ones")
    p.add_argument("--rental", type=int, default=None, help="rental id (default: every closed rental)")
    p.add_argument("--repair", action="store_true", help="overwrite stored charges that disagree")
    args = p.parse_args()

    setup_logging()
    db = SessionLocal()
    try:
        if args.rental is not None:
            ids = [args.rental]
        else:
            ids = db.execute(
                select(Rental.id).where(Rental.total_kilometers_driven.is_not(None)).order_by(Rental.id)
            ).scalars().all()

        service = RentalOverageService(db, settings)
        bad = 0
        for rental_id in ids:
            check = service.audit_overage(rental_id, repair=args.repair)
            if check.consistent:
                continue
            bad += 1
            action = "repaired" if args.repair else "mismatch"
            print(f"Rental #{rental_id}: stored={check.stored} computed={check.computed} [{action}]")
    finally:
        db.close()

    print(f"Checked {len(ids)} rental(s), {bad} inconsistent.")
    return 1 if bad and not args.repair else 0


if __name__ == "__main__":
    sys.exit(main())
