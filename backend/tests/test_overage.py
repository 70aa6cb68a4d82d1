# backend/tests/test_overage.py
from decimal import Decimal

import pytest

from rental_pricing.pricing.errors import DataInconsistency, RentalNotFound
from rental_pricing.pricing.overage import OverageCalculator, RentalOverageService

D = Decimal


@pytest.fixture
def calc():
    return OverageCalculator(tolerance=D("0.01"), quantum=D("0.01"))


# -----------------------------
# Calculator
# -----------------------------
def test_overage_beyond_included_km(calc):
    assert calc.compute(350, 200, "2.5") == D("375.00")


def test_no_overage_within_allowance(calc):
    assert calc.compute(150, 200, "2.5") == D("0.00")
    assert calc.compute(200, 200, "2.5") == D("0.00")


def test_overage_is_monotonic_in_distance(calc):
    values = [calc.compute(km, 200, "1.75") for km in range(0, 600, 25)]
    assert values == sorted(values)
    assert all(v >= 0 for v in values)


@pytest.mark.parametrize("included,rate", [(-1, 1), (100, -1)])
def test_negative_inputs_rejected(calc, included, rate):
    with pytest.raises(ValueError):
        calc.compute(10, included, rate)


def test_reconcile_flags_disagreement(calc):
    check = calc.reconcile("300.00", D("375.00"), rental_id=5)
    assert not check.consistent
    assert isinstance(check.inconsistency, DataInconsistency)
    assert check.inconsistency.stored == D("300.00")
    assert check.inconsistency.computed == D("375.00")
    assert check.to_dict()["error_code"] == "DATA_INCONSISTENCY"


def test_reconcile_within_tolerance(calc):
    assert calc.reconcile("375.01", D("375.00")).consistent
    assert calc.reconcile(None, D("375.00")).consistent


# -----------------------------
# Rental close-out
# -----------------------------
def test_record_odometer_assigns_package_and_charges(db, settings, make_model, make_package, make_rental):
    vm, vehicle = make_model(hourly="100")
    make_package(vm, included_km="500", extra_km_rate="1", name="Large")
    small = make_package(vm, included_km="200", extra_km_rate="2.5", name="Small")
    rental = make_rental(vehicle, total_amount="300", deposit_amount="200", start_odometer=D("1000"))

    result = RentalOverageService(db, settings).record_odometer(rental.id, "1350")

    assert result.total_distance == D("350")
    assert result.overage_charge == D("375.00")
    assert result.has_overage is True
    assert result.package_id == small.id

    db.refresh(rental)
    assert rental.overage_charge == D("375.00")
    assert rental.has_kilometer_overage is True
    assert rental.remaining_amount == D("475.00")
    assert rental.vehicle.current_odometer == D("1350")


def test_values_on_rental_win_over_package(db, settings, make_model, make_package, make_rental):
    vm, vehicle = make_model()
    make_package(vm, included_km="200", extra_km_rate="2.5")
    rental = make_rental(
        vehicle, start_odometer=D("0"), included_kilometers=D("300"), extra_km_rate_applied=D("1")
    )
    result = RentalOverageService(db, settings).record_odometer(rental.id, 350)
    assert result.overage_charge == D("50.00")


def test_end_odometer_below_start_rejected(db, settings, make_model, make_rental):
    _, vehicle = make_model()
    rental = make_rental(vehicle, start_odometer=D("1000"))
    with pytest.raises(ValueError):
        RentalOverageService(db, settings).record_odometer(rental.id, 900)


def test_unexpected_error_during_close_out_rolls_back(db, settings, make_model, make_package, make_rental, monkeypatch):
    vm, vehicle = make_model()
    make_package(vm, included_km="200", extra_km_rate="2.5")
    rental = make_rental(vehicle, start_odometer=D("1000"))
    service = RentalOverageService(db, settings)

    def boom(*args, **kwargs):
        raise RuntimeError("calculator exploded")

    monkeypatch.setattr(service.calculator, "compute", boom)
    with pytest.raises(RuntimeError):
        service.record_odometer(rental.id, 1350)

    db.refresh(rental)
    assert rental.package_id is None
    assert rental.included_kilometers is None
    assert rental.ending_odometer is None


def test_record_odometer_unknown_rental(db, settings):
    with pytest.raises(RentalNotFound):
        RentalOverageService(db, settings).record_odometer(404, 100)


def test_audit_reports_then_repairs(db, settings, make_model, make_rental):
    _, vehicle = make_model()
    rental = make_rental(
        vehicle,
        overage_charge="100",
        included_kilometers=D("200"),
        extra_km_rate_applied=D("2.5"),
        total_kilometers_driven=D("350"),
    )
    service = RentalOverageService(db, settings)

    check = service.audit_overage(rental.id)
    assert not check.consistent
    db.refresh(rental)
    assert rental.overage_charge == D("100.00")

    service.audit_overage(rental.id, repair=True)
    db.refresh(rental)
    assert rental.overage_charge == D("375.00")
    assert service.audit_overage(rental.id).consistent
