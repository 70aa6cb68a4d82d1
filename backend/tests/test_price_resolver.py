# backend/tests/test_price_resolver.py
from decimal import Decimal

import pytest

from rental_pricing.models import BasePrice
from rental_pricing.pricing.errors import NoBasePriceConfigured
from rental_pricing.pricing.extensions import calculate_extension_price
from rental_pricing.pricing.resolver import PriceResolver, RequiresManualEntry, ResolvedRate

from conftest import tier


def test_active_base_price_wins(db, settings, make_model):
    vm, vehicle = make_model(hourly="100", legacy_hourly="40")
    res = PriceResolver(db, settings).resolve(vm.id, "hourly", vehicle_id=vehicle.id)
    assert isinstance(res, ResolvedRate)
    assert res.amount == Decimal("100")
    assert res.source == "base_price"


def test_inactive_base_price_is_ignored(db, settings, make_model):
    vm, vehicle = make_model()
    db.add(BasePrice(vehicle_model_id=vm.id, rate_type="hourly", price=Decimal("120"), is_active=False))
    db.commit()
    res = PriceResolver(db, settings).resolve(vm.id, "hourly")
    assert isinstance(res, RequiresManualEntry)


def test_other_rate_type_does_not_leak(db, settings, make_model):
    vm, _ = make_model(hourly="100")
    res = PriceResolver(db, settings).resolve(vm.id, "daily")
    assert res.requires_manual_entry is True


def test_zero_price_counts_as_unconfigured(db, settings, make_model):
    vm, _ = make_model(hourly="0")
    res = PriceResolver(db, settings).resolve(vm.id, "hourly")
    assert isinstance(res, RequiresManualEntry)


def test_legacy_vehicle_rate_fallback(db, settings, make_model):
    vm, vehicle = make_model(legacy_hourly="45")
    res = PriceResolver(db, settings).resolve(vm.id, "hourly", vehicle_id=vehicle.id)
    assert isinstance(res, ResolvedRate)
    assert res.amount == Decimal("45")
    assert res.source == "legacy_vehicle_rate"


def test_legacy_fallback_can_be_disabled(db, settings, make_model):
    vm, vehicle = make_model(legacy_hourly="45")
    cfg = settings.model_copy(update={"ALLOW_LEGACY_VEHICLE_RATES": False})
    res = PriceResolver(db, cfg).resolve(vm.id, "hourly", vehicle_id=vehicle.id)
    assert isinstance(res, RequiresManualEntry)


def test_unknown_rate_type_is_a_programming_error(db, settings):
    with pytest.raises(ValueError):
        PriceResolver(db, settings).resolve(1, "monthly")


def test_manual_entry_converts_to_error(db, settings):
    res = PriceResolver(db, settings).resolve(None, "hourly")
    err = res.as_error(rental_id=9)
    assert isinstance(err, NoBasePriceConfigured)
    assert err.code == "NO_BASE_PRICE"
    assert err.context["rental_id"] == 9


def test_tiers_for_returns_active_tiers_in_order(db, settings, make_model):
    vm, _ = make_model(hourly="100", tiers=[tier(2, 5, 10), tier(0, 2, 0)])
    tiers = PriceResolver(db, settings).tiers_for(vm.id)
    assert [t.min_hours for t in tiers] == [Decimal("0"), Decimal("2")]
    assert [t.label for t in tiers] == ["0-2h", "2-5h"]


# -----------------------------
# Quote without any configured rate
# -----------------------------
def test_quote_without_rate_asks_for_manual_entry(db, settings, make_model, make_rental):
    _, vehicle = make_model()
    rental = make_rental(vehicle)
    out = calculate_extension_price(db, rental.id, 3, settings=settings)
    assert out["requires_manual_entry"] is True
    assert out["total_price"] == Decimal("0")
    assert out["error_code"] == "NO_BASE_PRICE"
    assert out["tier_breakdown"] == []
