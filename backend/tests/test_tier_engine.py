# backend/tests/test_tier_engine.py
from decimal import Decimal

import pytest

from rental_pricing.pricing.errors import InvalidDuration, InvalidTierConfiguration
from rental_pricing.pricing.tiers import Tier, TierEngine, validate_tiers

D = Decimal


def pct(lo, hi, discount):
    return Tier(min_hours=D(str(lo)), max_hours=None if hi is None else D(str(hi)),
                calculation_method="percentage", discount_percentage=D(str(discount)))


def fixed(lo, hi, price):
    return Tier(min_hours=D(str(lo)), max_hours=None if hi is None else D(str(hi)),
                calculation_method="fixed", price_amount=D(str(price)))


@pytest.fixture
def engine():
    return TierEngine(D("0.01"))


def _hours(quote):
    return sum((s.hours for s in quote.breakdown), D("0"))


# -----------------------------
# Worked examples
# -----------------------------
def test_no_tiers_prices_everything_at_base(engine):
    q = engine.compute(100, 0, 3, [])
    assert q.total_price == D("300.00")
    assert len(q.breakdown) == 1
    seg = q.breakdown[0]
    assert (seg.kind, seg.hours, seg.rate, seg.subtotal) == ("base", D("3"), D("100"), D("300"))


def test_two_tiers_split_the_extension(engine):
    tiers = [pct(0, 2, 0), pct(2, 5, 10)]
    q = engine.compute(100, 0, 4, tiers)
    assert [(s.hours, s.rate, s.subtotal) for s in q.breakdown] == [
        (D("2"), D("100"), D("200")),
        (D("2"), D("90"), D("180")),
    ]
    assert q.total_price == D("380.00")
    assert q.tiers_applied == ["0-2h", "2-5h"]


# -----------------------------
# Invariants
# -----------------------------
@pytest.mark.parametrize("elapsed,hours", [(0, 1), (0, 4), (0, 7.5), (1, 3), (3, 10), (12, 2)])
def test_segments_cover_every_hour_once(engine, elapsed, hours):
    tiers = [pct(0, 2, 0), pct(2, 5, 10), fixed(6, 8, 70)]
    q = engine.compute(100, elapsed, hours, tiers)
    assert _hours(q) == D(str(hours))
    # contiguous, starting at the elapsed offset
    cursor = D(str(elapsed))
    for s in q.breakdown:
        assert s.start_hour == cursor
        cursor = s.end_hour


def test_total_is_rounded_sum_of_subtotals(engine):
    q = engine.compute(D("33.333"), 0, 3, [pct(0, 1, 0), pct(1, None, 7.5)])
    unrounded = sum((s.subtotal for s in q.breakdown), D("0"))
    assert q.unrounded_total == unrounded
    assert abs(q.total_price - unrounded) <= D("0.005")


def test_rounding_is_half_up_once(engine):
    # 3 x 0.335 = 1.005 -> 1.01 (not 3 x 0.34)
    q = engine.compute(D("0.335"), 0, 3, [])
    assert q.total_price == D("1.01")


# -----------------------------
# Gaps, overflow, cumulative offset
# -----------------------------
def test_gap_between_tiers_is_charged_at_base(engine):
    q = engine.compute(100, 0, 6, [pct(0, 2, 0), pct(4, 8, 50)])
    kinds = [(s.kind, s.hours, s.rate) for s in q.breakdown]
    assert kinds == [
        ("tier", D("2"), D("100")),
        ("gap", D("2"), D("100")),
        ("tier", D("2"), D("50")),
    ]
    assert q.total_price == D("500.00")


def test_hours_past_last_tier_use_last_tier_rate(engine):
    q = engine.compute(100, 0, 7, [pct(0, 2, 0), pct(2, 5, 10)])
    last = q.breakdown[-1]
    assert last.kind == "overflow"
    assert last.hours == D("2")
    assert last.rate == D("90")
    assert q.total_price == D("200") + D("270") + D("180")
    assert q.tiers_applied == ["0-2h", "2-5h"]


def test_window_ending_before_next_tier_is_gap(engine):
    q = engine.compute(100, 0, 3, [pct(0, 1, 0), pct(10, None, 50)])
    assert [s.kind for s in q.breakdown] == ["tier", "gap"]
    assert q.total_price == D("300.00")


def test_elapsed_offset_starts_inside_later_tier(engine):
    # cumulative basis: already 3h in, so the whole extension is in the 10% tier
    q = engine.compute(100, 3, 2, [pct(0, 2, 0), pct(2, 5, 10)])
    assert [(s.kind, s.start_hour, s.hours) for s in q.breakdown] == [("tier", D("3"), D("2"))]
    assert q.total_price == D("180.00")


def test_fixed_tier_replaces_base_rate(engine):
    q = engine.compute(100, 0, 3, [fixed(0, None, 80)])
    assert q.breakdown[0].rate == D("80")
    assert q.total_price == D("240.00")


def test_full_price_and_savings(engine):
    q = engine.compute(100, 0, 4, [pct(0, 2, 0), pct(2, 5, 10)])
    assert q.full_price == D("400")
    assert q.full_price - q.total_price == D("20")


# -----------------------------
# Input errors
# -----------------------------
@pytest.mark.parametrize("bad", [0, -1, "abc", None, "", "nan", "inf"])
def test_invalid_duration(engine, bad):
    with pytest.raises(InvalidDuration):
        engine.compute(100, 0, bad, [])


def test_overlapping_tiers_rejected(engine):
    with pytest.raises(InvalidTierConfiguration):
        engine.compute(100, 0, 2, [pct(0, 3, 0), pct(2, 5, 10)])


def test_unbounded_tier_followed_by_another_rejected():
    with pytest.raises(InvalidTierConfiguration):
        validate_tiers([pct(0, None, 0), pct(5, 10, 10)])


@pytest.mark.parametrize(
    "bad_tier",
    [
        pct(2, 2, 0),       # empty range
        pct(0, 2, 150),     # discount > 100
        fixed(0, 2, -1),    # negative fixed rate
    ],
)
def test_malformed_tiers_rejected(bad_tier):
    with pytest.raises(InvalidTierConfiguration):
        validate_tiers([bad_tier])


def test_validate_sorts_by_min_hours():
    ordered = validate_tiers([pct(5, None, 20), pct(0, 2, 0), pct(2, 5, 10)])
    assert [t.min_hours for t in ordered] == [D("0"), D("2"), D("5")]


def test_segment_dict_rounds_money():
    q = TierEngine().compute(D("10.005"), 0, 1, [])
    d = q.breakdown[0].to_dict()
    assert d["rate"] == D("10.01")
    assert d["subtotal"] == D("10.01")
    assert d["end_hour"] == D("1")
