# backend/tests/test_merge.py
from rental_pricing.pricing.merge import PRIORITY, merge_field, merge_fields


def test_priority_order():
    assert PRIORITY == ("manual", "existing", "inferred")


def test_manual_beats_everything():
    m = merge_field(manual=10, existing=20, inferred=30)
    assert (m.value, m.source) == (10, "manual")


def test_existing_beats_inferred():
    m = merge_field(existing=20, inferred=30)
    assert (m.value, m.source) == (20, "existing")


def test_blank_values_fall_through():
    m = merge_field(manual="", existing=None, inferred=30)
    assert (m.value, m.source) == (30, "inferred")


def test_zero_is_a_value():
    m = merge_field(manual=0, inferred=30)
    assert (m.value, m.source) == (0, "manual")


def test_nothing_anywhere():
    m = merge_field()
    assert m.value is None and m.source is None


def test_merge_fields_over_key_union():
    out = merge_fields(
        manual={"price": 99},
        existing={"price": 80, "km": 200},
        inferred={"km": 150, "rate": 2.5},
    )
    assert {k: (v.value, v.source) for k, v in out.items()} == {
        "price": (99, "manual"),
        "km": (200, "existing"),
        "rate": (2.5, "inferred"),
    }
