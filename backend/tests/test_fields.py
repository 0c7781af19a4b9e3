"""FieldUpdate mapping from JSON bodies (missing vs null vs value)."""

from teaching.fields import CLEAR, UNCHANGED, SetTo, from_payload


def test_missing_key_is_unchanged():
    assert from_payload({}, "title") is UNCHANGED
    assert not UNCHANGED


def test_explicit_null_is_clear():
    assert from_payload({"due_date": None}, "due_date") is CLEAR


def test_value_is_set_to():
    assert from_payload({"title": "Nuevo"}, "title") == SetTo("Nuevo")
    # Falsy values are still writes.
    assert from_payload({"is_published": False}, "is_published") == SetTo(False)
    assert from_payload({"description": ""}, "description") == SetTo("")
