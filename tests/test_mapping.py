"""Tests for header resolution and explicit column mappings."""

import pytest

from spreadsheet_importer.errors import MissingRequiredField, UnknownField
from spreadsheet_importer.mapping import apply_map, build_explicit_map, build_header_map
from spreadsheet_importer.models import ColumnBinding, HeaderMap, RawRow

FIELDS = {"name", "email", "age"}


def test_header_match_ignores_case_and_whitespace():
    header_map = build_header_map(["  NAME ", "Email"], FIELDS)
    assert header_map.bindings == (ColumnBinding(0, "name"), ColumnBinding(1, "email"))


def test_header_match_uses_guesses():
    header_map = build_header_map(
        ["Full   Name", "E-Mail"],
        FIELDS,
        guesses={"name": ["full name"], "email": ["e-mail"]},
    )
    assert header_map.field_names == ("name", "email")


def test_first_matching_column_wins():
    header_map = build_header_map(["email", "name", "Email"], FIELDS)
    assert header_map.column_for("email") == 0
    assert header_map.column_for("name") == 1
    assert len(header_map.bindings) == 2


def test_unknown_headers_are_ignored():
    header_map = build_header_map(["notes", "name", None, "age"], FIELDS)
    assert header_map.bindings == (ColumnBinding(1, "name"), ColumnBinding(3, "age"))


def test_guesses_for_unknown_fields_are_ignored():
    header_map = build_header_map(["x"], FIELDS, guesses={"phone": ["x"]})
    assert header_map.bindings == ()


def test_missing_required_fields_are_all_listed():
    with pytest.raises(MissingRequiredField) as exc_info:
        build_header_map(["age"], FIELDS, required_fields={"name", "email"})
    assert exc_info.value.missing == ["email", "name"]
    assert "email" in str(exc_info.value)


def test_header_from_raw_row():
    header_map = build_header_map(RawRow(2, ("name", "email")), FIELDS, {"email"})
    assert header_map.column_for("email") == 1


def test_explicit_map_with_indices_and_letters():
    header_map = build_explicit_map({"email": "C", "name": 0, "age": "1"}, FIELDS)
    assert header_map.bindings == (
        ColumnBinding(0, "name"),
        ColumnBinding(1, "age"),
        ColumnBinding(2, "email"),
    )


def test_explicit_map_rejects_unknown_fields():
    with pytest.raises(UnknownField) as exc_info:
        build_explicit_map({"name": 0, "phone": 1}, FIELDS)
    assert exc_info.value.fields == ["phone"]


def test_explicit_map_missing_required_field():
    with pytest.raises(MissingRequiredField) as exc_info:
        build_explicit_map({"name": 0}, FIELDS, required_fields={"email"})
    assert exc_info.value.missing == ["email"]


@pytest.mark.parametrize("mapping", [
    {"name": 0, "email": "A"},
    {"name": -1},
    {"name": "1A"},
])
def test_explicit_map_rejects_bad_columns(mapping):
    with pytest.raises(ValueError):
        build_explicit_map(mapping, FIELDS)


def test_header_map_rejects_duplicate_bindings():
    with pytest.raises(ValueError):
        HeaderMap((ColumnBinding(0, "name"), ColumnBinding(0, "email")))
    with pytest.raises(ValueError):
        HeaderMap((ColumnBinding(0, "name"), ColumnBinding(1, "name")))


def test_apply_map_pads_short_rows():
    header_map = build_explicit_map({"name": 0, "age": 3}, FIELDS)
    record = apply_map(RawRow(5, ("Alice", "a@x.com")), header_map)
    assert record == {"name": "Alice", "age": None}
