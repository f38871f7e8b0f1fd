"""
Tests: payload normalization helpers.

Covers:
    - text trimming / required text / length limits
    - date parsing (ISO, Z suffix, epoch ms, date-only, out-of-range offsets)
    - numeric coercion, integer rejection, percent clamping
    - list / map normalization
    - boolean tokens, duration derivation, enum / currency / email checks
"""

from datetime import date, datetime, timezone

import pytest

from workspace_hub.core.exceptions import ValidationError
from workspace_hub.utils.normalization import (
    as_utc,
    compute_duration_minutes,
    ensure_choice,
    normalize_array,
    normalize_currency,
    normalize_email,
    normalize_json_object,
    normalize_string_list,
    normalize_text,
    parse_boolean_value,
    parse_date_value,
    parse_integer_value,
    parse_number_value,
    parse_percent_value,
    require_text,
    truncate,
)


class TestText:
    def test_trims_and_blanks_to_none(self):
        assert normalize_text("  Kickoff  ") == "Kickoff"
        assert normalize_text("   ") is None
        assert normalize_text(None) is None

    def test_require_text_names_the_field(self):
        with pytest.raises(ValidationError) as exc:
            require_text("  ", "category")
        assert "category" in str(exc.value)
        assert exc.value.field == "category"

    def test_max_length(self):
        assert normalize_text("  abc  ", "code", max_length=3) == "abc"
        with pytest.raises(ValidationError) as exc:
            require_text("x" * 181, "title", max_length=180)
        assert "exceeds maximum length of 180" in str(exc.value)
        assert exc.value.field == "title"

    def test_truncate(self):
        assert truncate("x" * 400, 300) == "x" * 300
        assert truncate(None, 10) is None


class TestDates:
    def test_iso_with_z_suffix(self):
        parsed = parse_date_value("2025-03-01T10:30:00Z", "start_at")
        assert parsed == datetime(2025, 3, 1, 10, 30, tzinfo=timezone.utc)

    def test_naive_iso_is_utc(self):
        parsed = parse_date_value("2025-03-01T10:30:00", "start_at")
        assert parsed.tzinfo is not None
        assert parsed.hour == 10

    def test_epoch_milliseconds(self):
        parsed = parse_date_value(0, "start_at")
        assert parsed == datetime(1970, 1, 1, tzinfo=timezone.utc)

    def test_date_only(self):
        assert parse_date_value("2025-03-01", "start_date", date_only=True) == date(2025, 3, 1)

    def test_blank_allowed_and_rejected(self):
        assert parse_date_value("", "due_at") is None
        with pytest.raises(ValidationError):
            parse_date_value(None, "event_date", allow_null=False)

    def test_garbage_rejected(self):
        with pytest.raises(ValidationError) as exc:
            parse_date_value("next tuesday", "due_at")
        assert "due_at" in str(exc.value)

    @pytest.mark.parametrize("raw", ["9999-12-31T23:00:00-05:00", "0001-01-01T00:00:00+05:00"])
    def test_offset_outside_datetime_range_rejected(self, raw):
        with pytest.raises(ValidationError) as exc:
            parse_date_value(raw, "due_at")
        assert "due_at must be a valid date" in str(exc.value)

    def test_as_utc_attaches_timezone(self):
        assert as_utc(datetime(2025, 1, 1, 8, 0)).tzinfo == timezone.utc


class TestNumbers:
    def test_number_from_string(self):
        assert parse_number_value(" 12.5 ", "hours") == 12.5

    def test_number_rejects_text_and_bool(self):
        with pytest.raises(ValidationError):
            parse_number_value("abc", "hours")
        with pytest.raises(ValidationError):
            parse_number_value(True, "hours")

    def test_minimum(self):
        with pytest.raises(ValidationError):
            parse_number_value(-1, "hours", minimum=0)

    def test_integer_rejects_fraction(self):
        assert parse_integer_value("1500", "amount") == 1500
        with pytest.raises(ValidationError):
            parse_integer_value(10.5, "amount")

    def test_integer_required(self):
        with pytest.raises(ValidationError):
            parse_integer_value(None, "planned_amount_cents", allow_null=False)

    @pytest.mark.parametrize("raw,expected", [(-5, 0), (150, 100), (42.5, 42.5), ("80", 80)])
    def test_percent_is_clamped(self, raw, expected):
        assert parse_percent_value(raw, "progress_percent") == expected


class TestCollections:
    def test_array_from_delimited_string(self):
        assert normalize_array("a, b\nc,,") == ["a", "b", "c"]

    def test_array_keeps_objects(self):
        attachment = {"name": "deck.pdf"}
        assert normalize_array([attachment, "", None]) == [attachment]

    def test_string_list_stringifies(self):
        assert normalize_string_list([" Kai ", 7, ""]) == ["Kai", "7"]

    def test_json_object(self):
        assert normalize_json_object(None, "metadata") == {}
        assert normalize_json_object({"a": 1}, "metadata") == {"a": 1}
        with pytest.raises(ValidationError):
            normalize_json_object(["a"], "metadata")


class TestMisc:
    @pytest.mark.parametrize("raw,expected", [
        ("yes", True), ("OFF", False), (1, True), (0, False), (True, True),
    ])
    def test_boolean_tokens(self, raw, expected):
        assert parse_boolean_value(raw) is expected

    def test_boolean_unknown_uses_default(self):
        assert parse_boolean_value("maybe", default=True) is True

    def test_duration_rounds_half_up(self):
        assert compute_duration_minutes("2025-01-01T09:00:00Z", "2025-01-01T10:30:30Z") == 91

    def test_duration_floors_at_zero(self):
        assert compute_duration_minutes("2025-01-01T10:00:00Z", "2025-01-01T09:00:00Z") == 0

    def test_duration_missing_bound(self):
        assert compute_duration_minutes("2025-01-01T10:00:00Z", None) is None

    def test_duration_with_out_of_range_bound(self):
        assert compute_duration_minutes("2025-01-01T10:00:00Z", "9999-12-31T23:00:00-05:00") is None
        assert compute_duration_minutes("0001-01-01T00:00:00+05:00", "2025-01-01T10:00:00Z") is None

    def test_choice_is_case_insensitive(self):
        assert ensure_choice("In_Progress", {"planned", "in_progress"}, "status") == "in_progress"
        assert ensure_choice("", {"planned"}, "status", default="planned") == "planned"
        with pytest.raises(ValidationError):
            ensure_choice("done", {"planned"}, "status")

    def test_currency(self):
        assert normalize_currency("eur") == "EUR"
        assert normalize_currency(None) == "USD"
        with pytest.raises(ValidationError):
            normalize_currency("euro")

    def test_email(self):
        assert normalize_email("kai@example.com", "email") == "kai@example.com"
        assert normalize_email("", "email") is None
        with pytest.raises(ValidationError):
            normalize_email("not-an-email", "email")
        with pytest.raises(ValidationError):
            normalize_email(None, "email", required=True)
