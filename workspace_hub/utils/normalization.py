"""Payload normalization helpers shared by every workspace mutator.

Each helper turns one raw input value (JSON scalar, list, or an already
parsed Python object) into the canonical stored value, or raises
``ValidationError`` with a field-qualified message.

Null contract used throughout:
    ``None`` and ``""`` mean "explicitly cleared". Helpers that take
    ``allow_null`` return ``None`` for them when allowed and raise otherwise.

parse_percent_value is the one lenient helper: out-of-range input is
clamped into 0..100 instead of rejected.
"""

import math
import re
from datetime import date, datetime, time, timezone

from email_validator import EmailNotValidError, validate_email

from workspace_hub.core.exceptions import ValidationError

_LIST_SPLIT = re.compile(r"\r?\n|,")
_CURRENCY = re.compile(r"^[A-Z]{3}$")

_TRUE_TOKENS = frozenset({"true", "1", "yes", "y", "on"})
_FALSE_TOKENS = frozenset({"false", "0", "no", "n", "off"})


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


# ── Text ─────────────────────────────────────────────────────────────────────


def check_length(text: str, field: str, max_length: int | None) -> str:
    """Return ``text`` unchanged, raising ValidationError when it is too long."""
    if max_length is not None and len(text) > max_length:
        raise ValidationError(
            f"{field} exceeds maximum length of {max_length} characters.", field=field,
        )
    return text


def normalize_text(value, field: str = "value", *, max_length: int | None = None):
    """Trim a text value. Returns None for None or blank input.

    Raises:
        ValidationError: the trimmed text is longer than ``max_length``.
    """
    if value is None:
        return None
    text = check_length(str(value).strip(), field, max_length)
    return text or None


def require_text(value, field: str, *, max_length: int | None = None) -> str:
    """Trim a text value, raising ValidationError when it is empty or too long."""
    text = normalize_text(value, field, max_length=max_length)
    if text is None:
        raise ValidationError(f"{field} is required.", field=field)
    return text


def truncate(value, length: int):
    """Cut a string to ``length`` characters; None passes through."""
    if value is None:
        return None
    return value[:length]


# ── Dates ────────────────────────────────────────────────────────────────────


def as_utc(value):
    """Attach UTC to naive datetimes (SQLite drops tzinfo on reload)."""
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    return value


def _coerce_datetime(value):
    # Offsets near datetime.min / datetime.max overflow on UTC conversion.
    if isinstance(value, date):
        try:
            return as_utc(value)
        except OverflowError:
            return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        # Epoch milliseconds, as produced by JS clients.
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    text = str(value).strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        return as_utc(datetime.fromisoformat(text))
    except OverflowError:
        return None
    except ValueError:
        pass
    try:
        return as_utc(date.fromisoformat(text))
    except (ValueError, OverflowError):
        return None


def parse_date_value(value, field: str, *, allow_null: bool = True, date_only: bool = False):
    """Parse a date/datetime input.

    Supports datetime/date objects, ISO-8601 strings (``Z`` suffix allowed)
    and epoch milliseconds. Naive values are interpreted as UTC.

    Returns:
        ``datetime`` (UTC) or ``date`` when ``date_only`` is set; None for
        blank input when ``allow_null``.

    Raises:
        ValidationError: blank input that is not allowed, or unparsable input.
    """
    if _is_blank(value):
        if allow_null:
            return None
        raise ValidationError(f"{field} is required.", field=field)
    parsed = _coerce_datetime(value)
    if parsed is None:
        raise ValidationError(f"{field} must be a valid date.", field=field)
    return parsed.date() if date_only else parsed


# ── Numbers ──────────────────────────────────────────────────────────────────


def parse_number_value(value, field: str, *, allow_null: bool = True, minimum=None):
    """Coerce a numeric input to float (or None when allowed)."""
    if _is_blank(value):
        if allow_null:
            return None
        raise ValidationError(f"{field} is required.", field=field)
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number.", field=field)
    try:
        number = float(str(value).strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number.", field=field) from None
    if not math.isfinite(number):
        raise ValidationError(f"{field} must be a number.", field=field)
    if minimum is not None and number < minimum:
        raise ValidationError(f"{field} must be >= {minimum}.", field=field)
    return number


def parse_integer_value(value, field: str, *, allow_null: bool = True, minimum=None):
    """Coerce to int; non-integral numbers are rejected."""
    number = parse_number_value(value, field, allow_null=allow_null, minimum=minimum)
    if number is None:
        return None
    if not number.is_integer():
        raise ValidationError(f"{field} must be a whole number.", field=field)
    return int(number)


def parse_percent_value(value, field: str = "percent", *, allow_null: bool = True):
    """Coerce to a number and clamp into 0..100."""
    number = parse_number_value(value, field, allow_null=allow_null)
    if number is None:
        return None
    if number <= 0:
        return 0
    if number >= 100:
        return 100
    return number


# ── Lists & maps ─────────────────────────────────────────────────────────────


def normalize_array(value) -> list:
    """Return a list for list / delimited-string / None input.

    Blank entries are dropped; non-string list items (e.g. attachment
    dicts) are kept as-is.
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        items = []
        for item in value:
            if item is None:
                continue
            if isinstance(item, str):
                item = item.strip()
                if not item:
                    continue
            items.append(item)
        return items
    if isinstance(value, str):
        return [part.strip() for part in _LIST_SPLIT.split(value) if part.strip()]
    return [value]


def normalize_string_list(value) -> list[str]:
    """Like normalize_array, but every entry is a trimmed string."""
    return [text for text in (normalize_text(item) for item in normalize_array(value)) if text]


def normalize_json_object(value, field: str) -> dict:
    """Open metadata map: None becomes {}, dicts pass, anything else fails."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValidationError(f"{field} must be an object.", field=field)
    return dict(value)


# ── Booleans ─────────────────────────────────────────────────────────────────


def parse_boolean_value(value, default=None):
    """Interpret common boolean encodings; unknown input yields ``default``."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        token = value.strip().lower()
        if token in _TRUE_TOKENS:
            return True
        if token in _FALSE_TOKENS:
            return False
    return default


# ── Domain helpers ───────────────────────────────────────────────────────────


def compute_duration_minutes(start, end):
    """Whole minutes between two instants, rounded half-up, floored at 0.

    Returns None when either bound is missing or unparsable.
    """
    if _is_blank(start) or _is_blank(end):
        return None
    started = _coerce_datetime(start)
    ended = _coerce_datetime(end)
    if started is None or ended is None:
        return None
    minutes = (ended - started).total_seconds() / 60
    return max(0, math.floor(minutes + 0.5))


def ensure_choice(value, allowed, field: str, *, default=None):
    """Validate an enum-like value (case-insensitive); blank -> default."""
    text = normalize_text(value)
    if text is None:
        if default is None:
            raise ValidationError(f"{field} is required.", field=field)
        return default
    lowered = text.lower()
    for option in allowed:
        if option.lower() == lowered:
            return option
    raise ValidationError(
        f"{field} must be one of: {', '.join(sorted(allowed))}.", field=field,
    )


def normalize_currency(value, field: str = "currency", *, default: str = "USD") -> str:
    """Uppercase 3-letter ISO currency code; blank -> default."""
    text = normalize_text(value)
    if text is None:
        return default
    code = text.upper()
    if not _CURRENCY.match(code):
        raise ValidationError(f"{field} must be a 3-letter ISO currency code.", field=field)
    return code


def normalize_email(value, field: str, *, required: bool = False):
    """Syntax-check an email address (no DNS lookups)."""
    text = normalize_text(value)
    if text is None:
        if required:
            raise ValidationError(f"{field} is required.", field=field)
        return None
    try:
        result = validate_email(text, check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValidationError(f"{field} is not a valid email address.", field=field) from exc
    return result.normalized
