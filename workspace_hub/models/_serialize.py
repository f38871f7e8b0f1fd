"""Serialization helpers shared by the ``to_dict`` methods."""

from datetime import datetime

from workspace_hub.utils.normalization import as_utc


def iso(value):
    """ISO-8601 string for a date/datetime column; datetimes always carry UTC."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return as_utc(value).isoformat()
    return value.isoformat()


def as_list(value) -> list:
    return list(value) if value else []


def as_map(value) -> dict:
    return dict(value) if value else {}
