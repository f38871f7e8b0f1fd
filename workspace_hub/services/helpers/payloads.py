"""
Payload guards shared by the workspace and operations services.

Usage:
    payload = require_payload(payload)
    values = check_column_lengths(WorkspaceTask, prepare(payload))
"""

from workspace_hub.core.exceptions import ValidationError
from workspace_hub.utils.normalization import check_length


def require_payload(payload) -> dict:
    """Return the request body as a dict. None is treated as an empty update."""
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("payload must be an object.", field="payload")
    return payload


def check_column_lengths(model, values: dict, prefix: str = "") -> dict:
    """Reject string values longer than the matching ``String(n)`` column."""
    columns = model.__table__.columns
    for key, value in values.items():
        if not isinstance(value, str) or key not in columns:
            continue
        check_length(value, f"{prefix}{key}", getattr(columns[key].type, "length", None))
    return values
