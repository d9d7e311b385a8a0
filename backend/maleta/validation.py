from __future__ import annotations

from datetime import datetime
from typing import Any

from maleta.time_utils import parse_iso_datetime


class ValidationError(ValueError):
    """400-level input problem."""


def require_json_object(payload: Any) -> dict:
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def coerce_int(value: Any, field: str, *, required: bool = False, minimum: int | None = None) -> int | None:
    """
    Strict integer parsing: rejects bools, floats, decimals and scientific notation.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{field} is required")
        return None

    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        # Reject scientific notation (e.g., "1e15", "1E10") and decimals
        if 'e' in stripped.lower() or '.' in stripped:
            raise ValidationError(f"{field} must be a plain integer")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    else:
        raise ValidationError(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}")
    return result


def coerce_datetime(value: Any, field: str, *, required: bool = False) -> datetime | None:
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required")
        return None
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be an ISO-8601 datetime")
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime")


def coerce_id_list(value: Any, field: str) -> list[int]:
    """List of ids; entries may be ints, digit strings or {"id": ...} objects."""
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError(f"{field} must be a list")
    ids = []
    for entry in value:
        raw = entry.get("id") if isinstance(entry, dict) else entry
        ids.append(coerce_int(raw, f"{field} entry", required=True))
    return ids


def coerce_optional_str(value: Any, field: str, max_length: int) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return value
