"""Shared parsing helpers for blueprints and services.

parse_date:      returns None on bad input
parse_datetime:  returns None on bad input, naive values are taken as UTC
request_json:    JSON body as a dict, never None
first_non_int:   blueprint guard for optional integer fields
"""
import logging
from datetime import date, datetime, timezone

from flask import request

logger = logging.getLogger(__name__)


def parse_date(value):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD.MM.YYYY (European format)
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d.%m.%Y").date()
    except (ValueError, TypeError):
        return None


def parse_datetime(value):
    """Parse an ISO timestamp (a trailing Z is accepted). None for empty/invalid input."""
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except (ValueError, TypeError):
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_bool(value) -> bool:
    """Query-string truthiness: 1/true/yes/on."""
    return str(value or "").strip().lower() in ("1", "true", "yes", "on")


def request_json() -> dict:
    """Request body as a dict; empty or non-object bodies become {}."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def is_int(value) -> bool:
    """JSON integer check; true/false do not count."""
    return isinstance(value, int) and not isinstance(value, bool)


def first_non_int(data: dict, *fields):
    """Name of the first present, non-null field that is not an integer, else None."""
    for field in fields:
        value = data.get(field)
        if value is not None and not is_int(value):
            return field
    return None
