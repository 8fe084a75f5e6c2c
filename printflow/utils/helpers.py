"""Shared utility functions.

parse_datetime:  ISO string → datetime (raises ValueError on bad input)
to_utc:          normalise naive/aware datetimes to aware UTC
config_value:    read an app config key, falling back outside an app context
"""
import logging
from datetime import date, datetime, timezone

from flask import current_app, has_app_context

logger = logging.getLogger(__name__)

_DT_FORMATS = ("%Y-%m-%dT%H:%M:%S", "%Y-%m-%dT%H:%M", "%Y-%m-%d %H:%M:%S", "%Y-%m-%d")


def parse_datetime(val):
    """Convert an ISO-format string to a timezone-aware UTC datetime.

    Accepts the common ISO variants sent by clients (with or without seconds,
    with a ``Z`` or offset suffix, date-only). Naive values are taken as UTC.

    Returns:
        Parsed datetime, or None when the input is None/empty.

    Raises:
        ValueError: If the string is not a recognisable date/time.
    """
    if val is None:
        return None
    if isinstance(val, datetime):
        return to_utc(val)
    if isinstance(val, date):
        return datetime(val.year, val.month, val.day, tzinfo=timezone.utc)
    if not isinstance(val, str):
        raise ValueError(f"Expected an ISO date/time string, got {type(val).__name__}")
    val = val.strip()
    if not val:
        return None
    for fmt in _DT_FORMATS:
        try:
            return datetime.strptime(val, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    try:
        return to_utc(datetime.fromisoformat(val.replace("Z", "+00:00")))
    except ValueError as exc:
        raise ValueError(f"Invalid date/time {val!r}. Use ISO 8601 (YYYY-MM-DDTHH:MM:SS).") from exc


def to_utc(value):
    """Return ``value`` as an aware UTC datetime (naive values are assumed UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def config_value(key: str, default=None):
    """Read ``current_app.config[key]``; return ``default`` outside an app context."""
    if has_app_context():
        return current_app.config.get(key, default)
    return default
