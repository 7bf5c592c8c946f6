"""Timestamp utilities for UTC handling.

All times inside the worker are timezone-aware UTC datetimes. The helpers
here normalise naive values, parse ISO 8601 strings coming from the
collaborator's tables, and format timestamps for reports and logs.
"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Current UTC time with timezone info
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Ensure a datetime is timezone-aware and in UTC.

    Naive datetimes are assumed to already be UTC.

    Args:
        dt: Datetime to convert (can be None)

    Returns:
        Timezone-aware datetime in UTC, or None if input is None
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def parse_iso_datetime(iso_string: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 string to a UTC datetime.

    Accepts a trailing 'Z', an explicit offset, or no zone at all (treated
    as UTC). Returns None for empty or unparseable input.

    Example:
        >>> parse_iso_datetime("2025-11-04T12:00:00Z").hour
        12
    """
    if not iso_string or not iso_string.strip():
        return None

    cleaned = iso_string.strip()
    if cleaned.endswith("Z"):
        cleaned = cleaned[:-1] + "+00:00"

    try:
        return ensure_utc(datetime.fromisoformat(cleaned))
    except ValueError:
        return None


def format_timestamp(dt: datetime) -> str:
    """Format a datetime as ISO 8601 UTC with millisecond precision.

    This is the format used in cycle reports (e.g. ``2025-11-04T12:00:00.000Z``).
    """
    dt_utc = ensure_utc(dt)
    if dt_utc is None:
        return ""
    return dt_utc.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def format_booking_date(dt: datetime) -> str:
    """Format a booking start time as a long date, e.g. 'November 4, 2025'."""
    dt_utc = ensure_utc(dt)
    return f"{dt_utc:%B} {dt_utc.day}, {dt_utc.year}"


def format_booking_time(dt: datetime) -> str:
    """Format a booking start time as a 12-hour clock time, e.g. '3:30 PM'."""
    dt_utc = ensure_utc(dt)
    hour = dt_utc.hour % 12 or 12
    return f"{hour}:{dt_utc:%M} {dt_utc:%p}"
