"""Timestamp and calendar-date helpers.

Instants are stored and compared in UTC. Calendar dates (expiry dates,
"today") are plain ``date`` objects in the scheduler's timezone.
"""

from datetime import date, datetime, timezone, tzinfo
from typing import Optional


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC and convert aware ones to UTC.

    Example:
        >>> ensure_utc(datetime(2024, 6, 1, 9, 0)).tzinfo == timezone.utc
        True
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def to_local(dt: datetime, zone: tzinfo) -> datetime:
    """Express an instant in ``zone``; naive values are taken as UTC."""
    return ensure_utc(dt).astimezone(zone)


def parse_iso_datetime(iso_string: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 string to an aware UTC datetime.

    Accepts a trailing ``Z``, explicit offsets, naive values and bare dates.
    Returns None for empty or unparseable input.

    Example:
        >>> parse_iso_datetime("2024-06-01T09:00:00Z").hour
        9
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


def format_timestamp(dt: datetime, include_microseconds: bool = False) -> str:
    """Format as ISO 8601 UTC with a ``Z`` suffix.

    Example:
        >>> format_timestamp(datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc))
        '2024-06-01T09:00:00Z'
    """
    dt_utc = ensure_utc(dt)
    if dt_utc is None:
        return ""

    if include_microseconds:
        return dt_utc.strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    return dt_utc.strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """Parse ``YYYY-MM-DD`` (extra time parts are ignored); None when invalid."""
    if not value or not value.strip():
        return None
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None


def format_display_date(value: date) -> str:
    """Date as shown to clients in messages (DD.MM.YYYY)."""
    return value.strftime("%d.%m.%Y")
