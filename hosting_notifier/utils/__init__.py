"""Time handling utilities."""

from .timestamps import (
    ensure_utc,
    format_display_date,
    format_timestamp,
    parse_iso_date,
    parse_iso_datetime,
    to_local,
    utc_now,
)

__all__ = [
    "utc_now",
    "ensure_utc",
    "to_local",
    "parse_iso_datetime",
    "parse_iso_date",
    "format_timestamp",
    "format_display_date",
]
