"""Utility functions for time handling."""

from .timestamps import (
    ensure_utc,
    format_timestamp,
    local_now,
    parse_time_of_day,
    resolve_timezone,
    to_local,
    utc_now,
)

__all__ = [
    "utc_now",
    "ensure_utc",
    "local_now",
    "to_local",
    "resolve_timezone",
    "parse_time_of_day",
    "format_timestamp",
]
