"""Timestamp utilities.

Persisted instants are UTC. Calendar decisions (which day a report belongs to,
whether the configured time of day has passed) use wall-clock time in the
configured timezone.
"""

import re
from datetime import datetime, time, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Example:
        >>> utc_now().tzinfo == timezone.utc
        True
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Ensure a datetime is timezone-aware and in UTC.

    Naive datetimes are treated as UTC (SQLite hands them back that way).
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def resolve_timezone(name: str) -> ZoneInfo:
    """Look up an IANA timezone name.

    Raises:
        ValueError: If the name is unknown
    """
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: '{name}'") from e


def local_now(tz: ZoneInfo) -> datetime:
    """Current wall-clock time in ``tz`` (timezone-aware)."""
    return datetime.now(tz)


def to_local(dt: datetime, tz: ZoneInfo) -> datetime:
    """Convert an instant to wall-clock time in ``tz``. Naive input is UTC."""
    return ensure_utc(dt).astimezone(tz)


_TIME_OF_DAY = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


def parse_time_of_day(value: str) -> time:
    """Parse an ``HH:MM`` string (24h clock).

    Example:
        >>> parse_time_of_day("10:45")
        datetime.time(10, 45)

    Raises:
        ValueError: If the string is malformed or out of range
    """
    match = _TIME_OF_DAY.match(value or "")
    if not match:
        raise ValueError(f"Invalid time of day: '{value}'. Expected HH:MM")

    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValueError(f"Time of day out of range: '{value}'")

    return time(hour, minute)


def format_timestamp(dt: Optional[datetime]) -> str:
    """Format a datetime as ISO 8601 UTC with 'Z' suffix, or '' for None.

    Example:
        >>> format_timestamp(datetime(2025, 11, 4, 12, 0, tzinfo=timezone.utc))
        '2025-11-04T12:00:00Z'
    """
    dt_utc = ensure_utc(dt)
    if dt_utc is None:
        return ""
    return dt_utc.strftime("%Y-%m-%dT%H:%M:%SZ")
