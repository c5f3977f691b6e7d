"""Duration parsing for polling intervals."""

import re


class DurationParseError(ValueError):
    """Raised when a duration string cannot be parsed."""

    pass


_ISO_PATTERN = re.compile(r"^P(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+(?:\.\d+)?)S)?)?$")
_HUMAN_PATTERN = re.compile(r"(\d+)\s*([smhd])")
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(duration_str: str) -> int:
    """
    Parse a duration string to seconds.

    Accepts human-readable values ("30s", "1m", "1h30m") and ISO-8601
    durations ("PT30S", "PT1M").

    Examples:
        >>> parse_duration("1m")
        60
        >>> parse_duration("PT30S")
        30

    Raises:
        DurationParseError: If the duration string is invalid or zero
    """
    if not isinstance(duration_str, str) or not duration_str.strip():
        raise DurationParseError("Duration string cannot be empty")

    value = duration_str.strip()
    if value.upper().startswith("P"):
        seconds = _parse_iso8601(value.upper())
    else:
        seconds = _parse_human_readable(value.lower())

    if seconds == 0:
        raise DurationParseError(f"Duration cannot be zero: '{duration_str}'")

    return seconds


def _parse_iso8601(value: str) -> int:
    match = _ISO_PATTERN.match(value)
    if not match:
        raise DurationParseError(
            f"Invalid ISO-8601 duration format: '{value}'. "
            "Expected format like 'PT1M', 'PT30S' or 'PT1H'"
        )

    days, hours, minutes, seconds = match.groups()
    return (
        int(days or 0) * 86400
        + int(hours or 0) * 3600
        + int(minutes or 0) * 60
        + int(float(seconds or 0))
    )


def _parse_human_readable(value: str) -> int:
    matches = _HUMAN_PATTERN.findall(value)
    if not matches:
        raise DurationParseError(
            f"Invalid duration format: '{value}'. "
            "Expected format like '30s', '1m', '1h' or combinations like '1m30s'"
        )

    # Every character must belong to a number+unit pair
    if "".join(f"{num}{unit}" for num, unit in matches) != re.sub(r"\s+", "", value):
        raise DurationParseError(
            f"Invalid characters in duration: '{value}'. "
            "Use only digits and units: s, m, h, d"
        )

    return sum(int(num) * _UNIT_SECONDS[unit] for num, unit in matches)


def validate_duration_range(
    duration_seconds: int,
    min_seconds: int = 10,
    max_seconds: int = 3600,
    label: str = "Interval",
) -> None:
    """
    Check that a polling interval lies within sane bounds.

    Raises:
        DurationParseError: If the duration is outside the range
    """
    if duration_seconds < min_seconds:
        raise DurationParseError(
            f"{label} too short: {duration_seconds}s. Minimum is {min_seconds}s."
        )
    if duration_seconds > max_seconds:
        raise DurationParseError(
            f"{label} too long: {duration_seconds}s. Maximum is {max_seconds}s."
        )
