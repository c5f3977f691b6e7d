"""Trigger paths of the daily jobs and the single function deciding them.

Every path is a pure time condition on the wall-clock ``now`` in the
configured timezone; whether the day is already done is the Guard's concern.
"""

from datetime import datetime, time
from enum import Enum
from typing import Iterable, Optional


class TriggerPath(str, Enum):
    """Ways a daily job can become due."""

    STARTUP = "startup"
    EXACT_TIME = "exact_time"
    LATE_CATCH_UP = "late_catch_up"
    HARD_CUTOFF = "hard_cutoff"
    MANUAL = "manual"


SCHEDULED_PATHS = (
    TriggerPath.STARTUP,
    TriggerPath.EXACT_TIME,
    TriggerPath.LATE_CATCH_UP,
    TriggerPath.HARD_CUTOFF,
)

# Paths checked by the per-minute poll
POLL_PATHS = (
    TriggerPath.EXACT_TIME,
    TriggerPath.LATE_CATCH_UP,
    TriggerPath.HARD_CUTOFF,
)


def evaluate_trigger(
    configured_time: time,
    now: datetime,
    cutoff: time,
    path: TriggerPath,
) -> bool:
    """Return whether ``path``'s time condition holds at ``now``.

    Args:
        configured_time: Time of day the job is due
        now: Current wall-clock time in the job's timezone
        cutoff: Last-resort fallback time (23:00 by default)
        path: Trigger path to evaluate

    Example:
        >>> evaluate_trigger(time(10, 45), datetime(2025, 3, 1, 10, 50), time(23), TriggerPath.LATE_CATCH_UP)
        True
    """
    current = now.time()

    if path == TriggerPath.STARTUP:
        return current > configured_time or now.hour >= cutoff.hour
    if path == TriggerPath.EXACT_TIME:
        return (now.hour, now.minute) == (configured_time.hour, configured_time.minute)
    if path == TriggerPath.LATE_CATCH_UP:
        return configured_time < current < cutoff
    if path == TriggerPath.HARD_CUTOFF:
        return current >= cutoff
    if path == TriggerPath.MANUAL:
        return True

    raise ValueError(f"Unknown trigger path: {path}")


def matching_trigger(
    configured_time: time,
    now: datetime,
    cutoff: time,
    paths: Optional[Iterable[TriggerPath]] = None,
) -> Optional[TriggerPath]:
    """First path in ``paths`` (default: all scheduled paths) whose condition holds."""
    for path in paths if paths is not None else SCHEDULED_PATHS:
        if evaluate_trigger(configured_time, now, cutoff, path):
            return path
    return None
