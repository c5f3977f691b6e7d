"""Scheduling module for the periodic sweep and the daily jobs."""

from .registry import (
    BROADCAST_JOB_ID,
    REPORT_CUTOFF_JOB_ID,
    REPORT_POLL_JOB_ID,
    SWEEP_JOB_ID,
    ScheduleRegistry,
    TriggerDefinition,
    build_registry,
)
from .service import SchedulerService

__all__ = [
    "SchedulerService",
    "ScheduleRegistry",
    "TriggerDefinition",
    "build_registry",
    "SWEEP_JOB_ID",
    "REPORT_POLL_JOB_ID",
    "REPORT_CUTOFF_JOB_ID",
    "BROADCAST_JOB_ID",
]
