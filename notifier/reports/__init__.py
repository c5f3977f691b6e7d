"""Daily jobs and the Daily Trigger Guard."""

from .generator import DeliverySummaryReport, ReportGenerator
from .guard import DailyTriggerGuard
from .jobs import DailyBroadcastJob, DailyReportJob
from .models import JobRunResult, ReportJobError
from .triggers import POLL_PATHS, SCHEDULED_PATHS, TriggerPath, evaluate_trigger, matching_trigger

__all__ = [
    "DailyTriggerGuard",
    "DailyReportJob",
    "DailyBroadcastJob",
    "JobRunResult",
    "ReportJobError",
    "ReportGenerator",
    "DeliverySummaryReport",
    "TriggerPath",
    "SCHEDULED_PATHS",
    "POLL_PATHS",
    "evaluate_trigger",
    "matching_trigger",
]
