"""Result types and exceptions of the daily jobs."""

from dataclasses import dataclass
from datetime import date
from typing import Optional

from .triggers import TriggerPath


class ReportJobError(Exception):
    """Raised inside a job body when the report cannot be produced or delivered."""

    pass


@dataclass
class JobRunResult:
    """Outcome of one invocation of a daily job.

    Attributes:
        job_name: Run log label of the job
        report_date: Calendar date the invocation was for
        outcome: "sent", "skipped" or "failed"
        trigger: Path that made the job due (None when skipped as not due)
        reason: Why the run was skipped (already_sent, not_due, in_progress, ...)
        error: Failure summary when outcome is "failed"
    """

    job_name: str
    report_date: date
    outcome: str  # "sent", "skipped", "failed"
    trigger: Optional[TriggerPath] = None
    reason: Optional[str] = None
    error: Optional[str] = None

    def is_success(self) -> bool:
        return self.outcome == "sent"

    @classmethod
    def skipped(cls, job_name: str, report_date: date, reason: str, trigger: Optional[TriggerPath] = None):
        return cls(job_name=job_name, report_date=report_date, outcome="skipped", trigger=trigger, reason=reason)
