"""Core domain models for the email queue and the daily run log.

- NotificationRecord: one queued outbound email and its delivery state
- DailyRunLog: outcome of a daily job for one calendar date
- ReportSchedule: operator-editable time of day of a daily job
- InboxNotification: in-app message shown to administrators
- BroadcastTemplate: subject/message of a broadcast, kept for the daily re-send

State transitions of NotificationRecord live here so the Dispatcher and the
tests share one definition of the lifecycle.
"""

from datetime import date, datetime, time
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from notifier.utils.timestamps import ensure_utc


class NotificationStatus(str, Enum):
    """Lifecycle states of a queued email."""

    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class RunStatus(str, Enum):
    """Lifecycle states of a daily job run."""

    GENERATED = "GENERATED"
    SENT = "SENT"
    FAILED = "FAILED"


class InboxStatus(str, Enum):
    UNREAD = "UNREAD"
    READ = "READ"


class NotificationRecord(BaseModel):
    """Queued outbound email.

    ``retry_count`` counts delivery attempts made so far; it only grows.
    A record is terminal once SENT, or once FAILED with
    ``retry_count >= max_retries``.
    """

    id: Optional[int] = Field(None, description="Store-assigned identifier")
    recipient: str = Field(..., description="Destination address")
    subject: str = Field("", description="Subject line")
    body: str = Field("", description="Plain text or HTML body")
    is_html: bool = Field(False, description="Body is HTML")
    status: NotificationStatus = Field(NotificationStatus.PENDING)
    sent_at: Optional[datetime] = Field(None, description="Delivery time (UTC)")
    retry_count: int = Field(0, ge=0, description="Delivery attempts made")
    last_attempt_at: Optional[datetime] = Field(None, description="Last attempt time (UTC)")
    last_error: Optional[str] = Field(None, description="Summary of the last failure")
    created_at: Optional[datetime] = Field(None, description="Enqueue time (UTC)")

    @field_validator("recipient")
    @classmethod
    def strip_recipient(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("recipient cannot be empty or whitespace-only")
        return v.strip()

    @field_validator("sent_at", "last_attempt_at", "created_at")
    @classmethod
    def normalize_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @model_validator(mode="after")
    def check_sent_invariant(self):
        if self.status == NotificationStatus.SENT:
            if self.sent_at is None:
                raise ValueError("SENT record must have sent_at")
            if self.last_error is not None:
                raise ValueError("SENT record cannot carry last_error")
        return self

    @property
    def next_attempt(self) -> int:
        return self.retry_count + 1

    def is_exhausted(self, max_retries: int) -> bool:
        """True when the record failed and used up its attempts."""
        return self.status == NotificationStatus.FAILED and self.retry_count >= max_retries

    def is_terminal(self, max_retries: int) -> bool:
        return self.status == NotificationStatus.SENT or self.is_exhausted(max_retries)

    def mark_sent(self, attempt: int, now: datetime) -> "NotificationRecord":
        """Return a copy recording a successful attempt."""
        self._check_attempt(attempt)
        return self.model_copy(
            update={
                "status": NotificationStatus.SENT,
                "sent_at": ensure_utc(now),
                "last_attempt_at": ensure_utc(now),
                "last_error": None,
                "retry_count": attempt,
            }
        )

    def mark_failed(self, attempt: int, now: datetime, error: str) -> "NotificationRecord":
        """Return a copy recording a failed attempt."""
        self._check_attempt(attempt)
        return self.model_copy(
            update={
                "status": NotificationStatus.FAILED,
                "last_attempt_at": ensure_utc(now),
                "last_error": error,
                "retry_count": attempt,
            }
        )

    def _check_attempt(self, attempt: int) -> None:
        if self.status == NotificationStatus.SENT:
            raise ValueError(f"Record {self.id} is already SENT")
        if attempt < self.retry_count:
            raise ValueError(
                f"retry_count cannot decrease ({self.retry_count} -> {attempt})"
            )


class DailyRunLog(BaseModel):
    """Outcome of one daily job for one calendar date.

    At most one row exists per (report_date, job_name).
    """

    id: Optional[int] = None
    report_date: date = Field(..., description="Calendar date the run is for")
    job_name: str = Field(..., min_length=1, description="Job label")
    file_name: str = Field(..., min_length=1, description="Attachment file name")
    status: RunStatus = Field(RunStatus.GENERATED)
    generated_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    error_message: Optional[str] = None

    @field_validator("generated_at", "sent_at")
    @classmethod
    def normalize_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @property
    def is_sent(self) -> bool:
        return self.status == RunStatus.SENT


class ReportSchedule(BaseModel):
    """Time of day at which a daily job is due."""

    id: Optional[int] = None
    job_name: str = Field(..., min_length=1)
    report_hour: int = Field(..., ge=0, le=23)
    report_minute: int = Field(0, ge=0, le=59)

    @property
    def time_of_day(self) -> time:
        return time(self.report_hour, self.report_minute)


class InboxNotification(BaseModel):
    id: Optional[int] = None
    title: str = Field(..., min_length=1)
    message: str = Field(..., max_length=1000)
    status: InboxStatus = Field(InboxStatus.UNREAD)
    created_at: Optional[datetime] = None

    @field_validator("created_at")
    @classmethod
    def normalize_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)


class BroadcastTemplate(BaseModel):
    id: Optional[int] = None
    subject: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    created_at: Optional[datetime] = None

    @field_validator("created_at")
    @classmethod
    def normalize_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)
