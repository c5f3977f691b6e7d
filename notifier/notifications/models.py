"""Data models and exceptions for the notification service.

This module defines result types and custom exceptions used throughout
the delivery pipeline. Transport outcomes are values (DeliveryResult), so
the Dispatcher never uses exceptions for control flow.
"""

from dataclasses import dataclass, field
from typing import List, Optional


class NotificationError(Exception):
    """Base exception for notification-related errors."""

    pass


class InvalidNotificationError(NotificationError):
    """Raised when a producer passes unusable input (e.g. blank recipient)."""

    pass


class NotificationTemplateError(NotificationError):
    """Raised when template rendering fails due to configuration or missing variables."""

    pass


class SMTPDeliveryError(NotificationError):
    """Raised when an email message cannot be built for delivery."""

    pass


@dataclass
class Attachment:
    """File attached to an outgoing email."""

    filename: str
    content: bytes
    maintype: str = "application"
    subtype: str = "octet-stream"


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of one transport call.

    Attributes:
        ok: True when the server accepted the message
        error: Short failure summary (None on success)
    """

    ok: bool
    error: Optional[str] = None

    @classmethod
    def success(cls) -> "DeliveryResult":
        return cls(ok=True)

    @classmethod
    def failed(cls, error: str) -> "DeliveryResult":
        return cls(ok=False, error=error or "unknown delivery error")


@dataclass
class SweepResult:
    """Summary of one pass of the pending-email sweep.

    Attributes:
        sweep_id: Short identifier used in log context
        record_ids: Ids submitted to the worker pool, oldest first
        completed: Attempts known to have finished (only counted when waiting)
        timed_out: Attempts still running when the wait gave up
        in_flight: Fetched ids skipped because an earlier submission is still queued or running
    """

    sweep_id: str
    record_ids: List[int] = field(default_factory=list)
    completed: int = 0
    timed_out: int = 0
    in_flight: int = 0

    @property
    def submitted(self) -> int:
        return len(self.record_ids)

    def is_empty(self) -> bool:
        return not self.record_ids
