"""Domain models shared by the persistence, notification and report layers."""

from .models import (
    BroadcastTemplate,
    DailyRunLog,
    InboxNotification,
    InboxStatus,
    NotificationRecord,
    NotificationStatus,
    ReportSchedule,
    RunStatus,
)

__all__ = [
    "NotificationRecord",
    "NotificationStatus",
    "DailyRunLog",
    "RunStatus",
    "ReportSchedule",
    "InboxNotification",
    "InboxStatus",
    "BroadcastTemplate",
]
