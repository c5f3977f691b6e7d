"""Database schema definition and ORM models.

Each ORM model converts to and from its domain model so repositories never
hand SQLAlchemy objects to callers.
"""

import logging

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from notifier.domain.models import (
    BroadcastTemplate,
    DailyRunLog,
    InboxNotification,
    InboxStatus,
    NotificationRecord,
    NotificationStatus,
    ReportSchedule,
    RunStatus,
)

logger = logging.getLogger(__name__)

Base = declarative_base()


class NotificationRecordModel(Base):
    """ORM model for the email_notifications table (the email queue)."""

    __tablename__ = "email_notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    to_email = Column(String(320), nullable=False)
    subject = Column(String(998), nullable=False)
    body = Column(Text, nullable=True)
    is_html = Column(Boolean, nullable=False, default=False)
    status = Column(String(16), nullable=False, default=NotificationStatus.PENDING.value)
    sent_time = Column(DateTime(timezone=True), nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)
    last_attempt_time = Column(DateTime(timezone=True), nullable=True)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=True)

    # Sweep query: status IN (...) ORDER BY id
    __table_args__ = (Index("idx_email_notifications_status_id", "status", "id"),)

    def to_domain(self) -> NotificationRecord:
        return NotificationRecord(
            id=self.id,
            recipient=self.to_email,
            subject=self.subject,
            body=self.body or "",
            is_html=bool(self.is_html),
            status=NotificationStatus(self.status),
            sent_at=self.sent_time,
            retry_count=self.retry_count or 0,
            last_attempt_at=self.last_attempt_time,
            last_error=self.last_error,
            created_at=self.created_at,
        )

    def apply(self, record: NotificationRecord) -> None:
        """Copy mutable delivery state from a domain record onto this row."""
        self.to_email = record.recipient
        self.subject = record.subject
        self.body = record.body
        self.is_html = record.is_html
        self.status = record.status.value
        self.sent_time = record.sent_at
        self.retry_count = record.retry_count
        self.last_attempt_time = record.last_attempt_at
        self.last_error = record.last_error
        if record.created_at is not None:
            self.created_at = record.created_at

    @classmethod
    def from_domain(cls, record: NotificationRecord) -> "NotificationRecordModel":
        model = cls(id=record.id)
        model.apply(record)
        return model


class DailyRunLogModel(Base):
    """ORM model for the daily_report_logs table."""

    __tablename__ = "daily_report_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    report_date = Column(Date, nullable=False)
    job_name = Column(String(100), nullable=False)
    file_name = Column(String(255), nullable=False)
    status = Column(String(16), nullable=False)
    generated_at = Column(DateTime(timezone=True), nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("report_date", "job_name", name="uq_daily_report_logs_date_job"),
    )

    def to_domain(self) -> DailyRunLog:
        return DailyRunLog(
            id=self.id,
            report_date=self.report_date,
            job_name=self.job_name,
            file_name=self.file_name,
            status=RunStatus(self.status),
            generated_at=self.generated_at,
            sent_at=self.sent_at,
            error_message=self.error_message,
        )

    def apply(self, run_log: DailyRunLog) -> None:
        self.report_date = run_log.report_date
        self.job_name = run_log.job_name
        self.file_name = run_log.file_name
        self.status = run_log.status.value
        self.generated_at = run_log.generated_at
        self.sent_at = run_log.sent_at
        self.error_message = run_log.error_message

    @classmethod
    def from_domain(cls, run_log: DailyRunLog) -> "DailyRunLogModel":
        model = cls(id=run_log.id)
        model.apply(run_log)
        return model


class ReportScheduleModel(Base):
    """ORM model for report_schedule_config (one row per daily job)."""

    __tablename__ = "report_schedule_config"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_name = Column(String(100), nullable=False, unique=True)
    report_hour = Column(Integer, nullable=False)
    report_minute = Column(Integer, nullable=False, default=0)

    def to_domain(self) -> ReportSchedule:
        return ReportSchedule(
            id=self.id,
            job_name=self.job_name,
            report_hour=self.report_hour,
            report_minute=self.report_minute,
        )


class InboxNotificationModel(Base):
    """ORM model for the notifications table (admin inbox)."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    message = Column(String(1000), nullable=False)
    status = Column(String(16), nullable=False, default=InboxStatus.UNREAD.value)
    created_at = Column(DateTime(timezone=True), nullable=False)

    def to_domain(self) -> InboxNotification:
        return InboxNotification(
            id=self.id,
            title=self.title,
            message=self.message,
            status=InboxStatus(self.status),
            created_at=self.created_at,
        )


class BroadcastTemplateModel(Base):
    """ORM model for broadcast_email_templates."""

    __tablename__ = "broadcast_email_templates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    subject = Column(String(998), nullable=False)
    message = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)

    def to_domain(self) -> BroadcastTemplate:
        return BroadcastTemplate(
            id=self.id,
            subject=self.subject,
            message=self.message,
            created_at=self.created_at,
        )


def create_schema(engine: Engine) -> None:
    """Create all tables that do not exist yet. Safe to call repeatedly."""
    Base.metadata.create_all(engine)
    logger.debug("Database schema ensured")
