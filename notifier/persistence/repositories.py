"""Data access layer (repositories) for persistence operations.

Repositories wrap one SQLAlchemy session, return domain models, and turn
SQLAlchemy errors into PersistenceError. They never commit; the caller's
get_session() block owns the transaction.
"""

import logging
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

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

from .exceptions import DataIntegrityError, PersistenceError, RecordNotFoundError
from .schema import (
    BroadcastTemplateModel,
    DailyRunLogModel,
    InboxNotificationModel,
    NotificationRecordModel,
    ReportScheduleModel,
)

logger = logging.getLogger(__name__)


class NotificationRepository:
    """Notification Record Store: the persisted email queue."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, record_id: int) -> Optional[NotificationRecord]:
        """Fetch one record by id, or None."""
        try:
            model = self.session.get(NotificationRecordModel, record_id)
            return model.to_domain() if model is not None else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving notification {record_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve notification: {e}") from e

    def save(self, record: NotificationRecord) -> NotificationRecord:
        """Insert a new record (id is None) or overwrite an existing row.

        Returns:
            The persisted record, with its id assigned

        Raises:
            RecordNotFoundError: If record.id does not exist
            PersistenceError: If database error occurs
        """
        try:
            if record.id is None:
                model = NotificationRecordModel.from_domain(record)
                self.session.add(model)
            else:
                model = self.session.get(NotificationRecordModel, record.id)
                if model is None:
                    raise RecordNotFoundError(f"Notification {record.id} not found")
                model.apply(record)

            self.session.flush()
            return model.to_domain()

        except IntegrityError as e:
            raise DataIntegrityError(f"Failed to save notification: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error saving notification {record.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to save notification: {e}") from e

    def find_by_status_in(
        self,
        statuses: Iterable[NotificationStatus],
        limit: int = 100,
        retry_ceiling: Optional[int] = None,
    ) -> List[NotificationRecord]:
        """Oldest-first records whose status is in ``statuses``.

        Args:
            statuses: Statuses to select
            limit: Maximum number of rows
            retry_ceiling: When set, FAILED rows with retry_count at or above
                the ceiling are left out

        Returns:
            Records ordered by id ascending
        """
        status_values = [NotificationStatus(s).value for s in statuses]
        try:
            stmt = select(NotificationRecordModel).where(
                NotificationRecordModel.status.in_(status_values)
            )
            if retry_ceiling is not None:
                stmt = stmt.where(
                    or_(
                        NotificationRecordModel.status != NotificationStatus.FAILED.value,
                        NotificationRecordModel.retry_count < retry_ceiling,
                    )
                )
            stmt = stmt.order_by(NotificationRecordModel.id.asc()).limit(limit)

            return [model.to_domain() for model in self.session.execute(stmt).scalars()]

        except SQLAlchemyError as e:
            logger.error(f"Error querying notifications by status: {e}", exc_info=True)
            raise PersistenceError(f"Failed to query notifications: {e}") from e

    def list_all(self) -> List[NotificationRecord]:
        """All records, most recently sent first and unsent ones last."""
        try:
            stmt = select(NotificationRecordModel).order_by(
                NotificationRecordModel.sent_time.is_(None),
                NotificationRecordModel.sent_time.desc(),
                NotificationRecordModel.id.desc(),
            )
            return [model.to_domain() for model in self.session.execute(stmt).scalars()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing notifications: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list notifications: {e}") from e

    def count_by_status(self) -> Dict[NotificationStatus, int]:
        """Row count per status (statuses with no rows report 0)."""
        try:
            stmt = select(NotificationRecordModel.status, func.count()).group_by(
                NotificationRecordModel.status
            )
            counts = {status: 0 for status in NotificationStatus}
            for status, count in self.session.execute(stmt):
                counts[NotificationStatus(status)] = count
            return counts
        except SQLAlchemyError as e:
            logger.error(f"Error counting notifications: {e}", exc_info=True)
            raise PersistenceError(f"Failed to count notifications: {e}") from e

    def delete_all(self) -> int:
        """Remove every record. Returns the number deleted."""
        try:
            result = self.session.execute(delete(NotificationRecordModel))
            self.session.flush()
            return result.rowcount
        except SQLAlchemyError as e:
            logger.error(f"Error clearing notifications: {e}", exc_info=True)
            raise PersistenceError(f"Failed to clear notifications: {e}") from e


class RunLogRepository:
    """DailyRunLog store."""

    def __init__(self, session: Session):
        self.session = session

    def find_for(self, report_date: date, job_name: str) -> Optional[DailyRunLog]:
        """The run log row for (report_date, job_name), or None."""
        try:
            model = self._find_model(report_date, job_name)
            return model.to_domain() if model is not None else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving run log for {job_name} on {report_date}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve run log: {e}") from e

    def has_sent(self, report_date: date, job_name: str) -> bool:
        try:
            stmt = select(DailyRunLogModel.id).where(
                DailyRunLogModel.report_date == report_date,
                DailyRunLogModel.job_name == job_name,
                DailyRunLogModel.status == RunStatus.SENT.value,
            )
            return self.session.execute(stmt).first() is not None
        except SQLAlchemyError as e:
            logger.error(f"Error checking run log for {job_name} on {report_date}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to check run log: {e}") from e

    def save(self, run_log: DailyRunLog) -> DailyRunLog:
        """Upsert keyed by (report_date, job_name).

        Raises:
            DataIntegrityError: If a concurrent insert for the same key wins
            PersistenceError: If database error occurs
        """
        try:
            model = self._find_model(run_log.report_date, run_log.job_name)
            if model is None:
                model = DailyRunLogModel.from_domain(run_log.model_copy(update={"id": None}))
                self.session.add(model)
            else:
                model.apply(run_log)

            self.session.flush()
            return model.to_domain()

        except IntegrityError as e:
            raise DataIntegrityError(
                f"Run log for {run_log.job_name} on {run_log.report_date} already exists: {e}"
            ) from e
        except SQLAlchemyError as e:
            logger.error(f"Error saving run log: {e}", exc_info=True)
            raise PersistenceError(f"Failed to save run log: {e}") from e

    def list_all(self, job_name: Optional[str] = None) -> List[DailyRunLog]:
        """Run logs, newest date first."""
        try:
            stmt = select(DailyRunLogModel)
            if job_name is not None:
                stmt = stmt.where(DailyRunLogModel.job_name == job_name)
            stmt = stmt.order_by(DailyRunLogModel.report_date.desc(), DailyRunLogModel.id.desc())
            return [model.to_domain() for model in self.session.execute(stmt).scalars()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing run logs: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list run logs: {e}") from e

    def _find_model(self, report_date: date, job_name: str) -> Optional[DailyRunLogModel]:
        stmt = select(DailyRunLogModel).where(
            DailyRunLogModel.report_date == report_date,
            DailyRunLogModel.job_name == job_name,
        )
        return self.session.execute(stmt).scalar_one_or_none()


class ScheduleRepository:
    """Persisted time of day of each daily job."""

    def __init__(self, session: Session):
        self.session = session

    def get_or_create(self, job_name: str, default_hour: int, default_minute: int) -> ReportSchedule:
        """Return the stored schedule, seeding it from the defaults on first use."""
        try:
            model = self._find_model(job_name)
            if model is None:
                schedule = ReportSchedule(
                    job_name=job_name, report_hour=default_hour, report_minute=default_minute
                )
                model = ReportScheduleModel(
                    job_name=schedule.job_name,
                    report_hour=schedule.report_hour,
                    report_minute=schedule.report_minute,
                )
                self.session.add(model)
                self.session.flush()
                logger.info(
                    f"Created schedule for {job_name} at {default_hour:02d}:{default_minute:02d}"
                )
            return model.to_domain()
        except IntegrityError:
            # Another thread seeded it first
            self.session.rollback()
            return self._find_model(job_name).to_domain()
        except SQLAlchemyError as e:
            logger.error(f"Error loading schedule for {job_name}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to load schedule: {e}") from e

    def update(self, job_name: str, hour: int, minute: int) -> ReportSchedule:
        """Set the time of day of a job (creating the row if needed).

        Raises:
            ValueError: If hour/minute are out of range
        """
        schedule = ReportSchedule(job_name=job_name, report_hour=hour, report_minute=minute)
        try:
            model = self._find_model(job_name)
            if model is None:
                model = ReportScheduleModel(job_name=job_name)
                self.session.add(model)
            model.report_hour = schedule.report_hour
            model.report_minute = schedule.report_minute
            self.session.flush()
            return model.to_domain()
        except SQLAlchemyError as e:
            logger.error(f"Error updating schedule for {job_name}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update schedule: {e}") from e

    def _find_model(self, job_name: str) -> Optional[ReportScheduleModel]:
        stmt = select(ReportScheduleModel).where(ReportScheduleModel.job_name == job_name)
        return self.session.execute(stmt).scalar_one_or_none()


class InboxRepository:
    """Administrator in-app notifications."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, title: str, message: str, created_at: datetime) -> InboxNotification:
        notification = InboxNotification(title=title, message=message[:1000], created_at=created_at)
        try:
            model = InboxNotificationModel(
                title=notification.title,
                message=notification.message,
                status=notification.status.value,
                created_at=notification.created_at,
            )
            self.session.add(model)
            self.session.flush()
            return model.to_domain()
        except SQLAlchemyError as e:
            logger.error(f"Error creating inbox notification: {e}", exc_info=True)
            raise PersistenceError(f"Failed to create inbox notification: {e}") from e

    def list_all(self) -> List[InboxNotification]:
        try:
            stmt = select(InboxNotificationModel).order_by(
                InboxNotificationModel.created_at.desc(), InboxNotificationModel.id.desc()
            )
            return [model.to_domain() for model in self.session.execute(stmt).scalars()]
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to list inbox notifications: {e}") from e

    def mark_read(self, notification_id: int) -> InboxNotification:
        """Raises RecordNotFoundError for an unknown id."""
        try:
            model = self.session.get(InboxNotificationModel, notification_id)
            if model is None:
                raise RecordNotFoundError(f"Notification not found with id: {notification_id}")
            model.status = InboxStatus.READ.value
            self.session.flush()
            return model.to_domain()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to mark notification read: {e}") from e


class BroadcastTemplateRepository:
    """Stored broadcast subjects/messages."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, subject: str, message: str, created_at: datetime) -> BroadcastTemplate:
        template = BroadcastTemplate(subject=subject, message=message, created_at=created_at)
        try:
            model = BroadcastTemplateModel(
                subject=template.subject,
                message=template.message,
                created_at=template.created_at,
            )
            self.session.add(model)
            self.session.flush()
            return model.to_domain()
        except SQLAlchemyError as e:
            logger.error(f"Error saving broadcast template: {e}", exc_info=True)
            raise PersistenceError(f"Failed to save broadcast template: {e}") from e

    def latest(self) -> Optional[BroadcastTemplate]:
        try:
            stmt = select(BroadcastTemplateModel).order_by(BroadcastTemplateModel.id.desc()).limit(1)
            model = self.session.execute(stmt).scalar_one_or_none()
            return model.to_domain() if model is not None else None
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load broadcast template: {e}") from e
