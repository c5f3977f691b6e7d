"""Daily Trigger Guard: at most one successful run per job and calendar day.

The Guard answers "should this job run now?" from the persisted run log
and the persisted schedule, and it is the only writer of DailyRunLog rows.
Overlapping trigger paths inside one process are serialized with an
in-memory claim per (job, date).
"""

import threading
from datetime import date, datetime, time
from typing import Callable, Iterable, Optional, Set, Tuple

from notifier.domain.models import DailyRunLog, RunStatus
from notifier.logging import get_logger
from notifier.persistence.database import get_session
from notifier.persistence.exceptions import DataIntegrityError
from notifier.persistence.repositories import RunLogRepository, ScheduleRepository
from notifier.utils.timestamps import utc_now

from .triggers import TriggerPath, matching_trigger

logger = get_logger(__name__, component="guard")

MAX_ERROR_LENGTH = 2000


class DailyTriggerGuard:
    """Idempotency guard and run-log writer for one daily job."""

    def __init__(
        self,
        job_name: str,
        default_time: time = time(10, 45),
        cutoff: time = time(23, 0),
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize the guard.

        Args:
            job_name: Run log label of the job
            default_time: Seeds the persisted schedule on first read
            cutoff: Time of the last-resort fallback path
            clock: Returns the current UTC time for run log timestamps
        """
        self.job_name = job_name
        self.default_time = default_time
        self.cutoff = cutoff
        self.clock = clock
        self._claims: Set[Tuple[str, date]] = set()
        self._claims_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def configured_time(self) -> time:
        """Read the persisted time of day (seeding it from the default)."""
        with get_session() as session:
            schedule = ScheduleRepository(session).get_or_create(
                self.job_name, self.default_time.hour, self.default_time.minute
            )
        return schedule.time_of_day

    def update_configured_time(self, value: time) -> time:
        """Persist a new time of day; the next decision uses it."""
        with get_session() as session:
            schedule = ScheduleRepository(session).update(self.job_name, value.hour, value.minute)

        logger.info(
            f"Schedule for {self.job_name} set to {schedule.time_of_day.strftime('%H:%M')}",
            extra={"event": "guard.schedule_updated", "job_name": self.job_name},
        )
        return schedule.time_of_day

    def is_sent(self, today: date) -> bool:
        """True when a SENT run log row exists for (today, job)."""
        with get_session() as session:
            return RunLogRepository(session).has_sent(today, self.job_name)

    def matching_trigger(
        self,
        configured_time: time,
        now: datetime,
        paths: Optional[Iterable[TriggerPath]] = None,
    ) -> Optional[TriggerPath]:
        """First of ``paths`` (default: all scheduled paths) whose time condition holds."""
        return matching_trigger(configured_time, now, self.cutoff, paths)

    def should_run(
        self,
        today: date,
        configured_time: time,
        now: datetime,
        paths: Optional[Iterable[TriggerPath]] = None,
    ) -> bool:
        """True iff the day is not yet SENT and one of ``paths`` holds.

        GENERATED and FAILED rows do not block: the next path may retry.
        """
        if self.is_sent(today):
            return False
        return self.matching_trigger(configured_time, now, paths) is not None

    # ------------------------------------------------------------------
    # In-process claims
    # ------------------------------------------------------------------

    def claim(self, today: date) -> bool:
        """Reserve (job, today) for the calling thread. False if already held."""
        key = (self.job_name, today)
        with self._claims_lock:
            if key in self._claims:
                return False
            self._claims.add(key)
            return True

    def release(self, today: date) -> None:
        with self._claims_lock:
            self._claims.discard((self.job_name, today))

    # ------------------------------------------------------------------
    # Run log writes
    # ------------------------------------------------------------------

    def find(self, today: date) -> Optional[DailyRunLog]:
        with get_session() as session:
            return RunLogRepository(session).find_for(today, self.job_name)

    def record_generated(self, today: date, file_name: str) -> DailyRunLog:
        """Upsert the day's row as GENERATED."""
        return self._upsert(
            today,
            file_name=file_name,
            status=RunStatus.GENERATED,
            generated_at=self.clock(),
            error_message=None,
        )

    def record_success(self, today: date) -> DailyRunLog:
        """Mark the day SENT; later scheduled paths skip it."""
        saved = self._upsert(
            today,
            status=RunStatus.SENT,
            sent_at=self.clock(),
            error_message=None,
        )
        logger.info(
            f"{self.job_name} for {today} marked as sent",
            extra={"event": "guard.sent", "job_name": self.job_name, "report_date": today.isoformat()},
        )
        return saved

    def record_failure(self, today: date, error: str) -> DailyRunLog:
        """Mark the day FAILED; it stays eligible for the next path."""
        error = error or "Unknown error"
        if len(error) > MAX_ERROR_LENGTH:
            error = error[: MAX_ERROR_LENGTH - 3] + "..."

        saved = self._upsert(today, status=RunStatus.FAILED, error_message=error)
        logger.warning(
            f"{self.job_name} for {today} marked as failed: {error}",
            extra={"event": "guard.failed", "job_name": self.job_name, "report_date": today.isoformat()},
        )
        return saved

    def _upsert(self, today: date, **changes) -> DailyRunLog:
        # One retry covers a concurrent first insert of the same (date, job)
        for attempt in (1, 2):
            try:
                with get_session() as session:
                    repo = RunLogRepository(session)
                    existing = repo.find_for(today, self.job_name)
                    if existing is None:
                        fields = {"file_name": self.default_file_name(today), **changes}
                        run_log = DailyRunLog(
                            report_date=today, job_name=self.job_name, **fields
                        )
                    else:
                        run_log = existing.model_copy(update=changes)
                    return repo.save(run_log)
            except DataIntegrityError:
                if attempt == 2:
                    raise
                logger.debug(
                    f"Concurrent insert of run log for {today}, retrying",
                    extra={"event": "guard.upsert_retry"},
                )

    def default_file_name(self, today: date) -> str:
        return f"{self.job_name}-{today.isoformat()}"
