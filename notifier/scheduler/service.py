"""Scheduler service running the registered periodic tasks."""

import threading
from datetime import datetime, timezone
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from notifier.logging import get_logger

from .registry import ScheduleRegistry, TriggerDefinition

logger = get_logger(__name__, component="scheduler")

DEFAULT_MISFIRE_GRACE_SECONDS = 60
CRON_MISFIRE_GRACE_SECONDS = 300


class SchedulerService:
    """
    Wraps APScheduler to fire the registered triggers.

    Uses BackgroundScheduler to run jobs in a separate thread while
    allowing the main thread to handle signals and coordinate shutdown.
    Each job runs at most once at a time; a delayed job fires once, not
    once per missed period.
    """

    def __init__(
        self,
        registry: ScheduleRegistry,
        tz=timezone.utc,
        shutdown_event: Optional[threading.Event] = None,
    ):
        """
        Initialize the scheduler service.

        Args:
            registry: Trigger definitions to register on start()
            tz: Timezone of the cron triggers
            shutdown_event: Optional event to set on shutdown for coordination
        """
        self.registry = registry
        self.tz = tz
        self.shutdown_event = shutdown_event

        self.scheduler = BackgroundScheduler(
            job_defaults={
                "max_instances": 1,  # Prevent overlapping runs
                "coalesce": True,  # If run is delayed, only execute once
                "misfire_grace_time": DEFAULT_MISFIRE_GRACE_SECONDS,
            },
            timezone=tz,
        )

    def start(self) -> None:
        """Register every definition and start the scheduler thread."""
        for definition in self.registry.definitions:
            self._add_job(definition)

        self.scheduler.start()

        logger.info(
            f"Scheduler started with {len(self.registry)} jobs",
            extra={
                "event": "scheduler.started",
                "jobs": [definition.job_id for definition in self.registry.definitions],
            },
        )

    def _add_job(self, definition: TriggerDefinition) -> None:
        if definition.kind == "interval":
            trigger = IntervalTrigger(seconds=definition.seconds, timezone=self.tz)
            misfire_grace = definition.seconds
        else:
            trigger = CronTrigger(hour=definition.hour, minute=definition.minute, timezone=self.tz)
            misfire_grace = CRON_MISFIRE_GRACE_SECONDS

        kwargs = {}
        if definition.run_immediately:
            kwargs["next_run_time"] = datetime.now(timezone.utc)

        self.scheduler.add_job(
            func=definition.func,
            trigger=trigger,
            id=definition.job_id,
            name=definition.name,
            replace_existing=True,
            misfire_grace_time=misfire_grace,
            **kwargs,
        )

        logger.debug(
            f"Registered job {definition.job_id} ({definition.kind})",
            extra={"event": "scheduler.job_registered", "job_id": definition.job_id},
        )

    def shutdown(self, wait: bool = False) -> None:
        """
        Shutdown the scheduler gracefully.

        Args:
            wait: If True, wait for running jobs to complete before returning
        """
        logger.info(
            "Shutting down scheduler",
            extra={
                "event": "scheduler.stopping",
                "wait_for_jobs": wait,
            },
        )

        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)

        if self.shutdown_event:
            self.shutdown_event.set()

        logger.info(
            "Scheduler shutdown complete",
            extra={"event": "scheduler.stopped"}
        )

    def trigger_now(self, job_id: str):
        """
        Run a registered callable synchronously in the current thread.

        Raises:
            KeyError: If no definition has this id
        """
        definition = self.registry.get(job_id)
        if definition is None:
            raise KeyError(f"No scheduled job with id '{job_id}'")

        logger.info(
            f"Triggering immediate run of {job_id}",
            extra={"event": "scheduler.trigger_now", "job_id": job_id}
        )
        return definition.func()

    def is_running(self) -> bool:
        """
        Check if the scheduler is currently running.

        Returns:
            True if scheduler is running, False otherwise
        """
        return self.scheduler.running

    def get_next_run_time(self, job_id: str) -> Optional[datetime]:
        """
        Get the next scheduled run time of a job.

        Returns:
            Next run time as a datetime, or None if not scheduled
        """
        job = self.scheduler.get_job(job_id)
        return job.next_run_time if job else None
