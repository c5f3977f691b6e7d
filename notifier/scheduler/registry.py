"""Periodic task definitions.

Every trigger the service runs is declared here as data; SchedulerService
turns the definitions into APScheduler jobs.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

from notifier.config.models import AppConfig
from notifier.notifications.service import NotificationService
from notifier.reports.jobs import DailyBroadcastJob, DailyReportJob

SWEEP_JOB_ID = "email-sweep"
REPORT_POLL_JOB_ID = "daily-report-poll"
REPORT_CUTOFF_JOB_ID = "daily-report-cutoff"
BROADCAST_JOB_ID = "daily-broadcast"


@dataclass(frozen=True)
class TriggerDefinition:
    """One scheduled callable.

    Attributes:
        job_id: Stable APScheduler job id
        name: Human readable name used in logs
        func: Callable run on each firing; must not raise
        kind: "interval" or "cron"
        seconds: Period of an interval trigger
        hour: Hour of a daily cron trigger
        minute: Minute of a daily cron trigger
        run_immediately: Fire an interval trigger once at start
    """

    job_id: str
    name: str
    func: Callable[[], object]
    kind: str
    seconds: Optional[int] = None
    hour: Optional[int] = None
    minute: Optional[int] = None
    run_immediately: bool = False

    def __post_init__(self):
        if self.kind == "interval":
            if not self.seconds or self.seconds <= 0:
                raise ValueError(f"Interval trigger '{self.job_id}' needs a positive period")
        elif self.kind == "cron":
            if self.hour is None or self.minute is None:
                raise ValueError(f"Cron trigger '{self.job_id}' needs hour and minute")
        else:
            raise ValueError(f"Unknown trigger kind: '{self.kind}'")


class ScheduleRegistry:
    """Ordered collection of trigger definitions keyed by job id."""

    def __init__(self, definitions: Iterable[TriggerDefinition] = ()):
        self._definitions: Dict[str, TriggerDefinition] = {}
        for definition in definitions:
            self.add(definition)

    def add(self, definition: TriggerDefinition) -> None:
        if definition.job_id in self._definitions:
            raise ValueError(f"Duplicate job id: '{definition.job_id}'")
        self._definitions[definition.job_id] = definition

    def add_interval(
        self,
        job_id: str,
        name: str,
        func: Callable[[], object],
        seconds: int,
        run_immediately: bool = False,
    ) -> None:
        self.add(
            TriggerDefinition(
                job_id=job_id,
                name=name,
                func=func,
                kind="interval",
                seconds=seconds,
                run_immediately=run_immediately,
            )
        )

    def add_daily(self, job_id: str, name: str, func: Callable[[], object], hour: int, minute: int) -> None:
        self.add(
            TriggerDefinition(job_id=job_id, name=name, func=func, kind="cron", hour=hour, minute=minute)
        )

    def get(self, job_id: str) -> Optional[TriggerDefinition]:
        return self._definitions.get(job_id)

    @property
    def definitions(self) -> List[TriggerDefinition]:
        return list(self._definitions.values())

    def __len__(self) -> int:
        return len(self._definitions)

    def __contains__(self, job_id: str) -> bool:
        return job_id in self._definitions


def build_registry(
    app_config: AppConfig,
    notification_service: NotificationService,
    report_job: Optional[DailyReportJob] = None,
    broadcast_job: Optional[DailyBroadcastJob] = None,
) -> ScheduleRegistry:
    """Declare the service's periodic tasks from configuration.

    - pending-email sweep every ``delivery.sweep_interval``
    - daily report poll every ``daily_report.poll_interval``
    - daily report cutoff fallback at ``daily_report.cutoff_hour``:00
    - daily broadcast at ``broadcast.hour``:``broadcast.minute`` when enabled
    """
    registry = ScheduleRegistry()

    registry.add_interval(
        SWEEP_JOB_ID,
        "Pending email sweep",
        notification_service.process_pending_emails,
        app_config.delivery.sweep_interval_seconds,
    )

    if report_job is not None and app_config.daily_report.enabled:
        registry.add_interval(
            REPORT_POLL_JOB_ID,
            "Daily report poll",
            report_job.tick,
            app_config.daily_report.poll_interval_seconds,
        )
        registry.add_daily(
            REPORT_CUTOFF_JOB_ID,
            "Daily report cutoff fallback",
            report_job.cutoff_fallback,
            hour=app_config.daily_report.cutoff_hour,
            minute=0,
        )

    if broadcast_job is not None and app_config.broadcast.enabled:
        registry.add_daily(
            BROADCAST_JOB_ID,
            "Daily broadcast",
            broadcast_job.run,
            hour=app_config.broadcast.hour,
            minute=app_config.broadcast.minute,
        )

    return registry
