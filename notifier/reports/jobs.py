"""Daily jobs driven by the scheduler.

DailyReportJob emails the daily report once per calendar day. It is
reachable through four scheduled paths (startup check, exact-minute poll,
late catch-up poll, 23:00 cutoff) plus the manual override; every path goes
through the same Guard and the same run body.

DailyBroadcastJob re-sends the most recent broadcast message once a day.
"""

from datetime import date, datetime
from typing import Callable, Iterable, Optional, Sequence

from notifier.config.environment import EnvironmentConfig
from notifier.config.models import DailyReportConfig
from notifier.logging import get_logger
from notifier.logging.context import log_context
from notifier.notifications.dispatcher import Dispatcher
from notifier.notifications.models import Attachment
from notifier.notifications.service import NotificationService
from notifier.notifications.templates import TemplateRenderer
from notifier.persistence.database import get_session
from notifier.persistence.repositories import BroadcastTemplateRepository
from notifier.utils.timestamps import format_timestamp, utc_now

from .generator import DeliverySummaryReport, ReportGenerator
from .guard import DailyTriggerGuard
from .models import JobRunResult, ReportJobError
from .triggers import POLL_PATHS, TriggerPath

logger = get_logger(__name__, component="report_job")

REPORT_TEMPLATE = "daily-report"

_TRIGGER_MESSAGES = {
    TriggerPath.STARTUP: "Server started after the scheduled time and no report was sent today",
    TriggerPath.EXACT_TIME: "Scheduled time reached",
    TriggerPath.LATE_CATCH_UP: "Scheduled time passed and no report was sent today",
    TriggerPath.HARD_CUTOFF: "Cutoff reached and no report was sent today",
    TriggerPath.MANUAL: "Manual trigger",
}


class DailyReportJob:
    """Generates and emails one report per calendar day."""

    def __init__(
        self,
        guard: DailyTriggerGuard,
        dispatcher: Dispatcher,
        env_config: EnvironmentConfig,
        report_config: DailyReportConfig,
        tz,
        generator: Optional[ReportGenerator] = None,
        template_renderer: Optional[TemplateRenderer] = None,
        inbox: Optional[Callable[[str, str], bool]] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize the job.

        Args:
            guard: Guard bound to this job's name
            dispatcher: Used for its synchronous deliver() path
            env_config: Provides ADMIN_EMAIL as fallback recipient
            report_config: Job settings (recipient, job name)
            tz: Timezone deciding the calendar date and time of day
            generator: Report content producer (DeliverySummaryReport if None)
            template_renderer: Renders the email body
            inbox: Callable(title, message) creating an admin inbox entry
            clock: Returns the current UTC time
        """
        self.guard = guard
        self.dispatcher = dispatcher
        self.env_config = env_config
        self.report_config = report_config
        self.tz = tz
        self.generator = generator or DeliverySummaryReport()
        self.template_renderer = template_renderer or TemplateRenderer()
        self.inbox = inbox
        self.clock = clock

    @property
    def job_name(self) -> str:
        return self.guard.job_name

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def tick(self, now: Optional[datetime] = None) -> JobRunResult:
        """Per-minute poll: exact minute, late catch-up and cutoff paths."""
        return self._scheduled_run(POLL_PATHS, now)

    def startup_check(self, now: Optional[datetime] = None) -> JobRunResult:
        """Run once when the service starts, covering downtime over the scheduled time."""
        return self._scheduled_run((TriggerPath.STARTUP,), now)

    def cutoff_fallback(self, now: Optional[datetime] = None) -> JobRunResult:
        """Dedicated cutoff trigger (23:00 by default)."""
        return self._scheduled_run((TriggerPath.HARD_CUTOFF,), now)

    def run_manually(self, now: Optional[datetime] = None) -> JobRunResult:
        """Operator override: ignores the SENT check and the time of day.

        The run reuses today's log row. A failed override on a day that was
        already SENT leaves the row FAILED, so the late catch-up and cutoff
        paths send the report again later that day.

        Returns the failed result instead of raising so the caller can report it.
        """
        local = self._local(now)
        today = local.date()

        with log_context(job_name=self.job_name, report_date=today.isoformat()):
            logger.info(
                f"Manual trigger: generating {self.job_name} for {today}",
                extra={"event": "report.manual"},
            )
            return self._run(today, TriggerPath.MANUAL, local, bypass_sent=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _local(self, now: Optional[datetime]) -> datetime:
        if now is None:
            return self.clock().astimezone(self.tz)
        if now.tzinfo is None:
            # Naive values are wall-clock time in the job's timezone
            return now.replace(tzinfo=self.tz)
        return now.astimezone(self.tz)

    def _scheduled_run(self, paths: Sequence[TriggerPath], now: Optional[datetime]) -> JobRunResult:
        local = self._local(now)
        today = local.date()

        with log_context(job_name=self.job_name, report_date=today.isoformat()):
            try:
                if self.guard.is_sent(today):
                    logger.debug(
                        f"{self.job_name} for {today} already sent. Skipping.",
                        extra={"event": "guard.skip", "reason": "already_sent"},
                    )
                    return JobRunResult.skipped(self.job_name, today, "already_sent")

                configured = self.guard.configured_time()
                trigger = self.guard.matching_trigger(configured, local, paths)
                if trigger is None:
                    logger.debug(
                        f"Current time {local.strftime('%H:%M')} - scheduled time "
                        f"{configured.strftime('%H:%M')} not reached yet. Skipping.",
                        extra={"event": "guard.skip", "reason": "not_due"},
                    )
                    return JobRunResult.skipped(self.job_name, today, "not_due")

                log_method = logger.info if trigger == TriggerPath.EXACT_TIME else logger.warning
                log_method(
                    f"{_TRIGGER_MESSAGES[trigger]} (now {local.strftime('%H:%M')}, "
                    f"scheduled {configured.strftime('%H:%M')}). Sending {self.job_name}.",
                    extra={"event": "guard.trigger", "trigger": trigger.value},
                )
                return self._run(today, trigger, local)

            except Exception as e:
                # Scheduled paths never raise; the next path retries
                logger.error(
                    f"Error while evaluating {self.job_name} for {today}: {e}",
                    exc_info=True,
                    extra={"event": "report.error", "error_type": type(e).__name__},
                )
                return JobRunResult(
                    job_name=self.job_name, report_date=today, outcome="failed", error=str(e)
                )

    def _run(self, today: date, trigger: TriggerPath, local: datetime, bypass_sent: bool = False) -> JobRunResult:
        if not self.guard.claim(today):
            logger.info(
                f"{self.job_name} for {today} is already running. Skipping.",
                extra={"event": "guard.skip", "reason": "in_progress", "trigger": trigger.value},
            )
            return JobRunResult.skipped(self.job_name, today, "in_progress", trigger)

        try:
            # Another path may have finished between the first check and the claim
            if not bypass_sent and self.guard.is_sent(today):
                return JobRunResult.skipped(self.job_name, today, "already_sent", trigger)

            return self._execute(today, trigger, local, bypass_sent)
        finally:
            self.guard.release(today)

    def _execute(self, today: date, trigger: TriggerPath, local: datetime, bypass_sent: bool) -> JobRunResult:
        file_name = self.generator.file_name(self.job_name, today)

        try:
            self.guard.record_generated(today, file_name)

            content = self.generator.build_report_content()
            if not content:
                raise ReportJobError("Report content is empty. Cannot send email with empty attachment.")
            logger.info(
                f"Report content generated, size: {len(content)} bytes",
                extra={"event": "report.generated", "size": len(content)},
            )

            recipient = self._resolve_recipient()

            if not bypass_sent and self.guard.is_sent(today):
                logger.info(
                    f"{self.job_name} for {today} was sent meanwhile. Not sending again.",
                    extra={"event": "guard.skip", "reason": "already_sent"},
                )
                return JobRunResult.skipped(self.job_name, today, "already_sent", trigger)

            subject = f"Daily Student Progress Report - {today.isoformat()}"
            body = self.template_renderer.render(
                REPORT_TEMPLATE,
                {
                    "subject": subject,
                    "report_date": today.isoformat(),
                    "file_name": file_name,
                    "trigger": trigger.value,
                    "generated_at": format_timestamp(self.clock()),
                },
            )
            attachment = Attachment(
                filename=file_name,
                content=content,
                maintype=self.generator.maintype,
                subtype=self.generator.subtype,
            )

            result = self.dispatcher.deliver(recipient, subject, body, is_html=True, attachments=[attachment])
            if not result.ok:
                raise ReportJobError(f"Failed to send email: {result.error}")

            self.guard.record_success(today)
            logger.info(
                f"{self.job_name} for {today} successfully generated and emailed to {recipient}",
                extra={"event": "report.sent", "trigger": trigger.value},
            )

            self._notify_inbox(today, recipient)

            return JobRunResult(
                job_name=self.job_name, report_date=today, outcome="sent", trigger=trigger
            )

        except Exception as e:
            error_msg = str(e) or type(e).__name__
            logger.error(
                f"Failed to generate or send {self.job_name} for {today}: {error_msg}",
                exc_info=not isinstance(e, ReportJobError),
                extra={"event": "report.failed", "trigger": trigger.value},
            )
            try:
                self.guard.record_failure(today, error_msg)
            except Exception as log_error:
                logger.error(
                    f"Could not record failure of {self.job_name} for {today}: {log_error}",
                    extra={"event": "report.log_failed"},
                )
            return JobRunResult(
                job_name=self.job_name,
                report_date=today,
                outcome="failed",
                trigger=trigger,
                error=error_msg,
            )

    def _notify_inbox(self, today: date, recipient: str) -> None:
        if self.inbox is None:
            return
        try:
            self.inbox(
                "Daily report emailed",
                f"Student progress report for {today} has been emailed to {recipient}",
            )
        except Exception as e:
            logger.warning(
                f"Failed to create inbox notification, but report was sent successfully: {e}",
                extra={"event": "inbox.create_failed"},
            )

    def _resolve_recipient(self) -> str:
        recipient = self.report_config.recipient or self.env_config.admin_email
        if not recipient:
            raise ReportJobError(
                "No report recipient configured. Set daily_report.recipient or ADMIN_EMAIL."
            )
        return recipient


class DailyBroadcastJob:
    """Re-sends the latest stored broadcast to the recipient directory."""

    def __init__(
        self,
        notification_service: NotificationService,
        recipient_directory: Callable[[], Iterable[str]],
    ):
        self.notification_service = notification_service
        self.recipient_directory = recipient_directory

    def run(self) -> int:
        """Queue the broadcast. Returns the number of emails queued; never raises."""
        try:
            with get_session() as session:
                template = BroadcastTemplateRepository(session).latest()

            if template is None:
                logger.info(
                    "No broadcast template stored. Skipping daily broadcast.",
                    extra={"event": "broadcast.skip", "reason": "no_template"},
                )
                return 0

            queued = self.notification_service.queue_broadcast(
                self.recipient_directory(), template.subject, template.message
            )
            logger.info(
                f"Daily broadcast '{template.subject}' queued for {queued} recipients",
                extra={"event": "broadcast.daily", "template_id": template.id, "queued": queued},
            )
            return queued

        except Exception as e:
            logger.error(
                f"Daily broadcast failed: {e}",
                exc_info=True,
                extra={"event": "broadcast.error", "error_type": type(e).__name__},
            )
            return 0
