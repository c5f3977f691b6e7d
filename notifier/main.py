"""Main entry point for the Student Records Notifier service."""

from dotenv import load_dotenv
load_dotenv()

import argparse
import os
import signal
import sys
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from notifier.config.environment import EnvironmentConfig
from notifier.config.exceptions import ConfigurationError
from notifier.config.loader import load_config
from notifier.config.models import AppConfig
from notifier.logging import get_logger
from notifier.logging.config import configure_logging
from notifier.notifications.dispatcher import Dispatcher
from notifier.notifications.models import NotificationError
from notifier.notifications.service import NotificationService
from notifier.persistence.database import close_database, get_session, init_database
from notifier.persistence.repositories import RunLogRepository
from notifier.reports.guard import DailyTriggerGuard
from notifier.reports.jobs import DailyBroadcastJob, DailyReportJob
from notifier.scheduler import SchedulerService, build_registry
from notifier.utils.timestamps import format_timestamp, parse_time_of_day

logger = get_logger(__name__, component="cli")


@dataclass
class Services:
    """Long-lived collaborators wired from configuration."""

    notification_service: NotificationService
    dispatcher: Dispatcher
    guard: DailyTriggerGuard
    report_job: DailyReportJob
    broadcast_job: DailyBroadcastJob


def load_runtime_config(
    config_path: Optional[Path], log_level_override: Optional[str]
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load configuration and settle the effective log level.

    Log level priority: CLI > environment > config file.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config, env_config = load_config(config_path)

    if log_level_override:
        env_config.log_level = log_level_override
    elif env_config.log_level:
        pass
    elif app_config.logging and app_config.logging.level:
        env_config.log_level = app_config.logging.level
    else:
        env_config.log_level = "INFO"

    return app_config, env_config


def build_services(app_config: AppConfig, env_config: EnvironmentConfig) -> Services:
    """Wire dispatcher, queue service, guard and jobs. The database must be initialized."""
    delivery = app_config.delivery
    report = app_config.daily_report

    dispatcher = Dispatcher(
        env_config=env_config,
        max_retries=delivery.max_retries,
        use_tls=delivery.use_tls,
        timeout=delivery.smtp_timeout,
    )
    notification_service = NotificationService(
        dispatcher=dispatcher,
        batch_size=delivery.batch_size,
        worker_count=delivery.worker_count,
    )
    guard = DailyTriggerGuard(
        job_name=report.job_name,
        default_time=report.default_time,
        cutoff=report.cutoff_time,
    )
    report_job = DailyReportJob(
        guard=guard,
        dispatcher=dispatcher,
        env_config=env_config,
        report_config=report,
        tz=app_config.tzinfo,
        template_renderer=notification_service.template_renderer,
        inbox=notification_service.create_inbox_notification,
    )
    recipients = [str(address) for address in app_config.broadcast.recipients]
    broadcast_job = DailyBroadcastJob(
        notification_service=notification_service,
        recipient_directory=lambda: list(recipients),
    )

    return Services(
        notification_service=notification_service,
        dispatcher=dispatcher,
        guard=guard,
        report_job=report_job,
        broadcast_job=broadcast_job,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Student Records Notifier - email queue, retries and daily report scheduling"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.yaml or config/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config and environment)",
    )

    commands = parser.add_mutually_exclusive_group()
    commands.add_argument(
        "--process-pending",
        action="store_true",
        help="Run one sweep of pending/failed emails, wait for it and exit",
    )
    commands.add_argument(
        "--trigger-report",
        action="store_true",
        help="Generate and send today's report now, even if already sent",
    )
    commands.add_argument(
        "--list-queue",
        action="store_true",
        help="Print the email queue and exit",
    )
    commands.add_argument(
        "--list-reports",
        action="store_true",
        help="Print the daily report run log and exit",
    )
    commands.add_argument(
        "--set-report-time",
        metavar="HH:MM",
        default=None,
        help="Persist a new daily report time and exit",
    )
    commands.add_argument(
        "--broadcast",
        nargs=2,
        metavar=("SUBJECT", "MESSAGE"),
        default=None,
        help="Store a broadcast and email it to broadcast.recipients, then wait for delivery",
    )
    commands.add_argument(
        "--email-student",
        nargs=3,
        metavar=("EMAIL", "SUBJECT", "MESSAGE"),
        default=None,
        help="Email one student, then wait for delivery",
    )
    commands.add_argument(
        "--clear-queue",
        action="store_true",
        help="Delete every record from the email queue and exit",
    )
    parser.add_argument(
        "--name",
        default=None,
        help="Student name used to greet the recipient of --email-student",
    )
    return parser


def run_process_pending(services: Services) -> int:
    result = services.notification_service.process_pending_emails(wait=True)
    print(
        f"Sweep {result.sweep_id}: {result.submitted} submitted, "
        f"{result.completed} completed, {result.timed_out} still running"
    )
    return 0 if result.timed_out == 0 else 1


def run_trigger_report(services: Services) -> int:
    result = services.report_job.run_manually()
    if result.is_success():
        print(f"Report for {result.report_date} sent")
        return 0
    if result.outcome == "skipped":
        print(f"Report for {result.report_date} skipped: {result.reason}")
        return 1
    print(f"Report for {result.report_date} failed: {result.error}", file=sys.stderr)
    return 1


def run_list_queue(services: Services) -> int:
    records = services.notification_service.list_notifications()
    if not records:
        print("Email queue is empty")
        return 0

    for record in records:
        print(
            f"{record.id:>6}  {record.status.value:<7}  retries={record.retry_count}  "
            f"sent={format_timestamp(record.sent_at) or '-':<20}  {record.recipient}  "
            f"'{record.subject}'"
            + (f"  error={record.last_error}" if record.last_error else "")
        )
    return 0


def run_list_reports(services: Services) -> int:
    with get_session() as session:
        run_logs = RunLogRepository(session).list_all(services.guard.job_name)

    if not run_logs:
        print(f"No runs recorded for {services.guard.job_name}")
        return 0

    for run_log in run_logs:
        print(
            f"{run_log.report_date.isoformat()}  {run_log.status.value:<9}  "
            f"generated={format_timestamp(run_log.generated_at) or '-'}  "
            f"sent={format_timestamp(run_log.sent_at) or '-'}  {run_log.file_name}"
            + (f"  error={run_log.error_message}" if run_log.error_message else "")
        )
    return 0


def run_set_report_time(services: Services, value: str) -> int:
    try:
        new_time = parse_time_of_day(value)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    saved = services.guard.update_configured_time(new_time)
    print(f"Daily report time set to {saved.strftime('%H:%M')}")
    return 0


def run_broadcast(services: Services, subject: str, message: str) -> int:
    recipients = list(services.broadcast_job.recipient_directory())
    if not recipients:
        print("Error: broadcast.recipients is empty", file=sys.stderr)
        return 1

    queued = services.notification_service.send_broadcast(recipients, subject, message)
    print(f"Broadcast '{subject}' queued for {queued} of {len(recipients)} recipients")
    return 0 if queued == len(recipients) else 1


def run_email_student(
    services: Services, recipient: str, subject: str, message: str, name: Optional[str]
) -> int:
    try:
        record_id = services.notification_service.send_individual(recipient, subject, message, name=name)
    except NotificationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Email {record_id} to {recipient} queued")
    return 0


def run_clear_queue(services: Services) -> int:
    deleted = services.notification_service.clear_notifications()
    print(f"Deleted {deleted} email notifications")
    return 0


def run_daemon(app_config: AppConfig, services: Services, start_time: float) -> int:
    shutdown_event = threading.Event()

    registry = build_registry(
        app_config,
        services.notification_service,
        report_job=services.report_job,
        broadcast_job=services.broadcast_job,
    )
    scheduler_service = SchedulerService(
        registry=registry,
        tz=app_config.tzinfo,
        shutdown_event=shutdown_event,
    )

    def stop() -> None:
        scheduler_service.shutdown(wait=False)
        services.notification_service.shutdown(wait=True)
        close_database()

    def signal_handler(signum, frame):
        logger.info(
            f"Received signal {signum}, shutting down",
            extra={"event": "service.signal_received", "signal": signum}
        )
        shutdown_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    scheduler_service.start()

    if app_config.daily_report.enabled:
        services.report_job.startup_check()

    logger.info(
        "Scheduler started. Press Ctrl+C to stop",
        extra={"event": "service.daemon_mode.started"}
    )

    try:
        shutdown_event.wait()
    except KeyboardInterrupt:
        logger.info(
            "Keyboard interrupt received, shutting down",
            extra={"event": "service.keyboard_interrupt"}
        )
    finally:
        stop()

    uptime_seconds = time.time() - start_time
    logger.info(
        "Student Records Notifier stopped",
        extra={
            "event": "service.stopping",
            "uptime_seconds": round(uptime_seconds, 2),
        }
    )
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the Student Records Notifier.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    start_time = time.time()
    args = build_parser().parse_args(argv)

    try:
        app_config, env_config = load_runtime_config(args.config, args.log_level)

        log_format = app_config.logging.format if app_config.logging else "key-value"
        environment = os.environ.get("ENVIRONMENT", "local")
        configure_logging(level=env_config.log_level, format_type=log_format, environment=environment)

        logger.info(
            "Student Records Notifier starting",
            extra={
                "event": "service.starting",
                "config_path": str(args.config) if args.config else None,
                "log_level": env_config.log_level,
            },
        )

        init_database(env_config.database_url)

        logger.info(
            "Configuration loaded",
            extra={
                "event": "config.loaded",
                "timezone": app_config.timezone,
                "max_retries": app_config.delivery.max_retries,
                "sweep_interval_seconds": app_config.delivery.sweep_interval_seconds,
                "daily_report_enabled": app_config.daily_report.enabled,
                "broadcast_enabled": app_config.broadcast.enabled,
            },
        )

        services = build_services(app_config, env_config)

        if args.process_pending:
            exit_code = run_process_pending(services)
        elif args.trigger_report:
            exit_code = run_trigger_report(services)
        elif args.list_queue:
            exit_code = run_list_queue(services)
        elif args.list_reports:
            exit_code = run_list_reports(services)
        elif args.set_report_time:
            exit_code = run_set_report_time(services, args.set_report_time)
        elif args.broadcast:
            exit_code = run_broadcast(services, *args.broadcast)
        elif args.email_student:
            exit_code = run_email_student(services, *args.email_student, name=args.name)
        elif args.clear_queue:
            exit_code = run_clear_queue(services)
        else:
            return run_daemon(app_config, services, start_time)

        # Waits for queued delivery attempts before the database closes
        services.notification_service.shutdown(wait=True)
        close_database()
        return exit_code

    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        logger.error(
            f"Configuration error: {e}",
            extra={"event": "config.error", "error_type": "ConfigurationError"}
        )
        return 1
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        return 0
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error during startup",
            extra={
                "event": "service.startup.failed",
                "error_type": type(e).__name__,
                "error": str(e),
            },
            exc_info=True
        )
        return 1


if __name__ == "__main__":
    sys.exit(main())
