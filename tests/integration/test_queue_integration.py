"""Integration tests for the email queue and the daily report on a file database.

Real worker threads, real SQLite file, fake mail transport.
"""

import csv
import io
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, time

import pytest

from notifier.config.environment import EnvironmentConfig
from notifier.config.models import DailyReportConfig
from notifier.domain.models import NotificationStatus, RunStatus
from notifier.notifications.dispatcher import Dispatcher
from notifier.notifications.service import NotificationService
from notifier.persistence import close_database, init_database
from notifier.reports.guard import DailyTriggerGuard
from notifier.reports.jobs import DailyReportJob
from notifier.utils.timestamps import resolve_timezone
from tests.helpers import FakeTransport

RECIPIENTS = [f"student{i:02d}@example.edu" for i in range(10)]
FLAKY = {"student03@example.edu": 2, "student07@example.edu": 2}


@pytest.fixture
def test_database(tmp_path):
    """Setup test database with file storage."""
    db_url = f"sqlite:///{tmp_path / 'test_integration.db'}"
    init_database(db_url)
    yield db_url
    close_database()


@pytest.fixture
def env_config():
    return EnvironmentConfig(smtp_host="smtp.example.com", smtp_port=587, admin_email="admin@example.edu")


def run_with_pool(dispatcher, action):
    """Run ``action(service)`` on a fresh pool and wait for every submitted dispatch."""
    pool = ThreadPoolExecutor(max_workers=4)
    service = NotificationService(dispatcher=dispatcher, executor=pool)
    try:
        return action(service)
    finally:
        pool.shutdown(wait=True)


class TestQueueEndToEnd:
    def test_enqueue_then_sweep_until_delivered(self, test_database, env_config):
        transport = FakeTransport(failures_by_recipient=FLAKY)
        dispatcher = Dispatcher(env_config=env_config, transport=transport, max_retries=3)

        run_with_pool(
            dispatcher,
            lambda service: [service.enqueue(r, "Results published", "Check the portal") for r in RECIPIENTS],
        )

        records = {r.recipient: r for r in run_with_pool(dispatcher, lambda s: s.list_notifications())}
        assert sum(r.status == NotificationStatus.SENT for r in records.values()) == 8
        assert records["student03@example.edu"].status == NotificationStatus.FAILED
        assert records["student03@example.edu"].retry_count == 1

        first = run_with_pool(dispatcher, lambda s: s.process_pending_emails(wait=True))
        second = run_with_pool(dispatcher, lambda s: s.process_pending_emails(wait=True))
        third = run_with_pool(dispatcher, lambda s: s.process_pending_emails(wait=True))

        assert len(first.record_ids) == 2
        assert first.completed == 2
        assert len(second.record_ids) == 2
        assert third.is_empty()

        records = {r.recipient: r for r in run_with_pool(dispatcher, lambda s: s.list_notifications())}
        assert all(r.status == NotificationStatus.SENT for r in records.values())
        assert records["student07@example.edu"].retry_count == 3
        assert records["student00@example.edu"].retry_count == 1
        assert len(transport.sent) == 14

    def test_permanent_failure_stops_at_ceiling(self, test_database, env_config):
        transport = FakeTransport(always_fail=True)
        dispatcher = Dispatcher(env_config=env_config, transport=transport, max_retries=3)

        run_with_pool(dispatcher, lambda s: s.enqueue("gone@example.edu", "Fees", "Due"))
        for _ in range(5):
            run_with_pool(dispatcher, lambda s: s.process_pending_emails(wait=True))

        [record] = run_with_pool(dispatcher, lambda s: s.list_notifications())
        assert record.status == NotificationStatus.FAILED
        assert record.retry_count == 3
        assert len(transport.sent) == 3


class TestDailyReportEndToEnd:
    def test_report_lists_queue_and_is_sent_once(self, test_database, env_config):
        transport = FakeTransport()
        dispatcher = Dispatcher(env_config=env_config, transport=transport)
        run_with_pool(
            dispatcher,
            lambda s: [s.enqueue(r, "Results published", "Check the portal") for r in RECIPIENTS[:3]],
        )

        job = DailyReportJob(
            guard=DailyTriggerGuard("student-progress-report", default_time=time(10, 45)),
            dispatcher=dispatcher,
            env_config=env_config,
            report_config=DailyReportConfig(),
            tz=resolve_timezone("Asia/Kolkata"),
        )

        results = [job.tick(datetime(2025, 3, 10, h, m)) for h, m in ((10, 44), (10, 45), (10, 50), (23, 0))]

        assert [r.outcome for r in results] == ["skipped", "sent", "skipped", "skipped"]
        assert job.guard.find(results[1].report_date).status == RunStatus.SENT

        report = transport.sent[-1]
        assert report["To"] == "admin@example.edu"
        attachment = next(report.iter_attachments())
        rows = list(csv.DictReader(io.StringIO(attachment.get_content())))
        assert len(rows) == 3
        assert {row["status"] for row in rows} == {"SENT"}
