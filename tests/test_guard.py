"""Unit tests for trigger evaluation and the Daily Trigger Guard."""

import threading
from datetime import date, datetime, time, timezone

import pytest

from notifier.domain.models import RunStatus
from notifier.persistence import close_database, init_database
from notifier.reports.guard import DailyTriggerGuard
from notifier.reports.triggers import (
    POLL_PATHS,
    TriggerPath,
    evaluate_trigger,
    matching_trigger,
)
from tests.helpers import FixedClock

JOB = "student-progress-report"
TODAY = date(2025, 3, 10)
CONFIGURED = time(10, 45)
CUTOFF = time(23, 0)


def at(hour, minute, second=0):
    return datetime(2025, 3, 10, hour, minute, second)


@pytest.fixture
def database():
    init_database("sqlite:///:memory:")
    yield
    close_database()


@pytest.fixture
def guard(database):
    return DailyTriggerGuard(JOB, default_time=CONFIGURED, cutoff=CUTOFF, clock=FixedClock())


class TestEvaluateTrigger:
    @pytest.mark.parametrize(
        "path,now,expected",
        [
            (TriggerPath.EXACT_TIME, at(10, 45), True),
            (TriggerPath.EXACT_TIME, at(10, 45, 59), True),
            (TriggerPath.EXACT_TIME, at(10, 44), False),
            (TriggerPath.EXACT_TIME, at(10, 46), False),
            (TriggerPath.LATE_CATCH_UP, at(10, 45), False),
            (TriggerPath.LATE_CATCH_UP, at(10, 51), True),
            (TriggerPath.LATE_CATCH_UP, at(22, 59), True),
            (TriggerPath.LATE_CATCH_UP, at(23, 0), False),
            (TriggerPath.LATE_CATCH_UP, at(9, 0), False),
            (TriggerPath.HARD_CUTOFF, at(22, 59), False),
            (TriggerPath.HARD_CUTOFF, at(23, 0), True),
            (TriggerPath.HARD_CUTOFF, at(23, 30), True),
            (TriggerPath.STARTUP, at(10, 45), False),
            (TriggerPath.STARTUP, at(10, 46), True),
            (TriggerPath.STARTUP, at(8, 0), False),
            (TriggerPath.STARTUP, at(23, 10), True),
            (TriggerPath.MANUAL, at(3, 0), True),
        ],
    )
    def test_time_conditions(self, path, now, expected):
        assert evaluate_trigger(CONFIGURED, now, CUTOFF, path) is expected

    def test_startup_after_cutoff_even_when_configured_late(self):
        assert evaluate_trigger(time(23, 30), at(23, 10), CUTOFF, TriggerPath.STARTUP) is True

    def test_aware_datetime_uses_its_wall_clock(self):
        now = datetime(2025, 3, 10, 10, 45, tzinfo=timezone.utc)
        assert evaluate_trigger(CONFIGURED, now, CUTOFF, TriggerPath.EXACT_TIME) is True

    def test_unknown_path_raises(self):
        with pytest.raises(ValueError, match="Unknown trigger path"):
            evaluate_trigger(CONFIGURED, at(10, 45), CUTOFF, "sometime")

    def test_matching_trigger_prefers_first_path(self):
        assert matching_trigger(CONFIGURED, at(10, 45), CUTOFF, POLL_PATHS) == TriggerPath.EXACT_TIME
        assert matching_trigger(CONFIGURED, at(12, 0), CUTOFF, POLL_PATHS) == TriggerPath.LATE_CATCH_UP
        assert matching_trigger(CONFIGURED, at(23, 0), CUTOFF, POLL_PATHS) == TriggerPath.HARD_CUTOFF
        assert matching_trigger(CONFIGURED, at(9, 0), CUTOFF, POLL_PATHS) is None

    def test_matching_trigger_defaults_to_scheduled_paths(self):
        assert matching_trigger(CONFIGURED, at(12, 0), CUTOFF) == TriggerPath.STARTUP


class TestShouldRun:
    def test_exact_then_late_then_sent(self, guard):
        """Due at 10:45; after the 10:50 run is SENT, 10:51 does nothing."""
        assert guard.should_run(TODAY, CONFIGURED, at(10, 45), POLL_PATHS) is True

        # 10:45 run failed; the catch-up path retries at 10:50
        guard.record_generated(TODAY, "report.csv")
        guard.record_failure(TODAY, "SMTP down")
        assert guard.should_run(TODAY, CONFIGURED, at(10, 50), POLL_PATHS) is True

        guard.record_success(TODAY)
        assert guard.should_run(TODAY, CONFIGURED, at(10, 51), POLL_PATHS) is False

    def test_missed_exact_minute_is_caught_up(self, guard):
        # The process was not running at 10:45
        assert guard.should_run(TODAY, CONFIGURED, at(14, 10), POLL_PATHS) is True
        assert guard.should_run(TODAY, CONFIGURED, at(22, 59), POLL_PATHS) is True

    def test_before_configured_time(self, guard):
        assert guard.should_run(TODAY, CONFIGURED, at(10, 44), POLL_PATHS) is False

    @pytest.mark.parametrize("now", [at(10, 45), at(10, 51), at(23, 0), at(23, 59)])
    def test_sent_day_blocks_every_path(self, guard, now):
        guard.record_generated(TODAY, "report.csv")
        guard.record_success(TODAY)

        assert guard.should_run(TODAY, CONFIGURED, now) is False

    @pytest.mark.parametrize("status", [RunStatus.GENERATED, RunStatus.FAILED])
    def test_unfinished_day_does_not_block(self, guard, status):
        guard.record_generated(TODAY, "report.csv")
        if status == RunStatus.FAILED:
            guard.record_failure(TODAY, "boom")

        assert guard.find(TODAY).status == status
        assert guard.should_run(TODAY, CONFIGURED, at(23, 0)) is True

    def test_sent_yesterday_does_not_block_today(self, guard):
        yesterday = date(2025, 3, 9)
        guard.record_generated(yesterday, "report.csv")
        guard.record_success(yesterday)

        assert guard.is_sent(yesterday) is True
        assert guard.is_sent(TODAY) is False


class TestSchedule:
    def test_configured_time_seeded_from_default(self, guard):
        assert guard.configured_time() == CONFIGURED

    def test_updated_time_is_read_by_next_decision(self, guard):
        assert guard.configured_time() == CONFIGURED

        guard.update_configured_time(time(14, 0))

        configured = guard.configured_time()
        assert configured == time(14, 0)
        assert guard.matching_trigger(configured, at(10, 45), POLL_PATHS) is None
        assert guard.matching_trigger(configured, at(14, 0), POLL_PATHS) == TriggerPath.EXACT_TIME

    def test_schedule_shared_between_guards(self, guard):
        guard.update_configured_time(time(9, 30))
        other = DailyTriggerGuard(JOB, default_time=CONFIGURED)

        assert other.configured_time() == time(9, 30)


class TestClaims:
    def test_claim_is_exclusive_until_released(self, guard):
        assert guard.claim(TODAY) is True
        assert guard.claim(TODAY) is False
        assert guard.claim(date(2025, 3, 11)) is True

        guard.release(TODAY)

        assert guard.claim(TODAY) is True

    def test_only_one_thread_wins(self, guard):
        results = []
        barrier = threading.Barrier(8)

        def contend():
            barrier.wait()
            results.append(guard.claim(TODAY))

        threads = [threading.Thread(target=contend) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1


class TestRunLogWrites:
    def test_lifecycle_updates_one_row(self, guard):
        generated = guard.record_generated(TODAY, "student-progress-report-2025-03-10.csv")
        failed = guard.record_failure(TODAY, "SMTP down")
        guard.record_generated(TODAY, "student-progress-report-2025-03-10.csv")
        sent = guard.record_success(TODAY)

        assert generated.id == failed.id == sent.id
        assert generated.status == RunStatus.GENERATED
        assert failed.error_message == "SMTP down"
        assert sent.status == RunStatus.SENT
        assert sent.error_message is None
        assert sent.file_name == "student-progress-report-2025-03-10.csv"
        assert sent.sent_at is not None

    def test_failure_without_generated_row_uses_default_file_name(self, guard):
        failed = guard.record_failure(TODAY, "")

        assert failed.file_name == "student-progress-report-2025-03-10"
        assert failed.error_message == "Unknown error"

    def test_long_failure_is_truncated(self, guard):
        failed = guard.record_failure(TODAY, "e" * 3000)

        assert len(failed.error_message) == 2000
        assert failed.error_message.endswith("...")

    def test_jobs_are_tracked_separately(self, guard):
        other = DailyTriggerGuard("daily-broadcast")
        guard.record_generated(TODAY, "a.csv")
        guard.record_success(TODAY)

        assert other.is_sent(TODAY) is False
