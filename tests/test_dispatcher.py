"""Unit tests for the Dispatcher.

Covers the bounded-retry attempt, terminal immutability of SENT records,
the retry ceiling, and that dispatch never raises.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from notifier.config.environment import EnvironmentConfig
from notifier.domain.models import NotificationRecord, NotificationStatus
from notifier.notifications.dispatcher import Dispatcher
from notifier.notifications.models import Attachment, DeliveryResult
from notifier.persistence import (
    NotificationRepository,
    PersistenceError,
    close_database,
    get_session,
    init_database,
)
from tests.helpers import FakeTransport, FixedClock

NOW = datetime(2025, 3, 10, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def database():
    init_database("sqlite:///:memory:")
    yield
    close_database()


@pytest.fixture
def env_config():
    return EnvironmentConfig(
        smtp_host="smtp.example.com",
        smtp_port=587,
        smtp_user="office@example.edu",
        smtp_pass="secret",
    )


@pytest.fixture
def clock():
    return FixedClock(NOW)


def store(**overrides) -> NotificationRecord:
    data = {"recipient": "student@example.edu", "subject": "Marks", "body": "Published", "created_at": NOW}
    data.update(overrides)
    with get_session() as session:
        return NotificationRepository(session).save(NotificationRecord(**data))


def load(record_id: int) -> NotificationRecord:
    with get_session() as session:
        return NotificationRepository(session).get(record_id)


def make_dispatcher(env_config, transport, clock, max_retries=3):
    return Dispatcher(env_config=env_config, transport=transport, max_retries=max_retries, clock=clock)


class TestDispatch:
    def test_success_marks_sent(self, database, env_config, clock):
        transport = FakeTransport()
        record = store()

        result = make_dispatcher(env_config, transport, clock).dispatch(record.id)

        assert result.status == NotificationStatus.SENT
        persisted = load(record.id)
        assert persisted.status == NotificationStatus.SENT
        assert persisted.sent_at == NOW
        assert persisted.last_attempt_at == NOW
        assert persisted.last_error is None
        assert persisted.retry_count == 1
        assert transport.recipients == ["student@example.edu"]

    def test_failure_marks_failed(self, database, env_config, clock):
        transport = FakeTransport(always_fail=True)
        record = store()

        make_dispatcher(env_config, transport, clock).dispatch(record.id)

        persisted = load(record.id)
        assert persisted.status == NotificationStatus.FAILED
        assert persisted.retry_count == 1
        assert persisted.last_error == "Connection refused"
        assert persisted.last_attempt_at == NOW
        assert persisted.sent_at is None

    def test_retry_after_failure_increments_count(self, database, env_config, clock):
        transport = FakeTransport(results=[DeliveryResult.failed("timeout")])
        record = store()
        dispatcher = make_dispatcher(env_config, transport, clock)

        dispatcher.dispatch(record.id)
        clock.advance(minutes=1)
        dispatcher.dispatch(record.id)

        persisted = load(record.id)
        assert persisted.status == NotificationStatus.SENT
        assert persisted.retry_count == 2
        assert persisted.last_error is None
        assert persisted.sent_at == NOW + timedelta(minutes=1)

    def test_sent_record_is_not_resent(self, database, env_config, clock):
        transport = FakeTransport()
        record = store(status=NotificationStatus.SENT, sent_at=NOW, retry_count=1)

        clock.advance(hours=1)
        result = make_dispatcher(env_config, transport, clock).dispatch(record.id)

        assert transport.sent == []
        assert result == load(record.id)
        assert load(record.id).sent_at == NOW

    def test_exhausted_record_is_left_unchanged(self, database, env_config, clock):
        transport = FakeTransport()
        record = store(status=NotificationStatus.FAILED, retry_count=3, last_error="timeout", last_attempt_at=NOW)

        clock.advance(hours=1)
        make_dispatcher(env_config, transport, clock).dispatch(record.id)

        assert transport.sent == []
        persisted = load(record.id)
        assert persisted.retry_count == 3
        assert persisted.status == NotificationStatus.FAILED
        assert persisted.last_attempt_at == NOW

    def test_last_attempt_reaches_ceiling(self, database, env_config, clock):
        transport = FakeTransport(always_fail=True)
        record = store(status=NotificationStatus.FAILED, retry_count=2, last_error="timeout")

        result = make_dispatcher(env_config, transport, clock).dispatch(record.id)

        assert result.retry_count == 3
        assert result.is_exhausted(3)

    def test_retry_ceiling_bounds_attempts(self, database, env_config, clock):
        transport = FakeTransport(always_fail=True)
        record = store()
        dispatcher = make_dispatcher(env_config, transport, clock)

        for _ in range(6):
            dispatcher.dispatch(record.id)

        assert len(transport.sent) == 3
        assert load(record.id).retry_count == 3

    def test_missing_record_returns_none(self, database, env_config, clock):
        transport = FakeTransport()

        assert make_dispatcher(env_config, transport, clock).dispatch(12345) is None
        assert transport.sent == []

    def test_store_error_is_swallowed(self, database, env_config, clock):
        record = store()
        dispatcher = make_dispatcher(env_config, FakeTransport(), clock)

        with patch.object(NotificationRepository, "get", side_effect=PersistenceError("db locked")):
            assert dispatcher.dispatch(record.id) is None

    def test_transport_exception_is_swallowed(self, database, env_config, clock):
        record = store()
        transport = FakeTransport()

        with patch.object(transport, "send", side_effect=RuntimeError("bug")):
            assert make_dispatcher(env_config, transport, clock).dispatch(record.id) is None

        assert load(record.id).status == NotificationStatus.PENDING

    def test_concurrent_success_is_not_overwritten(self, database, env_config, clock):
        record = store()

        class RacingTransport(FakeTransport):
            """Another worker delivers the same record while this attempt fails."""

            def send(self, message, env_config, use_tls=True, timeout=30):
                with get_session() as session:
                    repo = NotificationRepository(session)
                    repo.save(repo.get(record.id).mark_sent(1, NOW))
                return DeliveryResult.failed("timeout")

        result = make_dispatcher(env_config, RacingTransport(), clock).dispatch(record.id)

        assert result.status == NotificationStatus.SENT
        persisted = load(record.id)
        assert persisted.status == NotificationStatus.SENT
        assert persisted.last_error is None
        assert persisted.retry_count == 1

    def test_long_errors_are_truncated(self, database, env_config, clock):
        record = store()
        transport = FakeTransport(results=[DeliveryResult.failed("x" * 5000)])

        make_dispatcher(env_config, transport, clock).dispatch(record.id)

        assert len(load(record.id).last_error) == 2000

    def test_html_record_is_sent_as_html(self, database, env_config, clock):
        transport = FakeTransport()
        record = store(body="<p>Hi</p>", is_html=True)

        make_dispatcher(env_config, transport, clock).dispatch(record.id)

        assert transport.sent[0].get_content_type() == "text/html"


class TestDeliver:
    def test_deliver_does_not_touch_queue(self, database, env_config, clock):
        transport = FakeTransport()
        dispatcher = make_dispatcher(env_config, transport, clock)

        result = dispatcher.deliver(
            "admin@example.edu",
            "Daily report",
            "<p>Attached</p>",
            is_html=True,
            attachments=[Attachment("report.csv", b"a,b\n", "text", "csv")],
        )

        assert result.ok
        message = transport.sent[0]
        assert message["From"] == "Student Records <office@example.edu>"
        assert [a.get_filename() for a in message.iter_attachments()] == ["report.csv"]
        with get_session() as session:
            assert NotificationRepository(session).list_all() == []

    def test_unbuildable_message_is_a_failed_result(self, env_config, clock):
        transport = FakeTransport()

        result = make_dispatcher(env_config, transport, clock).deliver(
            "admin@example.edu", "Bad\nSubject", "body"
        )

        assert not result.ok
        assert transport.sent == []

    def test_invalid_max_retries(self, env_config):
        with pytest.raises(ValueError):
            Dispatcher(env_config=env_config, max_retries=0)
