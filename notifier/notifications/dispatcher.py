"""Dispatcher: one bounded-retry delivery attempt per call.

The Dispatcher is the only writer of NotificationRecord status. Each call
re-reads the record, so the persisted row is the source of truth and a
record handed over by a stale sweep cannot be sent twice once it is SENT.
"""

from datetime import datetime
from typing import Callable, Iterable, Optional

from notifier.config.environment import EnvironmentConfig
from notifier.domain.models import NotificationRecord, NotificationStatus
from notifier.logging import get_logger
from notifier.logging.context import log_context
from notifier.persistence.database import get_session
from notifier.persistence.repositories import NotificationRepository
from notifier.utils.timestamps import utc_now

from .models import Attachment, DeliveryResult, SMTPDeliveryError
from .smtp_client import SMTPClient, build_message, build_sender_address

logger = get_logger(__name__, component="dispatcher")

MAX_ERROR_LENGTH = 2000


class Dispatcher:
    """Sends queued records through the mail transport and records the outcome.

    Safe to call concurrently for different record ids: the only shared
    state is the database.
    """

    def __init__(
        self,
        env_config: EnvironmentConfig,
        transport: Optional[SMTPClient] = None,
        max_retries: int = 3,
        use_tls: bool = True,
        timeout: int = 30,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize the dispatcher.

        Args:
            env_config: SMTP settings and sender identity
            transport: Mail transport (creates default SMTPClient if None)
            max_retries: Attempts after which a FAILED record is abandoned
            use_tls: STARTTLS on non-465 ports
            timeout: SMTP socket timeout in seconds
            clock: Returns the current UTC time (overridden in tests)
        """
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")

        self.env_config = env_config
        self.transport = transport or SMTPClient()
        self.max_retries = max_retries
        self.use_tls = use_tls
        self.timeout = timeout
        self.clock = clock
        self.sender = build_sender_address(env_config)

    def dispatch(self, record_id: int) -> Optional[NotificationRecord]:
        """Make one delivery attempt for a queued record.

        Never raises: store and transport problems are logged so worker
        threads and schedulers survive them.

        Returns:
            The record as persisted after this call, or None when it could
            not be loaded or an unexpected error occurred
        """
        with log_context(record_id=record_id):
            try:
                return self._dispatch(record_id)
            except Exception as e:
                logger.error(
                    f"Unexpected error dispatching email id {record_id}: {e}",
                    exc_info=True,
                    extra={"event": "dispatch.error", "error_type": type(e).__name__},
                )
                return None

    def _dispatch(self, record_id: int) -> Optional[NotificationRecord]:
        with get_session() as session:
            record = NotificationRepository(session).get(record_id)

        if record is None:
            logger.warning(
                f"Email id {record_id} not found, nothing to send",
                extra={"event": "dispatch.missing"},
            )
            return None

        if record.status == NotificationStatus.SENT:
            logger.debug(
                f"Email id {record_id} already sent",
                extra={"event": "dispatch.already_sent"},
            )
            return record

        if record.is_exhausted(self.max_retries):
            logger.warning(
                f"Skipping email id {record_id} to {record.recipient} - max retries reached",
                extra={"event": "dispatch.exhausted", "retry_count": record.retry_count},
            )
            return record

        attempt = record.next_attempt
        logger.info(
            f"Sending email id {record_id} to {record.recipient} attempt {attempt}",
            extra={"event": "dispatch.attempt", "attempt": attempt},
        )

        result = self.deliver(record.recipient, record.subject, record.body, record.is_html)
        return self._record_outcome(record_id, attempt, result)

    def _record_outcome(
        self, record_id: int, attempt: int, result: DeliveryResult
    ) -> Optional[NotificationRecord]:
        now = self.clock()

        with get_session() as session:
            repo = NotificationRepository(session)
            current = repo.get(record_id)
            if current is None:
                logger.warning(
                    f"Email id {record_id} disappeared before its outcome was saved",
                    extra={"event": "dispatch.missing"},
                )
                return None

            if current.status == NotificationStatus.SENT:
                # A concurrent attempt won; SENT is never overwritten
                logger.info(
                    f"Email id {record_id} was sent by a concurrent attempt",
                    extra={"event": "dispatch.duplicate", "attempt": attempt},
                )
                return current

            attempt = max(attempt, current.retry_count)
            if result.ok:
                updated = current.mark_sent(attempt, now)
            else:
                updated = current.mark_failed(attempt, now, _truncate(result.error))
            saved = repo.save(updated)

        if result.ok:
            logger.info(
                f"Successfully sent email id {record_id} to {saved.recipient}",
                extra={"event": "dispatch.sent", "attempt": attempt},
            )
        else:
            level_method = logger.error if saved.is_exhausted(self.max_retries) else logger.warning
            level_method(
                f"Failed to send email id {record_id} to {saved.recipient} on attempt {attempt}: {result.error}",
                extra={
                    "event": "dispatch.failed",
                    "attempt": attempt,
                    "retry_remaining": not saved.is_exhausted(self.max_retries),
                },
            )

        return saved

    def deliver(
        self,
        recipient: str,
        subject: str,
        body: str,
        is_html: bool = False,
        attachments: Iterable[Attachment] = (),
    ) -> DeliveryResult:
        """Send one message synchronously without touching the queue.

        Used by dispatch() and by the daily jobs, which track their own
        outcome in the run log.
        """
        try:
            message = build_message(
                sender=self.sender,
                recipient=recipient,
                subject=subject,
                body=body,
                is_html=is_html,
                attachments=attachments,
            )
        except SMTPDeliveryError as e:
            return DeliveryResult.failed(str(e))

        return self.transport.send(message, self.env_config, self.use_tls, self.timeout)


def _truncate(error: Optional[str]) -> str:
    error = error or "unknown delivery error"
    if len(error) > MAX_ERROR_LENGTH:
        return error[: MAX_ERROR_LENGTH - 3] + "..."
    return error
