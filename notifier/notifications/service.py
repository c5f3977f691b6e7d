"""Notification service: producer API and the pending-email sweep.

This module provides the NotificationService class that owns the email
queue from the producer side: it persists PENDING records, hands their ids
to a bounded worker pool for immediate delivery, and periodically re-scans
PENDING/FAILED records so nothing accepted by enqueue() is lost.
"""

import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_for_futures
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from notifier.domain.models import NotificationRecord, NotificationStatus
from notifier.logging import get_logger
from notifier.logging.context import log_context
from notifier.persistence.database import get_session
from notifier.persistence.exceptions import PersistenceError
from notifier.persistence.repositories import (
    BroadcastTemplateRepository,
    InboxRepository,
    NotificationRepository,
)
from notifier.utils.timestamps import utc_now

from .dispatcher import Dispatcher
from .models import InvalidNotificationError, NotificationError, SweepResult
from .templates import TemplateRenderer

logger = get_logger(__name__, component="notification")

DEFAULT_TEMPLATE = "email-template"
SWEEP_STATUSES = (NotificationStatus.PENDING, NotificationStatus.FAILED)


class NotificationService:
    """Queue-backed email delivery.

    Coordinates the notification flow:
    1. Validate and persist a PENDING record
    2. Submit its id to the worker pool (fire-and-forget)
    3. Let the sweep pick up anything still PENDING or retryable FAILED

    Callers never block on SMTP.
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        template_renderer: Optional[TemplateRenderer] = None,
        executor: Optional[ThreadPoolExecutor] = None,
        batch_size: int = 100,
        worker_count: int = 20,
        wait_timeout: float = 300.0,
        clock: Callable[[], datetime] = utc_now,
        logger_instance: Optional[logging.Logger] = None,
    ):
        """Initialize notification service.

        Args:
            dispatcher: Dispatcher that performs delivery attempts
            template_renderer: Template renderer instance (creates default if None)
            executor: Worker pool (creates a ThreadPoolExecutor if None)
            batch_size: Records fetched per sweep
            worker_count: Pool size when the executor is created here
            wait_timeout: Upper bound for process_pending_emails(wait=True)
            clock: Returns the current UTC time
            logger_instance: Logger instance (uses module logger if None)
        """
        self.dispatcher = dispatcher
        self.template_renderer = template_renderer or TemplateRenderer()
        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(
            max_workers=worker_count, thread_name_prefix="email-dispatch"
        )
        self.batch_size = batch_size
        self.wait_timeout = wait_timeout
        self.clock = clock
        self.logger = logger_instance or logger
        self._in_flight: Set[int] = set()
        self._in_flight_lock = threading.Lock()

    @property
    def max_retries(self) -> int:
        return self.dispatcher.max_retries

    # ------------------------------------------------------------------
    # Producers
    # ------------------------------------------------------------------

    def enqueue(self, recipient: str, subject: str, body: str, is_html: bool = False) -> int:
        """Persist a PENDING email and submit it for immediate delivery.

        Args:
            recipient: Destination address
            subject: Subject line
            body: Plain text or HTML body
            is_html: Whether body is HTML

        Returns:
            Id of the new record

        Raises:
            InvalidNotificationError: If recipient is blank (nothing is persisted)
            PersistenceError: If the record cannot be stored
        """
        if recipient is None or not str(recipient).strip():
            raise InvalidNotificationError("Recipient address cannot be empty")

        record = NotificationRecord(
            recipient=recipient,
            subject=subject or "",
            body=body or "",
            is_html=is_html,
            status=NotificationStatus.PENDING,
            retry_count=0,
            created_at=self.clock(),
        )

        with get_session() as session:
            saved = NotificationRepository(session).save(record)

        self.logger.info(
            f"Queued email to {saved.recipient} with subject '{saved.subject}'",
            extra={"event": "notification.queued", "record_id": saved.id, "is_html": is_html},
        )

        self._submit(saved.id)
        return saved.id

    def enqueue_template(
        self,
        recipient: str,
        subject: str,
        template_name: str = DEFAULT_TEMPLATE,
        variables: Optional[Dict[str, Any]] = None,
    ) -> int:
        """Render a template and enqueue the result as an HTML email.

        ``subject`` is always available to the template.

        Raises:
            NotificationTemplateError: If rendering fails (nothing is persisted)
            InvalidNotificationError: If recipient is blank
        """
        if recipient is None or not str(recipient).strip():
            raise InvalidNotificationError("Recipient address cannot be empty")

        context = dict(variables or {})
        context["subject"] = subject
        html = self.template_renderer.render(template_name, context)

        record_id = self.enqueue(recipient, subject, html, is_html=True)
        self.logger.debug(
            f"Queued HTML email with template '{template_name}' to {recipient}",
            extra={"event": "notification.template_queued", "template": template_name},
        )
        return record_id

    def send_broadcast(self, recipients: Iterable[str], subject: str, message: str) -> int:
        """Store the broadcast and queue one templated email per recipient.

        Blank recipients are skipped; a failure for one recipient is logged
        and does not stop the others.

        Returns:
            Number of emails queued
        """
        with get_session() as session:
            template = BroadcastTemplateRepository(session).create(subject, message, self.clock())

        self.logger.info(
            f"Broadcast template saved with id={template.id}, subject='{subject}'",
            extra={"event": "broadcast.saved", "template_id": template.id},
        )

        queued = self.queue_broadcast(recipients, subject, message)

        self.logger.info(
            f"Broadcast email queued for {queued} recipients using template id={template.id}",
            extra={"event": "broadcast.queued", "template_id": template.id, "queued": queued},
        )
        return queued

    def queue_broadcast(self, recipients: Iterable[str], subject: str, message: str) -> int:
        """Queue the broadcast email to each recipient without storing a template."""
        queued = 0
        for recipient in recipients:
            if not recipient or not recipient.strip():
                continue
            try:
                self.enqueue_template(
                    recipient,
                    subject,
                    DEFAULT_TEMPLATE,
                    {"message": message},
                )
                queued += 1
            except (NotificationError, PersistenceError) as e:
                self.logger.error(
                    f"Failed to queue broadcast email to {recipient}: {e}",
                    extra={"event": "broadcast.recipient_failed", "error_type": type(e).__name__},
                )
        return queued

    def send_individual(
        self,
        recipient: str,
        subject: str,
        message: str,
        name: Optional[str] = None,
        **details: Any,
    ) -> int:
        """Queue a templated email to one person and leave an admin inbox note.

        Extra keyword arguments (student_id, branch, ...) are passed to the
        template.
        """
        variables = {"message": message, **details}
        if name:
            variables["name"] = name

        record_id = self.enqueue_template(recipient, subject, DEFAULT_TEMPLATE, variables)

        who = f"{name} ({recipient})" if name else recipient
        self.create_inbox_notification("Individual email sent", f"Email to {who}: {subject}")
        return record_id

    def create_inbox_notification(self, title: str, message: str) -> bool:
        """Store an admin inbox entry. Failures are logged, never raised."""
        try:
            with get_session() as session:
                InboxRepository(session).create(title, message, self.clock())
            return True
        except Exception as e:
            self.logger.warning(
                f"Failed to create inbox notification '{title}': {e}",
                extra={"event": "inbox.create_failed", "error_type": type(e).__name__},
            )
            return False

    # ------------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------------

    def process_pending_emails(self, wait: bool = False, timeout: Optional[float] = None) -> SweepResult:
        """Re-submit the oldest PENDING and retryable FAILED records.

        Fetches up to ``batch_size`` records ordered by id. Records already
        at the retry ceiling are not fetched. An id whose earlier submission
        is still queued or running in this process is skipped, so a stalled
        SMTP server never grows the pool queue beyond one slot per record.

        Args:
            wait: Block until the submitted attempts finish (operator command)
            timeout: Seconds to wait when ``wait`` is True

        Returns:
            SweepResult with the submitted ids
        """
        result = SweepResult(sweep_id=uuid.uuid4().hex[:8])

        with log_context(sweep_id=result.sweep_id):
            with get_session() as session:
                records = NotificationRepository(session).find_by_status_in(
                    SWEEP_STATUSES,
                    limit=self.batch_size,
                    retry_ceiling=self.max_retries,
                )

            if not records:
                self.logger.info(
                    "No pending/failed emails to process",
                    extra={"event": "sweep.empty"},
                )
                return result

            self.logger.info(
                f"Processing {len(records)} pending/failed email notifications",
                extra={"event": "sweep.started", "batch": len(records)},
            )

            futures: List[Future] = []
            for record in records:
                if self.is_in_flight(record.id):
                    result.in_flight += 1
                    continue
                future = self._submit(record.id)
                if future is not None:
                    result.record_ids.append(record.id)
                    futures.append(future)

            if result.in_flight:
                self.logger.debug(
                    f"Skipped {result.in_flight} emails still in flight",
                    extra={"event": "sweep.in_flight_skipped", "in_flight": result.in_flight},
                )

            if wait and futures:
                done, not_done = wait_for_futures(
                    futures, timeout=timeout if timeout is not None else self.wait_timeout
                )
                result.completed = len(done)
                result.timed_out = len(not_done)
                self.logger.info(
                    f"Sweep finished: {result.completed} completed, {result.timed_out} still running",
                    extra={
                        "event": "sweep.completed",
                        "completed": result.completed,
                        "timed_out": result.timed_out,
                    },
                )

        return result

    def is_in_flight(self, record_id: int) -> bool:
        with self._in_flight_lock:
            return record_id in self._in_flight

    def _submit(self, record_id: int) -> Optional[Future]:
        with self._in_flight_lock:
            if record_id in self._in_flight:
                return None
            self._in_flight.add(record_id)

        try:
            future = self.executor.submit(self.dispatcher.dispatch, record_id)
        except RuntimeError as e:
            self._release(record_id)
            # Pool already shut down; the record stays queued for the next sweep
            self.logger.warning(
                f"Could not submit email id {record_id} for dispatch: {e}",
                extra={"event": "dispatch.submit_failed", "record_id": record_id},
            )
            return None

        # Fires on completion, failure or cancellation
        future.add_done_callback(lambda _: self._release(record_id))
        return future

    def _release(self, record_id: int) -> None:
        with self._in_flight_lock:
            self._in_flight.discard(record_id)

    # ------------------------------------------------------------------
    # Operator views
    # ------------------------------------------------------------------

    def list_notifications(self) -> List[NotificationRecord]:
        """All records, most recently sent first, unsent last."""
        with get_session() as session:
            return NotificationRepository(session).list_all()

    def clear_notifications(self) -> int:
        """Delete every record. Returns the number removed."""
        with get_session() as session:
            deleted = NotificationRepository(session).delete_all()

        self.logger.info(
            f"Cleared {deleted} email notifications",
            extra={"event": "notification.cleared", "deleted": deleted},
        )
        return deleted

    def shutdown(self, wait: bool = True) -> None:
        """Stop the worker pool if this service created it."""
        if self._owns_executor:
            self.logger.info(
                "Shutting down email dispatch pool",
                extra={"event": "notification.shutdown", "wait": wait},
            )
            self.executor.shutdown(wait=wait)
