"""Report content producers for the daily report job.

A generator turns a snapshot of some data into the bytes of one email
attachment. The student progress spreadsheet lives outside this service
and plugs in through the same interface.
"""

import csv
import io
from abc import ABC, abstractmethod
from datetime import date

from notifier.logging import get_logger
from notifier.persistence.database import get_session
from notifier.persistence.repositories import NotificationRepository
from notifier.utils.timestamps import format_timestamp

logger = get_logger(__name__, component="report_generator")


class ReportGenerator(ABC):
    """Builds the attachment of a daily report."""

    file_extension = "bin"
    maintype = "application"
    subtype = "octet-stream"

    @abstractmethod
    def build_report_content(self) -> bytes:
        """Return the attachment bytes. Empty bytes mean nothing to report."""

    def file_name(self, job_name: str, report_date: date) -> str:
        return f"{job_name}-{report_date.isoformat()}.{self.file_extension}"


class DeliverySummaryReport(ReportGenerator):
    """CSV snapshot of the email queue, one row per notification record."""

    file_extension = "csv"
    maintype = "text"
    subtype = "csv"

    FIELDNAMES = [
        "id",
        "recipient",
        "subject",
        "status",
        "retry_count",
        "created_at",
        "last_attempt_at",
        "sent_at",
        "last_error",
    ]

    def build_report_content(self) -> bytes:
        with get_session() as session:
            records = NotificationRepository(session).list_all()

        output = io.StringIO()
        writer = csv.DictWriter(output, fieldnames=self.FIELDNAMES)
        writer.writeheader()

        for record in records:
            writer.writerow(
                {
                    "id": record.id,
                    "recipient": record.recipient,
                    "subject": record.subject,
                    "status": record.status.value,
                    "retry_count": record.retry_count,
                    "created_at": format_timestamp(record.created_at),
                    "last_attempt_at": format_timestamp(record.last_attempt_at),
                    "sent_at": format_timestamp(record.sent_at),
                    "last_error": record.last_error or "",
                }
            )

        logger.debug(
            f"Built delivery summary with {len(records)} rows",
            extra={"event": "report.summary_built", "rows": len(records)},
        )
        return output.getvalue().encode("utf-8")
