"""Email delivery: persisted queue, dispatcher and transport.

This package provides the complete delivery pipeline:
- NotificationService: producer API and the pending-email sweep
- Dispatcher: one bounded-retry attempt per queued record
- SMTPClient: SMTP wrapper with TLS/SSL support, returns DeliveryResult
- TemplateRenderer: Jinja2-based email template rendering
- Result types and exceptions
"""

from .dispatcher import Dispatcher
from .models import (
    Attachment,
    DeliveryResult,
    InvalidNotificationError,
    NotificationError,
    NotificationTemplateError,
    SMTPDeliveryError,
    SweepResult,
)
from .service import NotificationService
from .smtp_client import SMTPClient, build_message, build_sender_address
from .templates import TemplateRenderer

__all__ = [
    # Main service
    "NotificationService",
    "Dispatcher",
    # Models and results
    "Attachment",
    "DeliveryResult",
    "SweepResult",
    # Exceptions
    "NotificationError",
    "InvalidNotificationError",
    "NotificationTemplateError",
    "SMTPDeliveryError",
    # Components
    "TemplateRenderer",
    "SMTPClient",
    # Utilities
    "build_message",
    "build_sender_address",
]
