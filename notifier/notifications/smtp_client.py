"""SMTP client wrapper for email delivery.

This module provides a thin wrapper around Python's smtplib with support
for TLS/SSL, authentication, and proper connection lifecycle management.
Delivery failures are returned as DeliveryResult values rather than raised.
"""

import logging
import smtplib
import ssl
from email.message import EmailMessage
from typing import Callable, Iterable, Optional

from notifier.config.environment import EnvironmentConfig

from .models import Attachment, DeliveryResult, SMTPDeliveryError

logger = logging.getLogger(__name__)


class SMTPClient:
    """Wrapper around smtplib for sending email messages.

    Handles connection lifecycle, TLS/SSL negotiation and authentication.
    Designed to be easily mockable for testing.
    """

    def __init__(
        self,
        smtp_factory: Optional[Callable] = None,
        smtp_ssl_factory: Optional[Callable] = None,
    ):
        """Initialize SMTP client with optional factory injection.

        Args:
            smtp_factory: Factory function for creating SMTP instances (for mocking)
            smtp_ssl_factory: Factory function for creating SMTP_SSL instances (for mocking)
        """
        self.smtp_factory = smtp_factory or smtplib.SMTP
        self.smtp_ssl_factory = smtp_ssl_factory or smtplib.SMTP_SSL

    def send(
        self,
        message: EmailMessage,
        env_config: EnvironmentConfig,
        use_tls: bool = True,
        timeout: int = 30,
    ) -> DeliveryResult:
        """Send an email message via SMTP.

        Handles connection, TLS/SSL upgrade, authentication, and ensures
        proper cleanup on both success and failure.

        Args:
            message: Fully constructed EmailMessage to send
            env_config: Environment configuration with SMTP settings
            use_tls: Whether to use TLS (STARTTLS or implicit SSL)
            timeout: Socket timeout in seconds; expiry is a failed delivery

        Returns:
            DeliveryResult.success() or DeliveryResult.failed(<summary>)
        """
        smtp = None
        try:
            if env_config.smtp_port == 465:
                # Port 465: Implicit TLS (SMTP_SSL)
                logger.debug(
                    f"Connecting to {env_config.smtp_host}:{env_config.smtp_port} with implicit TLS"
                )
                context = ssl.create_default_context()
                smtp = self.smtp_ssl_factory(
                    env_config.smtp_host, env_config.smtp_port, timeout=timeout, context=context
                )
            else:
                logger.debug(f"Connecting to {env_config.smtp_host}:{env_config.smtp_port}")
                smtp = self.smtp_factory(env_config.smtp_host, env_config.smtp_port, timeout=timeout)

                if use_tls:
                    logger.debug("Upgrading connection with STARTTLS")
                    context = ssl.create_default_context()
                    smtp.starttls(context=context)

            if env_config.smtp_user and env_config.smtp_pass:
                logger.debug(f"Authenticating as {env_config.smtp_user}")
                smtp.login(env_config.smtp_user, env_config.smtp_pass)
            else:
                logger.debug("No authentication credentials provided, proceeding without auth")

            smtp.send_message(message)
            logger.debug(f"Message sent successfully to {message['To']}")
            return DeliveryResult.success()

        except smtplib.SMTPException as e:
            error_msg = f"SMTP error during message delivery: {e}"
            logger.warning(error_msg)
            return DeliveryResult.failed(error_msg)
        except OSError as e:
            # Includes socket.timeout / TimeoutError
            error_msg = f"Network error during SMTP connection: {e}"
            logger.warning(error_msg)
            return DeliveryResult.failed(error_msg)
        except Exception as e:
            error_msg = f"Unexpected error during SMTP delivery: {e}"
            logger.error(error_msg, exc_info=True)
            return DeliveryResult.failed(error_msg)
        finally:
            if smtp is not None:
                try:
                    smtp.quit()
                except Exception as e:
                    logger.warning(f"Error closing SMTP connection: {e}")


def build_message(
    sender: str,
    recipient: str,
    subject: str,
    body: str,
    is_html: bool = False,
    attachments: Iterable[Attachment] = (),
) -> EmailMessage:
    """Build a single-recipient EmailMessage.

    HTML bodies are sent as text/html; attachments turn the message into
    multipart/mixed.

    Raises:
        SMTPDeliveryError: If the headers or body cannot be encoded
    """
    try:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = sender
        message["To"] = recipient

        if is_html:
            message.set_content(body or "", subtype="html", charset="utf-8")
        else:
            message.set_content(body or "", charset="utf-8")

        for attachment in attachments:
            message.add_attachment(
                attachment.content,
                maintype=attachment.maintype,
                subtype=attachment.subtype,
                filename=attachment.filename,
            )

        return message

    except (ValueError, TypeError) as e:
        raise SMTPDeliveryError(f"Failed to build email message for {recipient}: {e}") from e


def build_sender_address(env_config: EnvironmentConfig) -> str:
    """Build the 'From' address for outgoing emails.

    Uses SMTP_SENDER_NAME with SMTP_USER if available, otherwise falls back
    to a noreply address at the SMTP host.

    Returns:
        Formatted sender address (e.g., "Student Records <office@example.edu>")
    """
    sender_name = env_config.smtp_sender_name

    if env_config.smtp_user:
        sender_email = env_config.smtp_user
    else:
        sender_email = f"noreply@{env_config.smtp_host}"

    return f"{sender_name} <{sender_email}>"
