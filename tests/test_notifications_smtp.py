"""Unit tests for SMTP client wrapper.

Tests the SMTPClient for:
- Connection handling (SMTP and SMTP_SSL)
- TLS/STARTTLS negotiation
- Authentication (with and without credentials)
- Delivery results for success, SMTP errors and network errors
- Message building and sender address
"""

import smtplib
import socket
from email.message import EmailMessage
from unittest.mock import MagicMock, Mock

import pytest

from notifier.config.environment import EnvironmentConfig
from notifier.notifications.models import Attachment, DeliveryResult, SMTPDeliveryError
from notifier.notifications.smtp_client import (
    SMTPClient,
    build_message,
    build_sender_address,
)


@pytest.fixture
def env_config_with_auth():
    """Environment config with SMTP authentication."""
    return EnvironmentConfig(
        smtp_host="smtp.example.com",
        smtp_port=587,
        smtp_user="office@example.edu",
        smtp_pass="secret123",
        smtp_sender_name="Student Records",
    )


@pytest.fixture
def env_config_without_auth():
    """Environment config without SMTP authentication."""
    return EnvironmentConfig(smtp_host="smtp.example.com", smtp_port=25)


@pytest.fixture
def env_config_implicit_tls():
    """Environment config for implicit TLS (port 465)."""
    return EnvironmentConfig(
        smtp_host="smtp.gmail.com",
        smtp_port=465,
        smtp_user="office@gmail.com",
        smtp_pass="apppassword",
    )


@pytest.fixture
def sample_message():
    msg = EmailMessage()
    msg["Subject"] = "Test Subject"
    msg["From"] = "sender@example.edu"
    msg["To"] = "student@example.edu"
    msg.set_content("Test body")
    return msg


def test_smtp_client_send_with_starttls(env_config_with_auth, sample_message):
    """Test sending email with STARTTLS (port 587)."""
    mock_smtp = MagicMock()
    mock_factory = Mock(return_value=mock_smtp)

    client = SMTPClient(smtp_factory=mock_factory)
    result = client.send(sample_message, env_config_with_auth, use_tls=True, timeout=15)

    assert result == DeliveryResult.success()
    mock_factory.assert_called_once_with("smtp.example.com", 587, timeout=15)
    mock_smtp.starttls.assert_called_once()
    mock_smtp.login.assert_called_once_with("office@example.edu", "secret123")
    mock_smtp.send_message.assert_called_once_with(sample_message)
    mock_smtp.quit.assert_called_once()


def test_smtp_client_send_with_implicit_tls(env_config_implicit_tls, sample_message):
    """Test sending email with implicit TLS (port 465)."""
    mock_smtp_ssl = MagicMock()
    mock_ssl_factory = Mock(return_value=mock_smtp_ssl)
    mock_factory = Mock()

    client = SMTPClient(smtp_factory=mock_factory, smtp_ssl_factory=mock_ssl_factory)
    result = client.send(sample_message, env_config_implicit_tls)

    assert result.ok
    mock_factory.assert_not_called()
    call_args = mock_ssl_factory.call_args
    assert call_args[0] == ("smtp.gmail.com", 465)
    assert "context" in call_args[1]
    assert call_args[1]["timeout"] == 30
    mock_smtp_ssl.starttls.assert_not_called()
    mock_smtp_ssl.login.assert_called_once_with("office@gmail.com", "apppassword")
    mock_smtp_ssl.quit.assert_called_once()


def test_smtp_client_send_without_auth_or_tls(env_config_without_auth, sample_message):
    mock_smtp = MagicMock()
    client = SMTPClient(smtp_factory=Mock(return_value=mock_smtp))

    result = client.send(sample_message, env_config_without_auth, use_tls=False)

    assert result.ok
    mock_smtp.starttls.assert_not_called()
    mock_smtp.login.assert_not_called()
    mock_smtp.send_message.assert_called_once_with(sample_message)


def test_smtp_error_returns_failed_result(env_config_with_auth, sample_message):
    mock_smtp = MagicMock()
    mock_smtp.send_message.side_effect = smtplib.SMTPRecipientsRefused(
        {"student@example.edu": (550, b"User unknown")}
    )
    client = SMTPClient(smtp_factory=Mock(return_value=mock_smtp))

    result = client.send(sample_message, env_config_with_auth)

    assert not result.ok
    assert "SMTP error" in result.error
    # Connection is closed even on failure
    mock_smtp.quit.assert_called_once()


def test_authentication_error_returns_failed_result(env_config_with_auth, sample_message):
    mock_smtp = MagicMock()
    mock_smtp.login.side_effect = smtplib.SMTPAuthenticationError(535, b"Bad credentials")
    client = SMTPClient(smtp_factory=Mock(return_value=mock_smtp))

    result = client.send(sample_message, env_config_with_auth)

    assert not result.ok
    mock_smtp.send_message.assert_not_called()


@pytest.mark.parametrize(
    "error",
    [ConnectionRefusedError("refused"), socket.timeout("timed out"), OSError("unreachable")],
)
def test_network_error_returns_failed_result(env_config_with_auth, sample_message, error):
    client = SMTPClient(smtp_factory=Mock(side_effect=error))

    result = client.send(sample_message, env_config_with_auth)

    assert not result.ok
    assert "Network error" in result.error


def test_quit_failure_does_not_change_result(env_config_with_auth, sample_message):
    mock_smtp = MagicMock()
    mock_smtp.quit.side_effect = smtplib.SMTPServerDisconnected("gone")
    client = SMTPClient(smtp_factory=Mock(return_value=mock_smtp))

    result = client.send(sample_message, env_config_with_auth)

    assert result.ok


def test_delivery_result_failed_requires_message():
    assert DeliveryResult.failed("").error == "unknown delivery error"
    assert DeliveryResult.failed("boom").error == "boom"


class TestBuildMessage:
    def test_plain_text(self):
        message = build_message("Office <o@example.edu>", "s@example.edu", "Hello", "Plain body")

        assert message["To"] == "s@example.edu"
        assert message["From"] == "Office <o@example.edu>"
        assert message["Subject"] == "Hello"
        assert message.get_content_type() == "text/plain"
        assert message.get_content().strip() == "Plain body"

    def test_html(self):
        message = build_message("o@example.edu", "s@example.edu", "Hello", "<p>Hi</p>", is_html=True)

        assert message.get_content_type() == "text/html"
        assert "<p>Hi</p>" in message.get_content()

    def test_with_attachment(self):
        attachment = Attachment(
            filename="report-2025-03-10.csv",
            content=b"id,status\n1,SENT\n",
            maintype="text",
            subtype="csv",
        )

        message = build_message(
            "o@example.edu", "admin@example.edu", "Report", "<p>See attached</p>",
            is_html=True, attachments=[attachment],
        )

        assert message.get_content_type() == "multipart/mixed"
        attachments = list(message.iter_attachments())
        assert len(attachments) == 1
        assert attachments[0].get_filename() == "report-2025-03-10.csv"
        assert attachments[0].get_content_type() == "text/csv"

    def test_invalid_header_raises(self):
        with pytest.raises(SMTPDeliveryError):
            build_message("o@example.edu", "s@example.edu", "Bad\nSubject", "body")


class TestBuildSenderAddress:
    def test_uses_smtp_user(self, env_config_with_auth):
        assert build_sender_address(env_config_with_auth) == "Student Records <office@example.edu>"

    def test_falls_back_to_noreply(self, env_config_without_auth):
        assert build_sender_address(env_config_without_auth) == "Student Records <noreply@smtp.example.com>"
