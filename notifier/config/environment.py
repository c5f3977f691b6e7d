"""Environment variable loading and validation."""

import os
from typing import Optional

from email_validator import EmailNotValidError, validate_email

from .exceptions import ConfigurationError

DEFAULT_DATABASE_URL = "sqlite:///./data/notifier.db"


class EnvironmentConfig:
    """Secrets and deployment settings read from the environment."""

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int,
        smtp_user: Optional[str] = None,
        smtp_pass: Optional[str] = None,
        smtp_sender_name: Optional[str] = None,
        admin_email: Optional[str] = None,
        log_level: Optional[str] = None,
        database_url: Optional[str] = None,
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_pass = smtp_pass
        self.smtp_sender_name = smtp_sender_name or "Student Records"
        self.admin_email = admin_email
        self.log_level = log_level
        self.database_url = database_url or DEFAULT_DATABASE_URL


def load_environment_config() -> EnvironmentConfig:
    """
    Load and validate environment variables.

    Required:
    - SMTP_HOST: SMTP server hostname
    - SMTP_PORT: SMTP server port (1-65535)

    Optional:
    - SMTP_USER / SMTP_PASS: SMTP credentials (both or neither)
    - SMTP_SENDER_NAME: Display name for the From header
    - ADMIN_EMAIL: Fallback recipient of the daily report
    - LOG_LEVEL: Override log level
    - DATABASE_URL: SQLAlchemy URL (default: sqlite:///./data/notifier.db)

    Raises:
        ConfigurationError: If required variables are missing or invalid
    """
    errors = []

    smtp_host = os.getenv("SMTP_HOST")
    smtp_port_str = os.getenv("SMTP_PORT")
    smtp_user = os.getenv("SMTP_USER")
    smtp_pass = os.getenv("SMTP_PASS")
    smtp_sender_name = os.getenv("SMTP_SENDER_NAME")
    admin_email = os.getenv("ADMIN_EMAIL")
    log_level = os.getenv("LOG_LEVEL")
    database_url = os.getenv("DATABASE_URL")

    if not smtp_host:
        errors.append("Missing required environment variable: SMTP_HOST")

    smtp_port = None
    if not smtp_port_str:
        errors.append("Missing required environment variable: SMTP_PORT")
    else:
        try:
            smtp_port = int(smtp_port_str)
            if not 1 <= smtp_port <= 65535:
                errors.append(f"Invalid SMTP_PORT: {smtp_port}. Must be between 1 and 65535.")
        except ValueError:
            errors.append(f"Invalid SMTP_PORT: '{smtp_port_str}'. Must be a valid integer.")

    if admin_email:
        try:
            admin_email = validate_email(admin_email.strip(), check_deliverability=False).normalized
        except EmailNotValidError as e:
            errors.append(f"Invalid ADMIN_EMAIL: '{admin_email}' - {e}")

    if log_level and log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        errors.append(
            f"Invalid LOG_LEVEL: '{log_level}'. Must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL"
        )

    if bool(smtp_user) != bool(smtp_pass):
        errors.append("SMTP_USER and SMTP_PASS must be set together for authentication.")

    if errors:
        raise ConfigurationError(
            "Environment variable validation failed",
            errors=errors,
            suggestions=[
                "Copy .env.example to .env and fill in your SMTP settings",
                "Ensure SMTP_HOST and SMTP_PORT are set",
                "Check that ADMIN_EMAIL is a valid address",
            ],
        )

    return EnvironmentConfig(
        smtp_host=smtp_host,
        smtp_port=smtp_port,
        smtp_user=smtp_user,
        smtp_pass=smtp_pass,
        smtp_sender_name=smtp_sender_name,
        admin_email=admin_email,
        log_level=log_level.upper() if log_level else None,
        database_url=database_url,
    )
