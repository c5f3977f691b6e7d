"""Configuration schema models using Pydantic."""

from datetime import time
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from notifier.utils.timestamps import resolve_timezone

from .duration import DurationParseError, parse_duration, validate_duration_range


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    KEY_VALUE = "key-value"


def _interval_seconds(value: str, label: str) -> int:
    try:
        seconds = parse_duration(value)
        validate_duration_range(seconds, min_seconds=10, max_seconds=3600, label=label)
        return seconds
    except DurationParseError as e:
        raise ValueError(str(e)) from e


class DeliveryConfig(BaseModel):
    """Email queue and dispatcher settings."""

    max_retries: int = Field(
        3, ge=1, le=10, description="Delivery attempts before a record is abandoned"
    )
    batch_size: int = Field(
        100, ge=1, le=1000, description="Records fetched per sweep"
    )
    worker_count: int = Field(
        20, ge=1, le=100, description="Concurrent dispatch workers"
    )
    sweep_interval: str = Field("1m", description="Period of the pending-email sweep")
    smtp_timeout: int = Field(
        30, ge=1, le=300, description="SMTP socket timeout in seconds"
    )
    use_tls: bool = Field(True, description="Use STARTTLS on non-465 ports")

    # Computed field
    sweep_interval_seconds: Optional[int] = None

    @field_validator("sweep_interval")
    @classmethod
    def validate_sweep_interval(cls, v: str) -> str:
        _interval_seconds(v, "Sweep interval")
        return v

    @model_validator(mode="after")
    def compute_interval(self):
        self.sweep_interval_seconds = _interval_seconds(self.sweep_interval, "Sweep interval")
        return self


class DailyReportConfig(BaseModel):
    """Schedule of the once-per-day report email.

    ``hour``/``minute`` seed the persisted schedule row the first time it is
    read; after that the stored value (operator-editable) wins.
    """

    enabled: bool = Field(True, description="Whether the daily report job is registered")
    job_name: str = Field(
        "student-progress-report", min_length=1, description="Run log label for this job"
    )
    hour: int = Field(10, ge=0, le=23, description="Default report hour (24h)")
    minute: int = Field(45, ge=0, le=59, description="Default report minute")
    cutoff_hour: int = Field(
        23, ge=1, le=23, description="Hour of the last-resort fallback trigger"
    )
    poll_interval: str = Field("1m", description="Period of the trigger poll")
    recipient: Optional[EmailStr] = Field(
        None, description="Report recipient (falls back to ADMIN_EMAIL)"
    )

    # Computed field
    poll_interval_seconds: Optional[int] = None

    @field_validator("job_name")
    @classmethod
    def strip_job_name(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("job_name cannot be empty or whitespace-only")
        return stripped

    @field_validator("poll_interval")
    @classmethod
    def validate_poll_interval(cls, v: str) -> str:
        _interval_seconds(v, "Poll interval")
        return v

    @model_validator(mode="after")
    def compute_interval(self):
        self.poll_interval_seconds = _interval_seconds(self.poll_interval, "Poll interval")
        return self

    @property
    def default_time(self) -> time:
        return time(self.hour, self.minute)

    @property
    def cutoff_time(self) -> time:
        return time(self.cutoff_hour, 0)


class BroadcastConfig(BaseModel):
    """Daily re-send of the latest broadcast message."""

    enabled: bool = Field(False, description="Whether the daily broadcast job is registered")
    hour: int = Field(23, ge=0, le=23)
    minute: int = Field(0, ge=0, le=59)
    recipients: List[EmailStr] = Field(
        default_factory=list, description="Addresses that receive the broadcast"
    )

    @model_validator(mode="after")
    def require_recipients_when_enabled(self):
        if self.enabled and not self.recipients:
            raise ValueError("broadcast.recipients must list at least one address when enabled")
        return self


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(
        LogFormat.KEY_VALUE, description="Log output format (json or key-value)"
    )

    model_config = {"use_enum_values": True}


class AppConfig(BaseModel):
    """Root configuration object for the notifier service."""

    timezone: str = Field("UTC", description="IANA zone used for calendar decisions")
    delivery: DeliveryConfig = Field(default_factory=DeliveryConfig)
    daily_report: DailyReportConfig = Field(default_factory=DailyReportConfig)
    broadcast: BroadcastConfig = Field(default_factory=BroadcastConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        resolve_timezone(v.strip())
        return v.strip()

    @property
    def tzinfo(self):
        return resolve_timezone(self.timezone)
