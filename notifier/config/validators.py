"""Soft configuration checks that warn instead of failing."""

import warnings
from typing import List

from .models import AppConfig


def check_for_warnings(app_config: AppConfig) -> List[str]:
    """
    Collect non-fatal configuration issues.

    Args:
        app_config: Validated configuration

    Returns:
        List of warning messages
    """
    messages = []
    report = app_config.daily_report

    if not report.enabled:
        messages.append("daily_report is disabled; no daily report will be emailed")
    elif report.default_time >= report.cutoff_time:
        messages.append(
            f"daily_report time {report.hour:02d}:{report.minute:02d} is at or after the "
            f"{report.cutoff_hour:02d}:00 cutoff; only the cutoff fallback will fire"
        )

    if app_config.delivery.sweep_interval_seconds < 30:
        messages.append(
            f"Short sweep_interval ({app_config.delivery.sweep_interval}) retries failed "
            "emails very quickly and may exhaust max_retries during a short SMTP outage"
        )

    if app_config.delivery.worker_count > 50:
        messages.append(
            f"Large worker_count ({app_config.delivery.worker_count}) may trip SMTP "
            "server connection limits"
        )

    return messages


def emit_warnings(warning_messages: List[str]) -> None:
    """Emit messages through the warnings module."""
    for message in warning_messages:
        warnings.warn(message, UserWarning, stacklevel=2)
