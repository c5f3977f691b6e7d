"""Configuration management for the notifier service."""

from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .loader import load_app_config, load_config
from .models import (
    AppConfig,
    BroadcastConfig,
    DailyReportConfig,
    DeliveryConfig,
    LogFormat,
    LoggingConfig,
    LogLevel,
)

__all__ = [
    "load_config",
    "load_app_config",
    "load_environment_config",
    "AppConfig",
    "DeliveryConfig",
    "DailyReportConfig",
    "BroadcastConfig",
    "LoggingConfig",
    "EnvironmentConfig",
    "LogLevel",
    "LogFormat",
    "ConfigurationError",
]
