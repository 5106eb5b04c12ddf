"""Configuration management for the hosting notifier."""

from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .loader import load_config, parse_app_config
from .models import (
    AppConfig,
    AttachmentConfig,
    DispatchConfig,
    EmailConfig,
    LogFormat,
    LogLevel,
    LoggingConfig,
    SchedulerConfig,
)

__all__ = [
    # Loader functions
    "load_config",
    "parse_app_config",
    "load_environment_config",
    # Configuration models
    "AppConfig",
    "SchedulerConfig",
    "DispatchConfig",
    "EmailConfig",
    "AttachmentConfig",
    "LoggingConfig",
    "EnvironmentConfig",
    # Enums
    "LogLevel",
    "LogFormat",
    # Exceptions
    "ConfigurationError",
]
