"""Configuration management module for the booking background worker."""

from .duration import DurationParseError, parse_duration, parse_timedelta
from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .loader import build_app_config, load_config
from .models import (
    AppConfig,
    BackoffConfig,
    DispatchConfig,
    EmailConfig,
    JobsConfig,
    LogFormat,
    LoggingConfig,
    LogLevel,
    RetryConfig,
    ServerConfig,
)

__all__ = [
    # Loader functions
    "load_config",
    "build_app_config",
    "load_environment_config",
    # Configuration models
    "AppConfig",
    "DispatchConfig",
    "RetryConfig",
    "BackoffConfig",
    "JobsConfig",
    "EmailConfig",
    "ServerConfig",
    "LoggingConfig",
    "EnvironmentConfig",
    # Enums
    "LogLevel",
    "LogFormat",
    # Durations
    "parse_duration",
    "parse_timedelta",
    "DurationParseError",
    # Exceptions
    "ConfigurationError",
]
