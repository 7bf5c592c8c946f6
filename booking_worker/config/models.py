"""Configuration schema models using Pydantic."""

from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator

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


def _check_duration(value: str, min_seconds: int, max_seconds: int, label: str) -> str:
    try:
        validate_duration_range(
            parse_duration(value), min_seconds=min_seconds, max_seconds=max_seconds, label=label
        )
    except DurationParseError as e:
        raise ValueError(str(e)) from e
    return value


class DispatchConfig(BaseModel):
    """Batch sizing and fan-out for a single dispatch cycle."""

    email_batch_size: int = Field(
        20, ge=1, le=500, description="Maximum email queue items selected per cycle"
    )
    job_batch_size: int = Field(
        10, ge=1, le=500, description="Maximum scheduled jobs selected per cycle"
    )
    max_concurrency: int = Field(
        5, ge=1, le=64, description="Worker threads used to process items in parallel"
    )
    trigger_interval: str = Field(
        "5m", description="How often daemon mode triggers a cycle"
    )

    @field_validator("trigger_interval")
    @classmethod
    def validate_trigger_interval(cls, v: str) -> str:
        return _check_duration(v, 60, 86400, "Trigger interval")

    @property
    def trigger_interval_seconds(self) -> int:
        return parse_duration(self.trigger_interval)


class BackoffConfig(BaseModel):
    """Exponential backoff parameters for one kind of queued item."""

    base_delay: str = Field(..., description="Delay before the first retry")
    max_delay: str = Field("1h", description="Upper bound on any single retry delay")

    @field_validator("base_delay", "max_delay")
    @classmethod
    def validate_delay(cls, v: str) -> str:
        return _check_duration(v, 1, 7 * 86400, "Retry delay")

    @model_validator(mode="after")
    def validate_cap(self):
        """The cap must not undercut the base delay."""
        if parse_duration(self.max_delay) < parse_duration(self.base_delay):
            raise ValueError(
                f"max_delay ({self.max_delay}) must be greater than or equal to "
                f"base_delay ({self.base_delay})"
            )
        return self


class RetryConfig(BaseModel):
    """Retry policies for jobs and for queued emails."""

    jobs: BackoffConfig = Field(
        default_factory=lambda: BackoffConfig(base_delay="5m", max_delay="1h")
    )
    emails: BackoffConfig = Field(
        default_factory=lambda: BackoffConfig(base_delay="1m", max_delay="1h")
    )


class JobsConfig(BaseModel):
    """Behaviour of the built-in job handlers."""

    test_job_delay_seconds: float = Field(
        0.5, ge=0, le=30, description="Artificial delay applied by the 'test' job handler"
    )
    retry_missing_bookings: bool = Field(
        True,
        description="Retry jobs whose booking cannot be found instead of failing them at once",
    )


class EmailConfig(BaseModel):
    """Transactional email provider settings."""

    api_url: str = Field(
        "https://api.brevo.com/v3/smtp/email",
        description="Brevo transactional email endpoint",
    )
    request_timeout: int = Field(
        30, ge=1, le=300, description="HTTP timeout for provider calls (seconds)"
    )

    @field_validator("api_url")
    @classmethod
    def validate_api_url(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped.startswith(("http://", "https://")):
            raise ValueError("api_url must be an http(s) URL")
        return stripped


class ServerConfig(BaseModel):
    """HTTP trigger server settings."""

    host: str = Field("0.0.0.0", min_length=1)
    port: int = Field(8000, ge=1, le=65535)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(
        LogFormat.KEY_VALUE, description="Log output format (json or key-value)"
    )

    model_config = {"use_enum_values": True, "validate_default": True}


class AppConfig(BaseModel):
    """Root configuration object for the booking background worker."""

    dispatch: DispatchConfig = Field(default_factory=DispatchConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    jobs: JobsConfig = Field(default_factory=JobsConfig)
    email: EmailConfig = Field(default_factory=EmailConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
