"""Environment variable loading and validation."""

import os
from typing import Optional

from email_validator import EmailNotValidError, validate_email

from .exceptions import ConfigurationError

DEFAULT_DATABASE_URL = "sqlite:///./data/booking_worker.db"
DEFAULT_SENDER_EMAIL = "noreply@daiyet.co"
DEFAULT_SENDER_NAME = "Daiyet"
DEFAULT_SITE_URL = "http://localhost:3000"

VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class EnvironmentConfig:
    """Environment variable configuration holder."""

    def __init__(
        self,
        database_url: Optional[str] = None,
        brevo_api_key: Optional[str] = None,
        sender_email: Optional[str] = None,
        sender_name: Optional[str] = None,
        cron_secret: Optional[str] = None,
        site_url: Optional[str] = None,
        log_level: Optional[str] = None,
        environment: Optional[str] = None,
    ):
        self.database_url = database_url or DEFAULT_DATABASE_URL
        self.brevo_api_key = brevo_api_key or None
        self.sender_email = sender_email or DEFAULT_SENDER_EMAIL
        self.sender_name = sender_name or DEFAULT_SENDER_NAME
        self.cron_secret = cron_secret or None
        self.site_url = (site_url or DEFAULT_SITE_URL).rstrip("/")
        self.log_level = log_level
        self.environment = environment or "development"

    @property
    def auth_enabled(self) -> bool:
        """Whether the HTTP trigger requires a bearer secret."""
        return bool(self.cron_secret)


def load_environment_config() -> EnvironmentConfig:
    """
    Load and validate environment variables.

    Optional environment variables:
    - DATABASE_URL: SQLAlchemy URL of the job store (default: sqlite:///./data/booking_worker.db)
    - BREVO_API_KEY: Transactional email API key. When unset, every send
      fails with "BREVO_API_KEY not configured" instead of failing start-up.
    - BREVO_SENDER_EMAIL: Sender address (default: noreply@daiyet.co)
    - BREVO_SENDER_NAME: Sender display name (default: Daiyet)
    - CRON_SECRET: Bearer secret required by POST /run. Auth is disabled if unset.
    - SITE_URL: Public site URL used to build links in emails
    - LOG_LEVEL: Override log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - ENVIRONMENT: Deployment environment name added to every log record

    Returns:
        EnvironmentConfig object with validated values

    Raises:
        ConfigurationError: If any variable is set to an invalid value
    """
    errors = []

    database_url = os.getenv("DATABASE_URL")
    brevo_api_key = os.getenv("BREVO_API_KEY")
    sender_email = os.getenv("BREVO_SENDER_EMAIL")
    sender_name = os.getenv("BREVO_SENDER_NAME")
    cron_secret = os.getenv("CRON_SECRET")
    site_url = os.getenv("SITE_URL")
    log_level = os.getenv("LOG_LEVEL")
    environment = os.getenv("ENVIRONMENT")

    if database_url is not None and not database_url.strip():
        errors.append("DATABASE_URL is set but empty")

    if sender_email and not _is_valid_email(sender_email):
        errors.append(f"Invalid email address format in BREVO_SENDER_EMAIL: '{sender_email}'")

    if site_url and not site_url.strip().startswith(("http://", "https://")):
        errors.append(f"Invalid SITE_URL: '{site_url}'. Must start with http:// or https://")

    if log_level and log_level.upper() not in VALID_LOG_LEVELS:
        errors.append(
            f"Invalid LOG_LEVEL: '{log_level}'. Must be one of: {', '.join(VALID_LOG_LEVELS)}"
        )

    if errors:
        raise ConfigurationError(
            "Environment variable validation failed",
            errors=errors,
            suggestions=[
                "Copy .env.example to .env and review the values",
                "Check that email addresses and URLs are well formed",
                "Unset variables you do not need so their defaults apply",
            ],
        )

    return EnvironmentConfig(
        database_url=database_url.strip() if database_url else None,
        brevo_api_key=brevo_api_key,
        sender_email=sender_email.strip() if sender_email else None,
        sender_name=sender_name,
        cron_secret=cron_secret,
        site_url=site_url.strip() if site_url else None,
        log_level=log_level.upper() if log_level else None,
        environment=environment,
    )


def _is_valid_email(email: str) -> bool:
    try:
        validate_email(email.strip(), check_deliverability=False)
    except EmailNotValidError:
        return False
    return True
