"""Transactional email delivery through the Brevo HTTP API.

The gateway is the only component that talks to the email provider. It
renders the plain-text body, validates the recipient, posts the message and
reports the outcome as a DeliveryResult. It never raises for delivery
problems; retry decisions belong to the dispatcher.
"""

from typing import Any, Dict, Optional

import requests
from email_validator import EmailNotValidError, validate_email

from booking_worker.config.environment import EnvironmentConfig
from booking_worker.config.models import EmailConfig
from booking_worker.logging import get_logger

from .models import DeliveryResult, NotificationTemplateError
from .templates import TemplateRenderer

logger = get_logger(__name__, component="notifications")

BREVO_API_URL = "https://api.brevo.com/v3/smtp/email"
MISSING_API_KEY_ERROR = "BREVO_API_KEY not configured"
USER_AGENT = "BookingWorker/1.0"


class NotificationGateway:
    """Sends templated plain-text emails via Brevo.

    Attributes:
        sender_email: From address for every message
        sender_name: From display name
        api_url: Provider endpoint
        timeout: HTTP timeout in seconds
    """

    def __init__(
        self,
        api_key: Optional[str],
        sender_email: str,
        sender_name: str,
        api_url: str = BREVO_API_URL,
        timeout: int = 30,
        renderer: Optional[TemplateRenderer] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._api_key = api_key or None
        self.sender_email = sender_email
        self.sender_name = sender_name
        self.api_url = api_url
        self.timeout = timeout
        self.renderer = renderer or TemplateRenderer(brand_name=sender_name)

        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "User-Agent": USER_AGENT,
                "Accept": "application/json",
                "Content-Type": "application/json",
            }
        )

    @classmethod
    def from_config(cls, env_config: EnvironmentConfig, email_config: EmailConfig) -> "NotificationGateway":
        """Build a gateway from the loaded environment and email settings."""
        return cls(
            api_key=env_config.brevo_api_key,
            sender_email=env_config.sender_email,
            sender_name=env_config.sender_name,
            api_url=email_config.api_url,
            timeout=email_config.request_timeout,
        )

    @property
    def configured(self) -> bool:
        return self._api_key is not None

    def send(
        self,
        recipient: str,
        subject: str,
        template_name: str,
        template_data: Optional[Dict[str, Any]] = None,
    ) -> DeliveryResult:
        """Render and send one email.

        Args:
            recipient: Destination address
            subject: Subject line
            template_name: Template registry name; unknown names use the generic template
            template_data: Variables for the template

        Returns:
            DeliveryResult describing the outcome. Failures cover a missing
            API key, an invalid recipient, a template error, a transport
            error, and any non-2xx provider response.
        """
        log_extra = {"template": template_name, "recipient_domain": _domain(recipient)}

        if not self.configured:
            logger.warning(
                "Email provider not configured, skipping send",
                extra={"event": "notification.send.unconfigured", **log_extra},
            )
            return DeliveryResult.failure(MISSING_API_KEY_ERROR)

        try:
            address = validate_email(recipient or "", check_deliverability=False).normalized
        except EmailNotValidError as e:
            error = f"Invalid recipient address '{recipient}': {e}"
            logger.warning(error, extra={"event": "notification.send.invalid_recipient", **log_extra})
            return DeliveryResult.failure(error)

        try:
            text_content = self.renderer.render(template_name, template_data)
        except NotificationTemplateError as e:
            logger.error(str(e), extra={"event": "notification.send.failure", **log_extra})
            return DeliveryResult.failure(str(e))

        body = {
            "sender": {"name": self.sender_name, "email": self.sender_email},
            "to": [{"email": address}],
            "subject": subject,
            "textContent": text_content,
            "tags": [template_name],
        }

        try:
            response = self._session.post(
                self.api_url,
                json=body,
                headers={"api-key": self._api_key},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            error = str(e) or type(e).__name__
            logger.warning(
                f"Email transport error: {error}",
                extra={"event": "notification.send.failure", "error_type": type(e).__name__, **log_extra},
            )
            return DeliveryResult.failure(error)

        if not response.ok:
            error = f"Brevo API error: {response.status_code} {response.text}"
            logger.warning(
                error,
                extra={
                    "event": "notification.send.failure",
                    "status_code": response.status_code,
                    **log_extra,
                },
            )
            return DeliveryResult.failure(error, status_code=response.status_code)

        message_id = _message_id(response)
        logger.info(
            "Email accepted by provider",
            extra={
                "event": "notification.send.success",
                "status_code": response.status_code,
                "message_id": message_id,
                **log_extra,
            },
        )
        return DeliveryResult.ok(message_id=message_id, status_code=response.status_code)

    def close(self) -> None:
        self._session.close()


def _message_id(response: requests.Response) -> Optional[str]:
    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, dict) and data.get("messageId"):
        return str(data["messageId"])
    return None


def _domain(address: Optional[str]) -> Optional[str]:
    if not address or "@" not in address:
        return None
    return address.rsplit("@", 1)[1].lower()
