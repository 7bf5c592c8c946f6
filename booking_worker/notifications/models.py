"""Result types and exceptions for the notification gateway."""

from dataclasses import dataclass
from typing import Optional


class NotificationError(Exception):
    """Base exception for notification-related errors."""


class NotificationTemplateError(NotificationError):
    """Raised when an email template cannot be rendered."""


@dataclass
class DeliveryResult:
    """Outcome of one attempt to hand an email to the provider.

    The gateway reports every failure through this value instead of
    raising, so callers decide whether a failure is worth a retry.

    Attributes:
        success: True if the provider accepted the message
        error: Failure description when success is False
        message_id: Provider message id, when the provider returned one
        status_code: HTTP status of the provider response, if a call was made
    """

    success: bool
    error: Optional[str] = None
    message_id: Optional[str] = None
    status_code: Optional[int] = None

    @classmethod
    def ok(cls, message_id: Optional[str] = None, status_code: Optional[int] = None) -> "DeliveryResult":
        return cls(success=True, message_id=message_id, status_code=status_code)

    @classmethod
    def failure(cls, error: str, status_code: Optional[int] = None) -> "DeliveryResult":
        return cls(success=False, error=error, status_code=status_code)
