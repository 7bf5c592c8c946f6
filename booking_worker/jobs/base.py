"""Base handler class and shared helpers for job handlers.

A handler executes one job kind. It receives the job row and its already
validated payload, performs the work, and either returns a HandlerResult
or raises HandlerError.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Type

from pydantic import BaseModel, ValidationError

from booking_worker.domain.models import BookingDetails, ScheduledJob
from booking_worker.logging import get_logger
from booking_worker.notifications.gateway import NotificationGateway
from booking_worker.persistence.exceptions import PersistenceError
from booking_worker.persistence.repositories import BookingRepository

from .exceptions import BookingLookupError, BookingNotFoundError, InvalidJobPayloadError

logger = get_logger(__name__, component="jobs")


@dataclass
class HandlerResult:
    """Successful outcome of a handler run.

    Attributes:
        data: JSON-safe summary echoed into the cycle report
        notifications_sent: Sends the provider accepted
        notifications_failed: Sends that failed (best-effort, not fatal)
    """

    data: Dict[str, Any] = field(default_factory=dict)
    notifications_sent: int = 0
    notifications_failed: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.data,
            "notifications_sent": self.notifications_sent,
            "notifications_failed": self.notifications_failed,
        }


class BookingLookup(ABC):
    """Source of booking details for handlers."""

    @abstractmethod
    def get_booking(self, booking_id: str) -> Optional[BookingDetails]:
        """Return the booking, None if it does not exist.

        Raises:
            BookingLookupError: If the store cannot be queried
        """


class DatabaseBookingLookup(BookingLookup):
    """Reads bookings through BookingRepository, one short session per lookup."""

    def __init__(self, session_factory: Callable):
        self._session_factory = session_factory

    def get_booking(self, booking_id: str) -> Optional[BookingDetails]:
        try:
            with self._session_factory() as session:
                return BookingRepository(session).get_details(booking_id)
        except PersistenceError as e:
            raise BookingLookupError(f"Booking lookup failed for {booking_id}: {e}") from e


class JobHandler(ABC):
    """Base class for all job handlers.

    Subclasses set ``job_type`` and ``payload_model`` and implement execute().
    """

    job_type: str = ""
    payload_model: Type[BaseModel] = BaseModel

    def parse_payload(self, raw: Optional[Dict[str, Any]]) -> BaseModel:
        """Validate a raw payload against ``payload_model``.

        Raises:
            InvalidJobPayloadError: If validation fails
        """
        try:
            return self.payload_model.model_validate(raw or {})
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(loc) for loc in err['loc']) or 'payload'}: {err['msg']}"
                for err in e.errors()
            )
            raise InvalidJobPayloadError(f"Invalid {self.job_type} payload: {problems}") from e

    @abstractmethod
    def execute(self, job: ScheduledJob, payload: BaseModel) -> HandlerResult:
        """Run the job.

        Args:
            job: The claimed job row
            payload: Payload already validated by parse_payload()

        Returns:
            HandlerResult on success

        Raises:
            HandlerError: On failure, with ``retryable`` set appropriately
        """


class BookingNotificationHandler(JobHandler):
    """Shared behaviour for handlers that notify booking participants."""

    def __init__(
        self,
        gateway: NotificationGateway,
        bookings: BookingLookup,
        retry_missing_bookings: bool = True,
    ):
        self.gateway = gateway
        self.bookings = bookings
        self.retry_missing_bookings = retry_missing_bookings

    def load_booking(self, booking_id: str) -> BookingDetails:
        """Fetch a booking or raise the matching HandlerError."""
        booking = self.bookings.get_booking(booking_id)
        if booking is None:
            raise BookingNotFoundError(booking_id, retryable=self.retry_missing_bookings)
        return booking

    def notify(
        self,
        result: HandlerResult,
        role: str,
        recipient: Optional[str],
        subject: str,
        template_name: str,
        template_data: Dict[str, Any],
    ) -> None:
        """Send one best-effort notification and tally the outcome on ``result``."""
        if not recipient:
            logger.info(
                f"No email address for {role}, skipping notification",
                extra={"event": "job.notification.skipped", "role": role},
            )
            return

        delivery = self.gateway.send(recipient, subject, template_name, template_data)
        if delivery.success:
            result.notifications_sent += 1
            logger.info(
                f"Notification sent to {role}",
                extra={"event": "job.notification.sent", "role": role, "template": template_name},
            )
        else:
            result.notifications_failed += 1
            logger.warning(
                f"Notification to {role} failed: {delivery.error}",
                extra={
                    "event": "job.notification.failed",
                    "role": role,
                    "template": template_name,
                    "error": delivery.error,
                },
            )
