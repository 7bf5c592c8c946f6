"""Fakes shared by unit and integration tests.

- FixedClock: a settable clock passed wherever code accepts ``clock=``
- RecordingGateway: stands in for NotificationGateway and records sends
- StaticBookingLookup: in-memory BookingLookup for handler tests
- seed_booking: writes platform rows (users, event type, booking)
"""

import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from booking_worker.domain.models import BookingDetails, Participant
from booking_worker.jobs.base import BookingLookup
from booking_worker.notifications.models import DeliveryResult
from booking_worker.persistence.schema import BookingModel, EventTypeModel, UserModel, _format_datetime

DEFAULT_NOW = datetime(2025, 11, 4, 12, 0, tzinfo=timezone.utc)
DEFAULT_START = datetime(2025, 11, 5, 15, 30, tzinfo=timezone.utc)


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = DEFAULT_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingGateway:
    """NotificationGateway stand-in.

    Returns scripted results in order, then ``default`` once the script
    runs out. Every call is recorded in ``sent``.
    """

    configured = True

    def __init__(self, results: Iterable[DeliveryResult] = (), default: Optional[DeliveryResult] = None):
        self._results: List[DeliveryResult] = list(results)
        self.default = default or DeliveryResult.ok(message_id="msg-1", status_code=201)
        self.sent: List[Dict[str, Any]] = []
        self._lock = threading.Lock()
        self.closed = False

    def send(self, recipient, subject, template_name, template_data=None) -> DeliveryResult:
        with self._lock:
            self.sent.append(
                {
                    "to": recipient,
                    "subject": subject,
                    "template": template_name,
                    "data": dict(template_data or {}),
                }
            )
            return self._results.pop(0) if self._results else self.default

    def close(self) -> None:
        self.closed = True


class StaticBookingLookup(BookingLookup):
    def __init__(self, bookings: Optional[Dict[str, BookingDetails]] = None):
        self.bookings = dict(bookings or {})
        self.requested: List[str] = []

    def get_booking(self, booking_id: str) -> Optional[BookingDetails]:
        self.requested.append(booking_id)
        return self.bookings.get(booking_id)


def make_booking(
    booking_id: str = "booking-1",
    start_time: datetime = DEFAULT_START,
    client_email: Optional[str] = "ada@mail.daiyet.co",
    client_name: Optional[str] = "Ada Obi",
    practitioner_email: Optional[str] = "dr.eze@mail.daiyet.co",
    practitioner_name: Optional[str] = "Dr. Chidi Eze",
    event_title: Optional[str] = "Nutrition Consultation",
    meeting_link: Optional[str] = "https://meet.google.com/abc-defg-hij",
) -> BookingDetails:
    return BookingDetails(
        id=booking_id,
        title="Booking",
        start_time=start_time,
        status="CONFIRMED",
        event_title=event_title,
        event_length_minutes=45,
        user_id="user-client",
        dietitian_id="user-dietitian",
        meeting_link=meeting_link,
        client=Participant(id="user-client", name=client_name, email=client_email),
        practitioner=Participant(id="user-dietitian", name=practitioner_name, email=practitioner_email),
    )


def seed_booking(
    session,
    booking_id: str = "booking-1",
    start_time: datetime = DEFAULT_START,
    status: str = "CONFIRMED",
    event_length: Optional[int] = 45,
    client_email: str = "ada@mail.daiyet.co",
    practitioner_email: str = "dr.eze@mail.daiyet.co",
) -> None:
    """Insert a booking with its client, dietitian and (optionally) event type."""
    client_id = f"{booking_id}-client"
    dietitian_id = f"{booking_id}-dietitian"
    session.add_all(
        [
            UserModel(id=client_id, name="Ada Obi", email=client_email, role="USER"),
            UserModel(id=dietitian_id, name="Dr. Chidi Eze", email=practitioner_email, role="DIETITIAN"),
        ]
    )
    event_type_id = None
    if event_length is not None:
        event_type_id = f"{booking_id}-event"
        session.add(EventTypeModel(id=event_type_id, title="Nutrition Consultation", length=event_length))
    session.flush()
    session.add(
        BookingModel(
            id=booking_id,
            title="Consultation with Dr. Eze",
            start_time=_format_datetime(start_time),
            status=status,
            event_type_id=event_type_id,
            user_id=client_id,
            dietitian_id=dietitian_id,
            meeting_link="https://meet.google.com/abc-defg-hij",
        )
    )
    session.flush()
