"""Meeting reminder handler: emails both parties ahead of a session."""

from typing import Callable

from booking_worker.domain.models import JobType, MeetingReminderPayload, ScheduledJob
from booking_worker.logging import get_logger
from booking_worker.utils import format_booking_date, format_booking_time, format_timestamp, utc_now

from .base import BookingNotificationHandler, HandlerResult

logger = get_logger(__name__, component="jobs")

TEMPLATE_NAME = "meeting_reminder"


def describe_reminder_window(minutes: int) -> str:
    """Phrase the reminder lead time for subjects.

    Examples:
        >>> describe_reminder_window(1440)
        '24 hours'
        >>> describe_reminder_window(60)
        '1 hour'
        >>> describe_reminder_window(15)
        '15 minutes'
    """
    if minutes == 1440:
        return "24 hours"
    if minutes == 60:
        return "1 hour"
    return f"{minutes} minutes"


class MeetingReminderHandler(BookingNotificationHandler):
    """Sends a reminder to the client and to the dietitian of a booking.

    Each send is independent and best-effort: a failed send is counted in
    the result but does not fail the job. Only booking lookup problems do.
    """

    job_type = JobType.MEETING_REMINDER.value
    payload_model = MeetingReminderPayload

    def __init__(self, gateway, bookings, retry_missing_bookings: bool = True, clock: Callable = utc_now):
        super().__init__(gateway, bookings, retry_missing_bookings)
        self.clock = clock

    def execute(self, job: ScheduledJob, payload: MeetingReminderPayload) -> HandlerResult:
        booking = self.load_booking(payload.booking_id)
        window = describe_reminder_window(payload.reminder_minutes)

        shared = {
            "eventTitle": booking.display_title,
            "date": format_booking_date(booking.start_time),
            "time": format_booking_time(booking.start_time),
            "meetingLink": booking.meeting_link or "",
        }
        client_name = booking.client.name if booking.client and booking.client.name else None

        result = HandlerResult(
            data={
                "booking_id": payload.booking_id,
                "user_id": payload.user_id,
                "dietitian_id": payload.dietitian_id,
                "reminder_minutes": payload.reminder_minutes,
            }
        )

        self.notify(
            result,
            role="client",
            recipient=booking.client.email if booking.client else None,
            subject=f"Meeting Reminder: Your session starts in {window}",
            template_name=TEMPLATE_NAME,
            template_data={**shared, "userName": client_name or "User"},
        )

        practitioner = booking.practitioner
        self.notify(
            result,
            role="practitioner",
            recipient=practitioner.email if practitioner else None,
            subject=f"Meeting Reminder: Session with {client_name or 'Client'} in {window}",
            template_name=TEMPLATE_NAME,
            template_data={
                **shared,
                "userName": (practitioner.name if practitioner else None) or "Dietitian",
            },
        )

        result.data["sent_at"] = format_timestamp(self.clock())
        logger.info(
            "Meeting reminder processed",
            extra={
                "event": "job.meeting_reminder.processed",
                "booking_id": payload.booking_id,
                "reminder_minutes": payload.reminder_minutes,
                "notifications_sent": result.notifications_sent,
                "notifications_failed": result.notifications_failed,
            },
        )
        return result
