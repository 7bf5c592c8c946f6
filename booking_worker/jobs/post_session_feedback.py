"""Post-session feedback handler: asks the client to rate a finished session."""

from typing import Callable

from booking_worker.domain.models import JobType, PostSessionFeedbackPayload, ScheduledJob
from booking_worker.logging import get_logger
from booking_worker.utils import format_timestamp, utc_now

from .base import BookingNotificationHandler, HandlerResult

logger = get_logger(__name__, component="jobs")

TEMPLATE_NAME = "session_feedback"
SUBJECT = "How was your session?"


class PostSessionFeedbackHandler(BookingNotificationHandler):
    """Emails the client a link to ``{site_url}/feedback/{booking_id}``."""

    job_type = JobType.POST_SESSION_FEEDBACK.value
    payload_model = PostSessionFeedbackPayload

    def __init__(
        self,
        gateway,
        bookings,
        site_url: str,
        retry_missing_bookings: bool = True,
        clock: Callable = utc_now,
    ):
        super().__init__(gateway, bookings, retry_missing_bookings)
        self.site_url = site_url.rstrip("/")
        self.clock = clock

    def feedback_link(self, booking_id: str) -> str:
        return f"{self.site_url}/feedback/{booking_id}"

    def execute(self, job: ScheduledJob, payload: PostSessionFeedbackPayload) -> HandlerResult:
        booking = self.load_booking(payload.booking_id)
        link = self.feedback_link(payload.booking_id)

        result = HandlerResult(data={"booking_id": payload.booking_id, "user_id": payload.user_id})
        self.notify(
            result,
            role="client",
            recipient=booking.client.email if booking.client else None,
            subject=SUBJECT,
            template_name=TEMPLATE_NAME,
            template_data={
                "userName": (booking.client.name if booking.client else None) or "User",
                "feedbackLink": link,
            },
        )

        result.data["sent_at"] = format_timestamp(self.clock())
        logger.info(
            "Feedback request processed",
            extra={
                "event": "job.post_session_feedback.processed",
                "booking_id": payload.booking_id,
                "notifications_sent": result.notifications_sent,
            },
        )
        return result
