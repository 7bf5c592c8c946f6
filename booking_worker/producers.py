"""Helpers the booking workflow uses to create deferred work.

The dispatcher only consumes rows; these functions are how rows get there:
queued transactional emails, and the reminder/feedback jobs that follow a
new booking.
"""

from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from booking_worker.domain.models import EmailPayload, EmailQueueItem, JobType, ScheduledJob
from booking_worker.logging import get_logger
from booking_worker.persistence.exceptions import RecordNotFoundError
from booking_worker.persistence.repositories import (
    BookingRepository,
    EmailQueueRepository,
    JobRepository,
)
from booking_worker.utils import utc_now

logger = get_logger(__name__, component="producers")

# Booking statuses that get reminder and feedback jobs
SCHEDULABLE_BOOKING_STATUSES = frozenset({"CONFIRMED", "PENDING"})

DEFAULT_SESSION_MINUTES = 45
REMINDER_WINDOWS_MINUTES = (1440, 60)
FEEDBACK_DELAY = timedelta(hours=1)


def enqueue_email(
    session: Session,
    to: str,
    subject: str,
    template: str,
    data: Optional[Dict[str, Any]] = None,
    delay: Optional[timedelta] = None,
    max_attempts: int = 3,
    clock: Callable[[], datetime] = utc_now,
) -> EmailQueueItem:
    """
    Queue a transactional email for the next dispatch cycle.

    Args:
        session: Open session; the insert commits with the caller's transaction
        to: Recipient address
        subject: Subject line
        template: Template name (unknown names fall back to the generic template)
        data: Template variables
        delay: Hold the email back by this long
        max_attempts: Delivery attempts before the email is dead-lettered

    Returns:
        The queued item

    Raises:
        pydantic.ValidationError: If recipient, subject or template is blank
        PersistenceError: If the insert fails
    """
    payload = EmailPayload(to=to, subject=subject, template=template, data=data or {})
    now = clock()
    scheduled_for = now + delay if delay else now
    item = EmailQueueRepository(session).enqueue(
        payload, now, scheduled_for=scheduled_for, max_attempts=max_attempts
    )
    logger.info(
        "Email queued",
        extra={
            "event": "email.enqueued",
            "email_id": item.id,
            "template": payload.template,
            "scheduled_for": scheduled_for.isoformat(),
        },
    )
    return item


def schedule_booking_jobs(
    session: Session,
    booking_id: str,
    clock: Callable[[], datetime] = utc_now,
) -> List[ScheduledJob]:
    """
    Create the reminder and feedback jobs for a booking.

    Three jobs are created for a confirmed or pending booking:
    - meeting_reminder 24 hours before the start (reminder_minutes=1440)
    - meeting_reminder 1 hour before the start (reminder_minutes=60)
    - post_session_feedback 1 hour after the session ends, where the end is
      the start plus the event length (45 minutes when unknown)

    Bookings in any other status get no jobs.

    Returns:
        The jobs created, in the order above

    Raises:
        RecordNotFoundError: If the booking does not exist
        PersistenceError: If a read or insert fails
    """
    booking = BookingRepository(session).get_details(booking_id)
    if booking is None:
        raise RecordNotFoundError(f"Booking not found: {booking_id}")

    status = (booking.status or "").upper()
    if status not in SCHEDULABLE_BOOKING_STATUSES:
        logger.info(
            f"Booking {booking_id} is {booking.status}, no jobs scheduled",
            extra={"event": "booking.jobs.skipped", "booking_id": booking_id, "status": booking.status},
        )
        return []

    now = clock()
    jobs = JobRepository(session)
    created: List[ScheduledJob] = []

    for minutes in REMINDER_WINDOWS_MINUTES:
        created.append(
            jobs.create(
                JobType.MEETING_REMINDER.value,
                {
                    "booking_id": booking.id,
                    "user_id": booking.user_id,
                    "dietitian_id": booking.dietitian_id,
                    "reminder_minutes": minutes,
                },
                scheduled_for=booking.start_time - timedelta(minutes=minutes),
                now=now,
            )
        )

    session_end = booking.start_time + timedelta(
        minutes=booking.event_length_minutes or DEFAULT_SESSION_MINUTES
    )
    created.append(
        jobs.create(
            JobType.POST_SESSION_FEEDBACK.value,
            {"booking_id": booking.id, "user_id": booking.user_id},
            scheduled_for=session_end + FEEDBACK_DELAY,
            now=now,
        )
    )

    logger.info(
        f"Scheduled {len(created)} jobs for booking {booking_id}",
        extra={
            "event": "booking.jobs.scheduled",
            "booking_id": booking_id,
            "job_ids": [job.id for job in created],
        },
    )
    return created
