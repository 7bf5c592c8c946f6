"""Domain models for the booking background worker."""

from .models import (
    BookingDetails,
    DeadLetterEntry,
    EmailPayload,
    EmailQueueItem,
    ItemStatus,
    JobType,
    MeetingReminderPayload,
    Participant,
    PostSessionFeedbackPayload,
    ScheduledJob,
    TestJobPayload,
)

__all__ = [
    "JobType",
    "ItemStatus",
    "ScheduledJob",
    "EmailPayload",
    "EmailQueueItem",
    "DeadLetterEntry",
    "Participant",
    "BookingDetails",
    "MeetingReminderPayload",
    "PostSessionFeedbackPayload",
    "TestJobPayload",
]
