"""Job handlers and the registry that routes job types to them."""

from .base import (
    BookingLookup,
    BookingNotificationHandler,
    DatabaseBookingLookup,
    HandlerResult,
    JobHandler,
)
from .exceptions import (
    BookingLookupError,
    BookingNotFoundError,
    HandlerError,
    InvalidJobPayloadError,
    UnknownJobTypeError,
)
from .meeting_reminder import MeetingReminderHandler, describe_reminder_window
from .post_session_feedback import PostSessionFeedbackHandler
from .registry import HandlerRegistry, build_default_registry
from .testing import TestJobHandler

__all__ = [
    # Base classes
    "JobHandler",
    "BookingNotificationHandler",
    "HandlerResult",
    "BookingLookup",
    "DatabaseBookingLookup",
    # Handlers
    "MeetingReminderHandler",
    "PostSessionFeedbackHandler",
    "TestJobHandler",
    "describe_reminder_window",
    # Registry
    "HandlerRegistry",
    "build_default_registry",
    # Exceptions
    "HandlerError",
    "UnknownJobTypeError",
    "InvalidJobPayloadError",
    "BookingLookupError",
    "BookingNotFoundError",
]
