"""Job handler exceptions.

Every failure a handler reports is a HandlerError carrying a ``retryable``
flag; the dispatcher combines that flag with the attempt count to decide
between a retry and a terminal failure.
"""

from typing import Optional


class HandlerError(Exception):
    """Base exception for job handler failures.

    Attributes:
        message: Human-readable failure, stored in the job's ``error`` field
        retryable: Whether another attempt could succeed
    """

    default_retryable = True

    def __init__(self, message: str, retryable: Optional[bool] = None):
        self.message = message
        self.retryable = self.default_retryable if retryable is None else retryable
        super().__init__(message)


class UnknownJobTypeError(HandlerError):
    """Raised when no handler is registered for a job's type."""

    default_retryable = False

    def __init__(self, job_type: str):
        self.job_type = job_type
        super().__init__(f"Unknown job type: {job_type}")


class InvalidJobPayloadError(HandlerError):
    """Raised when a job payload does not match its type's schema."""

    default_retryable = False


class BookingLookupError(HandlerError):
    """Raised when the booking store cannot be queried."""

    default_retryable = True


class BookingNotFoundError(HandlerError):
    """Raised when a job references a booking that does not exist (yet)."""

    default_retryable = True

    def __init__(self, booking_id: str, retryable: Optional[bool] = None):
        self.booking_id = booking_id
        super().__init__(f"Booking not found: {booking_id}", retryable=retryable)
