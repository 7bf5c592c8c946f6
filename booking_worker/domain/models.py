"""Core domain models for scheduled jobs, queued emails and bookings.

This module defines the data structures shared by the persistence layer,
the job handlers and the dispatcher:
- ScheduledJob: a typed unit of deferred work with its retry state
- EmailQueueItem / EmailPayload: a queued transactional email
- DeadLetterEntry: terminal record of an email that exhausted its attempts
- BookingDetails / Participant: read-only view of a collaborator booking
- Job payload variants, validated per job type before dispatch
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from booking_worker.utils import ensure_utc


class JobType(str, Enum):
    """Job kinds the worker knows how to execute."""

    MEETING_REMINDER = "meeting_reminder"
    POST_SESSION_FEEDBACK = "post_session_feedback"
    TEST = "test"


class ItemStatus(str, Enum):
    """Lifecycle status shared by jobs and queued emails.

    pending -> processing -> completed
                          -> pending (retry scheduled)
                          -> failed (terminal)
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ItemStatus.COMPLETED, ItemStatus.FAILED)


class _UTCModel(BaseModel):
    @field_validator("*", mode="after")
    @classmethod
    def _normalise_datetimes(cls, v: Any) -> Any:
        if isinstance(v, datetime):
            return ensure_utc(v)
        return v


class _RetryState(_UTCModel):
    """Attempt bookkeeping common to jobs and queued emails."""

    id: str = Field(..., description="Record identifier (UUID string)")
    status: ItemStatus = Field(ItemStatus.PENDING)
    scheduled_for: datetime = Field(..., description="Earliest time the item may run (UTC)")
    attempts: int = Field(0, ge=0)
    max_attempts: int = Field(3, ge=1)
    last_attempt_at: Optional[datetime] = None
    error: Optional[str] = Field(None, description="Most recent failure message")
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="after")
    def attempts_within_limit(self):
        if self.attempts > self.max_attempts:
            raise ValueError(
                f"attempts ({self.attempts}) cannot exceed max_attempts ({self.max_attempts})"
            )
        return self

    @property
    def attempts_remaining(self) -> int:
        return self.max_attempts - self.attempts


class ScheduledJob(_RetryState):
    """A typed, time-scheduled job.

    ``type`` is kept as free text: rows written by other producers may carry
    a type this worker does not implement, and those must fail at dispatch
    rather than at load time.
    """

    type: str
    payload: Dict[str, Any] = Field(default_factory=dict)


class EmailPayload(BaseModel):
    """Contents of a queued email: recipient, subject and template inputs."""

    to: str = Field(..., min_length=1)
    subject: str = Field(..., min_length=1)
    template: str = Field(..., min_length=1)
    data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("to", "subject", "template")
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Field cannot be empty or whitespace-only")
        return v.strip()


class EmailQueueItem(_RetryState):
    """A queued email awaiting delivery.

    ``payload`` is kept as stored; it is validated into an EmailPayload at
    delivery time so one malformed row cannot break selection of a batch.
    """

    payload: Dict[str, Any] = Field(default_factory=dict)
    completed_at: Optional[datetime] = None


class DeadLetterEntry(_UTCModel):
    """Terminal record of an email that failed every attempt.

    Entries are append-only and are never re-enqueued by the worker.
    """

    id: str
    original_id: str = Field(..., description="ID of the email_queue row that failed")
    payload: Dict[str, Any]
    error: Optional[str] = None
    attempts: int = Field(..., ge=0)
    created_at: datetime


class Participant(BaseModel):
    """One party of a booking (client or practitioner)."""

    id: str
    name: Optional[str] = None
    email: Optional[str] = None


class BookingDetails(_UTCModel):
    """Booking joined with its event type and both participants."""

    id: str
    title: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    status: Optional[str] = None
    event_title: Optional[str] = None
    event_length_minutes: Optional[int] = None
    user_id: Optional[str] = None
    dietitian_id: Optional[str] = None
    meeting_link: Optional[str] = None
    client: Optional[Participant] = None
    practitioner: Optional[Participant] = None

    @property
    def display_title(self) -> str:
        return self.event_title or self.title or "Consultation"


class MeetingReminderPayload(BaseModel):
    """Payload for ``meeting_reminder`` jobs."""

    model_config = ConfigDict(extra="ignore")

    booking_id: str = Field(..., min_length=1)
    user_id: Optional[str] = None
    dietitian_id: Optional[str] = None
    reminder_minutes: int = Field(60, ge=1)

    @field_validator("booking_id")
    @classmethod
    def booking_id_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("booking_id cannot be blank")
        return v.strip()


class PostSessionFeedbackPayload(BaseModel):
    """Payload for ``post_session_feedback`` jobs."""

    model_config = ConfigDict(extra="ignore")

    booking_id: str = Field(..., min_length=1)
    user_id: Optional[str] = None

    @field_validator("booking_id")
    @classmethod
    def booking_id_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("booking_id cannot be blank")
        return v.strip()


class TestJobPayload(BaseModel):
    """Payload for ``test`` jobs. Unknown keys are kept and echoed back."""

    __test__ = False  # not a pytest test class

    model_config = ConfigDict(extra="allow")

    delay_seconds: Optional[float] = Field(None, ge=0, le=30)
    should_fail: bool = False
    failure_message: Optional[str] = None
