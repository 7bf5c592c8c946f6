"""Database schema definition and ORM models.

Worker-owned tables: ``scheduled_jobs``, ``email_queue`` and
``email_dead_letter_queue``. The ``users``, ``event_types`` and ``bookings``
tables belong to the booking platform; the worker only reads them, and
declares them here so a standalone SQLite store has the same shape.

Timestamps are stored as fixed-width ISO 8601 UTC strings
(``YYYY-MM-DDTHH:MM:SS.ffffffZ``) so that string comparison orders them
the same way as the instants they represent.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, Column, ForeignKey, Index, Integer, String, Text, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from booking_worker.domain.models import (
    DeadLetterEntry,
    EmailQueueItem,
    ItemStatus,
    ScheduledJob,
)
from booking_worker.utils import ensure_utc, parse_iso_datetime

logger = logging.getLogger(__name__)

Base = declarative_base()

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


class ScheduledJobModel(Base):
    """ORM model for the scheduled_jobs table."""

    __tablename__ = "scheduled_jobs"

    id = Column(String(36), primary_key=True)
    type = Column(String(64), nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    status = Column(String(20), nullable=False, default=ItemStatus.PENDING.value)

    scheduled_for = Column(String(32), nullable=False)
    attempts = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False, default=3)
    last_attempt_at = Column(String(32), nullable=True)
    error = Column(Text, nullable=True)

    created_at = Column(String(32), nullable=False)
    updated_at = Column(String(32), nullable=False)

    __table_args__ = (
        Index("idx_scheduled_jobs_due", "status", "scheduled_for"),
        Index("idx_scheduled_jobs_type", "type"),
    )

    def to_domain(self) -> ScheduledJob:
        return ScheduledJob(
            id=self.id,
            type=self.type,
            payload=self.payload if isinstance(self.payload, dict) else {},
            status=ItemStatus(self.status),
            scheduled_for=_parse_datetime(self.scheduled_for),
            attempts=self.attempts,
            max_attempts=self.max_attempts,
            last_attempt_at=_parse_datetime(self.last_attempt_at),
            error=self.error,
            created_at=_parse_datetime(self.created_at),
            updated_at=_parse_datetime(self.updated_at),
        )

    @classmethod
    def from_domain(cls, job: ScheduledJob) -> "ScheduledJobModel":
        return cls(
            id=job.id,
            type=job.type,
            payload=dict(job.payload),
            status=job.status.value,
            scheduled_for=_format_datetime(job.scheduled_for),
            attempts=job.attempts,
            max_attempts=job.max_attempts,
            last_attempt_at=_format_datetime(job.last_attempt_at),
            error=job.error,
            created_at=_format_datetime(job.created_at),
            updated_at=_format_datetime(job.updated_at),
        )


class EmailQueueModel(Base):
    """ORM model for the email_queue table."""

    __tablename__ = "email_queue"

    id = Column(String(36), primary_key=True)
    payload = Column(JSON, nullable=False)
    status = Column(String(20), nullable=False, default=ItemStatus.PENDING.value)

    scheduled_for = Column(String(32), nullable=False)
    attempts = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False, default=3)
    last_attempt_at = Column(String(32), nullable=True)
    completed_at = Column(String(32), nullable=True)
    error = Column(Text, nullable=True)

    created_at = Column(String(32), nullable=False)
    updated_at = Column(String(32), nullable=False)

    __table_args__ = (Index("idx_email_queue_due", "status", "scheduled_for"),)

    def to_domain(self) -> EmailQueueItem:
        return EmailQueueItem(
            id=self.id,
            payload=self.payload if isinstance(self.payload, dict) else {},
            status=ItemStatus(self.status),
            scheduled_for=_parse_datetime(self.scheduled_for),
            attempts=self.attempts,
            max_attempts=self.max_attempts,
            last_attempt_at=_parse_datetime(self.last_attempt_at),
            completed_at=_parse_datetime(self.completed_at),
            error=self.error,
            created_at=_parse_datetime(self.created_at),
            updated_at=_parse_datetime(self.updated_at),
        )

    @classmethod
    def from_domain(cls, item: EmailQueueItem) -> "EmailQueueModel":
        return cls(
            id=item.id,
            payload=dict(item.payload),
            status=item.status.value,
            scheduled_for=_format_datetime(item.scheduled_for),
            attempts=item.attempts,
            max_attempts=item.max_attempts,
            last_attempt_at=_format_datetime(item.last_attempt_at),
            completed_at=_format_datetime(item.completed_at),
            error=item.error,
            created_at=_format_datetime(item.created_at),
            updated_at=_format_datetime(item.updated_at),
        )


class DeadLetterModel(Base):
    """ORM model for the email_dead_letter_queue table (append-only)."""

    __tablename__ = "email_dead_letter_queue"

    id = Column(String(36), primary_key=True)
    original_id = Column(String(36), ForeignKey("email_queue.id"), nullable=False)
    payload = Column(JSON, nullable=False)
    error = Column(Text, nullable=True)
    attempts = Column(Integer, nullable=False)
    created_at = Column(String(32), nullable=False)

    __table_args__ = (Index("idx_dead_letter_original", "original_id"),)

    def to_domain(self) -> DeadLetterEntry:
        return DeadLetterEntry(
            id=self.id,
            original_id=self.original_id,
            payload=self.payload or {},
            error=self.error,
            attempts=self.attempts,
            created_at=_parse_datetime(self.created_at),
        )


class UserModel(Base):
    """Platform user (client or dietitian). Read-only to the worker."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True)
    name = Column(String(255), nullable=True)
    email = Column(String(320), nullable=True)
    role = Column(String(32), nullable=True)


class EventTypeModel(Base):
    """Bookable event type. Read-only to the worker."""

    __tablename__ = "event_types"

    id = Column(String(36), primary_key=True)
    title = Column(String(255), nullable=True)
    length = Column(Integer, nullable=False, default=30)


class BookingModel(Base):
    """Booking between a client and a dietitian. Read-only to the worker."""

    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True)
    title = Column(String(255), nullable=True)
    start_time = Column(String(32), nullable=False)
    end_time = Column(String(32), nullable=True)
    status = Column(String(32), nullable=True)
    event_type_id = Column(String(36), ForeignKey("event_types.id"), nullable=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    dietitian_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    meeting_link = Column(Text, nullable=True)


def _format_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Format a datetime as a fixed-width UTC string for storage."""
    if dt is None:
        return None
    return ensure_utc(dt).strftime(TIMESTAMP_FORMAT)


def _parse_datetime(dt_str: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp back to an aware UTC datetime.

    Rows written by the booking platform may use other ISO 8601 variants
    (offsets, no fraction), so parsing is lenient.
    """
    if not dt_str:
        return None
    try:
        return datetime.strptime(dt_str, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        return parse_iso_datetime(dt_str)


def create_schema(engine: Engine) -> None:
    """Create all tables and indexes if they don't exist (idempotent)."""
    Base.metadata.create_all(engine, checkfirst=True)
    tables = inspect(engine).get_table_names()
    logger.info(
        "Database schema ready",
        extra={"event": "database.schema.ready", "tables": ",".join(sorted(tables))},
    )
