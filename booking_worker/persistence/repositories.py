"""Data access layer (repositories) for the job store, email queue and DLQ.

Repositories wrap a caller-owned session, return domain models, and convert
SQLAlchemy failures into PersistenceError. They never commit; the session
scope from ``get_session`` decides the transaction boundary, which is how an
email's terminal transition and its dead-letter insert land together.

Every status change is a conditional UPDATE on one row:

- ``claim``: ``pending`` -> ``processing`` (and ``attempts + 1``) only if the
  row is still pending and due, with attempts left. Zero rows changed means some
  other invocation won the race.
- outcome updates (``mark_completed``, ``schedule_retry``, ``mark_failed``)
  only apply to rows in ``processing``.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, aliased

from booking_worker.domain.models import (
    BookingDetails,
    DeadLetterEntry,
    EmailPayload,
    EmailQueueItem,
    ItemStatus,
    Participant,
    ScheduledJob,
)

from .exceptions import DataIntegrityError, InvalidTransitionError, PersistenceError
from .schema import (
    BookingModel,
    DeadLetterModel,
    EmailQueueModel,
    EventTypeModel,
    ScheduledJobModel,
    UserModel,
    _format_datetime,
    _parse_datetime,
)

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return str(uuid.uuid4())


class _RetryableQueueRepository:
    """Selection, claim and outcome operations shared by jobs and emails."""

    model: Any = None
    label: str = "item"

    def __init__(self, session: Session):
        self.session = session

    def get(self, item_id: str):
        """Fetch one row by id, or None if it does not exist.

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            row = self.session.get(self.model, item_id)
            return row.to_domain() if row is not None else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving {self.label} {item_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve {self.label}: {e}") from e

    def find_due(self, now: datetime, limit: int) -> list:
        """Select pending rows that are due and have attempts left.

        Ordered by ``scheduled_for`` then ``created_at``, oldest first.

        Args:
            now: Current time; rows with scheduled_for <= now are due
            limit: Maximum number of rows to return

        Raises:
            PersistenceError: If database error occurs
        """
        model = self.model
        try:
            stmt = (
                select(model)
                .where(
                    model.status == ItemStatus.PENDING.value,
                    model.scheduled_for <= _format_datetime(now),
                    model.attempts < model.max_attempts,
                )
                .order_by(model.scheduled_for.asc(), model.created_at.asc())
                .limit(limit)
            )
            rows = self.session.execute(stmt).scalars().all()
            return [row.to_domain() for row in rows]
        except SQLAlchemyError as e:
            logger.error(f"Error selecting due {self.label}s: {e}", exc_info=True)
            raise PersistenceError(f"Failed to select due {self.label}s: {e}") from e

    def claim(self, item_id: str, now: datetime):
        """Atomically move a due pending row to processing and count the attempt.

        Returns:
            The claimed row (status processing, attempts incremented), or
            None if it was already claimed, finished, rescheduled into the
            future, or out of attempts

        Raises:
            PersistenceError: If database error occurs
        """
        model = self.model
        stamp = _format_datetime(now)
        try:
            stmt = (
                update(model)
                .where(
                    model.id == item_id,
                    model.status == ItemStatus.PENDING.value,
                    model.scheduled_for <= stamp,
                    model.attempts < model.max_attempts,
                )
                .values(
                    status=ItemStatus.PROCESSING.value,
                    attempts=model.attempts + 1,
                    last_attempt_at=stamp,
                    updated_at=stamp,
                )
                .execution_options(synchronize_session=False)
            )
            result = self.session.execute(stmt)
            if result.rowcount != 1:
                return None
            row = self.session.get(model, item_id, populate_existing=True)
            return row.to_domain() if row is not None else None
        except SQLAlchemyError as e:
            logger.error(f"Error claiming {self.label} {item_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to claim {self.label}: {e}") from e

    def schedule_retry(self, item_id: str, error: str, delay_seconds: float, now: datetime) -> datetime:
        """Return a processing row to pending with a later scheduled_for.

        The new ``scheduled_for`` is ``max(current, now + delay)`` so it never
        moves backwards.

        Returns:
            The new scheduled_for

        Raises:
            InvalidTransitionError: If the row is not in processing
            PersistenceError: If database error occurs
        """
        current = self._require_processing(item_id)
        next_run = max(current.scheduled_for, now + timedelta(seconds=delay_seconds))
        self._transition(
            item_id,
            status=ItemStatus.PENDING.value,
            scheduled_for=_format_datetime(next_run),
            error=error,
            updated_at=_format_datetime(now),
        )
        return next_run

    def list_by_status(self, status: ItemStatus) -> list:
        """Return every row with the given status, oldest schedule first."""
        model = self.model
        try:
            stmt = (
                select(model)
                .where(model.status == ItemStatus(status).value)
                .order_by(model.scheduled_for.asc(), model.created_at.asc())
            )
            return [row.to_domain() for row in self.session.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing {self.label}s by status: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list {self.label}s: {e}") from e

    def _require_processing(self, item_id: str):
        item = self.get(item_id)
        if item is None or item.status != ItemStatus.PROCESSING:
            state = "missing" if item is None else item.status.value
            raise InvalidTransitionError(
                f"{self.label.capitalize()} {item_id} is {state}, expected processing"
            )
        return item

    def _transition(self, item_id: str, **values) -> None:
        model = self.model
        try:
            stmt = (
                update(model)
                .where(model.id == item_id, model.status == ItemStatus.PROCESSING.value)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            result = self.session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error(f"Error updating {self.label} {item_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update {self.label}: {e}") from e

        if result.rowcount != 1:
            raise InvalidTransitionError(
                f"{self.label.capitalize()} {item_id} is no longer processing"
            )


class JobRepository(_RetryableQueueRepository):
    """Repository for the durable job store."""

    model = ScheduledJobModel
    label = "job"

    def create(
        self,
        job_type: str,
        payload: Dict[str, Any],
        scheduled_for: datetime,
        now: datetime,
        max_attempts: int = 3,
    ) -> ScheduledJob:
        """Insert a new pending job.

        Raises:
            DataIntegrityError: If a constraint is violated
            PersistenceError: If database error occurs
        """
        job = ScheduledJob(
            id=_new_id(),
            type=job_type,
            payload=payload,
            status=ItemStatus.PENDING,
            scheduled_for=scheduled_for,
            max_attempts=max_attempts,
            created_at=now,
            updated_at=now,
        )
        try:
            self.session.add(ScheduledJobModel.from_domain(job))
            self.session.flush()
        except IntegrityError as e:
            logger.error(f"Integrity error creating job: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to create job: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error creating job: {e}", exc_info=True)
            raise PersistenceError(f"Failed to create job: {e}") from e
        return job

    def mark_completed(self, job_id: str, now: datetime) -> None:
        """Mark a processing job completed and clear its error."""
        self._transition(
            job_id,
            status=ItemStatus.COMPLETED.value,
            error=None,
            updated_at=_format_datetime(now),
        )

    def mark_failed(self, job_id: str, error: str, now: datetime) -> None:
        """Mark a processing job permanently failed."""
        self._transition(
            job_id,
            status=ItemStatus.FAILED.value,
            error=error,
            updated_at=_format_datetime(now),
        )


class EmailQueueRepository(_RetryableQueueRepository):
    """Repository for the durable email queue."""

    model = EmailQueueModel
    label = "email"

    def enqueue(
        self,
        payload: EmailPayload,
        now: datetime,
        scheduled_for: Optional[datetime] = None,
        max_attempts: int = 3,
    ) -> EmailQueueItem:
        """Insert a pending email, due at ``scheduled_for`` (default: now).

        Raises:
            PersistenceError: If database error occurs
        """
        item = EmailQueueItem(
            id=_new_id(),
            payload=payload.model_dump(),
            status=ItemStatus.PENDING,
            scheduled_for=scheduled_for or now,
            max_attempts=max_attempts,
            created_at=now,
            updated_at=now,
        )
        try:
            self.session.add(EmailQueueModel.from_domain(item))
            self.session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Error enqueuing email: {e}", exc_info=True)
            raise PersistenceError(f"Failed to enqueue email: {e}") from e
        return item

    def mark_completed(self, item_id: str, now: datetime) -> None:
        """Mark a processing email sent."""
        stamp = _format_datetime(now)
        self._transition(
            item_id,
            status=ItemStatus.COMPLETED.value,
            completed_at=stamp,
            error=None,
            updated_at=stamp,
        )

    def mark_failed(self, item_id: str, error: str, now: datetime) -> DeadLetterEntry:
        """Fail a processing email for good and write its dead-letter entry.

        Both writes happen in the caller's session, so they commit or roll
        back together.

        Returns:
            The dead-letter entry that was written

        Raises:
            InvalidTransitionError: If the email is not in processing
            PersistenceError: If database error occurs
        """
        item = self._require_processing(item_id)
        self._transition(
            item_id,
            status=ItemStatus.FAILED.value,
            error=error,
            updated_at=_format_datetime(now),
        )
        return DeadLetterRepository(self.session).add(
            original_id=item.id,
            payload=dict(item.payload),
            error=error,
            attempts=item.attempts,
            now=now,
        )


class DeadLetterRepository:
    """Append-only access to the email dead-letter store."""

    def __init__(self, session: Session):
        self.session = session

    def add(
        self,
        original_id: str,
        payload: Dict[str, Any],
        error: Optional[str],
        attempts: int,
        now: datetime,
    ) -> DeadLetterEntry:
        entry = DeadLetterEntry(
            id=_new_id(),
            original_id=original_id,
            payload=payload,
            error=error,
            attempts=attempts,
            created_at=now,
        )
        try:
            self.session.add(
                DeadLetterModel(
                    id=entry.id,
                    original_id=entry.original_id,
                    payload=entry.payload,
                    error=entry.error,
                    attempts=entry.attempts,
                    created_at=_format_datetime(entry.created_at),
                )
            )
            self.session.flush()
        except IntegrityError as e:
            logger.error(f"Integrity error writing dead letter for {original_id}: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to write dead letter entry: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error writing dead letter for {original_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to write dead letter entry: {e}") from e
        return entry

    def list_for_original(self, original_id: str) -> List[DeadLetterEntry]:
        try:
            stmt = (
                select(DeadLetterModel)
                .where(DeadLetterModel.original_id == original_id)
                .order_by(DeadLetterModel.created_at.asc())
            )
            return [row.to_domain() for row in self.session.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Error reading dead letters for {original_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to read dead letter entries: {e}") from e

    def list_all(self, limit: Optional[int] = None) -> List[DeadLetterEntry]:
        try:
            stmt = select(DeadLetterModel).order_by(DeadLetterModel.created_at.desc())
            if limit is not None:
                stmt = stmt.limit(limit)
            return [row.to_domain() for row in self.session.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing dead letters: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list dead letter entries: {e}") from e


class BookingRepository:
    """Read-only access to bookings and their participants."""

    def __init__(self, session: Session):
        self.session = session

    def get_details(self, booking_id: str) -> Optional[BookingDetails]:
        """Load a booking with its event type, client and dietitian.

        Returns:
            BookingDetails, or None if the booking does not exist

        Raises:
            PersistenceError: If database error occurs
        """
        client = aliased(UserModel)
        practitioner = aliased(UserModel)
        try:
            stmt = (
                select(BookingModel, EventTypeModel, client, practitioner)
                .outerjoin(EventTypeModel, BookingModel.event_type_id == EventTypeModel.id)
                .outerjoin(client, BookingModel.user_id == client.id)
                .outerjoin(practitioner, BookingModel.dietitian_id == practitioner.id)
                .where(BookingModel.id == booking_id)
            )
            row = self.session.execute(stmt).first()
        except SQLAlchemyError as e:
            logger.error(f"Error loading booking {booking_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to load booking: {e}") from e

        if row is None:
            return None

        booking, event_type, client_row, practitioner_row = row
        return BookingDetails(
            id=booking.id,
            title=booking.title,
            start_time=_parse_datetime(booking.start_time),
            end_time=_parse_datetime(booking.end_time),
            status=booking.status,
            event_title=event_type.title if event_type else None,
            event_length_minutes=event_type.length if event_type else None,
            user_id=booking.user_id,
            dietitian_id=booking.dietitian_id,
            meeting_link=booking.meeting_link,
            client=_participant(client_row),
            practitioner=_participant(practitioner_row),
        )


def _participant(user: Optional[UserModel]) -> Optional[Participant]:
    if user is None:
        return None
    return Participant(id=user.id, name=user.name, email=user.email)
