"""Persistence layer: SQLAlchemy engine, schema and repositories."""

from .database import close_database, get_engine, get_session, init_database
from .exceptions import (
    DataIntegrityError,
    DatabaseConnectionError,
    InvalidTransitionError,
    PersistenceError,
    RecordNotFoundError,
)
from .repositories import (
    BookingRepository,
    DeadLetterRepository,
    EmailQueueRepository,
    JobRepository,
)

__all__ = [
    # Database management
    "init_database",
    "get_session",
    "get_engine",
    "close_database",
    # Repositories
    "JobRepository",
    "EmailQueueRepository",
    "DeadLetterRepository",
    "BookingRepository",
    # Exceptions
    "PersistenceError",
    "DatabaseConnectionError",
    "RecordNotFoundError",
    "InvalidTransitionError",
    "DataIntegrityError",
]
