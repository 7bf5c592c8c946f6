"""Persistence layer exceptions.

All persistence exceptions inherit from PersistenceError so callers can
catch every store failure with a single except clause.
"""


class PersistenceError(Exception):
    """Base exception for all persistence layer errors."""


class DatabaseConnectionError(PersistenceError):
    """Raised when the database cannot be initialised or reached.

    Examples:
    - Invalid database URL
    - Database file not accessible
    - Session requested before init_database()
    """


class RecordNotFoundError(PersistenceError):
    """Raised when an operation requires a row that does not exist.

    Optional lookups return None instead.
    """


class InvalidTransitionError(PersistenceError):
    """Raised when a status update finds the row in an unexpected state.

    Outcome updates only apply to rows this worker has claimed (status
    ``processing``). Anything else means another worker or an operator
    changed the row underneath us.
    """


class DataIntegrityError(PersistenceError):
    """Raised when a database constraint is violated."""
