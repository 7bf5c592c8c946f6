"""Database connection and session management.

This module owns the process-wide engine and session factory. Each unit of
work (claim, handler lookup, outcome) opens its own short session through
``get_session`` so that worker threads never share a session.
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from booking_worker.logging import get_logger

from .exceptions import DatabaseConnectionError, PersistenceError

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None

logger = get_logger(__name__, component="database")

SQLITE_BUSY_TIMEOUT_SECONDS = 30


def init_database(database_url: str) -> None:
    """Initialise the engine, validate the connection and create the schema.

    Safe to call more than once; a previous engine is disposed first.
    A SQLite ``:memory:`` URL gets a single shared connection so that every
    thread sees the same database.

    Args:
        database_url: SQLAlchemy URL (e.g. "sqlite:///./data/booking_worker.db")

    Raises:
        DatabaseConnectionError: If initialisation fails

    Example:
        >>> init_database("sqlite:///./data/booking_worker.db")
    """
    global _engine, _session_factory

    if not database_url or not isinstance(database_url, str):
        raise DatabaseConnectionError("Database URL must be a non-empty string")

    try:
        url = make_url(database_url)
    except ArgumentError as e:
        raise DatabaseConnectionError(f"Invalid database URL: {e}") from e

    redacted = url.render_as_string(hide_password=True)
    logger.info(
        "Initializing database",
        extra={"event": "database.initializing", "database_url": redacted},
    )

    if _engine is not None:
        close_database()

    is_sqlite = url.get_backend_name() == "sqlite"
    in_memory = is_sqlite and url.database in (None, "", ":memory:")
    if is_sqlite and not in_memory:
        db_file = Path(url.database)
        if not db_file.parent.exists():
            logger.info(
                "Creating database directory",
                extra={"event": "database.directory.created", "path": str(db_file.parent)},
            )
            db_file.parent.mkdir(parents=True, exist_ok=True)

    engine_options = {}
    if in_memory:
        # Every pooled connection would open its own empty in-memory database
        engine_options["poolclass"] = StaticPool

    try:
        engine = create_engine(
            url,
            pool_pre_ping=True,
            connect_args=(
                {"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT_SECONDS}
                if is_sqlite
                else {}
            ),
            **engine_options,
        )

        if is_sqlite:
            _configure_sqlite(engine)

        _validate_connection(engine)

        from .schema import create_schema

        create_schema(engine)
    except DatabaseConnectionError:
        raise
    except Exception as e:
        logger.error(
            f"Failed to initialize database: {e}",
            extra={"event": "database.init.failed", "database_url": redacted},
            exc_info=True,
        )
        raise DatabaseConnectionError(f"Failed to initialize database: {e}") from e

    _engine = engine
    _session_factory = sessionmaker(bind=engine, autoflush=True, expire_on_commit=False)

    logger.info(
        "Database initialized",
        extra={"event": "database.initialised", "database_url": redacted},
    )


def _configure_sqlite(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()


def _validate_connection(engine: Engine) -> None:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
    except Exception as e:
        raise DatabaseConnectionError(f"Failed to validate database connection: {e}") from e


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Provide a session that commits on success and rolls back on error.

    Yields:
        Session: SQLAlchemy session for one unit of work

    Raises:
        DatabaseConnectionError: If init_database() has not been called
        PersistenceError: If the commit fails

    Example:
        >>> with get_session() as session:
        ...     claimed = JobRepository(session).claim(job_id, now)
    """
    if _session_factory is None:
        raise DatabaseConnectionError(
            "Database not initialized. Call init_database() before using get_session()"
        )

    session = _session_factory()
    try:
        yield session
        try:
            session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to commit transaction: {e}") from e
    except Exception as e:
        session.rollback()
        logger.warning(
            f"Database session rolled back: {e}",
            extra={
                "event": "database.session.rolled_back",
                "error_type": type(e).__name__,
            },
        )
        raise
    finally:
        session.close()


def get_engine() -> Engine:
    """Return the active engine.

    Raises:
        DatabaseConnectionError: If init_database() has not been called
    """
    if _engine is None:
        raise DatabaseConnectionError(
            "Database not initialized. Call init_database() before using get_engine()"
        )
    return _engine


def close_database() -> None:
    """Dispose of the engine and forget the session factory."""
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
        logger.info("Database connections closed", extra={"event": "database.closed"})
    _engine = None
    _session_factory = None
