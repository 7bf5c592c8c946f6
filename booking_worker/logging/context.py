"""Scoped log context backed by contextvars.

Fields pushed here (cycle_id, job_id, email_id, job_type, ...) are added to
every record emitted inside the scope by ``ContextualFilter``. Worker threads
do not inherit context automatically; submit work through
``contextvars.copy_context().run`` to carry the cycle fields across.
"""

from contextvars import ContextVar, Token
from typing import Any, Dict, Optional

_LOG_CONTEXT: ContextVar[Dict[str, Any]] = ContextVar("booking_worker_log_context", default={})


def get_log_context() -> Dict[str, Any]:
    """Return a copy of the active context fields."""
    return dict(_LOG_CONTEXT.get())


def push_log_context(**fields: Any) -> Token:
    """Merge ``fields`` over the active context.

    Returns:
        Token for ``pop_log_context``
    """
    return _LOG_CONTEXT.set({**_LOG_CONTEXT.get(), **fields})


def pop_log_context(token: Token) -> None:
    """Restore the context that was active before the matching push."""
    _LOG_CONTEXT.reset(token)


def clear_log_context() -> None:
    """Drop every context field. Used by tests."""
    _LOG_CONTEXT.set({})


class log_context:
    """Context manager that scopes extra fields to a block.

    Example:
        >>> with log_context(cycle_id="c-1", job_id="j-9"):
        ...     logger.info("Claimed job", extra={"event": "job.claimed"})
    """

    def __init__(self, **fields: Any):
        self.fields = fields
        self.token: Optional[Token] = None

    def __enter__(self):
        self.token = push_log_context(**self.fields)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.token is not None:
            pop_log_context(self.token)
            self.token = None
        return False
