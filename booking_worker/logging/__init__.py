"""Structured logging helpers.

Every module obtains its logger through ``get_logger(__name__, component=...)``
and emits a dotted ``event`` field in ``extra`` for each significant step.
"""

import logging
from typing import Optional, Union

from .config import ContextualFilter, JSONFormatter, KeyValueFormatter, configure_logging
from .context import clear_log_context, get_log_context, log_context


class ComponentLoggerAdapter(logging.LoggerAdapter):
    """LoggerAdapter that merges its component with per-call ``extra``.

    The stdlib adapter replaces the caller's extra; this one keeps both,
    with the caller's fields taking precedence.
    """

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(
    name: str, component: Optional[str] = None
) -> Union[logging.Logger, ComponentLoggerAdapter]:
    """Get a logger, optionally tagging every record with ``component``.

    Example:
        >>> logger = get_logger(__name__, component="dispatch")
        >>> logger.info("Cycle started", extra={"event": "dispatch.cycle.started"})
    """
    logger = logging.getLogger(name)
    if component:
        return ComponentLoggerAdapter(logger, {"component": component})
    return logger


__all__ = [
    "ComponentLoggerAdapter",
    "ContextualFilter",
    "JSONFormatter",
    "KeyValueFormatter",
    "clear_log_context",
    "configure_logging",
    "get_log_context",
    "get_logger",
    "log_context",
]
