"""Handler registry: maps job type strings to handler instances."""

import logging
from typing import Callable, Dict, Iterable, List, Optional

from booking_worker.config.models import JobsConfig
from booking_worker.notifications.gateway import NotificationGateway
from booking_worker.utils import utc_now

from .base import BookingLookup, JobHandler
from .exceptions import UnknownJobTypeError
from .meeting_reminder import MeetingReminderHandler
from .post_session_feedback import PostSessionFeedbackHandler
from .testing import TestJobHandler

logger = logging.getLogger(__name__)


class HandlerRegistry:
    """Lookup table from job type to handler.

    The dispatcher has no per-type logic; adding a job kind means
    registering one more handler here.
    """

    def __init__(self, handlers: Optional[Iterable[JobHandler]] = None):
        self._handlers: Dict[str, JobHandler] = {}
        for handler in handlers or ():
            self.register(handler)

    def register(self, handler: JobHandler) -> None:
        """Register ``handler`` under its ``job_type``.

        Raises:
            ValueError: If the handler has no job_type or the type is taken
        """
        if not handler.job_type:
            raise ValueError(f"{type(handler).__name__} does not declare a job_type")
        if handler.job_type in self._handlers:
            raise ValueError(f"A handler for '{handler.job_type}' is already registered")
        self._handlers[handler.job_type] = handler

    def get(self, job_type: str) -> JobHandler:
        """Return the handler for ``job_type``.

        Raises:
            UnknownJobTypeError: If nothing is registered for the type
        """
        try:
            return self._handlers[job_type]
        except KeyError:
            raise UnknownJobTypeError(job_type) from None

    @property
    def job_types(self) -> List[str]:
        return sorted(self._handlers)

    def __contains__(self, job_type: str) -> bool:
        return job_type in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)


def build_default_registry(
    gateway: NotificationGateway,
    bookings: BookingLookup,
    jobs_config: JobsConfig,
    site_url: str,
    clock: Callable = utc_now,
) -> HandlerRegistry:
    """Create a registry with the built-in handlers.

    Example:
        >>> registry = build_default_registry(gateway, bookings, JobsConfig(), "https://daiyet.co")
        >>> registry.job_types
        ['meeting_reminder', 'post_session_feedback', 'test']
    """
    registry = HandlerRegistry(
        [
            MeetingReminderHandler(
                gateway,
                bookings,
                retry_missing_bookings=jobs_config.retry_missing_bookings,
                clock=clock,
            ),
            PostSessionFeedbackHandler(
                gateway,
                bookings,
                site_url=site_url,
                retry_missing_bookings=jobs_config.retry_missing_bookings,
                clock=clock,
            ),
            TestJobHandler(delay_seconds=jobs_config.test_job_delay_seconds),
        ]
    )
    logger.debug(
        "Handler registry built",
        extra={"event": "jobs.registry.built", "job_types": ",".join(registry.job_types)},
    )
    return registry
