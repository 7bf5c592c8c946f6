"""Test job handler used to exercise the dispatch and retry machinery."""

import time
from typing import Callable

from booking_worker.domain.models import JobType, ScheduledJob, TestJobPayload
from booking_worker.logging import get_logger

from .base import HandlerResult, JobHandler
from .exceptions import HandlerError

logger = get_logger(__name__, component="jobs")


class TestJobHandler(JobHandler):
    """Sleeps briefly, then echoes the payload.

    ``should_fail`` makes the job raise a retryable error so operators can
    watch a job walk through its retries into ``failed``.
    """

    __test__ = False  # not a pytest test class

    job_type = JobType.TEST.value
    payload_model = TestJobPayload

    def __init__(self, delay_seconds: float = 0.5, sleep: Callable[[float], None] = time.sleep):
        self.delay_seconds = delay_seconds
        self._sleep = sleep

    def execute(self, job: ScheduledJob, payload: TestJobPayload) -> HandlerResult:
        delay = self.delay_seconds if payload.delay_seconds is None else payload.delay_seconds
        if delay > 0:
            self._sleep(delay)

        if payload.should_fail:
            message = payload.failure_message or "Test job failure requested"
            logger.info(
                "Test job failing on request",
                extra={"event": "job.test.failing", "attempt": job.attempts},
            )
            raise HandlerError(message, retryable=True)

        return HandlerResult(
            data={"message": "Test job completed", "payload": payload.model_dump(), "delay_seconds": delay}
        )
