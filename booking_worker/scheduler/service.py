"""Interval scheduler that triggers dispatch cycles in daemon mode."""

import threading
from datetime import datetime, timezone
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from booking_worker.logging import get_logger

logger = get_logger(__name__, component="scheduler")

CYCLE_JOB_ID = "dispatch-cycle"


class SchedulerService:
    """
    Ticks the dispatch cycle every ``interval_seconds`` on a background thread.

    The main thread stays free to wait on signals. A cycle that is still
    draining when the next tick arrives delays that tick instead of
    overlapping it, and missed ticks collapse into one.
    """

    def __init__(
        self,
        cycle_callable: Callable[[], object],
        interval_seconds: int,
        shutdown_event: Optional[threading.Event] = None,
    ):
        """
        Args:
            cycle_callable: One dispatch cycle (normally Dispatcher.run_cycle)
            interval_seconds: Seconds between cycle starts
            shutdown_event: Set after the last cycle has been stopped
        """
        self.cycle_callable = cycle_callable
        self.interval_seconds = interval_seconds
        self.shutdown_event = shutdown_event
        self.cycles_run = 0

        self.scheduler = BackgroundScheduler(
            job_defaults={
                "max_instances": 1,
                "coalesce": True,
                "misfire_grace_time": interval_seconds,
            },
            timezone=timezone.utc,
        )

    def _run_cycle(self) -> None:
        self.cycles_run += 1
        try:
            self.cycle_callable()
        except Exception as e:
            # The next tick still fires
            logger.error(
                f"Dispatch cycle {self.cycles_run} failed: {e}",
                extra={
                    "event": "scheduler.cycle_failed",
                    "cycle_number": self.cycles_run,
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )

    def start(self) -> None:
        """Begin ticking dispatch cycles.

        The first cycle is due at once so queued work does not wait a whole
        interval after a restart.
        """
        first_cycle_at = datetime.now(timezone.utc)
        self.scheduler.add_job(
            func=self._run_cycle,
            trigger=IntervalTrigger(seconds=self.interval_seconds, timezone=timezone.utc),
            id=CYCLE_JOB_ID,
            name="Booking worker dispatch cycle",
            replace_existing=True,
            next_run_time=first_cycle_at,
        )
        self.scheduler.start()

        logger.info(
            f"Dispatch cycles scheduled every {self.interval_seconds}s",
            extra={
                "event": "scheduler.started",
                "interval_seconds": self.interval_seconds,
                "next_run_time": first_cycle_at.isoformat(),
            },
        )

    def shutdown(self, wait: bool = False) -> None:
        """
        Stop scheduling dispatch cycles.

        No new cycle starts after this call. Rows a running cycle has
        already claimed are only finished when ``wait`` is True.

        Args:
            wait: Block until the cycle in progress has written its outcomes
        """
        logger.info(
            "Stopping dispatch cycles",
            extra={"event": "scheduler.stopping", "wait_for_cycle": wait, "cycles_run": self.cycles_run},
        )
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
        if self.shutdown_event:
            self.shutdown_event.set()
        logger.info("Dispatch cycles stopped", extra={"event": "scheduler.stopped"})

    def trigger_now(self) -> None:
        """Run one dispatch cycle in the calling thread, outside the interval."""
        logger.info("Running an out-of-band dispatch cycle", extra={"event": "scheduler.trigger_now"})
        self._run_cycle()

    def is_running(self) -> bool:
        return self.scheduler.running

    def get_next_run_time(self) -> Optional[datetime]:
        job = self.scheduler.get_job(CYCLE_JOB_ID)
        return job.next_run_time if job else None
