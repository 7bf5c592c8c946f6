"""Scheduler module for periodic dispatch cycles."""

from .service import CYCLE_JOB_ID, SchedulerService

__all__ = ["SchedulerService", "CYCLE_JOB_ID"]
