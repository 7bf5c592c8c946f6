"""Dispatch cycle orchestration and retry policy."""

from .backoff import RetryAction, RetryDecision, RetryPolicy
from .models import CycleReport, ItemOutcome, OutcomeStatus
from .runner import Dispatcher

__all__ = [
    "Dispatcher",
    "CycleReport",
    "ItemOutcome",
    "OutcomeStatus",
    "RetryPolicy",
    "RetryDecision",
    "RetryAction",
]
