"""Data models for dispatch cycle tracking and reporting."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from booking_worker.utils import format_timestamp


class OutcomeStatus:
    """Per-item outcome labels used in cycle reports."""

    COMPLETED = "completed"
    RETRY_SCHEDULED = "retry_scheduled"
    FAILED = "failed"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass
class ItemOutcome:
    """
    Result of processing one job or email within a cycle.

    Attributes:
        item_id: Job or email id
        kind: "job" or "email"
        status: One of the OutcomeStatus labels
        job_type: Job type (jobs only)
        attempts: Attempt count after this cycle's claim
        error: Failure message, if any
        next_attempt_at: When a scheduled retry becomes due
        result: Handler result summary (successful jobs only)
        claimed: Whether this cycle claimed the item (False when skipped
            or when the claim itself failed)
    """

    item_id: str
    kind: str
    status: str
    job_type: Optional[str] = None
    attempts: Optional[int] = None
    error: Optional[str] = None
    next_attempt_at: Optional[datetime] = None
    result: Optional[Dict[str, Any]] = None
    claimed: bool = True

    @property
    def succeeded(self) -> bool:
        return self.status == OutcomeStatus.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.item_id, "status": self.status}
        if self.job_type is not None:
            data["type"] = self.job_type
        if self.attempts is not None:
            data["attempts"] = self.attempts
        if self.error is not None:
            data["error"] = self.error
        if self.next_attempt_at is not None:
            data["next_attempt_at"] = format_timestamp(self.next_attempt_at)
        if self.result is not None:
            data["result"] = self.result
        return data


@dataclass
class CycleReport:
    """
    Aggregate results of one dispatch cycle.

    Counters follow the HTTP response contract:
    - processed: jobs claimed and executed this cycle
    - successful / failed: executed jobs that completed / did not complete
      (failed includes scheduled retries)
    - skipped: items another invocation had already claimed
    - emails_processed: emails delivered; emails_failed: emails not delivered
    """

    cycle_id: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    job_outcomes: List[ItemOutcome] = field(default_factory=list)
    email_outcomes: List[ItemOutcome] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return sum(1 for o in self.job_outcomes if o.claimed)

    @property
    def successful(self) -> int:
        return sum(1 for o in self.job_outcomes if o.succeeded)

    @property
    def failed(self) -> int:
        return sum(
            1
            for o in self.job_outcomes
            if o.status in (OutcomeStatus.FAILED, OutcomeStatus.RETRY_SCHEDULED, OutcomeStatus.ERROR)
        )

    @property
    def skipped(self) -> int:
        return sum(
            1 for o in self.job_outcomes + self.email_outcomes if o.status == OutcomeStatus.SKIPPED
        )

    @property
    def emails_processed(self) -> int:
        return sum(1 for o in self.email_outcomes if o.succeeded)

    @property
    def emails_failed(self) -> int:
        return sum(
            1
            for o in self.email_outcomes
            if o.status in (OutcomeStatus.FAILED, OutcomeStatus.RETRY_SCHEDULED, OutcomeStatus.ERROR)
        )

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        """Serialise to the trigger endpoint's response body."""
        return {
            "success": True,
            "processed": self.processed,
            "successful": self.successful,
            "failed": self.failed,
            "skipped": self.skipped,
            "emailsProcessed": self.emails_processed,
            "emailsFailed": self.emails_failed,
            "details": {
                "successful": [o.to_dict() for o in self.job_outcomes if o.succeeded],
                "failed": [
                    o.to_dict()
                    for o in self.job_outcomes
                    if not o.succeeded and o.status != OutcomeStatus.SKIPPED
                ],
                "emails": [o.to_dict() for o in self.email_outcomes],
            },
            "timestamp": format_timestamp(self.finished_at or self.started_at),
        }
