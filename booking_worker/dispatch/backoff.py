"""Retry and exponential backoff policy.

Pure functions of the attempt count: no storage, no clock, no network.
Jobs and emails each get their own RetryPolicy built from configuration.
"""

from dataclasses import dataclass
from enum import Enum

from booking_worker.config.duration import parse_duration
from booking_worker.config.models import BackoffConfig


class RetryAction(str, Enum):
    RETRY = "retry"
    TERMINAL = "terminal"


@dataclass(frozen=True)
class RetryDecision:
    """What to do with an item after a failed attempt.

    Attributes:
        action: RETRY to reschedule, TERMINAL to fail for good
        delay_seconds: Wait before the next attempt (0 when terminal)
    """

    action: RetryAction
    delay_seconds: float = 0.0

    @property
    def should_retry(self) -> bool:
        return self.action is RetryAction.RETRY


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff: ``min(max_delay, base_delay * 2 ** (attempts - 1))``.

    ``attempts`` counts attempts made so far, including the one that just
    failed, so the first retry waits ``base_delay``.

    Example:
        >>> policy = RetryPolicy(base_delay_seconds=300, max_delay_seconds=3600)
        >>> [policy.next_delay(n) for n in (1, 2, 3, 4, 5)]
        [300, 600, 1200, 2400, 3600]
    """

    base_delay_seconds: float
    max_delay_seconds: float

    def __post_init__(self):
        if self.base_delay_seconds <= 0:
            raise ValueError("base_delay_seconds must be positive")
        if self.max_delay_seconds < self.base_delay_seconds:
            raise ValueError("max_delay_seconds must be >= base_delay_seconds")

    @classmethod
    def from_config(cls, config: BackoffConfig) -> "RetryPolicy":
        return cls(
            base_delay_seconds=parse_duration(config.base_delay),
            max_delay_seconds=parse_duration(config.max_delay),
        )

    def next_delay(self, attempts: int) -> float:
        """Delay before the attempt after ``attempts`` failures."""
        exponent = max(attempts, 1) - 1
        # Cap the exponent so huge attempt counts cannot overflow float
        if exponent >= 63:
            return self.max_delay_seconds
        return min(self.max_delay_seconds, self.base_delay_seconds * (2 ** exponent))

    def decide(self, attempts: int, max_attempts: int, retryable: bool = True) -> RetryDecision:
        """Decide between retry and terminal failure.

        Args:
            attempts: Attempts made so far, including the failed one
            max_attempts: Attempt limit for the item
            retryable: False for failures another attempt cannot fix

        Returns:
            RetryDecision
        """
        if not retryable or attempts >= max_attempts:
            return RetryDecision(RetryAction.TERMINAL)
        return RetryDecision(RetryAction.RETRY, self.next_delay(attempts))
