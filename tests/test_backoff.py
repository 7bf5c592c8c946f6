"""Unit tests for the retry and backoff policy."""

import pytest

from booking_worker.config.models import BackoffConfig, RetryConfig
from booking_worker.dispatch.backoff import RetryAction, RetryDecision, RetryPolicy


class TestRetryPolicy:
    """Tests for RetryPolicy delay calculation."""

    def test_delays_double_until_cap(self):
        policy = RetryPolicy(base_delay_seconds=300, max_delay_seconds=3600)

        assert [policy.next_delay(n) for n in range(1, 7)] == [300, 600, 1200, 2400, 3600, 3600]

    def test_delay_never_decreases_and_respects_cap(self):
        policy = RetryPolicy(base_delay_seconds=60, max_delay_seconds=3600)
        delays = [policy.next_delay(n) for n in range(1, 200)]

        assert delays == sorted(delays)
        assert max(delays) == 3600

    def test_zero_attempts_uses_base_delay(self):
        policy = RetryPolicy(base_delay_seconds=60, max_delay_seconds=3600)
        assert policy.next_delay(0) == 60

    def test_huge_attempt_counts(self):
        policy = RetryPolicy(base_delay_seconds=60, max_delay_seconds=3600)
        assert policy.next_delay(10_000) == 3600

    def test_invalid_policy(self):
        with pytest.raises(ValueError):
            RetryPolicy(base_delay_seconds=0, max_delay_seconds=60)
        with pytest.raises(ValueError):
            RetryPolicy(base_delay_seconds=120, max_delay_seconds=60)

    def test_from_config(self):
        policy = RetryPolicy.from_config(BackoffConfig(base_delay="5m", max_delay="PT1H"))

        assert policy.base_delay_seconds == 300
        assert policy.max_delay_seconds == 3600

    def test_default_policies(self):
        retry = RetryConfig()

        assert RetryPolicy.from_config(retry.jobs).next_delay(1) == 300
        assert RetryPolicy.from_config(retry.emails).next_delay(1) == 60


class TestRetryDecision:
    """Tests for retry vs terminal decisions."""

    @pytest.fixture
    def policy(self):
        return RetryPolicy(base_delay_seconds=300, max_delay_seconds=3600)

    def test_retry_while_attempts_remain(self, policy):
        decision = policy.decide(attempts=1, max_attempts=3)

        assert decision.should_retry
        assert decision.delay_seconds == 300

    def test_second_retry_waits_longer(self, policy):
        assert policy.decide(attempts=2, max_attempts=3).delay_seconds == 600

    def test_terminal_when_attempts_exhausted(self, policy):
        decision = policy.decide(attempts=3, max_attempts=3)

        assert decision == RetryDecision(RetryAction.TERMINAL)
        assert not decision.should_retry

    def test_non_retryable_is_terminal_immediately(self, policy):
        decision = policy.decide(attempts=1, max_attempts=3, retryable=False)

        assert decision.action is RetryAction.TERMINAL
        assert decision.delay_seconds == 0

    def test_single_attempt_budget(self, policy):
        assert not policy.decide(attempts=1, max_attempts=1).should_retry
