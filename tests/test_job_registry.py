"""Tests for the job handler registry."""

import pytest

from booking_worker.config.models import JobsConfig
from booking_worker.jobs import (
    HandlerRegistry,
    MeetingReminderHandler,
    TestJobHandler,
    UnknownJobTypeError,
    build_default_registry,
)

from tests.helpers import StaticBookingLookup


def test_default_registry_covers_built_in_types(gateway):
    registry = build_default_registry(gateway, StaticBookingLookup(), JobsConfig(), "https://daiyet.co")

    assert registry.job_types == ["meeting_reminder", "post_session_feedback", "test"]
    assert len(registry) == 3
    assert "meeting_reminder" in registry


def test_default_registry_applies_jobs_config(gateway):
    config = JobsConfig(test_job_delay_seconds=2.5, retry_missing_bookings=False)

    registry = build_default_registry(gateway, StaticBookingLookup(), config, "https://daiyet.co")

    assert registry.get("test").delay_seconds == 2.5
    assert registry.get("meeting_reminder").retry_missing_bookings is False
    assert registry.get("post_session_feedback").site_url == "https://daiyet.co"


def test_unknown_type_is_not_retryable():
    registry = HandlerRegistry([TestJobHandler()])

    with pytest.raises(UnknownJobTypeError) as exc_info:
        registry.get("send_sms")

    assert exc_info.value.retryable is False
    assert exc_info.value.message == "Unknown job type: send_sms"


def test_duplicate_registration_is_rejected(gateway):
    registry = HandlerRegistry([MeetingReminderHandler(gateway, StaticBookingLookup())])

    with pytest.raises(ValueError, match="already registered"):
        registry.register(MeetingReminderHandler(gateway, StaticBookingLookup()))


def test_handler_without_type_is_rejected():
    handler = TestJobHandler()
    handler.job_type = ""

    with pytest.raises(ValueError, match="does not declare a job_type"):
        HandlerRegistry([handler])
