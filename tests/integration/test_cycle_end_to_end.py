"""End-to-end tests: producers write rows, the HTTP trigger drains them.

Runs the real database, repositories, handlers, dispatcher and FastAPI app.
Only the email provider is replaced by a RecordingGateway.
"""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from booking_worker.api import create_app
from booking_worker.dispatch import Dispatcher
from booking_worker.domain.models import ItemStatus
from booking_worker.jobs import DatabaseBookingLookup, build_default_registry
from booking_worker.notifications.models import DeliveryResult
from booking_worker.persistence import (
    DeadLetterRepository,
    EmailQueueRepository,
    JobRepository,
    get_session,
)
from booking_worker.producers import enqueue_email, schedule_booking_jobs

from tests.helpers import RecordingGateway, seed_booking

SECRET = "integration-secret"
AUTH = {"Authorization": f"Bearer {SECRET}"}


@pytest.fixture
def worker(db, clock, app_config):
    def _build(gateway):
        registry = build_default_registry(
            gateway, DatabaseBookingLookup(get_session), app_config.jobs, "https://daiyet.co", clock=clock
        )
        dispatcher = Dispatcher(registry, gateway, app_config, clock=clock)
        return TestClient(create_app(dispatcher, cron_secret=SECRET))

    return _build


def _jobs(status):
    with get_session() as session:
        return JobRepository(session).list_by_status(status)


def test_booking_lifecycle(worker, clock):
    """A booking's reminders and feedback request go out as their times arrive."""
    gateway = RecordingGateway()
    client = worker(gateway)
    with get_session() as session:
        seed_booking(session)
        schedule_booking_jobs(session, "booking-1", clock=clock)

    # 2025-11-04 12:00: nothing due yet
    body = client.post("/run", headers=AUTH).json()
    assert body["processed"] == 0
    assert gateway.sent == []

    # 24h reminder due at 2025-11-04 15:30
    clock.advance(hours=3, minutes=30)
    body = client.post("/run", headers=AUTH).json()
    assert (body["processed"], body["successful"]) == (1, 1)
    assert [s["subject"] for s in gateway.sent] == [
        "Meeting Reminder: Your session starts in 24 hours",
        "Meeting Reminder: Session with Ada Obi in 24 hours",
    ]

    # 1h reminder and, later, the feedback request
    clock.advance(days=1)
    client.post("/run", headers=AUTH)
    clock.advance(hours=2)
    client.post("/run", headers=AUTH)

    assert len(_jobs(ItemStatus.COMPLETED)) == 3
    assert _jobs(ItemStatus.PENDING) == []
    assert gateway.sent[-1]["template"] == "session_feedback"
    assert gateway.sent[-1]["data"]["feedbackLink"] == "https://daiyet.co/feedback/booking-1"


def test_unauthorized_trigger_mutates_nothing(worker, clock):
    gateway = RecordingGateway()
    client = worker(gateway)
    with get_session() as session:
        job_id = JobRepository(session).create("test", {}, scheduled_for=clock(), now=clock()).id
        email_id = enqueue_email(session, "ada@mail.daiyet.co", "Hi", "generic", clock=clock).id

    response = client.post("/run", headers={"Authorization": "Bearer wrong"})

    assert response.status_code == 401
    with get_session() as session:
        job = JobRepository(session).get(job_id)
        email = EmailQueueRepository(session).get(email_id)
    assert (job.status, job.attempts) == (ItemStatus.PENDING, 0)
    assert (email.status, email.attempts) == (ItemStatus.PENDING, 0)
    assert gateway.sent == []


def test_failing_email_ends_in_dead_letter_queue(worker, clock):
    gateway = RecordingGateway(default=DeliveryResult.failure("Brevo API error: 400 invalid sender"))
    client = worker(gateway)
    with get_session() as session:
        email_id = enqueue_email(
            session, "ada@mail.daiyet.co", "Payment received", "payment_confirmation",
            {"amount": "15,000", "currency": "NGN"}, clock=clock,
        ).id

    statuses = []
    for _ in range(3):
        body = client.post("/run", headers=AUTH).json()
        statuses.append(body["details"]["emails"][0]["status"])
        clock.advance(hours=1)

    assert statuses == ["retry_scheduled", "retry_scheduled", "failed"]
    assert client.post("/run", headers=AUTH).json()["emailsFailed"] == 0

    with get_session() as session:
        entries = DeadLetterRepository(session).list_all()
    assert len(entries) == 1
    assert entries[0].original_id == email_id
    assert entries[0].payload["template"] == "payment_confirmation"


def test_repeated_triggers_run_each_item_once(worker, clock):
    """A second cycle finds nothing left to claim."""
    gateway = RecordingGateway()
    client = worker(gateway)
    with get_session() as session:
        for n in range(6):
            JobRepository(session).create("test", {"n": n}, scheduled_for=clock() - timedelta(minutes=1), now=clock())

    first = client.post("/run", headers=AUTH).json()
    second = client.post("/run", headers=AUTH).json()

    assert first["processed"] + second["processed"] == 6
    completed = _jobs(ItemStatus.COMPLETED)
    assert len(completed) == 6
    assert all(job.attempts == 1 for job in completed)
