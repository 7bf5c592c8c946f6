"""Tests for the dispatch cycle against a real SQLite database."""

from datetime import timedelta
from unittest.mock import Mock, patch

import pytest

from booking_worker.config.models import AppConfig
from booking_worker.dispatch import Dispatcher, OutcomeStatus
from booking_worker.domain.models import EmailQueueItem, ItemStatus, TestJobPayload
from booking_worker.jobs import (
    DatabaseBookingLookup,
    HandlerRegistry,
    JobHandler,
    TestJobHandler,
    build_default_registry,
)
from booking_worker.notifications.models import DeliveryResult
from booking_worker.persistence import (
    DeadLetterRepository,
    EmailQueueRepository,
    InvalidTransitionError,
    JobRepository,
    PersistenceError,
    get_session,
)
from booking_worker.persistence.schema import EmailQueueModel
from booking_worker.producers import enqueue_email

from tests.helpers import RecordingGateway, seed_booking


@pytest.fixture
def make_dispatcher(db, clock, app_config):
    def _make(gateway, config=None, session_factory=get_session):
        config = config or app_config
        registry = build_default_registry(
            gateway, DatabaseBookingLookup(get_session), config.jobs, "https://daiyet.co", clock=clock
        )
        return Dispatcher(registry, gateway, config, session_factory=session_factory, clock=clock)

    return _make


@pytest.fixture
def dispatcher(make_dispatcher, gateway):
    return make_dispatcher(gateway)


@pytest.fixture
def add_job(db, clock):
    def _add(job_type="test", payload=None, delay=timedelta(0), max_attempts=3):
        with get_session() as session:
            job = JobRepository(session).create(
                job_type, payload or {}, scheduled_for=clock() + delay, now=clock(), max_attempts=max_attempts
            )
        return job.id

    return _add


@pytest.fixture
def add_email(db, clock):
    def _add(to="ada@mail.daiyet.co", template="session_feedback", max_attempts=3):
        with get_session() as session:
            item = enqueue_email(
                session,
                to=to,
                subject="How was your session?",
                template=template,
                data={"userName": "Ada", "feedbackLink": "https://daiyet.co/feedback/booking-1"},
                max_attempts=max_attempts,
                clock=clock,
            )
        return item.id

    return _add


def _job(job_id):
    with get_session() as session:
        return JobRepository(session).get(job_id)


def _email(email_id):
    with get_session() as session:
        return EmailQueueRepository(session).get(email_id)


def _dead_letters(email_id):
    with get_session() as session:
        return DeadLetterRepository(session).list_for_original(email_id)


def _flaky_sessions(*failing_calls):
    """Session factory whose Nth calls (1-based) fail with a locked database."""
    calls = []

    def open_session():
        calls.append(None)
        if len(calls) in failing_calls:
            raise PersistenceError("database is locked")
        return get_session()

    return Mock(side_effect=open_session)


class TestJobProcessing:
    """Tests for claiming, executing and recording jobs."""

    def test_test_job_completes(self, dispatcher, add_job):
        job_id = add_job(payload={"note": "smoke"})

        report = dispatcher.run_cycle()

        assert (report.processed, report.successful, report.failed) == (1, 1, 0)
        job = _job(job_id)
        assert job.status == ItemStatus.COMPLETED
        assert job.attempts == 1
        assert job.error is None

        (success,) = report.to_dict()["details"]["successful"]
        assert success["id"] == job_id
        assert success["type"] == "test"
        assert success["result"]["message"] == "Test job completed"

    def test_meeting_reminder_reads_booking_from_database(self, dispatcher, gateway, add_job):
        with get_session() as session:
            seed_booking(session)
        job_id = add_job("meeting_reminder", {"booking_id": "booking-1", "reminder_minutes": 60})

        dispatcher.run_cycle()

        assert _job(job_id).status == ItemStatus.COMPLETED
        assert [s["to"] for s in gateway.sent] == ["ada@mail.daiyet.co", "dr.eze@mail.daiyet.co"]
        assert gateway.sent[0]["data"]["date"] == "November 5, 2025"

    def test_future_jobs_are_left_alone(self, dispatcher, add_job):
        job_id = add_job(delay=timedelta(minutes=5))

        report = dispatcher.run_cycle()

        assert report.processed == 0
        assert _job(job_id).status == ItemStatus.PENDING
        assert _job(job_id).attempts == 0

    def test_failing_job_walks_through_retries_to_failed(self, dispatcher, add_job, clock):
        job_id = add_job(payload={"should_fail": True})
        start = clock()

        report = dispatcher.run_cycle()
        job = _job(job_id)
        assert report.failed == 1
        assert job.status == ItemStatus.PENDING
        assert job.attempts == 1
        assert job.error == "Test job failure requested"
        assert job.scheduled_for == start + timedelta(minutes=5)

        # Not due yet
        assert dispatcher.run_cycle().processed == 0

        clock.advance(hours=2)
        dispatcher.run_cycle()
        job = _job(job_id)
        assert job.attempts == 2
        assert job.scheduled_for == clock() + timedelta(minutes=10)

        clock.advance(hours=2)
        report = dispatcher.run_cycle()
        job = _job(job_id)
        assert job.status == ItemStatus.FAILED
        assert job.attempts == 3
        assert report.to_dict()["details"]["failed"][0]["status"] == OutcomeStatus.FAILED

        clock.advance(hours=2)
        assert dispatcher.run_cycle().processed == 0

    def test_missing_booking_is_retried(self, dispatcher, add_job):
        job_id = add_job("meeting_reminder", {"booking_id": "booking-404"})

        report = dispatcher.run_cycle()

        job = _job(job_id)
        assert job.status == ItemStatus.PENDING
        assert job.error == "Booking not found: booking-404"
        assert report.job_outcomes[0].status == OutcomeStatus.RETRY_SCHEDULED

    def test_missing_booking_fails_when_retries_disabled(self, make_dispatcher, gateway, add_job):
        config = AppConfig.model_validate({"jobs": {"retry_missing_bookings": False, "test_job_delay_seconds": 0}})
        job_id = add_job("post_session_feedback", {"booking_id": "booking-404"})

        make_dispatcher(gateway, config).run_cycle()

        job = _job(job_id)
        assert job.status == ItemStatus.FAILED
        assert job.attempts == 1

    def test_unknown_type_fails_immediately(self, dispatcher, gateway, add_job):
        job_id = add_job("send_sms", {"to": "+2348000000000"})

        dispatcher.run_cycle()

        job = _job(job_id)
        assert job.status == ItemStatus.FAILED
        assert job.attempts == 1
        assert job.error == "Unknown job type: send_sms"
        assert gateway.sent == []

    def test_invalid_payload_fails_immediately(self, dispatcher, add_job):
        job_id = add_job("meeting_reminder", {"reminder_minutes": 60})

        dispatcher.run_cycle()

        job = _job(job_id)
        assert job.status == ItemStatus.FAILED
        assert job.error.startswith("Invalid meeting_reminder payload")

    def test_unexpected_handler_exception_is_retried(self, db, clock, app_config, gateway, add_job):
        class ExplodingHandler(JobHandler):
            job_type = "explode"
            payload_model = TestJobPayload

            def execute(self, job, payload):
                raise RuntimeError("boom")

        dispatcher = Dispatcher(HandlerRegistry([ExplodingHandler()]), gateway, app_config, clock=clock)
        job_id = add_job("explode")

        dispatcher.run_cycle()

        job = _job(job_id)
        assert job.status == ItemStatus.PENDING
        assert job.error == "Unexpected error: boom"

    def test_already_claimed_job_is_skipped(self, dispatcher, add_job, clock):
        job_id = add_job()
        job = _job(job_id)
        with get_session() as session:
            JobRepository(session).claim(job_id, clock())

        outcome = dispatcher._process_job(job)

        assert outcome.status == OutcomeStatus.SKIPPED
        assert outcome.claimed is False
        assert _job(job_id).attempts == 1

    def test_batch_size_bounds_a_cycle(self, make_dispatcher, gateway, add_job):
        config = AppConfig.model_validate({"dispatch": {"job_batch_size": 2}, "jobs": {"test_job_delay_seconds": 0}})
        for _ in range(3):
            add_job()

        dispatcher = make_dispatcher(gateway, config)

        assert dispatcher.run_cycle().processed == 2
        assert dispatcher.run_cycle().processed == 1

    def test_many_jobs_run_concurrently(self, dispatcher, add_job):
        job_ids = [add_job(payload={"n": n}) for n in range(8)]

        report = dispatcher.run_cycle()

        assert report.processed == 8
        assert report.successful == 8
        assert all(_job(job_id).status == ItemStatus.COMPLETED for job_id in job_ids)


class TestEmailProcessing:
    """Tests for draining the email queue."""

    def test_email_sent(self, dispatcher, gateway, add_email):
        email_id = add_email()

        report = dispatcher.run_cycle()

        assert report.emails_processed == 1
        email = _email(email_id)
        assert email.status == ItemStatus.COMPLETED
        assert email.completed_at is not None
        assert gateway.sent[0]["template"] == "session_feedback"

    def test_email_succeeds_on_second_attempt(self, make_dispatcher, add_email, clock):
        gateway = RecordingGateway(results=[DeliveryResult.failure("Brevo API error: 503 unavailable")])
        dispatcher = make_dispatcher(gateway)
        email_id = add_email()

        report = dispatcher.run_cycle()
        email = _email(email_id)
        assert report.emails_failed == 1
        assert email.status == ItemStatus.PENDING
        assert email.error == "Brevo API error: 503 unavailable"
        assert email.scheduled_for == clock() + timedelta(minutes=1)

        clock.advance(minutes=2)
        report = dispatcher.run_cycle()

        email = _email(email_id)
        assert report.emails_processed == 1
        assert email.status == ItemStatus.COMPLETED
        assert email.attempts == 2
        assert _dead_letters(email_id) == []

    def test_exhausted_email_is_dead_lettered_once(self, make_dispatcher, add_email, clock):
        gateway = RecordingGateway(default=DeliveryResult.failure("Brevo API error: 500 boom"))
        dispatcher = make_dispatcher(gateway)
        email_id = add_email()

        for _ in range(4):
            dispatcher.run_cycle()
            clock.advance(hours=1)

        email = _email(email_id)
        assert email.status == ItemStatus.FAILED
        assert email.attempts == 3
        assert len(gateway.sent) == 3

        (entry,) = _dead_letters(email_id)
        assert entry.attempts == 3
        assert entry.error == "Brevo API error: 500 boom"
        assert entry.payload["to"] == "ada@mail.daiyet.co"

    def test_invalid_payload_is_dead_lettered_without_sending(self, dispatcher, gateway, clock, db):
        now = clock()
        item = EmailQueueItem(
            id="email-bad", payload={"subject": "Hi"}, scheduled_for=now, created_at=now, updated_at=now
        )
        with get_session() as session:
            session.add(EmailQueueModel.from_domain(item))

        report = dispatcher.run_cycle()

        email = _email("email-bad")
        assert email.status == ItemStatus.FAILED
        assert email.attempts == 1
        assert email.error.startswith("Invalid email payload")
        assert len(_dead_letters("email-bad")) == 1
        assert report.emails_failed == 1
        assert gateway.sent == []

    def test_gateway_exception_is_retried(self, make_dispatcher, add_email):
        gateway = Mock()
        gateway.send.side_effect = RuntimeError("socket closed")
        email_id = add_email()

        make_dispatcher(gateway).run_cycle()

        email = _email(email_id)
        assert email.status == ItemStatus.PENDING
        assert email.error == "Unexpected delivery error: socket closed"

    def test_emails_and_jobs_in_one_cycle(self, dispatcher, add_email, add_job):
        add_email()
        add_job()

        data = dispatcher.run_cycle().to_dict()

        assert data["success"] is True
        assert data["processed"] == 1
        assert data["emailsProcessed"] == 1
        assert data["emailsFailed"] == 0
        assert len(data["details"]["emails"]) == 1


class TestCycleFailures:
    def test_selection_failure_propagates(self, clock, app_config, gateway):
        session_factory = Mock(side_effect=PersistenceError("database is locked"))
        dispatcher = Dispatcher(
            HandlerRegistry([TestJobHandler()]), gateway, app_config, session_factory=session_factory, clock=clock
        )

        with pytest.raises(PersistenceError, match="database is locked"):
            dispatcher.run_cycle()

    def test_empty_cycle(self, dispatcher):
        report = dispatcher.run_cycle()

        assert report.to_dict() == {
            "success": True,
            "processed": 0,
            "successful": 0,
            "failed": 0,
            "skipped": 0,
            "emailsProcessed": 0,
            "emailsFailed": 0,
            "details": {"successful": [], "failed": [], "emails": []},
            "timestamp": "2025-11-04T12:00:00.000Z",
        }


class TestStoreFailuresDuringCycle:
    """A failed claim or outcome write is contained to its own item."""

    def test_outcome_write_is_retried_after_locked_database(self, make_dispatcher, gateway, add_job, clock):
        job_id = add_job(payload={"should_fail": True})
        # 1: selection, 2: claim, 3: first outcome write
        sessions = _flaky_sessions(3)
        dispatcher = make_dispatcher(gateway, session_factory=sessions)

        report = dispatcher.run_cycle()

        (outcome,) = report.job_outcomes
        assert outcome.status == OutcomeStatus.RETRY_SCHEDULED
        assert outcome.next_attempt_at == clock() + timedelta(minutes=5)
        assert sessions.call_count == 4
        job = _job(job_id)
        assert job.status == ItemStatus.PENDING
        assert job.attempts == 1
        assert job.error == "Test job failure requested"

        clock.advance(hours=2)
        dispatcher.run_cycle()
        assert _job(job_id).attempts == 2

    def test_email_outcome_write_is_retried(self, make_dispatcher, gateway, add_email):
        email_id = add_email()
        dispatcher = make_dispatcher(gateway, session_factory=_flaky_sessions(3))

        report = dispatcher.run_cycle()

        assert report.email_outcomes[0].status == OutcomeStatus.COMPLETED
        assert report.emails_failed == 0
        assert _email(email_id).status == ItemStatus.COMPLETED
        assert len(gateway.sent) == 1

    def test_outcome_write_gives_up_after_bounded_attempts(self, make_dispatcher, gateway, add_job):
        add_job()
        sessions = _flaky_sessions(3, 4, 5)
        dispatcher = make_dispatcher(gateway, session_factory=sessions)

        report = dispatcher.run_cycle()

        (outcome,) = report.job_outcomes
        assert outcome.status == OutcomeStatus.ERROR
        assert outcome.claimed is True
        assert outcome.error == "database is locked"
        assert outcome.result is None
        assert (report.processed, report.successful, report.failed) == (1, 0, 1)
        assert sessions.call_count == 5

    def test_row_left_processing_by_someone_else_is_not_retried(self, make_dispatcher, gateway, add_job):
        add_job()
        sessions = Mock(side_effect=get_session)
        dispatcher = make_dispatcher(gateway, session_factory=sessions)

        with patch.object(
            JobRepository, "mark_completed", side_effect=InvalidTransitionError("Job job-1 is not processing")
        ):
            report = dispatcher.run_cycle()

        assert report.job_outcomes[0].status == OutcomeStatus.ERROR
        assert sessions.call_count == 3

    def test_claim_failure_does_not_stop_other_items(self, make_dispatcher, gateway, add_job):
        config = AppConfig.model_validate({"dispatch": {"max_concurrency": 1}, "jobs": {"test_job_delay_seconds": 0}})
        first = add_job(delay=timedelta(minutes=-1))
        second = add_job()
        # 1: selection, 2: claim of the older job
        dispatcher = make_dispatcher(gateway, config=config, session_factory=_flaky_sessions(2))

        report = dispatcher.run_cycle()

        outcomes = {outcome.item_id: outcome for outcome in report.job_outcomes}
        assert outcomes[first].status == OutcomeStatus.ERROR
        assert outcomes[first].claimed is False
        assert outcomes[second].status == OutcomeStatus.COMPLETED
        assert (report.processed, report.successful, report.failed) == (1, 1, 1)

        assert (_job(first).status, _job(first).attempts) == (ItemStatus.PENDING, 0)
        assert _job(second).status == ItemStatus.COMPLETED

    def test_outcome_failure_does_not_stop_other_items(self, make_dispatcher, gateway, add_job):
        config = AppConfig.model_validate({"dispatch": {"max_concurrency": 1}, "jobs": {"test_job_delay_seconds": 0}})
        first = add_job(delay=timedelta(minutes=-1))
        second = add_job()
        # 1: selection, 2: claim, 3-5: every outcome write for the older job
        dispatcher = make_dispatcher(gateway, config=config, session_factory=_flaky_sessions(3, 4, 5))

        report = dispatcher.run_cycle()

        outcomes = {outcome.item_id: outcome for outcome in report.job_outcomes}
        assert outcomes[first].status == OutcomeStatus.ERROR
        assert outcomes[second].status == OutcomeStatus.COMPLETED
        assert (report.processed, report.successful, report.failed) == (2, 1, 1)
        assert _job(second).status == ItemStatus.COMPLETED
