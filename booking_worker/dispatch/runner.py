"""Dispatch cycle: drain due emails, then run due jobs.

One call to ``Dispatcher.run_cycle`` is one bounded batch. Items are
processed in parallel on a thread pool; each item is claimed, executed and
has its outcome written in short, separate sessions so that a slow handler
never holds a database transaction open.
"""

import contextvars
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Sequence, Tuple
from uuid import uuid4

from pydantic import ValidationError

from booking_worker.config.models import AppConfig
from booking_worker.domain.models import EmailPayload, EmailQueueItem, ScheduledJob
from booking_worker.jobs.exceptions import HandlerError
from booking_worker.jobs.registry import HandlerRegistry
from booking_worker.logging import get_logger, log_context
from booking_worker.notifications.gateway import NotificationGateway
from booking_worker.notifications.models import DeliveryResult
from booking_worker.persistence.database import get_session
from booking_worker.persistence.exceptions import InvalidTransitionError, PersistenceError
from booking_worker.persistence.repositories import EmailQueueRepository, JobRepository
from booking_worker.utils import utc_now

from .backoff import RetryPolicy
from .models import CycleReport, ItemOutcome, OutcomeStatus

logger = get_logger(__name__, component="dispatch")

OUTCOME_SAVE_ATTEMPTS = 3


class Dispatcher:
    """Selects due work and processes each item independently.

    Args:
        registry: Job type to handler mapping
        gateway: Email delivery gateway for queued emails
        config: Application configuration (batch sizes, retry policies)
        session_factory: Context manager yielding a committed-on-exit session
        clock: Returns the current UTC time
    """

    def __init__(
        self,
        registry: HandlerRegistry,
        gateway: NotificationGateway,
        config: AppConfig,
        session_factory: Callable = get_session,
        clock: Callable = utc_now,
    ):
        self.registry = registry
        self.gateway = gateway
        self.dispatch_config = config.dispatch
        self.job_policy = RetryPolicy.from_config(config.retry.jobs)
        self.email_policy = RetryPolicy.from_config(config.retry.emails)
        self._session_factory = session_factory
        self._clock = clock

    def run_cycle(self) -> CycleReport:
        """
        Run one dispatch cycle.

        This method:
        1. Selects due emails and due jobs (oldest schedule first, bounded batches)
        2. Claims and delivers each email, saving its outcome
        3. Claims and executes each job through its handler, saving its outcome
        4. Returns a CycleReport

        Item-level failures are recorded in the report and never abort the batch.

        Returns:
            CycleReport for this cycle

        Raises:
            PersistenceError: If due work cannot be selected
        """
        cycle_id = uuid4().hex
        started_at = self._clock()

        with log_context(cycle_id=cycle_id):
            logger.info("Dispatch cycle started", extra={"event": "dispatch.cycle.started"})

            try:
                with self._session_factory() as session:
                    emails = EmailQueueRepository(session).find_due(
                        started_at, self.dispatch_config.email_batch_size
                    )
                    jobs = JobRepository(session).find_due(
                        started_at, self.dispatch_config.job_batch_size
                    )
            except PersistenceError as e:
                logger.error(
                    f"Could not select due work: {e}",
                    extra={"event": "dispatch.cycle.failed", "error": str(e)},
                )
                raise

            logger.info(
                f"Selected {len(emails)} emails and {len(jobs)} jobs",
                extra={
                    "event": "dispatch.cycle.selected",
                    "email_count": len(emails),
                    "job_count": len(jobs),
                },
            )

            report = CycleReport(cycle_id=cycle_id, started_at=started_at)
            report.email_outcomes = self._run_all(self._process_email, emails, "email")
            report.job_outcomes = self._run_all(self._process_job, jobs, "job")
            report.finished_at = self._clock()

            logger.info(
                "Dispatch cycle completed",
                extra={
                    "event": "dispatch.cycle.completed",
                    "duration_ms": int(report.duration_seconds * 1000),
                    "processed": report.processed,
                    "successful": report.successful,
                    "failed": report.failed,
                    "skipped": report.skipped,
                    "emails_processed": report.emails_processed,
                    "emails_failed": report.emails_failed,
                },
            )
            return report

    def _run_all(self, process: Callable, items: Sequence, kind: str) -> List[ItemOutcome]:
        if not items:
            return []

        def guarded(item) -> ItemOutcome:
            try:
                return process(item)
            except Exception as e:
                logger.error(
                    f"Unexpected error processing {kind} {item.id}: {e}",
                    extra={"event": f"{kind}.unexpected_error", "item_id": item.id},
                    exc_info=True,
                )
                return ItemOutcome(item_id=item.id, kind=kind, status=OutcomeStatus.ERROR, error=str(e))

        workers = min(self.dispatch_config.max_concurrency, len(items))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"dispatch-{kind}") as pool:
            # One context copy per task: a Context cannot be entered by two threads at once
            futures = [pool.submit(contextvars.copy_context().run, guarded, item) for item in items]
            return [future.result() for future in futures]

    def _process_email(self, item: EmailQueueItem) -> ItemOutcome:
        with log_context(email_id=item.id):
            try:
                with self._session_factory() as session:
                    claimed = EmailQueueRepository(session).claim(item.id, self._clock())
            except PersistenceError as e:
                return self._claim_error("email", item.id, e)

            if claimed is None:
                logger.info("Email already claimed, skipping", extra={"event": "email.skipped"})
                return ItemOutcome(
                    item_id=item.id, kind="email", status=OutcomeStatus.SKIPPED, claimed=False,
                    error="already claimed",
                )

            logger.info(
                "Email claimed",
                extra={
                    "event": "email.claimed",
                    "attempt": claimed.attempts,
                    "template": claimed.payload.get("template"),
                },
            )

            delivery, retryable = self._deliver(claimed)
            outcome = ItemOutcome(
                item_id=claimed.id, kind="email", status=OutcomeStatus.COMPLETED, attempts=claimed.attempts
            )

            if delivery.success:
                def write(session):
                    EmailQueueRepository(session).mark_completed(claimed.id, self._clock())

                if self._save_outcome(outcome, write):
                    logger.info("Email sent", extra={"event": "email.sent", "attempt": claimed.attempts})
                return outcome

            outcome.error = delivery.error
            decision = self.email_policy.decide(claimed.attempts, claimed.max_attempts, retryable)
            if decision.should_retry:
                outcome.status = OutcomeStatus.RETRY_SCHEDULED

                def write(session):
                    outcome.next_attempt_at = EmailQueueRepository(session).schedule_retry(
                        claimed.id, delivery.error, decision.delay_seconds, self._clock()
                    )

                if self._save_outcome(outcome, write):
                    logger.warning(
                        f"Email delivery failed, retry scheduled: {delivery.error}",
                        extra={
                            "event": "email.retry_scheduled",
                            "attempt": claimed.attempts,
                            "delay_seconds": decision.delay_seconds,
                        },
                    )
                return outcome

            outcome.status = OutcomeStatus.FAILED
            dead_letter = {}

            def write(session):
                entry = EmailQueueRepository(session).mark_failed(claimed.id, delivery.error, self._clock())
                dead_letter["id"] = entry.id

            if self._save_outcome(outcome, write):
                logger.error(
                    f"Email failed permanently: {delivery.error}",
                    extra={
                        "event": "email.dead_lettered",
                        "attempt": claimed.attempts,
                        "dead_letter_id": dead_letter["id"],
                    },
                )
            return outcome

    def _deliver(self, item: EmailQueueItem) -> Tuple[DeliveryResult, bool]:
        """Send one queued email.

        Returns:
            (DeliveryResult, retryable). A payload that fails validation is
            not retryable; every delivery failure is.
        """
        try:
            payload = EmailPayload.model_validate(item.payload)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            logger.error(
                f"Invalid email payload: {problems}",
                extra={"event": "email.invalid_payload"},
            )
            return DeliveryResult.failure(f"Invalid email payload: {problems}"), False

        try:
            return self.gateway.send(payload.to, payload.subject, payload.template, payload.data), True
        except Exception as e:
            logger.error(
                f"Gateway raised unexpectedly: {e}",
                extra={"event": "email.gateway_error"},
                exc_info=True,
            )
            return DeliveryResult.failure(f"Unexpected delivery error: {e}"), True

    def _process_job(self, job: ScheduledJob) -> ItemOutcome:
        with log_context(job_id=job.id, job_type=job.type):
            try:
                with self._session_factory() as session:
                    claimed = JobRepository(session).claim(job.id, self._clock())
            except PersistenceError as e:
                return self._claim_error("job", job.id, e, job_type=job.type)

            if claimed is None:
                logger.info("Job already claimed, skipping", extra={"event": "job.skipped"})
                return ItemOutcome(
                    item_id=job.id, kind="job", status=OutcomeStatus.SKIPPED, job_type=job.type,
                    claimed=False, error="already claimed",
                )

            logger.info("Job claimed", extra={"event": "job.claimed", "attempt": claimed.attempts})
            outcome = ItemOutcome(
                item_id=claimed.id, kind="job", status=OutcomeStatus.COMPLETED,
                job_type=claimed.type, attempts=claimed.attempts,
            )

            error: Optional[str] = None
            retryable = True
            try:
                handler = self.registry.get(claimed.type)
                payload = handler.parse_payload(claimed.payload)
                outcome.result = handler.execute(claimed, payload).to_dict()
            except HandlerError as e:
                error, retryable = e.message, e.retryable
            except Exception as e:
                error = f"Unexpected error: {e}"
                logger.error(
                    f"Job handler raised unexpectedly: {e}",
                    extra={"event": "job.handler_error"},
                    exc_info=True,
                )

            if error is None:
                def write(session):
                    JobRepository(session).mark_completed(claimed.id, self._clock())

                if self._save_outcome(outcome, write):
                    logger.info("Job completed", extra={"event": "job.completed", "attempt": claimed.attempts})
                return outcome

            outcome.error = error
            outcome.result = None
            decision = self.job_policy.decide(claimed.attempts, claimed.max_attempts, retryable)
            if decision.should_retry:
                outcome.status = OutcomeStatus.RETRY_SCHEDULED

                def write(session):
                    outcome.next_attempt_at = JobRepository(session).schedule_retry(
                        claimed.id, error, decision.delay_seconds, self._clock()
                    )

                if self._save_outcome(outcome, write):
                    logger.warning(
                        f"Job failed, retry scheduled: {error}",
                        extra={
                            "event": "job.retry_scheduled",
                            "attempt": claimed.attempts,
                            "delay_seconds": decision.delay_seconds,
                        },
                    )
                return outcome

            outcome.status = OutcomeStatus.FAILED

            def write(session):
                JobRepository(session).mark_failed(claimed.id, error, self._clock())

            if self._save_outcome(outcome, write):
                logger.error(
                    f"Job failed permanently: {error}",
                    extra={
                        "event": "job.failed",
                        "attempt": claimed.attempts,
                        "retryable": retryable,
                    },
                )
            return outcome

    def _save_outcome(self, outcome: ItemOutcome, write: Callable) -> bool:
        """Write a claimed item's outcome in its own session.

        Transient store failures are retried up to OUTCOME_SAVE_ATTEMPTS
        times so a single locked write does not strand the row in
        ``processing``. A row that is no longer in processing is not retried.

        Returns:
            True if the outcome was saved. Otherwise the outcome is turned
            into an ERROR outcome and False is returned.
        """
        for attempt in range(1, OUTCOME_SAVE_ATTEMPTS + 1):
            try:
                with self._session_factory() as session:
                    write(session)
                return True
            except InvalidTransitionError as e:
                self._outcome_error(outcome, e)
                return False
            except PersistenceError as e:
                if attempt == OUTCOME_SAVE_ATTEMPTS:
                    self._outcome_error(outcome, e)
                    return False
                logger.warning(
                    f"Could not save {outcome.kind} outcome, retrying: {e}",
                    extra={"event": f"{outcome.kind}.outcome_save_retry", "attempt": attempt, "error": str(e)},
                )
        return False

    def _claim_error(self, kind: str, item_id: str, error: Exception, job_type: Optional[str] = None) -> ItemOutcome:
        logger.error(
            f"Could not claim {kind}: {error}",
            extra={"event": f"{kind}.claim_failed", "error": str(error)},
        )
        return ItemOutcome(
            item_id=item_id, kind=kind, status=OutcomeStatus.ERROR, job_type=job_type,
            claimed=False, error=str(error),
        )

    def _outcome_error(self, outcome: ItemOutcome, error: Exception) -> ItemOutcome:
        logger.error(
            f"Could not save {outcome.kind} outcome: {error}",
            extra={"event": f"{outcome.kind}.outcome_save_failed", "error": str(error)},
        )
        outcome.status = OutcomeStatus.ERROR
        outcome.error = str(error)
        outcome.result = None
        outcome.next_attempt_at = None
        return outcome
