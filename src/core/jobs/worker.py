"""
Scheduled Job Worker

Claims due jobs and dispatches each one, by default by enqueueing a
`scheduler.reminder.due.v1` outbox event describing the work.

State machine per job:
    pending --dispatch ok--------------------------> processed
    pending --dispatch failed, attempts < max------> pending (next_run_at = now + backoff)
    pending --dispatch failed, attempts reaches max-> failed + one dead-letter event

The status flip and the dead-letter event commit together. A failed job is
no longer pending, so it is never claimed again and never dead-lettered twice.
"""

import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from opentelemetry.trace import Status, StatusCode

from ..config import WorkerConfig
from ..database.adapter import DatabaseAdapter, Transaction
from ..observability.metrics import record_counter, record_histogram
from ..observability.tracing import add_event_to_span, create_span, use_trace_strings
from ..outbox.models import OutboxEvent
from ..outbox.repository import OutboxRepository
from ..polling import PollingLoop
from .backoff import BackoffPolicy, FixedBackoff
from .models import JobStatus, ScheduledJob
from .repository import JobRepository

logger = logging.getLogger(__name__)

DUE_EVENT_TYPE = "scheduler.reminder.due.v1"
DLQ_EVENT_TYPE = "scheduler.reminder.dlq.v1"
JOB_AGGREGATE_TYPE = "scheduler_job"
DLQ_REASON = "max attempts reached"

Dispatcher = Callable[[Transaction, ScheduledJob], Awaitable[None]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def job_event_id(job: ScheduledJob, event_type: str) -> str:
    """Stable event id per (job, event type); a re-enqueue collapses in the outbox."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"{JOB_AGGREGATE_TYPE}:{job.idempotency_key}:{event_type}"))


class OutboxDispatcher:
    """Default dispatcher: the job's payload becomes a due event in the outbox."""

    def __init__(self, outbox: Optional[OutboxRepository] = None, event_type: str = DUE_EVENT_TYPE):
        self.event_type = event_type
        self._outbox = outbox or OutboxRepository()

    async def __call__(self, tx: Transaction, job: ScheduledJob) -> None:
        await self._outbox.insert(tx, OutboxEvent.from_data(
            JOB_AGGREGATE_TYPE,
            job.aggregate_id,
            self.event_type,
            job.payload,
            event_id=job_event_id(job, self.event_type),
        ))


class JobWorker(PollingLoop):
    """
    Drains due jobs in bounded batches.

    Each batch runs in one transaction. Every job is dispatched inside its
    own savepoint, so a failing dispatch is undone alone and the rest of
    the batch still commits. A crash anywhere before commit rolls the whole
    batch back; nothing is half-applied.
    """

    name = "job-worker"

    def __init__(
        self,
        db: DatabaseAdapter,
        dispatcher: Optional[Dispatcher] = None,
        repository: Optional[JobRepository] = None,
        outbox: Optional[OutboxRepository] = None,
        backoff: Optional[BackoffPolicy] = None,
        config: Optional[WorkerConfig] = None,
        clock: Callable[[], datetime] = _utcnow,
        shutdown_timeout: float = 10.0
    ):
        config = config or WorkerConfig()
        super().__init__(config.poll_interval, shutdown_timeout)
        self.batch_size = config.batch_size
        self._db = db
        self._repo = repository or JobRepository()
        self._outbox = outbox or OutboxRepository()
        self._dispatch = dispatcher or OutboxDispatcher(self._outbox)
        self._backoff = backoff or FixedBackoff(config.backoff_seconds)
        self._clock = clock

    async def tick(self) -> int:
        return await self.process_batch()

    async def process_batch(self) -> int:
        """
        Process one batch of due jobs.

        Returns the number of jobs claimed. Store errors propagate and roll
        the batch back; dispatch errors are recorded on the job.
        """
        started = time.monotonic()
        now = self._clock()
        processed: List[int] = []
        retried = 0
        dead_lettered = 0

        async with self._db.transaction() as tx:
            jobs = await self._repo.fetch_due(tx, self.batch_size, now)
            if not jobs:
                return 0

            for job in jobs:
                status = await self._run_job(tx, job, now)
                if status == JobStatus.PROCESSED:
                    processed.append(job.id)
                elif status == JobStatus.FAILED:
                    dead_lettered += 1
                else:
                    retried += 1

            await self._repo.mark_processed(tx, processed, now)

        record_counter("jobs_processed_total", len(processed))
        record_counter("jobs_retried_total", retried)
        record_counter("jobs_dead_lettered_total", dead_lettered)
        record_histogram("jobs_batch_duration_seconds", time.monotonic() - started)
        logger.info(
            f"Job batch: {len(processed)} processed, {retried} retrying, {dead_lettered} dead-lettered"
        )

        return len(jobs)

    async def _run_job(self, tx: Transaction, job: ScheduledJob, now: datetime) -> JobStatus:
        with use_trace_strings(job.traceparent, job.tracestate):
            with create_span(
                "scheduler.job dispatch",
                {
                    "job.id": job.id,
                    "job.key": job.idempotency_key,
                    "job.attempt": job.attempts + 1,
                }
            ) as span:
                try:
                    async with tx.savepoint():
                        await self._dispatch(tx, job)
                except Exception as e:
                    span.set_status(Status(StatusCode.ERROR, str(e)))
                    span.record_exception(e)
                    return await self._record_failure(tx, job, e, now)
                return JobStatus.PROCESSED

    async def _record_failure(
        self,
        tx: Transaction,
        job: ScheduledJob,
        error: Exception,
        now: datetime
    ) -> JobStatus:
        attempts = job.attempts + 1
        next_run_at = now + self._backoff.delay(attempts)
        last_error = str(error) or type(error).__name__

        status = await self._repo.mark_failed(
            tx, job.id, attempts, job.max_attempts, next_run_at, last_error, now
        )

        if status == JobStatus.FAILED:
            await self._enqueue_dead_letter(tx, job, now)
            add_event_to_span("job.dead_lettered", {"job.attempts": attempts})
            logger.error(
                f"Job {job.id} ({job.idempotency_key}) failed permanently after {attempts} attempts: {last_error}"
            )
        else:
            logger.warning(
                f"Job {job.id} ({job.idempotency_key}) attempt {attempts}/{job.max_attempts} failed, "
                f"retrying at {next_run_at.isoformat()}: {last_error}"
            )
        return status

    async def _enqueue_dead_letter(self, tx: Transaction, job: ScheduledJob, now: datetime) -> None:
        data: Dict[str, Any] = dict(job.payload)
        data["error_reason"] = DLQ_REASON
        data["failed_at"] = now.astimezone(timezone.utc).isoformat()
        await self._outbox.insert(tx, OutboxEvent.from_data(
            JOB_AGGREGATE_TYPE,
            job.aggregate_id,
            DLQ_EVENT_TYPE,
            data,
            event_id=job_event_id(job, DLQ_EVENT_TYPE),
        ))
