"""
Scheduled job queue with bounded retry and dead-lettering.

Usage:
    from src.core.jobs import JobRepository, JobWorker, NewJob

    async with db.transaction() as tx:
        await JobRepository().insert(tx, NewJob(
            idempotency_key="a1|2026-01-01T09:00:00+00:00|email",
            aggregate_id="a1",
            payload={...},
            next_run_at=remind_at,
        ))

    worker = JobWorker(db)
    await worker.start()
"""

from .backoff import BackoffPolicy, ExponentialBackoff, FixedBackoff
from .models import JobStatus, NewJob, ScheduledJob
from .repository import JobRepository
from .worker import (
    DLQ_EVENT_TYPE,
    DUE_EVENT_TYPE,
    Dispatcher,
    JobWorker,
    OutboxDispatcher,
    job_event_id,
)

__all__ = [
    "BackoffPolicy",
    "ExponentialBackoff",
    "FixedBackoff",
    "JobStatus",
    "NewJob",
    "ScheduledJob",
    "JobRepository",
    "JobWorker",
    "OutboxDispatcher",
    "Dispatcher",
    "job_event_id",
    "DUE_EVENT_TYPE",
    "DLQ_EVENT_TYPE",
]
