"""
Scheduled Job Repository

Durable queue of deferred work. Jobs are claimed with the same skip-locked
pattern as outbox rows, so several workers can drain the queue at once.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from ..database.adapter import Transaction
from ..observability.tracing import trace_context_strings
from .models import JobStatus, NewJob, ScheduledJob

logger = logging.getLogger(__name__)

_COLUMNS = """
    id, idempotency_key, aggregate_id, payload, traceparent, tracestate,
    status, attempts, max_attempts, next_run_at, last_error, created_at, updated_at
"""


class JobRepository:
    """Access to the scheduled_jobs table."""

    async def insert(
        self,
        tx: Transaction,
        job: NewJob,
        now: Optional[datetime] = None
    ) -> bool:
        """
        Enqueue a job inside the caller's transaction.

        Returns False when a job with the same idempotency key exists; the
        duplicate delivery collapses into the existing row.
        """
        traceparent, tracestate = trace_context_strings()
        now = now or datetime.now(timezone.utc)

        row = await tx.fetchrow(
            """
            INSERT INTO scheduled_jobs (
                idempotency_key, aggregate_id, payload, traceparent, tracestate,
                status, attempts, max_attempts, next_run_at, created_at, updated_at
            ) VALUES ($1, $2, $3, $4, $5, 'pending', 0, $6, $7, $8, $8)
            ON CONFLICT (idempotency_key) DO NOTHING
            RETURNING id
            """,
            job.idempotency_key,
            job.aggregate_id,
            json.dumps(job.payload),
            traceparent,
            tracestate,
            job.max_attempts,
            job.next_run_at,
            now
        )

        if row is None:
            logger.info(f"Job already scheduled: {job.idempotency_key}")
            return False

        logger.debug(f"Scheduled job {row['id']} ({job.idempotency_key}) for {job.next_run_at.isoformat()}")
        return True

    async def fetch_due(self, tx: Transaction, limit: int, now: datetime) -> List[ScheduledJob]:
        """
        Claim pending jobs whose next_run_at has passed, earliest first.

        Rows held by another worker's transaction are skipped.
        """
        rows = await tx.fetch(
            f"""
            SELECT {_COLUMNS}
            FROM scheduled_jobs
            WHERE status = 'pending' AND next_run_at <= $1
            ORDER BY next_run_at, id
            LIMIT $2
            FOR UPDATE SKIP LOCKED
            """,
            now,
            limit
        )
        return [ScheduledJob.model_validate(row) for row in rows]

    async def mark_processed(self, tx: Transaction, ids: List[int], now: datetime) -> None:
        if not ids:
            return
        await tx.executemany(
            """
            UPDATE scheduled_jobs
            SET status = 'processed', updated_at = $1
            WHERE id = $2 AND status = 'pending'
            """,
            [(now, job_id) for job_id in ids]
        )

    async def mark_failed(
        self,
        tx: Transaction,
        job_id: int,
        attempts: int,
        max_attempts: int,
        next_run_at: datetime,
        last_error: str,
        now: datetime
    ) -> JobStatus:
        """
        Record a failed attempt.

        The job stays pending until attempts reaches max_attempts, then
        becomes failed. Returns the resulting status.
        """
        status = JobStatus.FAILED if attempts >= max_attempts else JobStatus.PENDING
        await tx.execute(
            """
            UPDATE scheduled_jobs
            SET attempts = $2,
                next_run_at = $3,
                last_error = $4,
                status = $5,
                updated_at = $6
            WHERE id = $1 AND status = 'pending'
            """,
            job_id,
            attempts,
            next_run_at,
            last_error,
            status.value,
            now
        )
        return status

    async def get(self, tx: Transaction, job_id: int) -> Optional[ScheduledJob]:
        row = await tx.fetchrow(
            f"SELECT {_COLUMNS} FROM scheduled_jobs WHERE id = $1",
            job_id
        )
        return ScheduledJob.model_validate(row) if row else None

    async def get_by_key(self, tx: Transaction, idempotency_key: str) -> Optional[ScheduledJob]:
        row = await tx.fetchrow(
            f"SELECT {_COLUMNS} FROM scheduled_jobs WHERE idempotency_key = $1",
            idempotency_key
        )
        return ScheduledJob.model_validate(row) if row else None

    async def list_failed(self, tx: Transaction, limit: int = 100) -> List[ScheduledJob]:
        """Dead-lettered jobs, most recent first (operator view)."""
        rows = await tx.fetch(
            f"""
            SELECT {_COLUMNS}
            FROM scheduled_jobs
            WHERE status = 'failed'
            ORDER BY updated_at DESC, id DESC
            LIMIT $1
            """,
            limit
        )
        return [ScheduledJob.model_validate(row) for row in rows]

    async def stats(self, tx: Transaction) -> Dict[str, int]:
        """Job counts per status."""
        rows = await tx.fetch(
            "SELECT status, COUNT(*) AS count FROM scheduled_jobs GROUP BY status"
        )
        counts = {status.value: 0 for status in JobStatus}
        for row in rows:
            counts[row["status"]] = int(row["count"])
        return counts
