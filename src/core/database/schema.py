"""
Bootstrap schema for the reliability tables.

Each service owns its own copy of these tables. This is bootstrap DDL for
local runs and tests, not a migration system.
"""

import logging
from typing import Dict, List

from .adapter import DatabaseAdapter, DatabaseBackend

logger = logging.getLogger(__name__)


POSTGRES_SCHEMA: List[str] = [
    """
    CREATE TABLE IF NOT EXISTS outbox_events (
        id BIGSERIAL PRIMARY KEY,
        event_id TEXT NOT NULL UNIQUE,
        aggregate_type TEXT NOT NULL,
        aggregate_id TEXT NOT NULL,
        event_type TEXT NOT NULL,
        payload BYTEA NOT NULL,
        traceparent TEXT NOT NULL DEFAULT '',
        tracestate TEXT NOT NULL DEFAULT '',
        created_at TIMESTAMPTZ NOT NULL,
        published_at TIMESTAMPTZ
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_outbox_events_unpublished
        ON outbox_events (id) WHERE published_at IS NULL
    """,
    """
    CREATE TABLE IF NOT EXISTS inbox_events (
        event_id TEXT PRIMARY KEY,
        event_type TEXT NOT NULL,
        recorded_at TIMESTAMPTZ NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS idempotency_keys (
        business_id TEXT NOT NULL,
        client_key TEXT NOT NULL,
        resource_id TEXT NOT NULL DEFAULT '',
        status_code INTEGER NOT NULL DEFAULT 0,
        response_body BYTEA,
        created_at TIMESTAMPTZ NOT NULL,
        updated_at TIMESTAMPTZ NOT NULL,
        PRIMARY KEY (business_id, client_key)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS scheduled_jobs (
        id BIGSERIAL PRIMARY KEY,
        idempotency_key TEXT NOT NULL UNIQUE,
        aggregate_id TEXT NOT NULL,
        payload JSONB NOT NULL,
        traceparent TEXT NOT NULL DEFAULT '',
        tracestate TEXT NOT NULL DEFAULT '',
        status TEXT NOT NULL DEFAULT 'pending'
            CHECK (status IN ('pending', 'processed', 'failed')),
        attempts INTEGER NOT NULL DEFAULT 0,
        max_attempts INTEGER NOT NULL DEFAULT 5,
        next_run_at TIMESTAMPTZ NOT NULL,
        last_error TEXT,
        created_at TIMESTAMPTZ NOT NULL,
        updated_at TIMESTAMPTZ NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_scheduled_jobs_due
        ON scheduled_jobs (next_run_at) WHERE status = 'pending'
    """,
    """
    CREATE TABLE IF NOT EXISTS appointments (
        id TEXT PRIMARY KEY,
        business_id TEXT NOT NULL,
        staff_id TEXT NOT NULL,
        service_id TEXT NOT NULL,
        customer_name TEXT NOT NULL DEFAULT '',
        customer_email TEXT NOT NULL DEFAULT '',
        customer_phone TEXT NOT NULL DEFAULT '',
        start_time TIMESTAMPTZ NOT NULL,
        end_time TIMESTAMPTZ NOT NULL,
        status TEXT NOT NULL DEFAULT 'booked',
        cancelled_at TIMESTAMPTZ,
        cancellation_reason TEXT NOT NULL DEFAULT '',
        created_at TIMESTAMPTZ NOT NULL
    )
    """,
]


SQLITE_SCHEMA: List[str] = [
    """
    CREATE TABLE IF NOT EXISTS outbox_events (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        event_id TEXT NOT NULL UNIQUE,
        aggregate_type TEXT NOT NULL,
        aggregate_id TEXT NOT NULL,
        event_type TEXT NOT NULL,
        payload BLOB NOT NULL,
        traceparent TEXT NOT NULL DEFAULT '',
        tracestate TEXT NOT NULL DEFAULT '',
        created_at TEXT NOT NULL,
        published_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS inbox_events (
        event_id TEXT PRIMARY KEY,
        event_type TEXT NOT NULL,
        recorded_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS idempotency_keys (
        business_id TEXT NOT NULL,
        client_key TEXT NOT NULL,
        resource_id TEXT NOT NULL DEFAULT '',
        status_code INTEGER NOT NULL DEFAULT 0,
        response_body BLOB,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        PRIMARY KEY (business_id, client_key)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS scheduled_jobs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        idempotency_key TEXT NOT NULL UNIQUE,
        aggregate_id TEXT NOT NULL,
        payload TEXT NOT NULL,
        traceparent TEXT NOT NULL DEFAULT '',
        tracestate TEXT NOT NULL DEFAULT '',
        status TEXT NOT NULL DEFAULT 'pending'
            CHECK (status IN ('pending', 'processed', 'failed')),
        attempts INTEGER NOT NULL DEFAULT 0,
        max_attempts INTEGER NOT NULL DEFAULT 5,
        next_run_at TEXT NOT NULL,
        last_error TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS appointments (
        id TEXT PRIMARY KEY,
        business_id TEXT NOT NULL,
        staff_id TEXT NOT NULL,
        service_id TEXT NOT NULL,
        customer_name TEXT NOT NULL DEFAULT '',
        customer_email TEXT NOT NULL DEFAULT '',
        customer_phone TEXT NOT NULL DEFAULT '',
        start_time TEXT NOT NULL,
        end_time TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'booked',
        cancelled_at TEXT,
        cancellation_reason TEXT NOT NULL DEFAULT '',
        created_at TEXT NOT NULL
    )
    """,
]

SCHEMAS: Dict[DatabaseBackend, List[str]] = {
    DatabaseBackend.POSTGRESQL: POSTGRES_SCHEMA,
    DatabaseBackend.SQLITE: SQLITE_SCHEMA,
}


async def create_schema(db: DatabaseAdapter) -> None:
    """Create all tables if they don't exist."""
    async with db.transaction() as tx:
        for statement in SCHEMAS[db.backend]:
            await tx.execute(statement)
    logger.info(f"Schema ready ({db.backend.value})")
