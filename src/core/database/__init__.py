"""
Database abstraction layer supporting PostgreSQL and SQLite.

Every store in this package works on a transaction handle handed out by
the adapter, so a business mutation and the reliability rows that go with
it (outbox, inbox, idempotency key, scheduled job) commit atomically.

Usage:
    from src.core.database import DatabaseAdapter, create_schema

    db = DatabaseAdapter()
    await db.connect()
    await create_schema(db)

    async with db.transaction() as tx:
        await tx.execute("UPDATE appointments SET status = $1 WHERE id = $2", status, id)
"""

from .adapter import (
    DatabaseAdapter,
    DatabaseBackend,
    DatabaseConfig,
    Transaction,
    create_database,
    is_database_error,
    is_unique_violation,
)
from .schema import create_schema

__all__ = [
    "DatabaseAdapter",
    "DatabaseBackend",
    "DatabaseConfig",
    "Transaction",
    "create_database",
    "create_schema",
    "is_database_error",
    "is_unique_violation",
]
