"""
Tests for the appointment repository's locking on each backend.
"""

from datetime import datetime, timedelta, timezone

import pytest

from src.api.booking.repository import AppointmentRepository
from src.core.database import DatabaseBackend
from src.core.database.adapter import Transaction


class RecordingTransaction(Transaction):
    """Transaction that records statements instead of running them."""

    def __init__(self, backend: DatabaseBackend):
        self.backend = backend
        self.statements = []

    async def execute(self, query, *args):
        self.statements.append((" ".join(query.split()), args))
        return "SELECT 1"

    async def fetchrow(self, query, *args):
        self.statements.append((" ".join(query.split()), args))
        return None


START = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


class TestOverlapLocking:
    """Test that overlap checks serialize per staff member."""

    @pytest.mark.asyncio
    async def test_postgres_takes_staff_lock_before_checking(self):
        tx = RecordingTransaction(DatabaseBackend.POSTGRESQL)

        await AppointmentRepository().has_overlap(tx, "staff-1", START, START + timedelta(minutes=30))

        assert tx.statements[0] == ("SELECT pg_advisory_xact_lock(hashtext($1))", ("staff-1",))
        assert tx.statements[1][0].startswith("SELECT id FROM appointments")
        assert len(tx.statements) == 2

    @pytest.mark.asyncio
    async def test_sqlite_relies_on_serialized_transactions(self):
        tx = RecordingTransaction(DatabaseBackend.SQLITE)

        await AppointmentRepository().has_overlap(tx, "staff-1", START, START + timedelta(minutes=30))

        assert len(tx.statements) == 1
        assert "pg_advisory" not in tx.statements[0][0]

    @pytest.mark.asyncio
    async def test_free_slot_reports_no_overlap_on_sqlite(self, db):
        async with db.transaction() as tx:
            assert await AppointmentRepository().has_overlap(tx, "staff-1", START, START + timedelta(minutes=30)) is False
