"""
Inbox Guard

Consumer-side ledger of handled event ids. The unique insert conflict on
event_id is the dedup signal: it means "already processed", not an error.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from ..database.adapter import Transaction, is_unique_violation
from ..observability.metrics import record_counter

logger = logging.getLogger(__name__)


class InboxRepository:
    """Access to the inbox_events table."""

    async def record(
        self,
        tx: Transaction,
        event_id: str,
        event_type: str,
        now: Optional[datetime] = None
    ) -> bool:
        """
        Record an event as handled.

        Returns True when this is the first time the event is seen, False
        when it was already recorded. The insert runs in a savepoint so a
        conflict leaves the caller's transaction usable. Other store errors
        propagate.
        """
        try:
            async with tx.savepoint():
                await tx.execute(
                    """
                    INSERT INTO inbox_events (event_id, event_type, recorded_at)
                    VALUES ($1, $2, $3)
                    """,
                    event_id,
                    event_type,
                    now or datetime.now(timezone.utc)
                )
        except Exception as e:
            if is_unique_violation(e):
                return False
            raise
        return True

    async def is_processed(self, tx: Transaction, event_id: str) -> bool:
        """Check if an event has been recorded."""
        row = await tx.fetchrow(
            "SELECT 1 AS hit FROM inbox_events WHERE event_id = $1",
            event_id
        )
        return row is not None


class InboxGuard:
    """
    Guards a handler against duplicate execution.

    Runs inside the transaction that carries the handler's own effects, so
    the inbox row commits only together with them. If the handler raises,
    the transaction rolls back and the event stays unrecorded for retry.

    Usage:
        async with db.transaction() as tx:
            async with InboxGuard(tx, meta.event_id, meta.event_type) as guard:
                if guard.should_process:
                    await handle(tx, message)
    """

    def __init__(
        self,
        tx: Transaction,
        event_id: str,
        event_type: str,
        repository: Optional[InboxRepository] = None
    ):
        self.tx = tx
        self.event_id = event_id
        self.event_type = event_type
        self.should_process = False
        self._repo = repository or InboxRepository()

    async def __aenter__(self):
        self.should_process = await self._repo.record(self.tx, self.event_id, self.event_type)
        if self.should_process:
            logger.debug(f"InboxGuard: event {self.event_id} marked for processing")
        else:
            record_counter("inbox_duplicates_total", attributes={"event_type": self.event_type})
            logger.info(
                "Duplicate event ignored",
                extra={"event_id": self.event_id, "event_type": self.event_type}
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None and self.should_process:
            logger.warning(
                f"InboxGuard: handler failed for event {self.event_id}, "
                "inbox entry rolls back with the transaction"
            )
        return False
