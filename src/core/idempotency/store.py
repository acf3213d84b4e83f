"""
Idempotency Key Store

Makes client-retried "create" requests safe. A request carrying a key
first reserves (business_id, key) under a row lock; the real outcome is
written in the same transaction as the business mutation. A second
request with the same key blocks on the lock until the first commits,
then sees the finalized outcome and replays it verbatim.
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Tuple

from pydantic import BaseModel

from ..database.adapter import Transaction

logger = logging.getLogger(__name__)


class IdempotencyRecord(BaseModel):
    """A reservation or finalized outcome for one (business_id, key)."""

    business_id: str
    client_key: str
    resource_id: str = ""
    status_code: int = 0
    response_body: Optional[bytes] = None
    created_at: datetime
    updated_at: datetime

    @property
    def is_finalized(self) -> bool:
        return self.status_code > 0


class IdempotencyStore:
    """
    Access to the idempotency_keys table.

    Contract for callers: check is_finalized before running side-effecting
    logic; before returning, either finalize the key or leave it
    unfinalized on purpose (roll back) so the client can retry.
    """

    async def lock_key(
        self,
        tx: Transaction,
        business_id: str,
        key: str,
        now: Optional[datetime] = None
    ) -> Tuple[IdempotencyRecord, bool]:
        """
        Lock the key for the rest of the transaction.

        Returns (record, existed). When the row already existed the caller
        must check record.is_finalized; otherwise a bare reservation was
        inserted and existed is False.
        """
        record = await self._select_for_update(tx, business_id, key)
        if record is not None:
            return record, True

        now = now or datetime.now(timezone.utc)
        await tx.execute(
            """
            INSERT INTO idempotency_keys (business_id, client_key, created_at, updated_at)
            VALUES ($1, $2, $3, $3)
            ON CONFLICT (business_id, client_key) DO NOTHING
            """,
            business_id,
            key,
            now
        )

        # A concurrent reservation may have won the insert; the locking
        # read waits for it and returns whatever it committed.
        record = await self._select_for_update(tx, business_id, key)
        if record is None:
            raise RuntimeError(f"Idempotency key vanished after reservation: {business_id}/{key}")
        if record.is_finalized:
            return record, True
        return record, False

    async def finalize_key(
        self,
        tx: Transaction,
        business_id: str,
        key: str,
        resource_id: str,
        status_code: int,
        body: bytes,
        now: Optional[datetime] = None
    ) -> None:
        """Write the outcome inside the business transaction it guards."""
        await tx.execute(
            """
            UPDATE idempotency_keys
            SET resource_id = $3,
                status_code = $4,
                response_body = $5,
                updated_at = $6
            WHERE business_id = $1 AND client_key = $2
            """,
            business_id,
            key,
            resource_id,
            status_code,
            body,
            now or datetime.now(timezone.utc)
        )
        logger.debug(
            f"Finalized idempotency key {business_id}/{key} -> {status_code} ({resource_id or 'no resource'})"
        )

    async def _select_for_update(
        self,
        tx: Transaction,
        business_id: str,
        key: str
    ) -> Optional[IdempotencyRecord]:
        row = await tx.fetchrow(
            """
            SELECT business_id, client_key, resource_id, status_code,
                   response_body, created_at, updated_at
            FROM idempotency_keys
            WHERE business_id = $1 AND client_key = $2
            FOR UPDATE
            """,
            business_id,
            key
        )
        return IdempotencyRecord.model_validate(row) if row else None
