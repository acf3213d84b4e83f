"""
Idempotency keys for retried write requests.

Usage:
    from src.core.idempotency import IdempotencyStore

    async with db.transaction() as tx:
        record, existed = await store.lock_key(tx, business_id, key)
        if existed and record.is_finalized:
            return replay(record)
        ...  # business mutation
        await store.finalize_key(tx, business_id, key, resource_id, 201, body)
"""

from .store import IdempotencyRecord, IdempotencyStore

__all__ = ["IdempotencyRecord", "IdempotencyStore"]
