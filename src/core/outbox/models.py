"""
Outbox Models
"""

import json
from datetime import datetime, timezone
from typing import Optional, Dict, Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


class OutboxEvent(BaseModel):
    """A domain event to be written to the outbox. event_type doubles as the bus topic."""

    event_id: str = Field(default_factory=lambda: str(uuid4()))
    aggregate_type: str
    aggregate_id: str
    event_type: str
    payload: bytes = b""

    @classmethod
    def from_data(
        cls,
        aggregate_type: str,
        aggregate_id: str,
        event_type: str,
        data: Dict[str, Any],
        event_id: Optional[str] = None
    ) -> "OutboxEvent":
        """Build an event with a JSON payload."""
        fields = dict(
            aggregate_type=aggregate_type,
            aggregate_id=aggregate_id,
            event_type=event_type,
            payload=json.dumps(data, separators=(",", ":")).encode(),
        )
        if event_id:
            fields["event_id"] = event_id
        return cls(**fields)


class OutboxRecord(BaseModel):
    """A row in the outbox_events table."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    event_id: str
    aggregate_type: str
    aggregate_id: str
    event_type: str
    payload: bytes
    traceparent: str = ""
    tracestate: str = ""
    created_at: datetime
    published_at: Optional[datetime] = None

    @property
    def is_published(self) -> bool:
        return self.published_at is not None
