"""
Scheduled Job Models
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class JobStatus(str, Enum):
    """Job lifecycle: pending -> processed | failed. Both terminal states are final."""
    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"


class NewJob(BaseModel):
    """A job to enqueue. idempotency_key collapses duplicate upstream deliveries."""

    idempotency_key: str
    aggregate_id: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    next_run_at: datetime
    max_attempts: int = Field(default=5, ge=1)


class ScheduledJob(BaseModel):
    """A row in the scheduled_jobs table."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    idempotency_key: str
    aggregate_id: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    traceparent: str = ""
    tracestate: str = ""
    status: JobStatus = JobStatus.PENDING
    attempts: int = 0
    max_attempts: int = 5
    next_run_at: datetime
    last_error: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @field_validator("payload", mode="before")
    @classmethod
    def parse_payload(cls, v):
        # jsonb comes back from asyncpg as text, as does SQLite TEXT
        if isinstance(v, (str, bytes)):
            return json.loads(v)
        return v

    @property
    def is_terminal(self) -> bool:
        return self.status != JobStatus.PENDING
