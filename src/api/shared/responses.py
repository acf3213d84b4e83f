"""
Standard API Response Models

Provides consistent error shapes across all endpoints.
"""

import json
from datetime import datetime, timezone
from typing import Optional, List
from uuid import uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


class ErrorDetail(BaseModel):
    """Detailed error information for validation errors."""

    field: Optional[str] = None
    message: str
    code: Optional[str] = None


class ErrorBody(BaseModel):
    """Error body with code, message, and details."""

    code: str
    message: str
    details: Optional[List[ErrorDetail]] = None
    trace_id: str = Field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = Field(default_factory=_utcnow)

    @classmethod
    def validation_error(
        cls,
        message: str,
        details: Optional[List[ErrorDetail]] = None,
        trace_id: Optional[str] = None
    ) -> "ErrorBody":
        return cls(
            code="VALIDATION_ERROR",
            message=message,
            details=details,
            trace_id=trace_id or str(uuid4())
        )

    @classmethod
    def internal_error(
        cls,
        message: str = "An internal error occurred",
        trace_id: Optional[str] = None
    ) -> "ErrorBody":
        return cls(
            code="INTERNAL_ERROR",
            message=message,
            trace_id=trace_id or str(uuid4())
        )


class ErrorResponse(BaseModel):
    """
    Standard error response.

    Response shape:
    {
        "error": {
            "code": "VALIDATION_ERROR",
            "message": "Human-readable error message",
            "details": [...],
            "trace_id": "abc-123",
            "timestamp": "2026-01-19T12:00:00Z"
        }
    }
    """

    error: ErrorBody

    @classmethod
    def create(
        cls,
        code: str,
        message: str,
        details: Optional[List[ErrorDetail]] = None,
        trace_id: Optional[str] = None
    ) -> "ErrorResponse":
        return cls(
            error=ErrorBody(
                code=code,
                message=message,
                details=details,
                trace_id=trace_id or str(uuid4())
            )
        )

    def to_bytes(self) -> bytes:
        """Serialized body, as stored for idempotent replay."""
        return json.dumps(self.model_dump(mode="json"), separators=(",", ":")).encode()
