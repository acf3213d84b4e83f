"""
Reminder request handling for the scheduler service.

Turns `booking.reminder.requested.v1` events into scheduled jobs. The job
insert runs in the consumer's transaction, together with the inbox entry,
and is keyed `appointment_id|remind_at|channel` so a request that slips
past the inbox (e.g. re-published with a new event id) still collapses
into one job.
"""

import json
import logging
import re
from datetime import datetime
from typing import Any, Dict, Optional

from ..core.database import Transaction
from ..core.jobs import JobRepository, NewJob
from ..core.messaging import BusMessage

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("appointment_id", "business_id", "channel", "recipient", "remind_at")

_UTC_SUFFIX = re.compile(r"[zZ]$")
_FRACTION = re.compile(r"\.(\d+)")


class InvalidReminderRequest(ValueError):
    """Payload that can never be processed; logged and dropped."""


def parse_timestamp(value: str) -> datetime:
    """Parse an RFC 3339 timestamp; an explicit offset is required."""
    if not isinstance(value, str):
        raise TypeError(f"timestamp must be a string, got {type(value).__name__}")
    text = _UTC_SUFFIX.sub("+00:00", value.strip())
    # fromisoformat before 3.11 takes only 3 or 6 fractional digits
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        raise ValueError(f"timestamp without offset: {value!r}")
    return parsed


def reminder_job_key(appointment_id: str, remind_at: str, channel: str) -> str:
    return f"{appointment_id}|{remind_at}|{channel}"


def parse_reminder_request(value: bytes, max_attempts: int = 5) -> NewJob:
    """Build the job for a reminder request, or raise InvalidReminderRequest."""
    try:
        payload = json.loads(value)
    except (TypeError, ValueError) as e:
        raise InvalidReminderRequest(f"invalid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise InvalidReminderRequest("payload is not an object")

    missing = [name for name in REQUIRED_FIELDS if not str(payload.get(name) or "").strip()]
    if missing:
        raise InvalidReminderRequest(f"missing fields: {', '.join(missing)}")

    try:
        remind_at = parse_timestamp(payload["remind_at"])
    except (TypeError, ValueError) as e:
        raise InvalidReminderRequest(f"invalid remind_at: {e}") from e

    template_data = payload.get("template_data") or {}
    if not isinstance(template_data, dict):
        raise InvalidReminderRequest("template_data is not an object")

    job_payload: Dict[str, Any] = {
        "appointment_id": payload["appointment_id"],
        "business_id": payload["business_id"],
        "channel": payload["channel"],
        "recipient": payload["recipient"],
        "remind_at": payload["remind_at"],
        "template_data": template_data,
    }
    return NewJob(
        idempotency_key=reminder_job_key(payload["appointment_id"], payload["remind_at"], payload["channel"]),
        aggregate_id=payload["appointment_id"],
        payload=job_payload,
        next_run_at=remind_at,
        max_attempts=max_attempts,
    )


class ReminderRequestHandler:
    """Consumer handler: one scheduled job per reminder request."""

    def __init__(self, jobs: Optional[JobRepository] = None, max_attempts: int = 5):
        self.max_attempts = max_attempts
        self._jobs = jobs or JobRepository()

    async def __call__(self, tx: Transaction, message: BusMessage) -> None:
        try:
            job = parse_reminder_request(message.value, self.max_attempts)
        except InvalidReminderRequest as e:
            # Redelivery cannot fix a bad payload
            logger.error(
                f"Dropping reminder request: {e}",
                extra={"topic": message.topic, "offset": message.offset}
            )
            return

        created = await self._jobs.insert(tx, job)
        if created:
            logger.info(f"Reminder scheduled: {job.idempotency_key}")
