"""
Appointment Repository
"""

import logging
from datetime import datetime
from typing import List, Optional

from ...core.database.adapter import DatabaseBackend, Transaction
from .models import Appointment

logger = logging.getLogger(__name__)

_COLUMNS = """
    id, business_id, staff_id, service_id, customer_name, customer_email,
    customer_phone, start_time, end_time, status, cancelled_at,
    cancellation_reason, created_at
"""


class AppointmentRepository:
    """Access to the appointments table."""

    async def lock_staff(self, tx: Transaction, staff_id: str) -> None:
        """Serialize bookings for one staff member until the transaction ends."""
        if tx.backend == DatabaseBackend.POSTGRESQL:
            await tx.execute("SELECT pg_advisory_xact_lock(hashtext($1))", staff_id)

    async def has_overlap(
        self,
        tx: Transaction,
        staff_id: str,
        start_time: datetime,
        end_time: datetime
    ) -> bool:
        """True if the staff member already has a booked appointment overlapping the range."""
        # FOR UPDATE only locks rows that exist; two bookings into a free
        # slot would both see no overlap without the staff lock.
        await self.lock_staff(tx, staff_id)
        row = await tx.fetchrow(
            """
            SELECT id FROM appointments
            WHERE staff_id = $1
              AND status = 'booked'
              AND start_time < $3
              AND end_time > $2
            LIMIT 1
            FOR UPDATE
            """,
            staff_id,
            start_time,
            end_time
        )
        return row is not None

    async def create(self, tx: Transaction, appointment: Appointment) -> str:
        await tx.execute(
            """
            INSERT INTO appointments (
                id, business_id, staff_id, service_id, customer_name,
                customer_email, customer_phone, start_time, end_time, status, created_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
            """,
            appointment.id,
            appointment.business_id,
            appointment.staff_id,
            appointment.service_id,
            appointment.customer_name,
            appointment.customer_email,
            appointment.customer_phone,
            appointment.start_time,
            appointment.end_time,
            appointment.status,
            appointment.created_at
        )
        logger.info(f"Created appointment {appointment.id} for business {appointment.business_id}")
        return appointment.id

    async def get(
        self,
        tx: Transaction,
        business_id: str,
        appointment_id: str,
        for_update: bool = False
    ) -> Optional[Appointment]:
        """Load one appointment of a business, optionally row-locked."""
        lock = "FOR UPDATE" if for_update else ""
        row = await tx.fetchrow(
            f"""
            SELECT {_COLUMNS} FROM appointments
            WHERE id = $1 AND business_id = $2
            {lock}
            """,
            appointment_id,
            business_id
        )
        return Appointment.model_validate(row) if row else None

    async def cancel(
        self,
        tx: Transaction,
        business_id: str,
        appointment_id: str,
        reason: str,
        now: datetime
    ) -> None:
        await tx.execute(
            """
            UPDATE appointments
            SET status = 'cancelled', cancelled_at = $3, cancellation_reason = $4
            WHERE id = $1 AND business_id = $2
            """,
            appointment_id,
            business_id,
            now,
            reason
        )
        logger.info(f"Cancelled appointment {appointment_id} for business {business_id}")

    async def list_for_business(self, tx: Transaction, business_id: str, limit: int = 50) -> List[Appointment]:
        """Most recent first."""
        rows = await tx.fetch(
            f"""
            SELECT {_COLUMNS}
            FROM appointments
            WHERE business_id = $1
            ORDER BY start_time DESC
            LIMIT $2
            """,
            business_id,
            limit
        )
        return [Appointment.model_validate(row) for row in rows]
