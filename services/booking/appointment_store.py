"""
=====================================================
Voice Scheduling Platform - Appointment Store
=====================================================
Persistence for appointments. insert_if_free() is the only write path
for new appointments and enforces one active appointment per
(tenant, date, time).
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import date
from typing import Optional, List, Dict

from loguru import logger

from config.settings import get_settings
from services.booking.models import Appointment, AppointmentStatus


class AppointmentStore(ABC):
    """Appointment persistence"""

    @abstractmethod
    async def list_active(self, tenant_id: str, day: date) -> List[Appointment]:
        """Pending and confirmed appointments for a tenant-local date"""
        pass

    @abstractmethod
    async def insert_if_free(self, appointment: Appointment) -> Optional[Appointment]:
        """
        Atomically insert an appointment unless its slot is taken

        Returns:
            The stored appointment (with id), or None if another active
            appointment already holds the same tenant/date/time
        """
        pass

    @abstractmethod
    async def find_by_code(self, tenant_id: str, confirmation_code: str) -> Optional[Appointment]:
        pass

    @abstractmethod
    async def cancel(self, tenant_id: str, confirmation_code: str) -> bool:
        """Cancel an active appointment, freeing its slot"""
        pass

    @abstractmethod
    async def set_external_id(self, appointment_id: str, external_id: str) -> None:
        pass


class InMemoryAppointmentStore(AppointmentStore):
    """
    Single-process store for development and tests.

    The lock serializes the check-and-insert the same way the partial
    unique index does in Postgres.
    """

    def __init__(self):
        self._appointments: Dict[str, Appointment] = {}
        self._lock = asyncio.Lock()
        self._next_id = 1

    def all(self) -> List[Appointment]:
        return list(self._appointments.values())

    async def list_active(self, tenant_id: str, day: date) -> List[Appointment]:
        return sorted(
            (a for a in self._appointments.values()
             if a.tenant_id == tenant_id and a.day == day and a.is_active),
            key=lambda a: a.start,
        )

    async def insert_if_free(self, appointment: Appointment) -> Optional[Appointment]:
        async with self._lock:
            for existing in self._appointments.values():
                if (existing.tenant_id == appointment.tenant_id and existing.day == appointment.day
                        and existing.start == appointment.start and existing.is_active):
                    return None

            stored = replace(appointment, id=str(self._next_id))
            self._next_id += 1
            self._appointments[stored.id] = stored
            return stored

    async def find_by_code(self, tenant_id: str, confirmation_code: str) -> Optional[Appointment]:
        for appointment in self._appointments.values():
            if appointment.tenant_id == tenant_id and appointment.confirmation_code == confirmation_code:
                return appointment
        return None

    async def cancel(self, tenant_id: str, confirmation_code: str) -> bool:
        async with self._lock:
            appointment = await self.find_by_code(tenant_id, confirmation_code)
            if appointment is None or not appointment.is_active:
                return False
            self._appointments[appointment.id] = replace(appointment, status=AppointmentStatus.CANCELLED)
            return True

    async def set_external_id(self, appointment_id: str, external_id: str) -> None:
        appointment = self._appointments.get(appointment_id)
        if appointment is not None:
            self._appointments[appointment_id] = replace(appointment, external_id=external_id)


class PostgresAppointmentStore(AppointmentStore):
    """
    Appointments table.

    Uniqueness of active slots is enforced by the partial unique index
    appointments_active_slot_uidx, so concurrent inserts from different
    processes cannot both succeed.
    """

    _COLUMNS = """
        id, tenant_id, customer_name, customer_phone, appointment_date,
        appointment_time, duration_minutes, status, confirmation_code,
        source, external_id
    """

    def __init__(self, pool_getter=None):
        if pool_getter is None:
            from services.database import get_db_pool
            pool_getter = get_db_pool
        self._get_pool = pool_getter

    @staticmethod
    def _row_to_appointment(row) -> Appointment:
        return Appointment(
            id=str(row["id"]),
            tenant_id=row["tenant_id"],
            customer_name=row["customer_name"],
            customer_phone=row["customer_phone"],
            day=row["appointment_date"],
            start=row["appointment_time"],
            duration_minutes=row["duration_minutes"],
            status=AppointmentStatus(row["status"]),
            confirmation_code=row["confirmation_code"],
            source=row["source"],
            external_id=row["external_id"],
        )

    async def list_active(self, tenant_id: str, day: date) -> List[Appointment]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            SELECT {self._COLUMNS} FROM appointments
            WHERE tenant_id = $1 AND appointment_date = $2
              AND status IN ('pending', 'confirmed')
            ORDER BY appointment_time
            """,
            tenant_id, day,
        )
        return [self._row_to_appointment(r) for r in rows]

    async def insert_if_free(self, appointment: Appointment) -> Optional[Appointment]:
        pool = await self._get_pool()
        row_id = await pool.fetchval(
            """
            INSERT INTO appointments (
                tenant_id, customer_name, customer_phone, appointment_date,
                appointment_time, duration_minutes, status, confirmation_code, source
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
            ON CONFLICT (tenant_id, appointment_date, appointment_time)
                WHERE status IN ('pending', 'confirmed')
                DO NOTHING
            RETURNING id
            """,
            appointment.tenant_id,
            appointment.customer_name,
            appointment.customer_phone,
            appointment.day,
            appointment.start,
            appointment.duration_minutes,
            appointment.status.value,
            appointment.confirmation_code,
            appointment.source,
        )
        if row_id is None:
            logger.info(
                f"Booking: Insert lost race for {appointment.tenant_id} "
                f"{appointment.day} {appointment.start:%H:%M}"
            )
            return None
        return replace(appointment, id=str(row_id))

    async def find_by_code(self, tenant_id: str, confirmation_code: str) -> Optional[Appointment]:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"""
            SELECT {self._COLUMNS} FROM appointments
            WHERE tenant_id = $1 AND confirmation_code = $2
            ORDER BY created_at DESC LIMIT 1
            """,
            tenant_id, confirmation_code,
        )
        return self._row_to_appointment(row) if row else None

    async def cancel(self, tenant_id: str, confirmation_code: str) -> bool:
        pool = await self._get_pool()
        result = await pool.execute(
            """
            UPDATE appointments SET status = 'cancelled'
            WHERE tenant_id = $1 AND confirmation_code = $2
              AND status IN ('pending', 'confirmed')
            """,
            tenant_id, confirmation_code,
        )
        return result.endswith(" 1")

    async def set_external_id(self, appointment_id: str, external_id: str) -> None:
        pool = await self._get_pool()
        await pool.execute(
            "UPDATE appointments SET external_id = $2 WHERE id = $1",
            int(appointment_id), external_id,
        )


# Global instance
_appointment_store: Optional[AppointmentStore] = None


def get_appointment_store() -> AppointmentStore:
    """Get global appointment store instance"""
    global _appointment_store
    if _appointment_store is None:
        if get_settings().storage_backend == "postgres":
            _appointment_store = PostgresAppointmentStore()
        else:
            _appointment_store = InMemoryAppointmentStore()
    return _appointment_store
