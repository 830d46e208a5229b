"""
=====================================================
Voice Scheduling Platform - Booking Engine
=====================================================
Reserve-or-reject for appointment slots. This is the only writer of
new appointments.
"""

import secrets
import string
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import List, Optional, Union

from loguru import logger

from services.booking.appointment_store import AppointmentStore, get_appointment_store
from services.booking.models import Appointment, AppointmentStatus, Availability, Slot
from services.calendar.availability_service import (
    AvailabilityResolver,
    get_availability_resolver,
    tenant_now,
)
from services.calendar.calendar_sources import CalendarSourceRegistry, get_calendar_registry
from services.errors import BookingValidationError
from services.phone.phone_normalizer import digits_only
from services.tenants.tenant_base import Tenant

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 8

MIN_DURATION = 15
MAX_DURATION = 180


def generate_confirmation_code(length: int = CODE_LENGTH) -> str:
    """Short display code read back to the caller"""
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


@dataclass
class BookingConfirmed:
    appointment: Appointment


@dataclass
class SlotTaken:
    """The requested slot is held by another active appointment"""
    requested: Slot
    availability: Availability
    alternatives: List[Slot] = field(default_factory=list)


@dataclass
class BookingRejected:
    reason: str


BookingOutcome = Union[BookingConfirmed, SlotTaken, BookingRejected]


class BookingEngine:
    """
    Atomic appointment booking

    The in-process overlap check gives an early answer; the store's
    insert_if_free() is what guarantees two concurrent requests for the
    same tenant/date/time cannot both succeed.
    """

    def __init__(
        self,
        appointments: AppointmentStore = None,
        availability: AvailabilityResolver = None,
        registry: CalendarSourceRegistry = None,
    ):
        self.appointments = appointments or get_appointment_store()
        self.availability = availability or get_availability_resolver()
        self.registry = registry or get_calendar_registry()

    def _validate(self, tenant: Tenant, day: date, start: time, duration: int,
                  customer_name: str, customer_phone: str):
        if not (customer_name or "").strip():
            raise BookingValidationError("customer name is required")
        if len(digits_only(customer_phone)) not in (10, 11):
            raise BookingValidationError("customer phone must have 10 or 11 digits")
        if not MIN_DURATION <= duration <= MAX_DURATION:
            raise BookingValidationError(f"duration must be {MIN_DURATION}-{MAX_DURATION} minutes")
        if datetime.combine(day, start) <= tenant_now(tenant, self.availability.clock):
            raise BookingValidationError("appointment time is in the past")
        if tenant.calendar_source is None and not tenant.business_hours.contains(day, start, duration):
            raise BookingValidationError("appointment is outside business hours")

    async def book(
        self,
        tenant: Tenant,
        day: date,
        start: time,
        customer_name: str,
        customer_phone: str,
        duration: int = None,
        source: str = "voice_booking",
    ) -> BookingOutcome:
        """
        Reserve a slot

        Args:
            tenant: Tenant configuration
            day: Tenant-local date
            start: Start time
            customer_name: Caller's name
            customer_phone: Caller's callback number
            duration: Minutes (defaults to the tenant's slot duration)
            source: Booking channel

        Returns:
            BookingConfirmed, SlotTaken (with fresh alternatives) or BookingRejected
        """
        duration = duration or tenant.slot_duration_minutes
        requested = Slot(day, start, duration)

        try:
            self._validate(tenant, day, start, duration, customer_name, customer_phone)
        except BookingValidationError as e:
            logger.warning(f"Booking: Rejected for {tenant.id} {day} {start:%H:%M}: {e.reason}")
            return BookingRejected(e.reason)

        booked = await self.appointments.list_active(tenant.id, day)
        if any(requested.overlaps(a.start, a.duration_minutes) for a in booked):
            return await self._slot_taken(tenant, requested)

        appointment = Appointment(
            tenant_id=tenant.id,
            customer_name=customer_name.strip(),
            customer_phone=customer_phone,
            day=day,
            start=start,
            duration_minutes=duration,
            status=AppointmentStatus.PENDING if tenant.deposit_required else AppointmentStatus.CONFIRMED,
            confirmation_code=generate_confirmation_code(),
            source=source,
        )

        stored = await self.appointments.insert_if_free(appointment)
        if stored is None:
            return await self._slot_taken(tenant, requested)

        logger.info(
            f"Booking: {stored.status.value} {tenant.id} {day} {start:%H:%M} "
            f"for {stored.customer_name} (code {stored.confirmation_code})"
        )
        return BookingConfirmed(stored)

    async def _slot_taken(self, tenant: Tenant, requested: Slot) -> SlotTaken:
        availability = await self.availability.get_availability(tenant, requested.day)
        alternatives = self.availability.nearby(availability, requested.start)
        logger.info(
            f"Booking: Slot {requested.day} {requested.key} taken for {tenant.id}, "
            f"{len(alternatives)} alternatives"
        )
        return SlotTaken(requested=requested, availability=availability, alternatives=alternatives)

    async def sync_external(self, tenant: Tenant, appointment: Appointment) -> None:
        """Best-effort write-through to the tenant's calendar-of-record"""
        source = self.registry.get(tenant.calendar_source)
        if source is None:
            return

        try:
            result = await source.create_booking(tenant, appointment)
        except Exception as e:
            logger.error(f"Booking: External write to {source.source_tag} failed for {appointment.confirmation_code}: {e}")
            return

        if result.success and result.external_id and appointment.id:
            await self.appointments.set_external_id(appointment.id, result.external_id)
        elif not result.success:
            logger.warning(
                f"Booking: {source.source_tag} did not accept {appointment.confirmation_code}: "
                f"{result.error_message}"
            )

    async def cancel(self, tenant: Tenant, confirmation_code: str) -> bool:
        """Cancel by confirmation code, freeing the slot"""
        cancelled = await self.appointments.cancel(tenant.id, confirmation_code.strip().upper())
        if cancelled:
            logger.info(f"Booking: Cancelled {confirmation_code} for {tenant.id}")
        return cancelled


# Global instance
_booking_engine: Optional[BookingEngine] = None


def get_booking_engine() -> BookingEngine:
    """Get global booking engine instance"""
    global _booking_engine
    if _booking_engine is None:
        _booking_engine = BookingEngine()
    return _booking_engine
