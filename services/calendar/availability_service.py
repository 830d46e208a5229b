"""
=====================================================
Voice Scheduling Platform - Availability Resolver
=====================================================
Computes open slots for a tenant and date, preferring the tenant's
external calendar-of-record and falling back to local business hours
minus booked appointments.
"""

import asyncio
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, List, Optional, Sequence

import pytz
from loguru import logger

from config.settings import get_settings
from services.booking.appointment_store import AppointmentStore, get_appointment_store
from services.booking.models import Appointment, Availability, Slot
from services.calendar.calendar_sources import CalendarSourceRegistry, get_calendar_registry
from services.tenants.tenant_base import Tenant

LOCAL_SOURCE = "local"

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def tenant_now(tenant: Tenant, clock: Clock = utc_now) -> datetime:
    """Current wall-clock time in the tenant's timezone (naive)"""
    tz = pytz.timezone(tenant.timezone)
    return clock().astimezone(tz).replace(tzinfo=None)


@dataclass
class SlotPage:
    """One page of slot offers"""
    offered: List[str]
    offset: int
    next_offset: int
    has_more: bool


def paginate(slots: Sequence[str], offset: int, page_size: int = 3) -> SlotPage:
    """
    Page through an ordered slot list.

    Pure function: the same list and offset always give the same page.
    """
    offset = max(0, offset)
    offered = list(slots[offset:offset + page_size])
    next_offset = offset + len(offered)
    return SlotPage(
        offered=offered,
        offset=offset,
        next_offset=next_offset,
        has_more=next_offset < len(slots),
    )


def enumerate_business_slots(tenant: Tenant, day: date) -> List[Slot]:
    """Every fixed-duration slot that fits inside the day's business hours"""
    hours = tenant.business_hours.for_date(day)
    if hours is None:
        return []

    duration = tenant.slot_duration_minutes
    current = datetime.combine(day, hours.open)
    close = datetime.combine(day, hours.close)

    slots = []
    while current + timedelta(minutes=duration) <= close:
        slots.append(Slot(day, current.time(), duration))
        current += timedelta(minutes=duration)
    return slots


def exclude_booked(slots: List[Slot], booked: List[Appointment]) -> List[Slot]:
    """Drop slots that overlap an active appointment"""
    active = [a for a in booked if a.is_active]
    return [
        slot for slot in slots
        if not any(slot.overlaps(a.start, a.duration_minutes) for a in active)
    ]


class AvailabilityResolver:
    """
    Availability Resolver

    - External calendar-of-record first, under a bounded timeout
    - Local business-hours computation on error, timeout or no source
    - Local active appointments are always excluded
    - Slots in the past (tenant time) are never offered
    """

    def __init__(
        self,
        appointments: AppointmentStore = None,
        registry: CalendarSourceRegistry = None,
        timeout_seconds: float = None,
        clock: Clock = None,
    ):
        self.appointments = appointments or get_appointment_store()
        self.registry = registry or get_calendar_registry()
        self.timeout_seconds = timeout_seconds or get_settings().external_calendar_timeout
        self.clock = clock or utc_now

    def today(self, tenant: Tenant) -> date:
        return tenant_now(tenant, self.clock).date()

    def _drop_past(self, tenant: Tenant, day: date, slots: List[Slot]) -> List[Slot]:
        now = tenant_now(tenant, self.clock)
        if day < now.date():
            return []
        if day > now.date():
            return slots
        return [s for s in slots if s.start_datetime > now]

    async def get_availability(self, tenant: Tenant, day: date) -> Availability:
        """
        Open slots for a tenant and date, chronologically ordered

        Args:
            tenant: Tenant configuration
            day: Tenant-local date

        Returns:
            Availability with the source tag that produced it
        """
        booked = await self.appointments.list_active(tenant.id, day)
        source = self.registry.get(tenant.calendar_source)

        if source is not None:
            try:
                external = await asyncio.wait_for(
                    source.get_available_slots(tenant, day),
                    timeout=self.timeout_seconds,
                )
                slots = exclude_booked(sorted(external, key=lambda s: s.start), booked)
                slots = self._drop_past(tenant, day, slots)
                logger.info(f"Availability: {len(slots)} slots from {source.source_tag} for {tenant.id} on {day}")
                return Availability(day=day, source=source.source_tag, slots=slots)
            except asyncio.TimeoutError:
                logger.warning(
                    f"Availability: {source.source_tag} timed out after {self.timeout_seconds}s "
                    f"for {tenant.id}, using local slots"
                )
            except Exception as e:
                logger.error(f"Availability: {source.source_tag} failed for {tenant.id}, using local slots: {e}")

        return self.local_availability(tenant, day, booked)

    def local_availability(self, tenant: Tenant, day: date, booked: List[Appointment]) -> Availability:
        """Business-hours slots minus booked appointments"""
        slots = exclude_booked(enumerate_business_slots(tenant, day), booked)
        slots = self._drop_past(tenant, day, slots)
        logger.info(f"Availability: {len(slots)} local slots for {tenant.id} on {day}")
        return Availability(day=day, source=LOCAL_SOURCE, slots=slots)

    @staticmethod
    def nearby(availability: Availability, target: time, limit: int = 3) -> List[Slot]:
        """Open slots closest to a requested time, in chronological order"""
        minutes = target.hour * 60 + target.minute
        closest = sorted(availability.slots, key=lambda s: (abs(s.start_minutes - minutes), s.start))
        return sorted(closest[:limit], key=lambda s: s.start)


# Global instance
_availability_resolver: Optional[AvailabilityResolver] = None


def get_availability_resolver() -> AvailabilityResolver:
    """Get global availability resolver instance"""
    global _availability_resolver
    if _availability_resolver is None:
        _availability_resolver = AvailabilityResolver()
    return _availability_resolver
