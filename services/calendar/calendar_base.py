"""
=====================================================
Voice Scheduling Platform - Calendar Source Interface
=====================================================
"""

from abc import ABC, abstractmethod
from typing import Optional, List
from dataclasses import dataclass
from datetime import date

from services.booking.models import Slot, Appointment
from services.tenants.tenant_base import Tenant


class CalendarSourceError(Exception):
    """External calendar could not answer"""


@dataclass
class BookingResult:
    """External write-through result"""
    success: bool
    external_id: Optional[str] = None
    error_message: Optional[str] = None


class CalendarSourceBase(ABC):
    """
    Abstract base for external calendars-of-record

    The local appointment table stays authoritative for conflict
    prevention; external sources supply availability and receive
    confirmed bookings.
    """

    source_tag: str = "external"

    @abstractmethod
    async def is_available(self) -> bool:
        """Check if the source is configured and available"""
        pass

    @abstractmethod
    async def get_available_slots(self, tenant: Tenant, day: date) -> List[Slot]:
        """
        Get open slots for a date

        Args:
            tenant: Tenant the calendar belongs to
            day: Tenant-local date

        Returns:
            Open slots, any order

        Raises:
            CalendarSourceError: If the source cannot answer
        """
        pass

    @abstractmethod
    async def create_booking(self, tenant: Tenant, appointment: Appointment) -> BookingResult:
        """
        Write a confirmed appointment into the external calendar

        Args:
            tenant: Tenant the appointment belongs to
            appointment: Locally reserved appointment

        Returns:
            BookingResult with success status
        """
        pass
