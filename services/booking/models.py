"""
=====================================================
Voice Scheduling Platform - Booking Models
=====================================================
"""

from dataclasses import dataclass, field
from datetime import date, time, datetime, timedelta
from enum import Enum
from typing import Optional, List, Dict, Any


class AppointmentStatus(str, Enum):
    """Appointment lifecycle status"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


ACTIVE_STATUSES = (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED)


@dataclass(frozen=True)
class Slot:
    """Bookable start time on a tenant-local date"""
    day: date
    start: time
    duration_minutes: int = 30

    @property
    def key(self) -> str:
        """``HH:MM`` start time, the form carried in the context token"""
        return self.start.strftime("%H:%M")

    @property
    def start_minutes(self) -> int:
        return self.start.hour * 60 + self.start.minute

    @property
    def start_datetime(self) -> datetime:
        return datetime.combine(self.day, self.start)

    @property
    def end_datetime(self) -> datetime:
        return self.start_datetime + timedelta(minutes=self.duration_minutes)

    def overlaps(self, start: time, duration_minutes: int) -> bool:
        other = start.hour * 60 + start.minute
        return self.start_minutes < other + duration_minutes and other < self.start_minutes + self.duration_minutes


@dataclass
class Availability:
    """Ordered open slots for one date and where they came from"""
    day: date
    source: str
    slots: List[Slot] = field(default_factory=list)

    def keys(self) -> List[str]:
        return [slot.key for slot in self.slots]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.day.isoformat(),
            "source": self.source,
            "slots": self.keys(),
        }


@dataclass
class Appointment:
    """A reserved slot"""
    tenant_id: str
    customer_name: str
    customer_phone: str
    day: date
    start: time
    duration_minutes: int
    status: AppointmentStatus
    confirmation_code: str
    source: str = "voice_booking"
    id: Optional[str] = None
    external_id: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def slot(self) -> Slot:
        return Slot(self.day, self.start, self.duration_minutes)
