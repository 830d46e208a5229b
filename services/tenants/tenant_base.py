"""
=====================================================
Voice Scheduling Platform - Tenant Model
=====================================================
Tenant configuration: dialed number, business hours, IVR departments,
calendar source and enablement flags.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, time
from typing import Optional, List, Dict, Any

from services.errors import TenantConfigError


WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

_DAY_ALIASES = {name[:3]: i for i, name in enumerate(WEEKDAYS)}
_DAY_ALIASES.update({name: i for i, name in enumerate(WEEKDAYS)})
_DAY_ALIASES.update({"tues": 1, "thur": 3, "thurs": 3})

MAX_DEPARTMENTS = 7  # keypad digits 2-8


def parse_clock(value: Any) -> time:
    """Parse ``"09:00"``, ``"9:00"``, ``9`` or a time into a time"""
    if isinstance(value, time):
        return value
    if isinstance(value, int):
        return time(value, 0)
    text = str(value).strip()
    try:
        if ":" in text:
            hours, minutes = text.split(":", 1)
            return time(int(hours), int(minutes[:2]))
        return time(int(text), 0)
    except ValueError as e:
        raise TenantConfigError(f"Invalid clock time: {value!r}") from e


def parse_day_range(days_text: str) -> List[int]:
    """
    Parse a legacy day range string into weekday indexes (Monday=0).

    Accepts ``"mon-fri"``, ``"monday-saturday"``, ``"mon,wed,fri"``,
    ``"fri-mon"`` (wraps around the week), ``"daily"`` and ``"weekdays"``.
    """
    text = (days_text or "").strip().lower()
    if text in ("daily", "all", "everyday", "every day"):
        return list(range(7))
    if text == "weekdays":
        return list(range(5))
    if text == "weekends":
        return [5, 6]

    days: List[int] = []
    for part in text.split(","):
        part = part.strip()
        if not part:
            continue
        if "-" in part:
            start_name, end_name = [p.strip() for p in part.split("-", 1)]
            if start_name not in _DAY_ALIASES or end_name not in _DAY_ALIASES:
                raise TenantConfigError(f"Invalid day range: {days_text!r}")
            day = _DAY_ALIASES[start_name]
            end = _DAY_ALIASES[end_name]
            days.append(day)
            while day != end:
                day = (day + 1) % 7
                days.append(day)
        elif part in _DAY_ALIASES:
            days.append(_DAY_ALIASES[part])
        else:
            raise TenantConfigError(f"Invalid day name: {part!r}")

    return sorted(set(days))


@dataclass
class DayHours:
    """Opening hours for one weekday"""
    open: time
    close: time
    enabled: bool = True


@dataclass
class BusinessHours:
    """Per-weekday opening hours (Monday=0)"""
    days: Dict[int, DayHours] = field(default_factory=dict)

    def for_date(self, day: date) -> Optional[DayHours]:
        """Hours for a date, or None when closed"""
        hours = self.days.get(day.weekday())
        if hours is None or not hours.enabled or hours.close <= hours.open:
            return None
        return hours

    def contains(self, day: date, start: time, duration_minutes: int) -> bool:
        """Whether an appointment fits entirely inside the day's hours"""
        hours = self.for_date(day)
        if hours is None:
            return False
        start_min = start.hour * 60 + start.minute
        end_min = start_min + duration_minutes
        return (hours.open.hour * 60 + hours.open.minute <= start_min
                and end_min <= hours.close.hour * 60 + hours.close.minute)

    @classmethod
    def from_legacy(cls, start: Any, end: Any, days: str) -> "BusinessHours":
        """Build from the compact ``start``/``end``/``days`` form"""
        open_at, close_at = parse_clock(start), parse_clock(end)
        return cls(days={i: DayHours(open_at, close_at) for i in parse_day_range(days)})

    @classmethod
    def from_config(cls, raw: Optional[Dict[str, Any]]) -> "BusinessHours":
        """
        Build from either configuration form:

            business_hours: {start: "09:00", end: "17:00", days: "mon-fri"}

            business_hours:
              monday: {open: "09:00", close: "17:00"}
              sunday: {enabled: false}
        """
        if not raw:
            return cls.from_legacy("09:00", "17:00", "mon-fri")

        if "start" in raw or "end" in raw:
            return cls.from_legacy(raw.get("start", "09:00"), raw.get("end", "17:00"),
                                   raw.get("days", "mon-fri"))

        days: Dict[int, DayHours] = {}
        for name, entry in raw.items():
            key = str(name).strip().lower()
            if key not in _DAY_ALIASES:
                raise TenantConfigError(f"Unknown weekday in business_hours: {name!r}")
            entry = entry or {}
            enabled = bool(entry.get("enabled", True))
            if not enabled and "open" not in entry:
                days[_DAY_ALIASES[key]] = DayHours(time(0, 0), time(0, 0), enabled=False)
                continue
            days[_DAY_ALIASES[key]] = DayHours(
                open=parse_clock(entry.get("open", "09:00")),
                close=parse_clock(entry.get("close", "17:00")),
                enabled=enabled,
            )
        return cls(days=days)


@dataclass
class DepartmentOption:
    """IVR department: keypad digit is derived from its position"""
    name: str
    phone: str
    enabled: bool = True
    position: int = 0


@dataclass
class CalendarSource:
    """External calendar-of-record descriptor"""
    kind: str
    config: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Tenant:
    """A business with its own dialed number and calendar"""
    id: str
    name: str
    did: str
    timezone: str = "America/New_York"
    slot_duration_minutes: int = 30
    business_hours: BusinessHours = field(default_factory=lambda: BusinessHours.from_config(None))
    ivr_enabled: bool = False
    departments: List[DepartmentOption] = field(default_factory=list)
    owner_phone: Optional[str] = None
    business_phone: Optional[str] = None
    calendar_source: Optional[CalendarSource] = None
    agent_enabled: bool = True
    languages: List[str] = field(default_factory=lambda: ["en"])
    default_language: str = "en"
    deposit_required: bool = False

    def enabled_departments(self) -> List[DepartmentOption]:
        """Enabled departments in keypad order (digit = index + 2)"""
        enabled = [d for d in self.departments if d.enabled and d.phone]
        return sorted(enabled, key=lambda d: d.position)[:MAX_DEPARTMENTS]

    @property
    def uses_ivr(self) -> bool:
        return self.ivr_enabled and bool(self.enabled_departments())

    @property
    def is_multilingual(self) -> bool:
        return len(self.languages) > 1


class TenantStore(ABC):
    """Lookup of tenant configuration"""

    @abstractmethod
    async def get_by_did(self, did: str) -> Optional[Tenant]:
        """Find the tenant owning a normalized dialed number"""
        pass

    @abstractmethod
    async def get_by_id(self, tenant_id: str) -> Optional[Tenant]:
        """Find a tenant by identifier"""
        pass
