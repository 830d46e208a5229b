from __future__ import annotations

import asyncio
from datetime import date, time
from typing import List

from conftest import TODAY, TOMORROW, make_appointment
from services.booking.models import Appointment, AppointmentStatus, Availability, Slot
from services.calendar.availability_service import LOCAL_SOURCE, paginate
from services.calendar.calendar_base import BookingResult, CalendarSourceBase, CalendarSourceError
from services.tenants.tenant_base import BusinessHours, CalendarSource


class StubCalendar(CalendarSourceBase):
    source_tag = "stub_calendar"

    def __init__(self, slots: List[time] = None, error: Exception = None, delay: float = 0.0) -> None:
        self.slots = slots or []
        self.error = error
        self.delay = delay
        self.requests = []

    async def is_available(self) -> bool:
        return True

    async def get_available_slots(self, tenant, day) -> List[Slot]:
        self.requests.append(day)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return [Slot(day, start, tenant.slot_duration_minutes) for start in self.slots]

    async def create_booking(self, tenant, appointment) -> BookingResult:
        return BookingResult(success=True, external_id="ext-1")


def _with_calendar(tenant, registry, calendar):
    registry.register("stub", lambda config: calendar)
    tenant.calendar_source = CalendarSource(kind="stub")
    return tenant


async def test_local_slots_exclude_existing_appointment(tenant, appointments, availability):
    await appointments.insert_if_free(make_appointment(time(10, 0)))

    result = await availability.get_availability(tenant, TOMORROW)

    assert result.source == LOCAL_SOURCE
    assert result.keys()[:5] == ["09:00", "09:30", "10:30", "11:00", "11:30"]
    assert "10:00" not in result.keys()
    assert result.keys()[-1] == "16:30"


async def test_local_slots_stay_inside_business_hours(tenant, availability):
    tenant.business_hours = BusinessHours.from_config({"start": "08:15", "end": "12:00", "days": "tue"})
    tenant.slot_duration_minutes = 45

    result = await availability.get_availability(tenant, TOMORROW)

    assert result.keys() == ["08:15", "09:00", "09:45", "10:30", "11:15"]
    for slot in result.slots:
        assert tenant.business_hours.contains(slot.day, slot.start, slot.duration_minutes)


async def test_closed_day_has_no_slots(tenant, availability):
    saturday = date(2030, 3, 9)
    result = await availability.get_availability(tenant, saturday)
    assert result.slots == []


async def test_cancelled_appointment_frees_slot(tenant, appointments, availability):
    cancelled = make_appointment(time(9, 0))
    cancelled.status = AppointmentStatus.CANCELLED
    await appointments.insert_if_free(cancelled)

    result = await availability.get_availability(tenant, TOMORROW)
    assert result.keys()[0] == "09:00"


async def test_past_slots_are_not_offered_today(tenant, availability):
    # The test clock is 07:00 local, so today's 09:00 is still ahead
    result = await availability.get_availability(tenant, TODAY)
    assert result.keys()[0] == "09:00"

    yesterday = date(2030, 3, 1)
    assert (await availability.get_availability(tenant, yesterday)).slots == []


async def test_external_calendar_is_preferred(tenant, registry, appointments, availability):
    calendar = StubCalendar(slots=[time(14, 0), time(9, 0), time(10, 0)])
    _with_calendar(tenant, registry, calendar)
    await appointments.insert_if_free(make_appointment(time(10, 0)))

    result = await availability.get_availability(tenant, TOMORROW)

    assert result.source == "stub_calendar"
    assert result.keys() == ["09:00", "14:00"]
    assert calendar.requests == [TOMORROW]


async def test_empty_external_answer_is_authoritative(tenant, registry, availability):
    _with_calendar(tenant, registry, StubCalendar(slots=[]))

    result = await availability.get_availability(tenant, TOMORROW)

    assert result.source == "stub_calendar"
    assert result.slots == []


async def test_external_error_falls_back_to_local(tenant, registry, availability):
    _with_calendar(tenant, registry, StubCalendar(error=CalendarSourceError("HTTP 503")))

    result = await availability.get_availability(tenant, TOMORROW)

    assert result.source == LOCAL_SOURCE
    assert result.keys()[0] == "09:00"


async def test_slow_external_calendar_times_out_to_local(tenant, registry, availability):
    _with_calendar(tenant, registry, StubCalendar(slots=[time(9, 0)], delay=5))

    result = await availability.get_availability(tenant, TOMORROW)

    assert result.source == LOCAL_SOURCE
    assert len(result.slots) == 16


def test_pagination_visits_every_slot_once():
    slots = [f"{9 + i // 2:02d}:{(i % 2) * 30:02d}" for i in range(8)]
    seen, offset, pages = [], 0, 0

    while True:
        page = paginate(slots, offset, 3)
        seen.extend(page.offered)
        pages += 1
        if not page.has_more:
            break
        offset = page.next_offset

    assert seen == slots
    assert pages == 3


def test_pagination_is_pure():
    slots = ["09:00", "09:30", "10:30", "11:00"]
    assert paginate(slots, 0, 3) == paginate(slots, 0, 3)
    assert paginate(slots, 0, 3).offered == ["09:00", "09:30", "10:30"]
    assert paginate(slots, 3, 3).offered == ["11:00"]
    assert not paginate(slots, 3, 3).has_more


def test_nearby_alternatives_are_closest_first_then_sorted(availability):
    day = TOMORROW
    open_slots = Availability(day, LOCAL_SOURCE, [Slot(day, time(h, m)) for h, m in
                                                  [(9, 0), (10, 30), (11, 0), (15, 0)]])
    nearby = availability.nearby(open_slots, time(10, 0))
    assert [s.key for s in nearby] == ["09:00", "10:30", "11:00"]


def test_appointment_overlap_uses_duration():
    existing: Appointment = make_appointment(time(10, 0))
    slot = Slot(TOMORROW, time(9, 45), 30)
    assert slot.overlaps(existing.start, existing.duration_minutes)
    assert not Slot(TOMORROW, time(10, 30), 30).overlaps(existing.start, existing.duration_minutes)
