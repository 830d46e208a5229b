from __future__ import annotations

import asyncio
from datetime import time

import pytest

from conftest import TODAY, TOMORROW, make_appointment
from services.booking.booking_engine import (
    CODE_ALPHABET,
    CODE_LENGTH,
    BookingConfirmed,
    BookingRejected,
    SlotTaken,
)
from services.booking.models import AppointmentStatus
from services.calendar.calendar_base import BookingResult, CalendarSourceBase
from services.tenants.tenant_base import CalendarSource


class RecordingCalendar(CalendarSourceBase):
    source_tag = "recording_calendar"

    def __init__(self, result: BookingResult = None, error: Exception = None):
        self.result = result or BookingResult(success=True, external_id="evt-42")
        self.error = error
        self.created = []

    async def is_available(self) -> bool:
        return True

    async def get_available_slots(self, tenant, day):
        return []

    async def create_booking(self, tenant, appointment) -> BookingResult:
        self.created.append(appointment)
        if self.error:
            raise self.error
        return self.result


async def test_books_a_free_slot(tenant, booking, appointments):
    outcome = await booking.book(tenant, TOMORROW, time(9, 30), "Dana Scully", "+15551234567")

    assert isinstance(outcome, BookingConfirmed)
    appointment = outcome.appointment
    assert appointment.status == AppointmentStatus.CONFIRMED
    assert appointment.duration_minutes == 30
    assert appointment.id is not None
    assert len(appointment.confirmation_code) == CODE_LENGTH
    assert set(appointment.confirmation_code) <= set(CODE_ALPHABET)
    assert [a.start for a in await appointments.list_active("acme", TOMORROW)] == [time(9, 30)]


async def test_concurrent_requests_for_one_slot_have_one_winner(tenant, booking, appointments):
    first, second = await asyncio.gather(
        booking.book(tenant, TOMORROW, time(9, 30), "Dana Scully", "+15551234567"),
        booking.book(tenant, TOMORROW, time(9, 30), "Fox Mulder", "+15557654321"),
    )

    outcomes = [first, second]
    confirmed = [o for o in outcomes if isinstance(o, BookingConfirmed)]
    taken = [o for o in outcomes if isinstance(o, SlotTaken)]
    assert len(confirmed) == 1
    assert len(taken) == 1

    assert "09:30" not in taken[0].availability.keys()
    assert [s.key for s in taken[0].alternatives] == ["09:00", "10:00", "10:30"]
    assert len(await appointments.list_active("acme", TOMORROW)) == 1


async def test_overlapping_request_is_taken(tenant, booking, appointments):
    await appointments.insert_if_free(make_appointment(time(10, 0)))

    outcome = await booking.book(tenant, TOMORROW, time(10, 0), "Dana Scully", "+15551234567")

    assert isinstance(outcome, SlotTaken)
    assert outcome.requested.key == "10:00"
    assert "10:00" not in [s.key for s in outcome.alternatives]


@pytest.mark.parametrize(
    "day, start, name, phone, reason",
    [
        (TOMORROW, time(9, 0), "  ", "+15551234567", "name"),
        (TOMORROW, time(9, 0), "Dana", "555123", "phone"),
        (TODAY, time(6, 0), "Dana", "+15551234567", "past"),
        (TOMORROW, time(18, 0), "Dana", "+15551234567", "business hours"),
        (TOMORROW, time(16, 45), "Dana", "+15551234567", "business hours"),
    ],
)
async def test_invalid_requests_are_rejected(tenant, booking, appointments, day, start, name, phone, reason):
    outcome = await booking.book(tenant, day, start, name, phone)

    assert isinstance(outcome, BookingRejected)
    assert reason in outcome.reason
    assert appointments.all() == []


async def test_duration_out_of_range_is_rejected(tenant, booking):
    outcome = await booking.book(tenant, TOMORROW, time(9, 0), "Dana", "+15551234567", duration=5)
    assert isinstance(outcome, BookingRejected)
    assert "duration" in outcome.reason


async def test_deposit_tenant_gets_pending_appointment(tenant, booking):
    tenant.deposit_required = True

    outcome = await booking.book(tenant, TOMORROW, time(9, 0), "Dana", "+15551234567")

    assert isinstance(outcome, BookingConfirmed)
    assert outcome.appointment.status == AppointmentStatus.PENDING


async def test_cancel_frees_the_slot(tenant, booking, appointments):
    outcome = await booking.book(tenant, TOMORROW, time(9, 0), "Dana", "+15551234567")
    code = outcome.appointment.confirmation_code

    assert await booking.cancel(tenant, f" {code.lower()} ")
    assert await appointments.list_active("acme", TOMORROW) == []
    assert not await booking.cancel(tenant, code)

    again = await booking.book(tenant, TOMORROW, time(9, 0), "Fox", "+15557654321")
    assert isinstance(again, BookingConfirmed)


async def test_sync_external_records_calendar_event_id(tenant, booking, registry, appointments):
    calendar = RecordingCalendar()
    registry.register("recording", lambda config: calendar)
    tenant.calendar_source = CalendarSource(kind="recording")

    outcome = await booking.book(tenant, TOMORROW, time(9, 0), "Dana", "+15551234567")
    await booking.sync_external(tenant, outcome.appointment)

    assert calendar.created == [outcome.appointment]
    stored = await appointments.find_by_code("acme", outcome.appointment.confirmation_code)
    assert stored.external_id == "evt-42"


async def test_sync_external_failure_keeps_local_booking(tenant, booking, registry, appointments):
    registry.register("recording", lambda config: RecordingCalendar(error=RuntimeError("HTTP 500")))
    tenant.calendar_source = CalendarSource(kind="recording")

    outcome = await booking.book(tenant, TOMORROW, time(9, 0), "Dana", "+15551234567")
    await booking.sync_external(tenant, outcome.appointment)

    stored = await appointments.find_by_code("acme", outcome.appointment.confirmation_code)
    assert stored.is_active
    assert stored.external_id is None
