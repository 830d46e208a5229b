from __future__ import annotations

import json
from datetime import time

import httpx
import pytest

from conftest import TOMORROW, make_appointment
from services.booking.models import AppointmentStatus
from services.calendar.calendar_base import CalendarSourceError
from services.calendar.ms_bookings_service import MSBookingsService
from services.conversation.language import ENGLISH, SPANISH
from services.sms.telnyx_sms_service import TelnyxSMSService

BOOKINGS_CONFIG = {
    "tenant_id": "contoso",
    "client_id": "client",
    "client_secret": "secret",
    "business_id": "acme@contoso.onmicrosoft.com",
    "service_id": "svc-1",
    "staff_ids": ["staff-1"],
}


def _graph(handler) -> MSBookingsService:
    service = MSBookingsService(BOOKINGS_CONFIG)
    service._http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return service


def _window(start: str, end: str, status: str = "available") -> dict:
    return {
        "status": status,
        "startDateTime": {"dateTime": start, "timeZone": "Eastern Standard Time"},
        "endDateTime": {"dateTime": end, "timeZone": "Eastern Standard Time"},
    }


async def test_bookings_windows_are_cut_into_slots(tenant):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.host == "login.microsoftonline.com":
            return httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})
        day = TOMORROW.isoformat()
        return httpx.Response(200, json={"value": [{
            "staffId": "staff-1",
            "availabilityItems": [
                _window(f"{day}T09:00:00.0000000", f"{day}T10:15:00.0000000"),
                _window(f"{day}T10:15:00.0000000", f"{day}T13:00:00.0000000", status="busy"),
                _window(f"{day}T14:00:00.0000000", f"{day}T15:00:00.0000000"),
            ],
        }]})

    slots = await _graph(handler).get_available_slots(tenant, TOMORROW)

    assert [s.key for s in slots] == ["09:00", "09:30", "14:00", "14:30"]
    availability_call = requests[-1]
    assert availability_call.headers["Authorization"] == "Bearer tok"
    assert json.loads(availability_call.content)["staffIds"] == ["staff-1"]


async def test_bookings_http_error_is_a_calendar_error(tenant):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "login.microsoftonline.com":
            return httpx.Response(200, json={"access_token": "tok"})
        return httpx.Response(503, json={"error": "unavailable"})

    with pytest.raises(CalendarSourceError, match="503"):
        await _graph(handler).get_available_slots(tenant, TOMORROW)


async def test_bookings_create_returns_event_id(tenant):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "login.microsoftonline.com":
            return httpx.Response(200, json={"access_token": "tok"})
        body = json.loads(request.content)
        assert body["startDateTime"]["dateTime"] == f"{TOMORROW.isoformat()}T10:00:00"
        assert body["customerNotes"].endswith("EXIST001")
        return httpx.Response(201, json={"id": "appt-9"})

    result = await _graph(handler).create_booking(tenant, make_appointment(time(10, 0)))

    assert result.success
    assert result.external_id == "appt-9"


async def test_unconfigured_bookings_source_does_not_call_out(tenant):
    service = MSBookingsService({"business_id": ""})
    result = await service.create_booking(tenant, make_appointment(time(10, 0)))
    assert not result.success


class CapturingSMS(TelnyxSMSService):
    def __init__(self):
        super().__init__(api_key="key", from_number="+15550009999")
        self.outbox = []

    async def send_sms(self, to_number: str, message: str) -> bool:
        self.outbox.append((to_number, message))
        return True


async def test_confirmation_sms_text(tenant):
    sms = CapturingSMS()

    await sms.send_booking_confirmation(make_appointment(time(9, 30)), tenant, ENGLISH)

    to_number, text = sms.outbox[0]
    assert to_number == "+15550000000"
    assert "Acme Dental" in text
    assert "Tuesday, March 5 at 9:30 AM" in text
    assert "EXIST001" in text


async def test_pending_sms_mentions_deposit(tenant):
    sms = CapturingSMS()
    appointment = make_appointment(time(9, 30))
    appointment.status = AppointmentStatus.PENDING

    await sms.send_booking_confirmation(appointment, tenant, SPANISH)

    assert "depósito" in sms.outbox[0][1]


async def test_sms_not_sent_without_credentials():
    sms = TelnyxSMSService(api_key="", from_number="")
    assert not sms.is_available()
    assert await sms.send_sms("+15551234567", "hello") is False


async def test_sms_rejects_incomplete_number():
    sms = TelnyxSMSService(api_key="key", from_number="+15550009999")
    assert await sms.send_sms("555123", "hello") is False
