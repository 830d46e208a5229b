from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import List
from urllib.parse import parse_qsl, urlsplit

import pytest

from config.settings import Settings
from services.booking.appointment_store import InMemoryAppointmentStore
from services.booking.booking_engine import BookingEngine
from services.booking.models import Appointment, AppointmentStatus
from services.calendar.availability_service import AvailabilityResolver
from services.calendar.calendar_sources import CalendarSourceRegistry
from services.conversation.state_machine import DialogueStateMachine
from services.messages.message_store import InMemoryMessageStore
from services.messages.voicemail_summarizer import VoicemailSummarizer
from services.sms.telnyx_sms_service import TelnyxSMSService
from services.tenants.tenant_base import DepartmentOption, Tenant
from services.tenants.tenant_resolver import TenantResolver
from services.tenants.tenant_store import InMemoryTenantStore
from services.tenants.usage_gate import AllowAllUsageGate, UsageGate
from services.tts.speaker import Speaker

# Monday 2030-03-04, 07:00 in New York
FIXED_NOW = datetime(2030, 3, 4, 12, 0, tzinfo=timezone.utc)
TODAY = date(2030, 3, 4)
TOMORROW = date(2030, 3, 5)

BASE_URL = "https://voice.example.com"


def fixed_clock() -> datetime:
    return FIXED_NOW


def query_params(url: str) -> dict:
    """Context token carried by a callback URL"""
    return dict(parse_qsl(urlsplit(url).query, keep_blank_values=True))


def make_appointment(start: time, day: date = TOMORROW, tenant_id: str = "acme", code: str = "EXIST001") -> Appointment:
    return Appointment(
        tenant_id=tenant_id,
        customer_name="Existing Patient",
        customer_phone="+15550000000",
        day=day,
        start=start,
        duration_minutes=30,
        status=AppointmentStatus.CONFIRMED,
        confirmation_code=code,
    )


class RecordingNotifier(TelnyxSMSService):
    def __init__(self) -> None:
        super().__init__(api_key="", from_number="")
        self.sent: List[Appointment] = []

    async def send_booking_confirmation(self, appointment, tenant, pack) -> bool:
        self.sent.append(appointment)
        return True


class ExhaustedUsageGate(UsageGate):
    async def is_exhausted(self, tenant) -> bool:
        return True


class BrokenUsageGate(UsageGate):
    async def is_exhausted(self, tenant) -> bool:
        raise ConnectionError("usage database unreachable")


@pytest.fixture
def settings() -> Settings:
    return Settings(public_base_url=BASE_URL, validate_twilio_signature=False, max_reprompts=1)


@pytest.fixture
def tenant() -> Tenant:
    return Tenant(
        id="acme",
        name="Acme Dental",
        did="+15550001111",
        owner_phone="+15557770000",
        business_phone="+15550002222",
    )


@pytest.fixture
def ivr_tenant() -> Tenant:
    return Tenant(
        id="ivr-clinic",
        name="Harbor Clinic",
        did="+15550004444",
        owner_phone="+15557771111",
        ivr_enabled=True,
        departments=[
            DepartmentOption(name="Billing", phone="+15553334444", position=1),
            DepartmentOption(name="Front Desk", phone="+15550004444", position=2),
        ],
    )


@pytest.fixture
def bilingual_tenant() -> Tenant:
    return Tenant(
        id="clinica",
        name="Clinica Sol",
        did="+15550005555",
        owner_phone="+15557772222",
        languages=["en", "es"],
    )


@pytest.fixture
def appointments() -> InMemoryAppointmentStore:
    return InMemoryAppointmentStore()


@pytest.fixture
def registry() -> CalendarSourceRegistry:
    return CalendarSourceRegistry(factories={})


@pytest.fixture
def availability(appointments, registry) -> AvailabilityResolver:
    return AvailabilityResolver(appointments, registry, timeout_seconds=0.2, clock=fixed_clock)


@pytest.fixture
def booking(appointments, availability, registry) -> BookingEngine:
    return BookingEngine(appointments, availability, registry)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def messages() -> InMemoryMessageStore:
    return InMemoryMessageStore()


@pytest.fixture
def make_machine(tenant, ivr_tenant, bilingual_tenant, availability, booking, notifier, messages, settings):
    """Build a state machine over the test tenants with stub collaborators"""

    def build(usage_gate: UsageGate = None, summarizer: VoicemailSummarizer = None,
              speaker: Speaker = None) -> DialogueStateMachine:
        resolver = TenantResolver(
            store=InMemoryTenantStore([tenant, ivr_tenant, bilingual_tenant]),
            usage_gate=usage_gate or AllowAllUsageGate(),
        )
        return DialogueStateMachine(
            resolver=resolver,
            availability=availability,
            booking=booking,
            speaker=speaker or Speaker(tts=None, store=None, base_url=BASE_URL),
            notifier=notifier,
            messages=messages,
            summarizer=summarizer or VoicemailSummarizer(llm=None),
            settings=settings,
        )

    return build


@pytest.fixture
def machine(make_machine) -> DialogueStateMachine:
    return make_machine()
