from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient
from twilio.request_validator import RequestValidator

from conftest import BASE_URL, TOMORROW
from api.main import app
from config.settings import Settings
from services.calendar.availability_service import get_availability_resolver
from services.conversation.context import DialogueContext, Step
from services.conversation.context_codec import encode_context
from services.conversation.language import Language
from services.conversation.state_machine import get_state_machine
from services.security import middleware
from services.tenants.tenant_resolver import TenantResolver, get_tenant_resolver
from services.tenants.tenant_store import InMemoryTenantStore
from services.tenants.usage_gate import AllowAllUsageGate
from services.tts import audio_store
from services.tts.audio_store import MemoryAudioClipStore, get_audio_store

ACME_DID = "+15550001111"


class BrokenMachine:
    async def start_call(self, event):
        raise RuntimeError("database unreachable")

    async def continue_call(self, event, params):
        raise RuntimeError("database unreachable")


@pytest.fixture
def client(machine, availability, tenant, ivr_tenant):
    resolver = TenantResolver(store=InMemoryTenantStore([tenant, ivr_tenant]), usage_gate=AllowAllUsageGate())
    app.dependency_overrides[get_state_machine] = lambda: machine
    app.dependency_overrides[get_tenant_resolver] = lambda: resolver
    app.dependency_overrides[get_availability_resolver] = lambda: availability
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _token(step: Step, **changes) -> str:
    ctx = DialogueContext(tenant_id="acme", call_id="CA1", step=step, language=Language.EN,
                          caller_phone="+15559990000", **changes)
    return encode_context(ctx)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_incoming_call_returns_twiml(client):
    response = client.post("/voice/incoming", data={"From": "+15559990000", "To": ACME_DID, "CallSid": "CA1"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/xml")
    assert "<Gather" in response.text
    assert "Thank you for calling Acme Dental" in response.text
    assert f"{BASE_URL}/voice/turn?v=1&amp;" in response.text


def test_turn_advances_conversation(client):
    response = client.post(
        f"/voice/turn?{_token(Step.INTENT_CLASSIFY)}",
        data={"To": ACME_DID, "CallSid": "CA1", "SpeechResult": "I need an appointment"},
    )

    assert response.status_code == 200
    assert "Please say your full name" in response.text


def test_turn_with_bad_token_hangs_up(client):
    response = client.post("/voice/turn?v=1&tid=acme", data={"To": ACME_DID, "CallSid": "CA1"})

    assert response.status_code == 200
    assert "<Hangup" in response.text


def test_engine_failure_is_an_apology_not_an_error(client):
    app.dependency_overrides[get_state_machine] = lambda: BrokenMachine()

    incoming = client.post("/voice/incoming", data={"To": ACME_DID, "CallSid": "CA1"})
    turn = client.post("/voice/turn?v=1&lang=es", data={"To": ACME_DID, "CallSid": "CA1"})

    assert incoming.status_code == 200
    assert "technical difficulties" in incoming.text
    assert "<Hangup" in incoming.text
    assert turn.status_code == 200
    assert "problemas técnicos" in turn.text


def test_transcription_callback_summarizes_in_background(client, messages):
    response = client.post(
        f"/voice/voicemail-transcription?{_token(Step.VOICEMAIL)}",
        data={"RecordingSid": "RE77", "TranscriptionText": "Please call me back",
              "TranscriptionStatus": "completed"},
    )

    assert response.status_code == 204
    saved = asyncio.run(messages.get("RE77"))
    assert saved.summary == "Voicemail from +15559990000: Please call me back"


def test_audio_clip_served_until_expired(client):
    store = MemoryAudioClipStore()
    asyncio.run(store.put("abc123", b"ID3fake", ttl_seconds=60))
    app.dependency_overrides[get_audio_store] = lambda: store

    found = client.get("/audio/abc123.mp3")
    missing = client.get("/audio/nope.mp3")

    assert found.status_code == 200
    assert found.headers["content-type"] == "audio/mpeg"
    assert found.content == b"ID3fake"
    assert missing.status_code == 404


def test_tenant_availability(client):
    response = client.get(f"/api/tenants/acme/availability?date={TOMORROW.isoformat()}")

    body = response.json()
    assert response.status_code == 200
    assert body["tenant_id"] == "acme"
    assert body["source"] == "local"
    assert body["slots"][:2] == ["09:00", "09:30"]
    assert len(body["slots"]) == 16


def test_unknown_tenant_is_404(client):
    assert client.get(f"/api/tenants/ghost/availability?date={TOMORROW.isoformat()}").status_code == 404


def test_transfer_check_reports_loop(client):
    body = client.get("/api/tenants/ivr-clinic/transfer-check").json()

    assert body["has_risk"] is True
    assert body["risks"] == [{"department": "Front Desk", "phone": "+15550004444", "matches": "did"}]
    assert body["fallback"] == "+15557771111"
    assert body["specialist_destination"] == "+15557771111"


@pytest.fixture
def signed_settings(monkeypatch) -> Settings:
    settings = Settings(public_base_url=BASE_URL, validate_twilio_signature=True, twilio_auth_token="secret")
    monkeypatch.setattr(middleware, "get_settings", lambda: settings)
    return settings


def test_unsigned_webhook_is_rejected(client, signed_settings):
    response = client.post("/voice/incoming", data={"To": ACME_DID, "CallSid": "CA1"})
    assert response.status_code == 403


def test_signed_webhook_is_accepted(client, signed_settings):
    form = {"To": ACME_DID, "CallSid": "CA1", "From": "+15559990000"}
    signature = RequestValidator("secret").compute_signature(f"{BASE_URL}/voice/incoming", form)

    response = client.post("/voice/incoming", data=form, headers={"X-Twilio-Signature": signature})

    assert response.status_code == 200
    assert "Acme Dental" in response.text


class ClosingStore(MemoryAudioClipStore):
    def __init__(self):
        super().__init__()
        self.closed = False

    async def close(self):
        self.closed = True


def test_shutdown_closes_clip_store(monkeypatch):
    store = ClosingStore()
    monkeypatch.setattr(audio_store, "_audio_store", store)

    with TestClient(app):
        assert not store.closed

    assert store.closed
    assert audio_store._audio_store is None
