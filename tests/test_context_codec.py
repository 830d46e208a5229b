from __future__ import annotations

from datetime import date

import pytest

from services.conversation.context import DialogueContext, Step
from services.conversation.context_codec import (
    callback_url,
    decode_context,
    decode_query_string,
    encode_context,
)
from services.conversation.language import Language
from services.errors import SessionExpired


def _mid_offer_context() -> DialogueContext:
    return DialogueContext(
        tenant_id="acme",
        call_id="CA0123456789abcdef",
        step=Step.SELECT_SLOT,
        language=Language.ES,
        business_name="Peña & Hijos, S.A.",
        caller_phone="+15559990000",
        attempts=1,
        prospect_name="José Núñez",
        prospect_phone="+15551234567",
        appointment_date=date(2030, 3, 5),
        available_slots=["09:00", "09:30", "10:30", "11:00"],
        offered_slots=["11:00"],
        slot_offset=3,
        has_more=False,
        date_attempts=1,
        availability_source="local",
    )


def test_full_context_round_trips_through_query_string():
    ctx = _mid_offer_context()
    assert decode_query_string(encode_context(ctx)) == ctx


def test_fresh_context_round_trips():
    ctx = DialogueContext(tenant_id="acme", call_id="CA1", step=Step.LANGUAGE_SELECT)
    assert decode_query_string(encode_context(ctx)) == ctx


def test_encoded_token_is_url_safe():
    token = encode_context(_mid_offer_context())
    assert token.isascii()
    assert " " not in token
    assert all(part.count("=") == 1 for part in token.split("&"))


def test_callback_url_carries_token():
    url = callback_url("https://voice.example.com/", "/voice/turn", _mid_offer_context())
    assert url.startswith("https://voice.example.com/voice/turn?v=1&")


@pytest.mark.parametrize(
    "params",
    [
        {},
        {"v": "0", "tid": "acme", "call": "CA1", "step": "name"},
        {"v": "1", "call": "CA1", "step": "name"},
        {"v": "1", "tid": "acme", "call": "CA1", "step": "teleport"},
        {"v": "1", "tid": "acme", "call": "CA1", "step": "select", "offer": "9am"},
        {"v": "1", "tid": "acme", "call": "CA1", "step": "date", "date": "2030-02-30"},
        {"v": "1", "tid": "acme", "call": "CA1", "step": "select", "off": "-3"},
        {"v": "1", "tid": "acme", "call": "CA1", "step": "name", "lang": "fr"},
    ],
)
def test_bad_tokens_expire_the_session(params):
    with pytest.raises(SessionExpired):
        decode_context(params)
