"""
=====================================================
Voice Scheduling Platform - Context Token Codec
=====================================================
Encodes a DialogueContext as URL query parameters and back.

Round-trip law: decode_context(parse(encode_context(ctx))) == ctx
"""

import re
from datetime import date
from typing import Mapping, List, Tuple, Optional
from urllib.parse import urlencode, parse_qsl

from services.conversation.context import DialogueContext, Step
from services.conversation.language import Language
from services.errors import SessionExpired

TOKEN_VERSION = "1"

_SLOT = re.compile(r"^\d{2}:\d{2}$")
_STEPS = {step.value: step for step in Step}


def _join_slots(slots: List[str]) -> str:
    return ",".join(slots)


def _split_slots(raw: Optional[str], key: str) -> List[str]:
    if not raw:
        return []
    slots = raw.split(",")
    if not all(_SLOT.match(s) for s in slots):
        raise SessionExpired(f"Malformed slot list in '{key}'")
    return slots


def _int(params: Mapping[str, str], key: str, default: int = 0) -> int:
    raw = params.get(key)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise SessionExpired(f"Non-numeric '{key}': {raw!r}") from e
    if value < 0:
        raise SessionExpired(f"Negative '{key}': {value}")
    return value


def context_params(ctx: DialogueContext) -> List[Tuple[str, str]]:
    """Ordered query parameters for a context"""
    params = [
        ("v", TOKEN_VERSION),
        ("tid", ctx.tenant_id),
        ("call", ctx.call_id),
        ("step", ctx.step.value),
        ("biz", ctx.business_name),
        ("caller", ctx.caller_phone),
    ]
    if ctx.language is not None:
        params.append(("lang", ctx.language.value))
    if ctx.attempts:
        params.append(("n", str(ctx.attempts)))
    if ctx.prospect_name is not None:
        params.append(("name", ctx.prospect_name))
    if ctx.prospect_phone is not None:
        params.append(("phone", ctx.prospect_phone))
    if ctx.appointment_date is not None:
        params.append(("date", ctx.appointment_date.isoformat()))
    if ctx.available_slots:
        params.append(("avail", _join_slots(ctx.available_slots)))
    if ctx.offered_slots:
        params.append(("offer", _join_slots(ctx.offered_slots)))
    if ctx.slot_offset:
        params.append(("off", str(ctx.slot_offset)))
    if ctx.has_more:
        params.append(("more", "1"))
    if ctx.date_attempts:
        params.append(("dtry", str(ctx.date_attempts)))
    if ctx.availability_source is not None:
        params.append(("src", ctx.availability_source))
    return params


def encode_context(ctx: DialogueContext) -> str:
    """URL-safe query string for a context"""
    return urlencode(context_params(ctx))


def decode_context(params: Mapping[str, str]) -> DialogueContext:
    """
    Rebuild a context from callback query parameters

    Args:
        params: Query parameters of the callback request (extra keys are ignored)

    Returns:
        The decoded DialogueContext

    Raises:
        SessionExpired: If the token is missing, from another version or malformed
    """
    if params.get("v") != TOKEN_VERSION:
        raise SessionExpired("Missing or unsupported context token version")

    tenant_id = params.get("tid")
    call_id = params.get("call")
    if not tenant_id or not call_id:
        raise SessionExpired("Context token has no tenant or call id")

    step = _STEPS.get(params.get("step", ""))
    if step is None:
        raise SessionExpired(f"Unknown step {params.get('step')!r}")

    language = None
    if params.get("lang"):
        try:
            language = Language(params["lang"])
        except ValueError as e:
            raise SessionExpired(f"Unknown language {params['lang']!r}") from e

    appointment_date = None
    if params.get("date"):
        try:
            appointment_date = date.fromisoformat(params["date"])
        except ValueError as e:
            raise SessionExpired(f"Malformed date {params['date']!r}") from e

    return DialogueContext(
        tenant_id=tenant_id,
        call_id=call_id,
        step=step,
        language=language,
        business_name=params.get("biz", ""),
        caller_phone=params.get("caller", ""),
        attempts=_int(params, "n"),
        prospect_name=params.get("name"),
        prospect_phone=params.get("phone"),
        appointment_date=appointment_date,
        available_slots=_split_slots(params.get("avail"), "avail"),
        offered_slots=_split_slots(params.get("offer"), "offer"),
        slot_offset=_int(params, "off"),
        has_more=params.get("more") == "1",
        date_attempts=_int(params, "dtry"),
        availability_source=params.get("src"),
    )


def decode_query_string(query: str) -> DialogueContext:
    """Decode from a raw query string"""
    return decode_context(dict(parse_qsl(query, keep_blank_values=True)))


def callback_url(base_url: str, path: str, ctx: DialogueContext) -> str:
    """Absolute callback URL carrying the context token"""
    return f"{base_url.rstrip('/')}{path}?{encode_context(ctx)}"
