"""
=====================================================
Voice Scheduling Platform - Telephony Webhooks
=====================================================
Twilio voice webhooks. Every response is TwiML; a caller never hears
a raw error, only an apology followed by a hangup.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, Response
from loguru import logger

from services.conversation.language import get_language_pack
from services.conversation.state_machine import (
    CallEvent,
    DialogueStateMachine,
    TurnResult,
    get_state_machine,
)
from services.security import validate_twilio_signature
from services.telephony.voice_document import VoiceDocument
from services.tts.audio_store import AudioClipStore, get_audio_store

TWIML_MEDIA_TYPE = "application/xml"

router = APIRouter()
voice_router = APIRouter(prefix="/voice", dependencies=[Depends(validate_twilio_signature)])


def twiml_response(document: VoiceDocument) -> Response:
    return Response(content=document.to_xml(), media_type=TWIML_MEDIA_TYPE)


def apology_response(language: str = None) -> Response:
    """Technical-difficulties message in the call's language, then hangup"""
    pack = get_language_pack(language)
    document = VoiceDocument()
    document.speak(pack.say("technical_error"), pack.voice, pack.locale)
    document.hangup()
    return twiml_response(document)


def _respond(result: TurnResult, background_tasks: BackgroundTasks) -> Response:
    for task in result.tasks:
        background_tasks.add_task(task)
    return twiml_response(result.document)


@voice_router.post("/incoming")
async def incoming_call(
    request: Request,
    background_tasks: BackgroundTasks,
    machine: DialogueStateMachine = Depends(get_state_machine),
):
    """First event of a call: resolve the tenant and open the conversation"""
    form = await request.form()
    event = CallEvent.from_form(form)
    logger.info(f"Voice: Incoming call {event.call_sid} from {event.caller} to {event.dialed}")

    try:
        result = await machine.start_call(event)
    except Exception as e:
        logger.exception(f"Voice: Failed to answer {event.call_sid}: {e}")
        return apology_response()

    return _respond(result, background_tasks)


@voice_router.post("/turn")
async def call_turn(
    request: Request,
    background_tasks: BackgroundTasks,
    machine: DialogueStateMachine = Depends(get_state_machine),
):
    """Every later turn; the context token is in the query string"""
    form = await request.form()
    event = CallEvent.from_form(form)
    params = dict(request.query_params)

    try:
        result = await machine.continue_call(event, params)
    except Exception as e:
        logger.exception(f"Voice: Turn failed for {event.call_sid} at step {params.get('step')}: {e}")
        return apology_response(params.get("lang"))

    return _respond(result, background_tasks)


@voice_router.post("/voicemail-transcription")
async def voicemail_transcription(
    request: Request,
    background_tasks: BackgroundTasks,
    machine: DialogueStateMachine = Depends(get_state_machine),
):
    """Transcription callback; summarized after the response is sent"""
    form = await request.form()
    event = CallEvent.from_form(form)
    params = dict(request.query_params)

    async def summarize():
        try:
            await machine.handle_transcription(event, params)
        except Exception as e:
            logger.exception(f"Voicemail: Summary failed for {event.recording_id}: {e}")

    background_tasks.add_task(summarize)
    return Response(status_code=204)


@router.get("/audio/{clip_name}")
async def get_audio_clip(clip_name: str, store: AudioClipStore = Depends(get_audio_store)):
    """Synthesized prompt audio for Twilio <Play>"""
    clip_id = clip_name[:-4] if clip_name.endswith(".mp3") else clip_name
    audio = await store.get(clip_id)
    if audio is None:
        raise HTTPException(status_code=404, detail="Audio clip expired or not found")
    return Response(content=audio, media_type="audio/mpeg")


router.include_router(voice_router)
