"""
=====================================================
Voice Scheduling Platform - Dialogue State Machine
=====================================================

One parameterized machine for every language. Each inbound telephony
event is a single turn:

1. Resolve the tenant (usage gate on the first event only)
2. Decode the DialogueContext from the callback URL
3. Run the handler for the step the context says we are in
4. Return a VoiceDocument whose callbacks carry the next context

Nothing is kept in memory between turns, so any server process can
handle any turn of any call.
"""

import asyncio
import uuid
from dataclasses import dataclass, field, replace
from datetime import time
from typing import Optional, List, Mapping, Callable, Awaitable

from loguru import logger

from config.settings import Settings, get_settings
from services.booking.booking_engine import (
    BookingEngine,
    BookingConfirmed,
    SlotTaken,
    get_booking_engine,
)
from services.booking.models import Appointment, AppointmentStatus
from services.calendar.availability_service import (
    AvailabilityResolver,
    get_availability_resolver,
    paginate,
)
from services.conversation.context import DialogueContext, Step, TERMINAL_STEPS
from services.conversation.context_codec import callback_url, decode_context
from services.conversation.date_parser import parse_spoken_date
from services.conversation.intents import (
    classify_intent,
    contains_keyword,
    extract_name,
    mentions_any,
    normalize_speech,
    parse_choice,
    slot_for_time,
    spoken_time,
)
from services.conversation.language import Intent, Language, LanguagePack, get_language_pack
from services.errors import SessionExpired
from services.messages.message_store import Message, MessageStore, get_message_store
from services.messages.voicemail_summarizer import VoicemailSummarizer, get_voicemail_summarizer
from services.phone.phone_normalizer import is_complete_phone, normalize_phone, phone_from_speech
from services.sms.telnyx_sms_service import TelnyxSMSService, get_sms_service
from services.telephony.transfer_loop import department_destination, specialist_destination
from services.telephony.voice_document import GatherMode, VoiceDocument
from services.tenants.tenant_base import DepartmentOption, Tenant
from services.tenants.tenant_resolver import ResolutionStatus, TenantResolver, get_tenant_resolver
from services.tts.speaker import Speaker, get_speaker

TURN_PATH = "/voice/turn"
TRANSCRIPTION_PATH = "/voice/voicemail-transcription"

IVR_BOOKING_DIGIT = 1
IVR_FIRST_DEPARTMENT_DIGIT = 2
IVR_VOICEMAIL_DIGIT = 9

MORE_SLOTS_CHOICE = 4
SPECIALIST_CHOICE = 0

ANSWERED_DIAL_STATUSES = ("completed", "answered")

LANGUAGE_DIGITS = {1: Language.EN, 2: Language.ES}
LANGUAGE_WORDS = {"english": Language.EN, "ingles": Language.EN, "spanish": Language.ES, "espanol": Language.ES}

BackgroundTask = Callable[[], Awaitable[None]]


@dataclass
class CallEvent:
    """One inbound telephony callback"""
    caller: str = ""
    dialed: str = ""
    call_sid: str = ""
    speech: str = ""
    digits: str = ""
    dial_status: str = ""
    recording_url: str = ""
    recording_sid: str = ""
    recording_duration: Optional[int] = None
    transcription_text: str = ""
    transcription_status: str = ""

    @classmethod
    def from_form(cls, form: Mapping[str, str]) -> "CallEvent":
        """Build from a Twilio webhook form body"""
        duration = form.get("RecordingDuration")
        return cls(
            caller=form.get("From", ""),
            dialed=form.get("To", ""),
            call_sid=form.get("CallSid", ""),
            speech=form.get("SpeechResult", ""),
            digits=form.get("Digits", ""),
            dial_status=form.get("DialCallStatus", ""),
            recording_url=form.get("RecordingUrl", ""),
            recording_sid=form.get("RecordingSid", ""),
            recording_duration=int(duration) if duration and duration.isdigit() else None,
            transcription_text=form.get("TranscriptionText", ""),
            transcription_status=form.get("TranscriptionStatus", ""),
        )

    @property
    def has_input(self) -> bool:
        return bool((self.speech or "").strip() or (self.digits or "").strip())

    @property
    def recording_id(self) -> str:
        return self.recording_sid or self.recording_url.rstrip("/").rsplit("/", 1)[-1]


@dataclass
class TurnResult:
    """What one turn produced"""
    document: VoiceDocument
    context: Optional[DialogueContext] = None
    tasks: List[BackgroundTask] = field(default_factory=list)


@dataclass
class _Turn:
    """Working state of the turn being handled"""
    tenant: Tenant
    pack: LanguagePack
    event: CallEvent
    document: VoiceDocument = field(default_factory=VoiceDocument)
    tasks: List[BackgroundTask] = field(default_factory=list)
    deadline: Optional[float] = None  # event-loop time by which prompt audio must be ready

    def result(self, ctx: DialogueContext) -> TurnResult:
        return TurnResult(self.document, ctx, self.tasks)

    def tts_budget(self) -> Optional[float]:
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - asyncio.get_running_loop().time())


class DialogueStateMachine:
    """
    Conversational scheduling engine

    States: LanguageSelect -> Greeting | IvrMenu -> IntentClassify ->
    CollectName -> CollectPhone -> CollectDate -> OfferSlots <-> SelectSlot
    -> ConfirmBooking, plus Voicemail and the two transfer states.

    Every question is a gather followed by a redirect to the same step,
    so silence re-enters the step with empty input. A step re-prompts
    ``max_reprompts`` times and then takes its fallback.
    """

    def __init__(
        self,
        resolver: TenantResolver = None,
        availability: AvailabilityResolver = None,
        booking: BookingEngine = None,
        speaker: Speaker = None,
        notifier: TelnyxSMSService = None,
        messages: MessageStore = None,
        summarizer: VoicemailSummarizer = None,
        settings: Settings = None,
    ):
        self.resolver = resolver or get_tenant_resolver()
        self.availability = availability or get_availability_resolver()
        self.booking = booking or get_booking_engine()
        self.speaker = speaker or get_speaker()
        self.notifier = notifier or get_sms_service()
        self.messages = messages or get_message_store()
        self.summarizer = summarizer or get_voicemail_summarizer()
        self.settings = settings or get_settings()

        self._handlers = {
            Step.LANGUAGE_SELECT: self._on_language,
            Step.GREETING: self._on_greeting,
            Step.IVR_MENU: self._on_ivr,
            Step.INTENT_CLASSIFY: self._on_intent,
            Step.COLLECT_NAME: self._on_name,
            Step.COLLECT_PHONE: self._on_phone,
            Step.COLLECT_DATE: self._on_date,
            Step.OFFER_SLOTS: self._on_reoffer,
            Step.SELECT_SLOT: self._on_select,
            Step.CONFIRM_BOOKING: self._on_reoffer,
            Step.VOICEMAIL: self._on_voicemail,
            Step.TRANSFER_DEPARTMENT: self._on_transfer_result,
            Step.TRANSFER_SPECIALIST: self._on_transfer_result,
        }

    # =====================================================
    # ENTRY POINTS
    # =====================================================

    async def start_call(self, event: CallEvent) -> TurnResult:
        """
        Handle the first event of a call

        Args:
            event: Inbound call event (caller, dialed number, call id)

        Returns:
            TurnResult with the opening document
        """
        resolution = await self.resolver.resolve(event.dialed, check_usage=True)

        if resolution.status == ResolutionStatus.NOT_FOUND:
            pack = get_language_pack(Language.EN)
            document = VoiceDocument()
            document.say(await self.speaker.utter(pack.say("tenant_not_found"), pack), pack)
            document.hangup()
            return TurnResult(document)

        tenant = resolution.tenant
        pack = get_language_pack(tenant.default_language)
        ctx = DialogueContext(
            tenant_id=tenant.id,
            call_id=event.call_sid or uuid.uuid4().hex,
            step=Step.GREETING,
            language=pack.language,
            business_name=tenant.name,
            caller_phone=normalize_phone(event.caller, self.settings.default_country_code),
        )
        turn = _Turn(tenant=tenant, pack=pack, event=event, deadline=self._tts_deadline())
        logger.info(f"Dialogue: Call {ctx.call_id} from {ctx.caller_phone or 'unknown'} for {tenant.id}")

        if resolution.status == ResolutionStatus.USAGE_EXHAUSTED:
            logger.info(f"Dialogue: Usage exhausted for {tenant.id}, taking a message")
            return await self._enter_voicemail(turn, ctx, prompt_key="voicemail_unavailable")

        if resolution.status == ResolutionStatus.AGENT_DISABLED:
            destination = specialist_destination(tenant)
            if destination is None:
                return await self._enter_voicemail(turn, ctx, prompt_key="voicemail_unavailable")
            return await self._dial(turn, ctx.advance(Step.TRANSFER_SPECIALIST), destination, announce=None)

        if tenant.is_multilingual:
            return await self._enter_language(turn, ctx.advance(Step.LANGUAGE_SELECT, language=None))

        return await self._enter_conversation(turn, ctx)

    async def continue_call(self, event: CallEvent, params: Mapping[str, str]) -> TurnResult:
        """
        Handle a subsequent turn

        Args:
            event: Inbound call event with the caller's input
            params: Query parameters of the callback URL (the context token)

        Returns:
            TurnResult with the next document and context
        """
        try:
            ctx = decode_context(params)
        except SessionExpired as e:
            logger.warning(f"Dialogue: Context token rejected ({e})")
            return await self._session_expired(get_language_pack(params.get("lang")))

        tenant = await self.resolver.resolve_by_id(ctx.tenant_id)
        if tenant is None:
            logger.warning(f"Dialogue: Token names unknown tenant {ctx.tenant_id!r}")
            return await self._session_expired(get_language_pack(ctx.language))

        dialed = normalize_phone(event.dialed)
        if dialed and dialed != tenant.did:
            logger.warning(f"Dialogue: Token for {tenant.id} arrived on {dialed}")
            return await self._session_expired(get_language_pack(ctx.language))

        pack = get_language_pack(ctx.language or tenant.default_language)
        turn = _Turn(tenant=tenant, pack=pack, event=event, deadline=self._tts_deadline())

        if ctx.step in TERMINAL_STEPS:
            return await self._finish(turn, ctx, "goodbye", ctx.step)

        logger.debug(f"Dialogue: {ctx.call_id} at {ctx.step.name} (attempt {ctx.attempts})")
        return await self._handlers[ctx.step](turn, ctx)

    async def handle_transcription(self, event: CallEvent, params: Mapping[str, str]) -> None:
        """Summarize a voicemail transcription and attach it to the stored message"""
        try:
            ctx = decode_context(params)
        except SessionExpired as e:
            logger.warning(f"Voicemail: Transcription callback with bad token ({e})")
            return

        tenant = await self.resolver.resolve_by_id(ctx.tenant_id)
        if tenant is None or not event.recording_id:
            logger.warning(f"Voicemail: Transcription for unknown tenant or recording ({ctx.tenant_id})")
            return

        if event.transcription_status and event.transcription_status != "completed":
            logger.info(f"Voicemail: Transcription {event.transcription_status} for {event.recording_id}")
            return

        pack = get_language_pack(ctx.language or tenant.default_language)
        summary = await self.summarizer.summarize(event.transcription_text, ctx.caller_phone, pack)
        await self.messages.attach_summary(event.recording_id, tenant.id, summary)
        logger.info(f"Voicemail: Summary stored for {event.recording_id}")

    # =====================================================
    # DOCUMENT HELPERS
    # =====================================================

    def _tts_deadline(self) -> float:
        return asyncio.get_running_loop().time() + self.settings.tts_turn_budget_seconds

    def _turn_url(self, ctx: DialogueContext) -> str:
        return callback_url(self.settings.public_base_url, TURN_PATH, ctx)

    async def _say(self, turn: _Turn, key: str, **values):
        await self._speak(turn, turn.pack.say(key, **values))

    async def _speak(self, turn: _Turn, text: str):
        turn.document.say(await self.speaker.utter(text, turn.pack, turn.tts_budget()), turn.pack)

    async def _ask(
        self,
        turn: _Turn,
        ctx: DialogueContext,
        prompts: List[str],
        mode: GatherMode,
        timeout: int,
        num_digits: Optional[int] = None,
        hints: Optional[List[str]] = None,
        finish_on_key: Optional[str] = None,
    ) -> TurnResult:
        """Gather input for ctx.step, then redirect back to it on timeout"""
        utterances = await self.speaker.utter_all([text for text in prompts if text], turn.pack, turn.tts_budget())
        action = self._turn_url(ctx)
        turn.document.gather(mode, timeout, action, utterances, turn.pack,
                             num_digits=num_digits, hints=hints, finish_on_key=finish_on_key)
        turn.document.redirect(action)
        return turn.result(ctx)

    async def _finish(self, turn: _Turn, ctx: DialogueContext, key: str,
                      step: Step = Step.TERMINAL_HANGUP, **values) -> TurnResult:
        await self._say(turn, key, **values)
        turn.document.hangup()
        return turn.result(ctx.advance(step))

    async def _session_expired(self, pack: LanguagePack) -> TurnResult:
        document = VoiceDocument()
        document.say(await self.speaker.utter(pack.say("session_expired"), pack), pack)
        document.hangup()
        return TurnResult(document)

    async def _retry(
        self,
        turn: _Turn,
        ctx: DialogueContext,
        enter: Callable[..., Awaitable[TurnResult]],
        fallback: Callable[[_Turn, DialogueContext], Awaitable[TurnResult]],
        lead: Optional[str] = None,
    ) -> TurnResult:
        """Re-prompt the current step once, then take its fallback"""
        if ctx.attempts >= self.settings.max_reprompts:
            logger.info(f"Dialogue: {ctx.call_id} out of re-prompts at {ctx.step.name}")
            return await fallback(turn, ctx)
        if lead is None:
            lead = turn.pack.say("clarify" if turn.event.has_input else "no_input")
        return await enter(turn, ctx.retry(), lead=lead)

    async def _hangup_fallback(self, turn: _Turn, ctx: DialogueContext) -> TurnResult:
        return await self._finish(turn, ctx, "goodbye_no_input")

    async def _specialist_fallback(self, turn: _Turn, ctx: DialogueContext) -> TurnResult:
        return await self._transfer_specialist(turn, ctx)

    # =====================================================
    # LANGUAGE SELECT / GREETING / IVR
    # =====================================================

    async def _enter_language(self, turn: _Turn, ctx: DialogueContext, lead: str = None) -> TurnResult:
        return await self._ask(
            turn, ctx, [lead, turn.pack.say("language_menu")],
            GatherMode.DTMF, self.settings.language_menu_timeout, num_digits=1,
        )

    async def _on_language(self, turn: _Turn, ctx: DialogueContext) -> TurnResult:
        language = None
        if turn.event.digits:
            language = LANGUAGE_DIGITS.get(parse_choice("", turn.event.digits, turn.pack))
        elif turn.event.speech:
            words = normalize_speech(turn.event.speech, turn.pack).split()
            language = next((LANGUAGE_WORDS[w] for w in words if w in LANGUAGE_WORDS), None)

        if language is None:
            return await self._retry(turn, ctx, self._enter_language, self._default_language,
                                     lead=turn.pack.say("no_input") if not turn.event.has_input else "")

        logger.info(f"Dialogue: {ctx.call_id} selected {language.value}")
        return await self._enter_conversation(turn, ctx.advance(Step.GREETING, language=language))

    async def _default_language(self, turn: _Turn, ctx: DialogueContext) -> TurnResult:
        language = Language(turn.tenant.default_language)
        return await self._enter_conversation(turn, ctx.advance(Step.GREETING, language=language))

    async def _enter_conversation(self, turn: _Turn, ctx: DialogueContext) -> TurnResult:
        """Greeting or IVR menu, in the context's language"""
        turn.pack = get_language_pack(ctx.language or turn.tenant.default_language)
        if turn.tenant.uses_ivr:
            return await self._enter_ivr(turn, ctx.advance(Step.IVR_MENU))
        return await self._enter_intent(turn, ctx.advance(Step.INTENT_CLASSIFY))

    async def _on_greeting(self, turn: _Turn, ctx: DialogueContext) -> TurnResult:
        return await self._enter_conversation(turn, ctx)

    async def _enter_ivr(self, turn: _Turn, ctx: DialogueContext, lead: str = None) -> TurnResult:
        pack = turn.pack
        departments = turn.tenant.enabled_departments()
        prompts = [lead, pack.say("ivr_intro", business=turn.tenant.name), pack.say("ivr_booking")]
        for index, department in enumerate(departments):
            prompts.append(pack.say("ivr_department", name=department.name,
                                    digit=index + IVR_FIRST_DEPARTMENT_DIGIT))
        prompts.append(pack.say("ivr_voicemail"))

        return await self._ask(
            turn, ctx, prompts, GatherMode.BOTH, self.settings.menu_timeout_seconds,
            num_digits=1, hints=[d.name for d in departments],
        )

    def _ivr_choice(self, turn: _Turn, departments: List[DepartmentOption]) -> Optional[int]:
        event, pack = turn.event, turn.pack
        choice = parse_choice(event.speech, event.digits, pack)
        if choice is not None or not event.speech:
            return choice

        normalized = normalize_speech(event.speech, pack)
        for index, department in enumerate(departments):
            if contains_keyword(normalized, normalize_speech(department.name, pack)):
                return index + IVR_FIRST_DEPARTMENT_DIGIT

        intent = classify_intent(event.speech, pack)
        if intent == Intent.BOOKING:
            return IVR_BOOKING_DIGIT
        if intent == Intent.VOICEMAIL:
            return IVR_VOICEMAIL_DIGIT
        return None

    async def _on_ivr(self, turn: _Turn, ctx: DialogueContext) -> TurnResult:
        departments = turn.tenant.enabled_departments()
        choice = self._ivr_choice(turn, departments)
        department_index = choice - IVR_FIRST_DEPARTMENT_DIGIT if choice is not None else -1

        if choice == IVR_BOOKING_DIGIT:
            return await self._enter_name(turn, ctx.advance(Step.COLLECT_NAME))
        if choice == IVR_VOICEMAIL_DIGIT:
            return await self._enter_voicemail(turn, ctx)
        if 0 <= department_index < len(departments):
            return await self._transfer_department(turn, ctx, departments[department_index])

        lead = turn.pack.say("no_input") if not turn.event.has_input else ""
        return await self._retry(turn, ctx, self._enter_ivr, self._hangup_fallback, lead=lead)

    # =====================================================
    # INTENT
    # =====================================================

    async def _enter_intent(self, turn: _Turn, ctx: DialogueContext, lead: str = None) -> TurnResult:
        pack = turn.pack
        if lead is None:
            prompts = [pack.say("greeting", business=turn.tenant.name)]
        elif lead == pack.say("no_input"):
            prompts = [lead, pack.say("clarify")]
        else:
            prompts = [lead]
        return await self._ask(turn, ctx, prompts, GatherMode.SPEECH, self.settings.speech_timeout_seconds,
                               hints=list(pack.intent_keywords[Intent.BOOKING]))

    async def _on_intent(self, turn: _Turn, ctx: DialogueContext) -> TurnResult:
        intent = classify_intent(turn.event.speech, turn.pack) if turn.event.speech else None
        logger.info(f"Dialogue: {ctx.call_id} intent={intent.value if intent else None}")

        if intent == Intent.BOOKING:
            return await self._enter_name(turn, ctx.advance(Step.COLLECT_NAME))
        if intent == Intent.VOICEMAIL:
            return await self._enter_voicemail(turn, ctx)
        if intent == Intent.TRANSFER:
            return await self._transfer_specialist(turn, ctx)
        if intent == Intent.PRICING:
            return await self._retry(turn, ctx, self._enter_intent, self._pricing_fallback,
                                     lead=turn.pack.say("pricing"))

        return await self._retry(turn, ctx, self._enter_intent, self._hangup_fallback)

    async def _pricing_fallback(self, turn: _Turn, ctx: DialogueContext) -> TurnResult:
        return await self._enter_voicemail(turn, ctx)

    # =====================================================
    # DATA COLLECTION
    # =====================================================

    async def _enter_name(self, turn: _Turn, ctx: DialogueContext, lead: str = None) -> TurnResult:
        return await self._ask(turn, ctx, [lead, turn.pack.say("ask_name")],
                               GatherMode.SPEECH, self.settings.speech_timeout_seconds)

    async def _on_name(self, turn: _Turn, ctx: DialogueContext) -> TurnResult:
        name = extract_name(turn.event.speech)
        if not name:
            return await self._retry(turn, ctx, self._enter_name, self._hangup_fallback,
                                     lead=turn.pack.say("no_input"))
        return await self._enter_phone(turn, ctx.advance(Step.COLLECT_PHONE, prospect_name=name))

    async def _enter_phone(self, turn: _Turn, ctx: DialogueContext, lead: str = None) -> TurnResult:
        prompts = [lead] if lead else [turn.pack.say("ask_phone", name=ctx.prospect_name)]
        return await self._ask(turn, ctx, prompts, GatherMode.BOTH,
                               self.settings.phone_timeout_seconds, finish_on_key="#")

    def _captured_phone(self, turn: _Turn, ctx: DialogueContext) -> str:
        event, country_code = turn.event, self.settings.default_country_code
        if event.digits:
            return normalize_phone(event.digits, country_code)
        if ctx.caller_phone and mentions_any(event.speech, list(turn.pack.same_number_phrases), turn.pack):
            return ctx.caller_phone
        return phone_from_speech(event.speech, country_code)

    async def _on_phone(self, turn: _Turn, ctx: DialogueContext) -> TurnResult:
        if not turn.event.has_input:
            return await self._retry(turn, ctx, self._enter_phone, self._hangup_fallback,
                                     lead=turn.pack.say("no_input") + " " + turn.pack.say("phone_incomplete"))

        phone = self._captured_phone(turn, ctx)
        if not is_complete_phone(phone):
            logger.info(f"Dialogue: {ctx.call_id} partial phone capture ({len(phone)} digits)")
            return await self._retry(turn, ctx, self._enter_phone, self._hangup_fallback,
                                     lead=turn.pack.say("phone_incomplete"))

        return await self._enter_date(turn, ctx.advance(Step.COLLECT_DATE, prospect_phone=phone))

    async def _enter_date(self, turn: _Turn, ctx: DialogueContext, lead: str = None) -> TurnResult:
        return await self._ask(turn, ctx, [lead, turn.pack.say("ask_date")],
                               GatherMode.SPEECH, self.settings.speech_timeout_seconds)

    async def _on_date(self, turn: _Turn, ctx: DialogueContext) -> TurnResult:
        if not turn.event.has_input:
            return await self._retry(turn, ctx, self._enter_date, self._hangup_fallback,
                                     lead=turn.pack.say("no_input"))

        today = self.availability.today(turn.tenant)
        day = parse_spoken_date(turn.event.speech, turn.pack, today)
        availability = await self.availability.get_availability(turn.tenant, day)

        ctx = ctx.advance(
            Step.OFFER_SLOTS,
            appointment_date=day,
            available_slots=availability.keys(),
            availability_source=availability.source,
            offered_slots=[],
            slot_offset=0,
            has_more=False,
        )
        return await self._offer(turn, ctx)

    # =====================================================
    # SLOT OFFER / SELECTION
    # =====================================================

    async def _offer(self, turn: _Turn, ctx: DialogueContext, lead: str = None) -> TurnResult:
        """
        Offer the page of the snapshot at ctx.slot_offset

        The snapshot in ctx.available_slots is only refreshed when a new
        date is chosen or a booking loses a race.
        """
        pack = turn.pack
        page = paginate(ctx.available_slots, ctx.slot_offset, self.settings.slot_page_size)
        spoken_date = pack.speak_date(ctx.appointment_date)

        if not page.offered:
            if ctx.date_attempts == 0:
                logger.info(f"Dialogue: {ctx.call_id} no slots on {ctx.appointment_date}, asking for another date")
                retry_ctx = ctx.advance(Step.COLLECT_DATE, date_attempts=1, available_slots=[],
                                        offered_slots=[], slot_offset=0, has_more=False)
                return await self._ask(turn, retry_ctx, [lead, pack.say("no_slots_retry", date=spoken_date)],
                                       GatherMode.SPEECH, self.settings.speech_timeout_seconds)

            logger.info(f"Dialogue: {ctx.call_id} no slots after {ctx.date_attempts + 1} dates, transferring")
            if lead:
                await self._speak(turn, lead)
            await self._say(turn, "no_slots_transfer")
            return await self._transfer_specialist(turn, ctx, announce=None)

        prompts = [lead, pack.say("offer_intro", date=spoken_date)]
        for index, key in enumerate(page.offered):
            prompts.append(pack.say("offer_option", time=pack.speak_time(time.fromisoformat(key)),
                                    digit=index + 1, word=pack.option_words[index]))
        if page.has_more:
            prompts.append(pack.say("offer_more"))
        prompts.append(pack.say("offer_specialist"))

        select_ctx = replace(ctx, step=Step.SELECT_SLOT, offered_slots=page.offered, has_more=page.has_more)
        return await self._ask(turn, select_ctx, prompts, GatherMode.BOTH,
                               self.settings.speech_timeout_seconds, num_digits=1)

    async def _on_reoffer(self, turn: _Turn, ctx: DialogueContext) -> TurnResult:
        return await self._offer(turn, ctx)

    def _slot_choice(self, turn: _Turn, ctx: DialogueContext) -> Optional[int]:
        """Keypad digit, the clock time of an offered slot, or a spoken ordinal"""
        event = turn.event
        if not event.digits:
            said = spoken_time(event.speech, turn.pack)
            if said is not None:
                return slot_for_time(said, ctx.offered_slots)
        return parse_choice(event.speech, event.digits, turn.pack)

    async def _on_select(self, turn: _Turn, ctx: DialogueContext) -> TurnResult:
        choice = self._slot_choice(turn, ctx)

        if choice == SPECIALIST_CHOICE:
            return await self._transfer_specialist(turn, ctx)

        if choice == MORE_SLOTS_CHOICE and ctx.has_more:
            next_ctx = ctx.advance(Step.OFFER_SLOTS, slot_offset=ctx.slot_offset + len(ctx.offered_slots))
            return await self._offer(turn, next_ctx)

        if choice is not None and 1 <= choice <= len(ctx.offered_slots):
            return await self._confirm(turn, ctx.advance(Step.CONFIRM_BOOKING), ctx.offered_slots[choice - 1])

        lead = turn.pack.say("no_input") if not turn.event.has_input else ""
        return await self._retry(turn, ctx, self._offer, self._specialist_fallback, lead=lead)

    # =====================================================
    # BOOKING
    # =====================================================

    async def _confirm(self, turn: _Turn, ctx: DialogueContext, slot_key: str) -> TurnResult:
        pack, tenant = turn.pack, turn.tenant
        outcome = await self.booking.book(
            tenant,
            ctx.appointment_date,
            time.fromisoformat(slot_key),
            ctx.prospect_name or "",
            ctx.prospect_phone or "",
        )

        if isinstance(outcome, BookingConfirmed):
            appointment = outcome.appointment
            key = "booking_pending" if appointment.status == AppointmentStatus.PENDING else "booking_confirmed"
            turn.tasks.append(self._notification_task(tenant, appointment, pack))
            turn.tasks.append(self._external_sync_task(tenant, appointment))
            return await self._finish(
                turn, ctx, key, Step.TERMINAL_SUCCESS,
                name=appointment.customer_name,
                date=pack.speak_date(appointment.day),
                time=pack.speak_time(appointment.start),
                code=" ".join(appointment.confirmation_code),
                business=tenant.name,
            )

        if isinstance(outcome, SlotTaken):
            fresh = outcome.availability
            retry_ctx = ctx.advance(
                Step.OFFER_SLOTS,
                available_slots=fresh.keys(),
                availability_source=fresh.source,
                offered_slots=[],
                slot_offset=0,
                has_more=False,
            )
            return await self._offer(turn, retry_ctx, lead=pack.say("slot_taken"))

        logger.warning(f"Dialogue: {ctx.call_id} booking rejected ({outcome.reason})")
        await self._say(turn, "booking_failed")
        return await self._transfer_specialist(turn, ctx, announce=None)

    def _notification_task(self, tenant: Tenant, appointment: Appointment, pack: LanguagePack) -> BackgroundTask:
        async def send_confirmation():
            try:
                await self.notifier.send_booking_confirmation(appointment, tenant, pack)
            except Exception as e:
                logger.error(f"Booking: Confirmation SMS failed for {appointment.confirmation_code}: {e}")
        return send_confirmation

    def _external_sync_task(self, tenant: Tenant, appointment: Appointment) -> BackgroundTask:
        async def sync_external():
            await self.booking.sync_external(tenant, appointment)
        return sync_external

    # =====================================================
    # TRANSFERS
    # =====================================================

    async def _dial(self, turn: _Turn, ctx: DialogueContext, destination: str,
                    announce: Optional[str], **values) -> TurnResult:
        if announce:
            await self._say(turn, announce, **values)
        turn.document.dial(
            destination,
            caller_id=turn.tenant.did,
            timeout=self.settings.dial_timeout_seconds,
            action=self._turn_url(ctx),
        )
        logger.info(f"Transfer: {ctx.call_id} dialing {destination} ({ctx.step.name})")
        return turn.result(ctx)

    async def _transfer_department(self, turn: _Turn, ctx: DialogueContext,
                                   department: DepartmentOption) -> TurnResult:
        destination = department_destination(turn.tenant, department)
        if destination is None:
            await self._say(turn, "department_unavailable")
            return await self._enter_voicemail(turn, ctx)
        return await self._dial(turn, ctx.advance(Step.TRANSFER_DEPARTMENT), destination,
                                "transfer_department", name=department.name)

    async def _transfer_specialist(self, turn: _Turn, ctx: DialogueContext,
                                   announce: Optional[str] = "transfer_specialist") -> TurnResult:
        destination = specialist_destination(turn.tenant)
        if destination is None:
            logger.warning(f"Transfer: No safe specialist number for {turn.tenant.id}, taking a message")
            return await self._enter_voicemail(turn, ctx)
        return await self._dial(turn, ctx.advance(Step.TRANSFER_SPECIALIST), destination, announce)

    async def _on_transfer_result(self, turn: _Turn, ctx: DialogueContext) -> TurnResult:
        status = (turn.event.dial_status or "").lower()
        if status in ANSWERED_DIAL_STATUSES:
            turn.document.hangup()
            return turn.result(ctx.advance(Step.TERMINAL_SUCCESS))

        logger.info(f"Transfer: {ctx.call_id} not connected ({status or 'no status'}), taking a message")
        await self._say(turn, "transfer_failed")
        return await self._enter_voicemail(turn, ctx)

    # =====================================================
    # VOICEMAIL
    # =====================================================

    async def _enter_voicemail(self, turn: _Turn, ctx: DialogueContext,
                               prompt_key: str = "voicemail_prompt") -> TurnResult:
        ctx = ctx.advance(Step.VOICEMAIL)
        await self._say(turn, prompt_key, business=turn.tenant.name)

        transcription_url = None
        if turn.pack.language.value in self.settings.transcription_languages:
            transcription_url = callback_url(self.settings.public_base_url, TRANSCRIPTION_PATH, ctx)

        turn.document.record(
            max_length=self.settings.voicemail_max_seconds,
            completion_callback=self._turn_url(ctx),
            transcription_callback=transcription_url,
        )
        # Reached only when nothing was recorded
        await self._say(turn, "goodbye")
        turn.document.hangup()
        return turn.result(ctx)

    async def _on_voicemail(self, turn: _Turn, ctx: DialogueContext) -> TurnResult:
        event = turn.event
        if not event.recording_url:
            return await self._finish(turn, ctx, "goodbye")

        caller = ctx.caller_phone or "unknown caller"
        message = Message(
            recording_id=event.recording_id,
            tenant_id=turn.tenant.id,
            caller_phone=ctx.caller_phone,
            recording_url=event.recording_url,
            duration_seconds=event.recording_duration,
            language=turn.pack.language.value,
            summary=turn.pack.say("voicemail_placeholder", caller=caller),
        )
        await self.messages.save_voicemail(message)
        logger.info(f"Voicemail: {ctx.call_id} left {event.recording_duration or 0}s for {turn.tenant.id}")

        return await self._finish(turn, ctx, "voicemail_thanks", Step.TERMINAL_SUCCESS)


# Global instance
_state_machine: Optional[DialogueStateMachine] = None


def get_state_machine() -> DialogueStateMachine:
    """Get global dialogue state machine instance"""
    global _state_machine
    if _state_machine is None:
        _state_machine = DialogueStateMachine()
    return _state_machine
