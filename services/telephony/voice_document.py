"""
=====================================================
Voice Scheduling Platform - Voice Response Document
=====================================================
The seven primitives the engine speaks to the telephony provider
(speak, play, gather, redirect, dial, record, hangup), rendered as
TwiML with the twilio helper library.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List, Dict, Any

from twilio.twiml.voice_response import VoiceResponse, Dial

from services.conversation.language import LanguagePack


class GatherMode(Enum):
    SPEECH = "speech"
    DTMF = "dtmf"
    BOTH = "dtmf speech"


@dataclass
class Utterance:
    """Prompt text, with synthesized audio when available"""
    text: str
    audio_url: Optional[str] = None


@dataclass
class Verb:
    """Record of an emitted primitive"""
    name: str
    attrs: Dict[str, Any] = field(default_factory=dict)


class VoiceDocument:
    """
    Voice response document

    Keeps the emitted primitives in ``verbs`` alongside the TwiML so
    callers and tests can inspect what the caller will hear.
    """

    def __init__(self):
        self._response = VoiceResponse()
        self.verbs: List[Verb] = []

    # =====================================================
    # PRIMITIVES
    # =====================================================

    def speak(self, text: str, voice: str, language: str) -> "VoiceDocument":
        self._response.say(text, voice=voice, language=language)
        self.verbs.append(Verb("speak", {"text": text, "voice": voice, "language": language}))
        return self

    def play(self, audio_url: str) -> "VoiceDocument":
        self._response.play(audio_url)
        self.verbs.append(Verb("play", {"url": audio_url}))
        return self

    def gather(
        self,
        mode: GatherMode,
        timeout: int,
        action: str,
        prompts: List[Utterance],
        pack: LanguagePack,
        num_digits: Optional[int] = None,
        hints: Optional[List[str]] = None,
        finish_on_key: Optional[str] = None,
    ) -> "VoiceDocument":
        """
        Ask for input; the provider posts the result to ``action``

        Args:
            mode: Speech, keypad or both
            timeout: Seconds to wait for input
            action: Next callback URL (carries the context token)
            prompts: What to say while listening
            pack: Language pack for voice and recognition locale
            num_digits: Keypad digits to collect before posting
            hints: Speech recognition hints
            finish_on_key: Key that ends keypad entry early
        """
        uses_speech = mode in (GatherMode.SPEECH, GatherMode.BOTH)
        gather = self._response.gather(
            input=mode.value,
            action=action,
            method="POST",
            timeout=timeout,
            num_digits=num_digits,
            finish_on_key=finish_on_key,
            language=pack.locale if uses_speech else None,
            speech_timeout="auto" if uses_speech else None,
            hints=", ".join(hints) if hints else None,
        )
        for prompt in prompts:
            if prompt.audio_url:
                gather.play(prompt.audio_url)
            else:
                gather.say(prompt.text, voice=pack.voice, language=pack.locale)

        self.verbs.append(Verb("gather", {
            "mode": mode,
            "timeout": timeout,
            "action": action,
            "num_digits": num_digits,
            "finish_on_key": finish_on_key,
            "prompts": [p.text for p in prompts],
        }))
        return self

    def redirect(self, url: str) -> "VoiceDocument":
        self._response.redirect(url, method="POST")
        self.verbs.append(Verb("redirect", {"url": url}))
        return self

    def dial(self, number: str, caller_id: str, timeout: int, action: Optional[str] = None) -> "VoiceDocument":
        dial = Dial(caller_id=caller_id, timeout=timeout, action=action, method="POST" if action else None)
        dial.number(number)
        self._response.append(dial)
        self.verbs.append(Verb("dial", {"number": number, "caller_id": caller_id,
                                        "timeout": timeout, "action": action}))
        return self

    def record(
        self,
        max_length: int,
        completion_callback: str,
        transcription_callback: Optional[str] = None,
    ) -> "VoiceDocument":
        self._response.record(
            action=completion_callback,
            method="POST",
            max_length=max_length,
            timeout=5,
            finish_on_key="#*",
            play_beep=True,
            transcribe=True if transcription_callback else None,
            transcribe_callback=transcription_callback,
        )
        self.verbs.append(Verb("record", {
            "max_length": max_length,
            "completion_callback": completion_callback,
            "transcription_callback": transcription_callback,
        }))
        return self

    def hangup(self) -> "VoiceDocument":
        self._response.hangup()
        self.verbs.append(Verb("hangup"))
        return self

    # =====================================================
    # HELPERS
    # =====================================================

    def say(self, utterance: Utterance, pack: LanguagePack) -> "VoiceDocument":
        """Play synthesized audio, or fall back to the built-in voice"""
        if utterance.audio_url:
            return self.play(utterance.audio_url)
        return self.speak(utterance.text, pack.voice, pack.locale)

    def verb_names(self) -> List[str]:
        return [v.name for v in self.verbs]

    def find(self, name: str) -> Optional[Verb]:
        return next((v for v in self.verbs if v.name == name), None)

    def spoken_text(self) -> str:
        """All prompt text in order, including gather prompts"""
        parts = []
        for verb in self.verbs:
            if verb.name == "speak":
                parts.append(verb.attrs["text"])
            elif verb.name == "gather":
                parts.extend(verb.attrs["prompts"])
        return " ".join(parts)

    def to_xml(self) -> str:
        return str(self._response)
