"""
=====================================================
Voice Scheduling Platform - Prompt Speaker
=====================================================
Turns prompt text into an Utterance: synthesized audio served from
/audio when the TTS provider answers in time, plain text for the
built-in voice otherwise. Never raises.
"""

import asyncio
import hashlib
from typing import List, Optional

from loguru import logger

from config.settings import get_settings
from services.conversation.language import LanguagePack
from services.telephony.voice_document import Utterance
from services.tts.audio_store import AudioClipStore, get_audio_store
from services.tts.elevenlabs_service import create_elevenlabs_tts
from services.tts.tts_base import TTSServiceBase, TTSRequest


class Speaker:
    """Speech synthesis with clip caching and built-in voice fallback"""

    def __init__(
        self,
        tts: Optional[TTSServiceBase] = None,
        store: Optional[AudioClipStore] = None,
        base_url: str = None,
        ttl_seconds: int = None,
        timeout: float = None,
    ):
        settings = get_settings()
        self.tts = tts
        self.store = store
        self.base_url = (base_url or settings.public_base_url).rstrip("/")
        self.ttl_seconds = ttl_seconds or settings.audio_clip_ttl
        self.timeout = timeout or settings.tts_timeout_seconds

    @property
    def enabled(self) -> bool:
        return self.tts is not None and self.store is not None and self.tts.is_available()

    @staticmethod
    def clip_id(text: str, pack: LanguagePack) -> str:
        digest = hashlib.sha256(f"{pack.language.value}|{text}".encode("utf-8")).hexdigest()
        return digest[:32]

    def clip_url(self, clip_id: str) -> str:
        return f"{self.base_url}/audio/{clip_id}.mp3"

    async def utter(self, text: str, pack: LanguagePack, timeout: float = None) -> Utterance:
        """
        Prepare a prompt for playback

        Args:
            text: Prompt text
            pack: Language pack of the active language
            timeout: Seconds left in the caller's turn; capped at the per-clip timeout

        Returns:
            Utterance with audio_url set when the clip was ready in time
        """
        if not self.enabled:
            return Utterance(text)

        limit = self.timeout if timeout is None else min(self.timeout, timeout)
        if limit <= 0:
            logger.warning("TTS: Turn budget spent, using built-in voice")
            return Utterance(text)

        clip_id = self.clip_id(text, pack)
        try:
            await asyncio.wait_for(self._ensure_clip(clip_id, text, pack), timeout=limit)
        except asyncio.TimeoutError:
            logger.warning(f"TTS: Timed out after {limit:.1f}s, using built-in voice")
            return Utterance(text)
        except Exception as e:
            logger.warning(f"TTS: Synthesis failed, using built-in voice: {e}")
            return Utterance(text)

        return Utterance(text, self.clip_url(clip_id))

    async def utter_all(self, texts: List[str], pack: LanguagePack, timeout: float = None) -> List[Utterance]:
        """Prepare several prompts concurrently under one shared timeout"""
        return list(await asyncio.gather(*(self.utter(text, pack, timeout) for text in texts)))

    async def _ensure_clip(self, clip_id: str, text: str, pack: LanguagePack):
        if await self.store.exists(clip_id):
            return
        response = await self.tts.synthesize(TTSRequest(text=text, language=pack.language.value))
        await self.store.put(clip_id, response.audio_data, self.ttl_seconds)


# Global instance
_speaker: Optional[Speaker] = None


def get_speaker() -> Speaker:
    """Get global speaker instance"""
    global _speaker
    if _speaker is None:
        settings = get_settings()
        tts = create_elevenlabs_tts() if settings.elevenlabs_api_key else None
        _speaker = Speaker(tts=tts, store=get_audio_store() if tts else None)
    return _speaker
