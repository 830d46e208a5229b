"""
=====================================================
Voice Scheduling Platform - ElevenLabs TTS Service
=====================================================
Synthesizes prompt audio through the ElevenLabs REST API. Clips are
played by the telephony provider from our /audio endpoint.
"""

from typing import Optional

import httpx
from loguru import logger

from config.settings import get_settings
from .tts_base import TTSServiceBase, TTSRequest, TTSResponse


class ElevenLabsTTS(TTSServiceBase):
    """
    ElevenLabs TTS Service

    Features:
    - Human-level voice quality
    - Multi-language support (one multilingual model for EN and ES)
    - Voice customization (stability, similarity boost)
    """

    API_URL = "https://api.elevenlabs.io/v1/text-to-speech"

    # Voice names accepted in configuration
    POPULAR_VOICES = {
        "Rachel": "21m00Tcm4TlvDq8ikWAM",
        "Drew": "29vD33N1CtxCmqQRPOHJ",
        "Sarah": "EXHAITRWHUWQO296QKJI",
        "Adam": "ADq4zsqJPsd4acy0B6B1",
        # Multilingual voices
        "Antoni": "ErXwobaRi7UmFJ9fQaF1",
        "Fin": "YOZ27uZTVtijvd1HfGBq",
    }

    def __init__(
        self,
        api_key: str,
        default_voice_id: str = "Rachel",
        voices_by_language: dict = None,
        model: str = "eleven_multilingual_v2",
        stability: float = 0.5,
        similarity_boost: float = 0.75,
        output_format: str = "mp3_44100_128",
        timeout: float = 15.0,
    ):
        """
        Initialize ElevenLabs TTS service

        Args:
            api_key: ElevenLabs API key
            default_voice_id: Default voice name (will be mapped to voice_id)
            voices_by_language: Voice name or id per language code
            model: Model to use (eleven_multilingual_v2 recommended)
            stability: Voice stability (0-1, lower = more expressive)
            similarity_boost: Voice similarity (0-1, higher = more similar to original)
            output_format: Audio output format
            timeout: Request timeout in seconds
        """
        super().__init__(api_key, default_voice_id)

        self.voices_by_language = voices_by_language or {}
        self.model = model
        self.stability = stability
        self.similarity_boost = similarity_boost
        self.output_format = output_format
        self.timeout = timeout

        # Reuse httpx client between prompts
        self._http_client: Optional[httpx.AsyncClient] = None

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client"""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    def _get_voice_id(self, voice_name: str) -> str:
        """Convert voice name to voice_id"""
        return self.POPULAR_VOICES.get(voice_name, voice_name)

    def voice_for(self, language: str) -> str:
        return self._get_voice_id(self.voices_by_language.get(language) or self.default_voice_id)

    async def synthesize(self, request: TTSRequest) -> TTSResponse:
        """
        Synthesize speech from text

        Args:
            request: TTS request

        Returns:
            TTS response with audio data
        """
        voice_id = self._get_voice_id(request.voice_id) if request.voice_id else self.voice_for(request.language)
        url = f"{self.API_URL}/{voice_id}"

        headers = {
            "xi-api-key": self.api_key,
            "Content-Type": "application/json",
            "Accept": "audio/mpeg",
        }
        body = {
            "text": request.text,
            "model_id": self.model,
            "voice_settings": {
                "stability": self.stability,
                "similarity_boost": self.similarity_boost,
            }
        }

        logger.info(f"ElevenLabs: Synthesizing '{request.text[:50]}...' voice={voice_id}")

        try:
            client = await self._get_http_client()
            response = await client.post(
                url,
                headers=headers,
                params={"output_format": self.output_format},
                json=body,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"ElevenLabs: HTTP error {e.response.status_code}: {e.response.text[:200]}")
            raise
        except httpx.HTTPError as e:
            logger.error(f"ElevenLabs: Synthesis error: {e}")
            raise

        fmt = "mp3" if self.output_format.startswith("mp3") else "ulaw"
        return TTSResponse(
            audio_data=response.content,
            format=fmt,
            text=request.text,
            metadata={"voice_id": voice_id},
        )

    async def close(self):
        """Close HTTP client"""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


def create_elevenlabs_tts(config: dict = None) -> ElevenLabsTTS:
    """
    Factory function to create ElevenLabs TTS service from settings

    Args:
        config: Optional overrides for constructor arguments

    Returns:
        Configured ElevenLabsTTS instance
    """
    settings = get_settings()
    params = {
        "api_key": settings.elevenlabs_api_key,
        "default_voice_id": settings.elevenlabs_voice_en,
        "voices_by_language": {"en": settings.elevenlabs_voice_en, "es": settings.elevenlabs_voice_es},
        "model": settings.elevenlabs_model,
        "stability": settings.elevenlabs_stability,
        "similarity_boost": settings.elevenlabs_similarity_boost,
        "output_format": settings.elevenlabs_output_format,
        "timeout": settings.tts_timeout_seconds,
    }
    params.update(config or {})
    return ElevenLabsTTS(**params)
