"""
=====================================================
Voice Scheduling Platform - TTS Service Base Interface
=====================================================
Abstract base class for Text-to-Speech providers
"""

from abc import ABC, abstractmethod
from typing import Optional, Dict, Any
from dataclasses import dataclass


@dataclass
class TTSRequest:
    """Request for TTS synthesis"""
    text: str
    language: str = "en"
    voice_id: Optional[str] = None
    metadata: Dict[str, Any] = None

    def __post_init__(self):
        if self.metadata is None:
            self.metadata = {}


@dataclass
class TTSResponse:
    """Response from TTS synthesis"""
    audio_data: bytes
    format: str  # mp3, ulaw, ...
    text: str
    metadata: Dict[str, Any] = None

    def __post_init__(self):
        if self.metadata is None:
            self.metadata = {}


class TTSServiceBase(ABC):
    """
    Abstract base class for Text-to-Speech services

    All TTS providers must implement this interface for swapability.
    """

    def __init__(self, api_key: str, default_voice_id: str):
        """
        Initialize TTS service

        Args:
            api_key: Provider API key
            default_voice_id: Default voice to use
        """
        self.api_key = api_key
        self.default_voice_id = default_voice_id

    def is_available(self) -> bool:
        """Check if the provider is configured"""
        return bool(self.api_key)

    @abstractmethod
    async def synthesize(self, request: TTSRequest) -> TTSResponse:
        """
        Synthesize speech from text

        Args:
            request: TTS request with text and options

        Returns:
            TTS response with audio data

        Raises:
            Exception: On provider errors
        """
        pass
