"""
=====================================================
Voice Scheduling Platform - Audio Clip Store
=====================================================
Synthesized prompt audio keyed by clip id with a TTL, shared by every
server process when Redis is configured.
"""

import time
from abc import ABC, abstractmethod
from typing import Optional, Dict, Tuple

import redis.asyncio as redis
from loguru import logger

from config.settings import get_settings


class AudioClipStore(ABC):
    """Keyed audio store with expiry"""

    @abstractmethod
    async def put(self, clip_id: str, audio: bytes, ttl_seconds: int) -> None:
        pass

    @abstractmethod
    async def get(self, clip_id: str) -> Optional[bytes]:
        pass

    async def exists(self, clip_id: str) -> bool:
        return await self.get(clip_id) is not None

    async def close(self):
        pass


class MemoryAudioClipStore(AudioClipStore):
    """Single-process store; expired clips are swept on access"""

    def __init__(self, clock=time.monotonic):
        self._clips: Dict[str, Tuple[float, bytes]] = {}
        self._clock = clock

    def _sweep(self):
        now = self._clock()
        expired = [key for key, (expires, _) in self._clips.items() if expires <= now]
        for key in expired:
            del self._clips[key]

    async def put(self, clip_id: str, audio: bytes, ttl_seconds: int) -> None:
        self._sweep()
        self._clips[clip_id] = (self._clock() + ttl_seconds, audio)

    async def get(self, clip_id: str) -> Optional[bytes]:
        self._sweep()
        entry = self._clips.get(clip_id)
        return entry[1] if entry else None

    def clip_count(self) -> int:
        self._sweep()
        return len(self._clips)


class RedisAudioClipStore(AudioClipStore):
    """Clips in Redis with SETEX expiry"""

    KEY_PREFIX = "audio:clip:"

    def __init__(self, redis_url: str):
        self._client = redis.from_url(redis_url)

    async def put(self, clip_id: str, audio: bytes, ttl_seconds: int) -> None:
        await self._client.setex(f"{self.KEY_PREFIX}{clip_id}", ttl_seconds, audio)

    async def get(self, clip_id: str) -> Optional[bytes]:
        return await self._client.get(f"{self.KEY_PREFIX}{clip_id}")

    async def exists(self, clip_id: str) -> bool:
        return bool(await self._client.exists(f"{self.KEY_PREFIX}{clip_id}"))

    async def close(self):
        await self._client.aclose()


# Global instance
_audio_store: Optional[AudioClipStore] = None


def get_audio_store() -> AudioClipStore:
    """Get global audio clip store instance"""
    global _audio_store
    if _audio_store is None:
        settings = get_settings()
        if settings.redis_url:
            _audio_store = RedisAudioClipStore(settings.redis_url)
            logger.info("Audio: Using Redis clip store")
        else:
            _audio_store = MemoryAudioClipStore()
            logger.info("Audio: Using in-process clip store")
    return _audio_store


async def close_audio_store():
    """Close the clip store's connections (call on app shutdown)"""
    global _audio_store
    if _audio_store is not None:
        await _audio_store.close()
        _audio_store = None
        logger.info("Audio: Clip store closed")
