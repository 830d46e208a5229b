"""
=====================================================
Voice Scheduling Platform - Voicemail Message Store
=====================================================
Voicemail messages keyed by the provider's recording id. The recording
completion and the transcription callback can arrive in either order;
both upsert, and a real summary is never replaced by the placeholder.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Optional, List, Dict

from loguru import logger

from config.settings import get_settings


@dataclass
class Message:
    """A voicemail left for a tenant"""
    recording_id: str
    tenant_id: str
    caller_phone: str = ""
    recording_url: Optional[str] = None
    duration_seconds: Optional[int] = None
    language: str = "en"
    summary: Optional[str] = None
    status: str = "new"


class MessageStore(ABC):
    """Voicemail persistence"""

    @abstractmethod
    async def save_voicemail(self, message: Message) -> None:
        """
        Store a completed recording

        ``message.summary`` is only written when no summary is stored yet.
        """
        pass

    @abstractmethod
    async def attach_summary(self, recording_id: str, tenant_id: str, summary: str) -> None:
        """Store the transcript summary, creating the row if needed"""
        pass

    @abstractmethod
    async def get(self, recording_id: str) -> Optional[Message]:
        pass

    @abstractmethod
    async def list_for_tenant(self, tenant_id: str) -> List[Message]:
        pass


class InMemoryMessageStore(MessageStore):
    """Single-process store for development and tests"""

    def __init__(self):
        self._messages: Dict[str, Message] = {}
        self._lock = asyncio.Lock()

    async def save_voicemail(self, message: Message) -> None:
        async with self._lock:
            existing = self._messages.get(message.recording_id)
            if existing is not None and existing.summary:
                message = replace(message, summary=existing.summary)
            self._messages[message.recording_id] = message

    async def attach_summary(self, recording_id: str, tenant_id: str, summary: str) -> None:
        async with self._lock:
            existing = self._messages.get(recording_id)
            if existing is None:
                existing = Message(recording_id=recording_id, tenant_id=tenant_id)
            self._messages[recording_id] = replace(existing, summary=summary)

    async def get(self, recording_id: str) -> Optional[Message]:
        return self._messages.get(recording_id)

    async def list_for_tenant(self, tenant_id: str) -> List[Message]:
        return [m for m in self._messages.values() if m.tenant_id == tenant_id]


class PostgresMessageStore(MessageStore):
    """messages table, one row per recording id"""

    def __init__(self, pool_getter=None):
        if pool_getter is None:
            from services.database import get_db_pool
            pool_getter = get_db_pool
        self._get_pool = pool_getter

    @staticmethod
    def _row_to_message(row) -> Message:
        return Message(
            recording_id=row["recording_id"],
            tenant_id=row["tenant_id"],
            caller_phone=row["caller_phone"] or "",
            recording_url=row["recording_url"],
            duration_seconds=row["duration_seconds"],
            language=row["language"] or "en",
            summary=row["summary"],
            status=row["status"],
        )

    async def save_voicemail(self, message: Message) -> None:
        pool = await self._get_pool()
        await pool.execute(
            """
            INSERT INTO messages (
                recording_id, tenant_id, caller_phone, recording_url,
                duration_seconds, language, summary, status
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            ON CONFLICT (recording_id) DO UPDATE SET
                caller_phone = EXCLUDED.caller_phone,
                recording_url = EXCLUDED.recording_url,
                duration_seconds = EXCLUDED.duration_seconds,
                language = EXCLUDED.language,
                summary = COALESCE(messages.summary, EXCLUDED.summary)
            """,
            message.recording_id,
            message.tenant_id,
            message.caller_phone,
            message.recording_url,
            message.duration_seconds,
            message.language,
            message.summary,
            message.status,
        )
        logger.info(f"Messages: Stored voicemail {message.recording_id} for {message.tenant_id}")

    async def attach_summary(self, recording_id: str, tenant_id: str, summary: str) -> None:
        pool = await self._get_pool()
        await pool.execute(
            """
            INSERT INTO messages (recording_id, tenant_id, summary)
            VALUES ($1, $2, $3)
            ON CONFLICT (recording_id) DO UPDATE SET summary = EXCLUDED.summary
            """,
            recording_id, tenant_id, summary,
        )

    async def get(self, recording_id: str) -> Optional[Message]:
        pool = await self._get_pool()
        row = await pool.fetchrow("SELECT * FROM messages WHERE recording_id = $1", recording_id)
        return self._row_to_message(row) if row else None

    async def list_for_tenant(self, tenant_id: str) -> List[Message]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            "SELECT * FROM messages WHERE tenant_id = $1 ORDER BY created_at DESC",
            tenant_id,
        )
        return [self._row_to_message(r) for r in rows]


# Global instance
_message_store: Optional[MessageStore] = None


def get_message_store() -> MessageStore:
    """Get global message store instance"""
    global _message_store
    if _message_store is None:
        if get_settings().storage_backend == "postgres":
            _message_store = PostgresMessageStore()
        else:
            _message_store = InMemoryMessageStore()
    return _message_store
