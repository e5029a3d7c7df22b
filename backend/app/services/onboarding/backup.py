"""Durable cache mirroring session progress for recovery."""

import abc
from datetime import datetime

import redis.asyncio as aioredis
from pydantic import BaseModel, Field

from app.core.config import settings

BACKUP_KEY_PREFIX = "onboarding_backup"
BACKUP_VERSION = "1.0"


def backup_key(session_id: str) -> str:
    return f"{BACKUP_KEY_PREFIX}:{session_id}"


class BackupSnapshot(BaseModel):
    """Serialized form of a session's progress as written to the cache."""

    session_id: str
    user_id: str | None = None
    progress: dict | None = None
    achievements: list[dict] = Field(default_factory=list)
    last_backup: datetime
    version: str = BACKUP_VERSION


class ProgressBackupStore(abc.ABC):
    """Stores one serialized snapshot per session."""

    @abc.abstractmethod
    async def save(self, session_id: str, snapshot: str) -> None: ...

    @abc.abstractmethod
    async def load(self, session_id: str) -> str | None: ...

    @abc.abstractmethod
    async def delete(self, session_id: str) -> None: ...


class NullBackupStore(ProgressBackupStore):
    async def save(self, session_id: str, snapshot: str) -> None:
        return None

    async def load(self, session_id: str) -> str | None:
        return None

    async def delete(self, session_id: str) -> None:
        return None


class RedisProgressBackupStore(ProgressBackupStore):
    def __init__(self, redis_url: str | None = None, ttl_seconds: int | None = None):
        self.redis_url = redis_url or settings.REDIS_URL
        self.ttl_seconds = ttl_seconds or settings.ONBOARDING_BACKUP_TTL_SECONDS

    def _client(self) -> aioredis.Redis:
        return aioredis.from_url(self.redis_url, decode_responses=True)

    async def save(self, session_id: str, snapshot: str) -> None:
        r = self._client()
        try:
            await r.setex(backup_key(session_id), self.ttl_seconds, snapshot)
        finally:
            await r.aclose()

    async def load(self, session_id: str) -> str | None:
        r = self._client()
        try:
            return await r.get(backup_key(session_id))
        finally:
            await r.aclose()

    async def delete(self, session_id: str) -> None:
        r = self._client()
        try:
            await r.delete(backup_key(session_id))
        finally:
            await r.aclose()
