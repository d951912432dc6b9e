"""
Session Storage

Active quality-loop sessions live in a SessionStore. Each store provides a
per-session lock so concurrent continue calls on one session serialize,
while different sessions proceed independently.

- InMemorySessionStore: dict + asyncio.Lock per session (single process)
- RedisSessionStore: JSON snapshots + Redis lock per session (multi-process)
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from ..models import QualityLoopSession

logger = logging.getLogger(__name__)


class SessionStore(ABC):
    """Storage interface for active sessions."""

    @abstractmethod
    async def get(self, session_id: str) -> Optional[QualityLoopSession]:
        pass

    @abstractmethod
    async def save(self, session: QualityLoopSession):
        pass

    @abstractmethod
    async def delete(self, session_id: str):
        pass

    @abstractmethod
    async def list_active(self) -> List[QualityLoopSession]:
        pass

    @abstractmethod
    def lock(self, session_id: str):
        """Async context manager holding the session's lock."""
        pass


class InMemorySessionStore(SessionStore):
    """Process-local session table."""

    def __init__(self):
        self._sessions: Dict[str, QualityLoopSession] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    async def get(self, session_id: str) -> Optional[QualityLoopSession]:
        return self._sessions.get(session_id)

    async def save(self, session: QualityLoopSession):
        self._sessions[session.session_id] = session

    async def delete(self, session_id: str):
        self._sessions.pop(session_id, None)
        # A holder keeps its own reference and still releases it.
        self._locks.pop(session_id, None)

    async def list_active(self) -> List[QualityLoopSession]:
        return [s for s in self._sessions.values() if s.is_active]

    @asynccontextmanager
    async def lock(self, session_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        async with lock:
            yield


class RedisSessionStore(SessionStore):
    """
    Redis-backed session table.

    Keys:
        {namespace}:session:{id}  JSON snapshot (expires after ttl)
        {namespace}:active        set of active session ids
        {namespace}:lock:{id}     distributed lock
    """

    def __init__(
        self,
        redis: Redis,
        namespace: str = "emailcraft",
        ttl_seconds: int = 86400,
        lock_timeout: float = 900.0,
        lock_wait: Optional[float] = None,
    ):
        """
        Args:
            redis: redis.asyncio client (decode_responses may be on or off)
            namespace: Key prefix
            ttl_seconds: Expiry of session snapshots
            lock_timeout: Auto-release of a held lock (covers crashed workers)
            lock_wait: Max seconds to wait for a lock (None = wait forever)
        """
        self.redis = redis
        self.namespace = namespace
        self.ttl_seconds = ttl_seconds
        self.lock_timeout = lock_timeout
        self.lock_wait = lock_wait

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisSessionStore":
        return cls(Redis.from_url(url, decode_responses=True), **kwargs)

    def _key(self, session_id: str) -> str:
        return f"{self.namespace}:session:{session_id}"

    @property
    def _active_key(self) -> str:
        return f"{self.namespace}:active"

    async def get(self, session_id: str) -> Optional[QualityLoopSession]:
        try:
            raw = await self.redis.get(self._key(session_id))
        except RedisError as e:
            logger.error(f"Redis GET failed for session {session_id}: {e}")
            raise
        if raw is None:
            return None
        return QualityLoopSession.from_dict(json.loads(raw))

    async def save(self, session: QualityLoopSession):
        payload = json.dumps(session.to_dict(), ensure_ascii=False)
        try:
            await self.redis.set(self._key(session.session_id), payload, ex=self.ttl_seconds)
            if session.is_active:
                await self.redis.sadd(self._active_key, session.session_id)
            else:
                await self.redis.srem(self._active_key, session.session_id)
        except RedisError as e:
            logger.error(f"Redis SET failed for session {session.session_id}: {e}")
            raise

    async def delete(self, session_id: str):
        try:
            await self.redis.delete(self._key(session_id))
            await self.redis.srem(self._active_key, session_id)
        except RedisError as e:
            logger.error(f"Redis DELETE failed for session {session_id}: {e}")
            raise

    async def list_active(self) -> List[QualityLoopSession]:
        sessions = []
        for raw_id in await self.redis.smembers(self._active_key):
            session_id = raw_id.decode() if isinstance(raw_id, bytes) else raw_id
            session = await self.get(session_id)
            if session is None:
                # Snapshot expired
                await self.redis.srem(self._active_key, session_id)
                continue
            sessions.append(session)
        return sorted(sessions, key=lambda s: s.session_start)

    async def close(self):
        await self.redis.aclose()
        logger.info("Redis session store closed")

    @asynccontextmanager
    async def lock(self, session_id: str) -> AsyncIterator[None]:
        lock = self.redis.lock(
            f"{self.namespace}:lock:{session_id}",
            timeout=self.lock_timeout,
            blocking_timeout=self.lock_wait,
        )
        async with lock:
            yield
