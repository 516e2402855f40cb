"""Session storage backends and per-contact turn serialisation."""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

from redis.exceptions import RedisError

from app.config import settings
from app.infra.redis import get_redis, APP_PREFIX
from .models import (
    IdleSession,
    Session,
    session_from_json,
    session_to_json,
)

logger = logging.getLogger(__name__)

# Session key prefix (extends existing APP_PREFIX)
SESSION_PREFIX = f"{APP_PREFIX}session:"


class SessionStore(ABC):
    """
    Keyed session storage.

    Idle sessions are never stored: putting one deletes the key, and a
    missing key reads back as None (callers treat it as idle).
    """

    @abstractmethod
    async def get(self, contact_id: str) -> Optional[Session]:
        """Get the session for a contact, or None if absent."""

    @abstractmethod
    async def put(self, contact_id: str, session: Session) -> None:
        """Replace the session for a contact."""

    @abstractmethod
    async def delete(self, contact_id: str) -> bool:
        """Delete the session for a contact. Returns True if one existed."""


class InMemorySessionStore(SessionStore):
    """
    Process-local store with optional TTL eviction.

    Sessions are lost on restart.
    """

    def __init__(self, ttl_seconds: Optional[int] = None, clock: Callable[[], float] = time.monotonic):
        """Initialize store.

        Args:
            ttl_seconds: Idle time before a session expires (0 or None disables)
            clock: Monotonic clock (for testing)
        """
        self._ttl = ttl_seconds if ttl_seconds is not None else settings.session_ttl_seconds
        self._clock = clock
        self._sessions: dict[str, tuple[Session, float]] = {}

    def _expired(self, stored_at: float) -> bool:
        return bool(self._ttl) and self._clock() - stored_at > self._ttl

    async def get(self, contact_id: str) -> Optional[Session]:
        entry = self._sessions.get(contact_id)
        if entry is None:
            return None

        session, stored_at = entry
        if self._expired(stored_at):
            del self._sessions[contact_id]
            logger.debug(f"Session expired: {contact_id}")
            return None
        return session

    async def put(self, contact_id: str, session: Session) -> None:
        if isinstance(session, IdleSession):
            self._sessions.pop(contact_id, None)
            return
        self._sessions[contact_id] = (session, self._clock())

    async def delete(self, contact_id: str) -> bool:
        return self._sessions.pop(contact_id, None) is not None

    def __len__(self) -> int:
        return len(self._sessions)


class RedisSessionStore(SessionStore):
    """
    Redis-backed store.

    Key pattern: intake:v1:session:{contact_id}, written with SETEX so
    abandoned sessions expire on their own.
    """

    def __init__(self, ttl_seconds: Optional[int] = None):
        """Initialize store.

        Args:
            ttl_seconds: Expiry for stored sessions (0 or None disables)
        """
        self._ttl = ttl_seconds if ttl_seconds is not None else settings.session_ttl_seconds

    def _key(self, contact_id: str) -> str:
        """Generate Redis key."""
        return f"{SESSION_PREFIX}{contact_id}"

    async def get(self, contact_id: str) -> Optional[Session]:
        redis = await get_redis()
        if redis is None:
            logger.warning(f"Redis unavailable, treating session {contact_id} as absent")
            return None

        try:
            data = await redis.get(self._key(contact_id))
        except RedisError as e:
            logger.error(f"Failed to read session {contact_id}: {e}")
            return None

        if not data:
            return None

        try:
            return session_from_json(data)
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Discarding unreadable session {contact_id}: {e}")
            return None

    async def put(self, contact_id: str, session: Session) -> None:
        if isinstance(session, IdleSession):
            await self.delete(contact_id)
            return

        redis = await get_redis()
        if redis is None:
            logger.warning(f"Redis unavailable, session {contact_id} not saved")
            return

        key = self._key(contact_id)
        try:
            if self._ttl:
                await redis.setex(key, self._ttl, session_to_json(session))
            else:
                await redis.set(key, session_to_json(session))
            logger.debug(f"Session saved: {contact_id}")
        except RedisError as e:
            logger.error(f"Failed to save session {contact_id}: {e}")

    async def delete(self, contact_id: str) -> bool:
        redis = await get_redis()
        if redis is None:
            return False

        try:
            deleted = await redis.delete(self._key(contact_id))
        except RedisError as e:
            logger.error(f"Failed to delete session {contact_id}: {e}")
            return False

        if deleted:
            logger.debug(f"Session deleted: {contact_id}")
        return bool(deleted)


class ContactLocks:
    """
    One asyncio.Lock per contact.

    Turns for the same contact run one at a time; different contacts
    proceed in parallel. Locks nobody holds or waits on are dropped.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    def holding(self, contact_id: str) -> "_ContactLockContext":
        """Async context manager serialising turns for a contact."""
        return _ContactLockContext(self, contact_id)

    def __len__(self) -> int:
        return len(self._locks)


class _ContactLockContext:
    def __init__(self, registry: ContactLocks, contact_id: str):
        self._registry = registry
        self._contact_id = contact_id

    async def __aenter__(self) -> None:
        registry = self._registry
        lock = registry._locks.setdefault(self._contact_id, asyncio.Lock())
        registry._waiters[self._contact_id] = registry._waiters.get(self._contact_id, 0) + 1
        try:
            await lock.acquire()
        except asyncio.CancelledError:
            self._leave()
            raise

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self._registry._locks[self._contact_id].release()
        self._leave()

    def _leave(self) -> None:
        registry = self._registry
        registry._waiters[self._contact_id] -= 1
        if registry._waiters[self._contact_id] == 0:
            del registry._waiters[self._contact_id]
            del registry._locks[self._contact_id]


# Singleton
_store: Optional[SessionStore] = None


def get_session_store() -> SessionStore:
    """Get singleton SessionStore for the configured backend."""
    global _store
    if _store is None:
        if settings.session_backend == "redis":
            _store = RedisSessionStore()
        else:
            _store = InMemorySessionStore()
        logger.info(f"Session backend: {settings.session_backend}")
    return _store
