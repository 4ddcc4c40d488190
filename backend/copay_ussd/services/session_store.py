# /copay_ussd/services/session_store.py

import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional, Tuple

import redis.asyncio as redis
from pydantic import ValidationError

from copay_ussd.config.settings import settings
from copay_ussd.models.session import UssdSession, utc_now
from copay_ussd.utils.circuit_breaker import CircuitBreaker
from copay_ussd.utils.exceptions import CorruptSessionError
from copay_ussd.utils.metrics import cache_operations

# This service holds USSD sessions between aggregator requests. Records are
# replaced whole on every save and expire after an idle TTL; there is no
# locking and no compare-and-swap, the last writer wins.
#
# Unlike a best-effort cache, store failures are raised: the gateway must
# answer with a terminal error rather than continue a conversation whose
# state it could not read or write.

logger = logging.getLogger(__name__)


def decode_session(session_id: str, raw) -> UssdSession:
    """Parses a stored record, raising CorruptSessionError for anything unusable."""
    try:
        session = UssdSession.model_validate_json(raw)
    except ValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ())) or "record"
        raise CorruptSessionError(session_id, f"{location}: {first.get('msg', 'invalid')}") from e
    if session.session_id != session_id:
        raise CorruptSessionError(session_id, f"record belongs to session {session.session_id}")
    return session


def encode_session(session: UssdSession) -> str:
    return session.model_copy(update={"last_activity": utc_now()}).model_dump_json()


class SessionStore(ABC):
    """Shared TTL key/value store keyed by session id."""

    @abstractmethod
    async def load(self, session_id: str) -> Optional[UssdSession]:
        """Returns the live session, or None when absent or expired."""
        pass

    @abstractmethod
    async def save(self, session: UssdSession, ttl: int) -> None:
        """Replaces the stored record and restarts its idle TTL."""
        pass

    @abstractmethod
    async def delete(self, session_id: str) -> None:
        pass

    async def ping(self) -> bool:
        return True


class RedisSessionStore(SessionStore):
    def __init__(self, redis_url: str, key_prefix: str = "ussd_session:", socket_timeout: float = 3.0):
        self.key_prefix = key_prefix
        self.redis_pool = redis.ConnectionPool.from_url(
            redis_url,
            max_connections=20,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        self.redis = redis.Redis(connection_pool=self.redis_pool)
        self.circuit_breaker = CircuitBreaker("session_store")

    def _key(self, session_id: str) -> str:
        return f"{self.key_prefix}{session_id}"

    async def load(self, session_id: str) -> Optional[UssdSession]:
        try:
            raw = await self.circuit_breaker.call(self.redis.get, self._key(session_id))
        except Exception:
            cache_operations.labels(operation="get", status="error").inc()
            raise
        cache_operations.labels(operation="get", status="hit" if raw else "miss").inc()
        if raw is None:
            return None
        return decode_session(session_id, raw)

    async def save(self, session: UssdSession, ttl: int) -> None:
        try:
            await self.circuit_breaker.call(self.redis.setex, self._key(session.session_id), ttl, encode_session(session))
        except Exception:
            cache_operations.labels(operation="set", status="error").inc()
            raise
        cache_operations.labels(operation="set", status="success").inc()

    async def delete(self, session_id: str) -> None:
        try:
            await self.circuit_breaker.call(self.redis.delete, self._key(session_id))
        except Exception:
            cache_operations.labels(operation="delete", status="error").inc()
            raise
        cache_operations.labels(operation="delete", status="success").inc()

    async def ping(self) -> bool:
        return await self.redis.ping()

    async def close(self):
        await self.redis.aclose()


class InMemorySessionStore(SessionStore):
    """
    Single-process store for tests and local development. Records are kept
    serialized so they behave like the Redis ones; expiry is checked on load.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[str, Tuple[float, str]] = {}

    async def load(self, session_id: str) -> Optional[UssdSession]:
        entry = self._entries.get(session_id)
        if entry is None:
            cache_operations.labels(operation="get", status="miss").inc()
            return None
        expires_at, raw = entry
        if self._clock() >= expires_at:
            del self._entries[session_id]
            cache_operations.labels(operation="get", status="miss").inc()
            return None
        cache_operations.labels(operation="get", status="hit").inc()
        return decode_session(session_id, raw)

    async def save(self, session: UssdSession, ttl: int) -> None:
        self._entries[session.session_id] = (self._clock() + ttl, encode_session(session))
        cache_operations.labels(operation="set", status="success").inc()

    async def delete(self, session_id: str) -> None:
        self._entries.pop(session_id, None)
        cache_operations.labels(operation="delete", status="success").inc()


def build_session_store(config=settings) -> SessionStore:
    if config.session_backend == "memory":
        logger.warning("Using the in-memory session store; sessions are not shared between processes.")
        return InMemorySessionStore()
    return RedisSessionStore(config.redis_url, config.session_key_prefix, config.redis_socket_timeout)


# Globally accessible instance
session_store = build_session_store()
