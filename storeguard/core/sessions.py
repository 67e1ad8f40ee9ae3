"""
Session Storage Backend for StoreGuard.

Supports both in-memory storage (development) and Redis (production).
A session maps an opaque session id to {"user_id": ...}.
"""

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Optional

logger = logging.getLogger(__name__)


class SessionBackend(ABC):
    """Abstract base class for session storage backends."""

    @abstractmethod
    async def get(self, key: str) -> Optional[dict]:
        """Get session data by key."""
        pass

    @abstractmethod
    async def set(self, key: str, value: dict, ttl_seconds: int = 3600) -> bool:
        """Set session data with TTL."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a session."""
        pass


class MemorySessionBackend(SessionBackend):
    """
    In-memory session storage for development.
    NOT suitable for production (data lost on restart, no horizontal scaling).
    """

    def __init__(self):
        self._store: dict[str, dict] = {}
        self._expiry: dict[str, datetime] = {}

    async def get(self, key: str) -> Optional[dict]:
        self._cleanup_expired()
        if key in self._store:
            return self._store[key]
        return None

    async def set(self, key: str, value: dict, ttl_seconds: int = 3600) -> bool:
        self._store[key] = value
        self._expiry[key] = datetime.utcnow() + timedelta(seconds=ttl_seconds)
        return True

    async def delete(self, key: str) -> bool:
        deleted = key in self._store
        self._store.pop(key, None)
        self._expiry.pop(key, None)
        return deleted

    def _cleanup_expired(self):
        """Remove expired sessions."""
        now = datetime.utcnow()
        expired = [k for k, exp in self._expiry.items() if now >= exp]
        for key in expired:
            self._store.pop(key, None)
            self._expiry.pop(key, None)


class RedisSessionBackend(SessionBackend):
    """
    Redis-backed session storage for production.
    Supports horizontal scaling and persistent sessions.
    """

    def __init__(self, redis_url: str = "redis://localhost:6379", prefix: str = "storeguard:session:"):
        self.redis_url = redis_url
        self.prefix = prefix
        self._client = None

    async def _get_client(self):
        if self._client is None:
            import redis.asyncio as aioredis

            self._client = aioredis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return self._client

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def get(self, key: str) -> Optional[dict]:
        try:
            client = await self._get_client()
            data = await client.get(self._key(key))
            if data:
                return json.loads(data)
        except Exception as e:
            logger.error("Redis GET error: %s", e)
        return None

    async def set(self, key: str, value: dict, ttl_seconds: int = 3600) -> bool:
        try:
            client = await self._get_client()
            await client.setex(self._key(key), ttl_seconds, json.dumps(value))
            return True
        except Exception as e:
            logger.error("Redis SET error: %s", e)
        return False

    async def delete(self, key: str) -> bool:
        try:
            client = await self._get_client()
            result = await client.delete(self._key(key))
            return result > 0
        except Exception as e:
            logger.error("Redis DELETE error: %s", e)
        return False

    async def close(self):
        """Close Redis connection."""
        if self._client:
            await self._client.aclose()
            self._client = None


# =============================================================================
# Session Manager (Singleton)
# =============================================================================

_session_backend: Optional[SessionBackend] = None


def get_session_backend() -> SessionBackend:
    """Get the configured session backend (FastAPI dependency)."""
    global _session_backend
    if _session_backend is None:
        _session_backend = MemorySessionBackend()
        logger.info("Using in-memory session backend (development mode)")
    return _session_backend


def configure_session_backend(redis_url: Optional[str] = None):
    """
    Configure the session backend.

    Args:
        redis_url: Redis connection URL. If None, uses in-memory storage.
    """
    global _session_backend

    if redis_url:
        _session_backend = RedisSessionBackend(redis_url)
        logger.info("Using Redis session backend: %s", redis_url.split("@")[-1])  # Hide credentials
    else:
        _session_backend = MemorySessionBackend()
        logger.info("Using in-memory session backend (development mode)")


async def close_session_backend():
    """Close session backend connections (call during shutdown)."""
    global _session_backend
    if _session_backend and isinstance(_session_backend, RedisSessionBackend):
        await _session_backend.close()
    _session_backend = None
