"""
Key-value cache stores with TTL expiry for the garages service.
"""

import json
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple

import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.errors import CacheStoreError
from shared.logging import get_logger


def _serialize(key: str, payload: Any) -> str:
    try:
        return json.dumps(payload, ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError) as exc:
        raise CacheStoreError(f"Payload is not serializable: {exc}", details={"key": key}) from exc


class CacheStore(ABC):
    """Async key-value store whose entries expire after a TTL."""

    backend = "unknown"

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the payload stored under ``key``, or None if absent or expired."""

    @abstractmethod
    async def set(self, key: str, payload: Any, ttl_seconds: int) -> None:
        """Store ``payload`` under ``key`` for ``ttl_seconds``."""

    async def close(self) -> None:
        return None


class LocalCacheStore(CacheStore):
    """
    In-process fallback store.

    Entries are kept as JSON text next to an absolute expiry instant. Expiry
    is lazy: ``get`` compares against the clock and evicts what it finds
    stale; nothing sweeps in the background. Values are serialized on write
    so readers always receive a fresh copy.
    """

    backend = "local"

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._entries: Dict[str, Tuple[str, float]] = {}
        self.logger = get_logger("garages.cache.local")

    async def get(self, key: str) -> Optional[Any]:
        item = self._entries.get(key)
        if item is None:
            return None

        value, expires_at = item
        if self._clock() > expires_at:
            self._entries.pop(key, None)
            self.logger.debug("Evicted expired cache entry", key=key)
            return None

        return json.loads(value)

    async def set(self, key: str, payload: Any, ttl_seconds: int) -> None:
        value = _serialize(key, payload)
        self._entries[key] = (value, self._clock() + ttl_seconds)

    def __len__(self) -> int:
        return len(self._entries)


class RedisCacheStore(CacheStore):
    """Store backed by Redis; TTL and expiry are handled by Redis itself."""

    backend = "redis"

    def __init__(self, redis_url: str, client: Optional[redis.Redis] = None):
        self.redis_url = redis_url
        self.logger = get_logger("garages.cache.redis")
        self.redis = client or redis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )

    async def get(self, key: str) -> Optional[Any]:
        try:
            value = await self.redis.get(key)
        except RedisError as exc:
            raise CacheStoreError(f"Redis GET failed: {exc}", details={"key": key}) from exc

        if not value:
            return None

        try:
            return json.loads(value)
        except json.JSONDecodeError:
            self.logger.warning("Discarding malformed cache payload", key=key)
            return None

    async def set(self, key: str, payload: Any, ttl_seconds: int) -> None:
        value = _serialize(key, payload)
        try:
            await self.redis.setex(key, ttl_seconds, value)
        except RedisError as exc:
            raise CacheStoreError(f"Redis SETEX failed: {exc}", details={"key": key}) from exc

    async def close(self) -> None:
        await self.redis.aclose()
        self.logger.info("Redis cache stopped")


def create_cache_store(redis_url: Optional[str], clock: Callable[[], float] = time.time) -> CacheStore:
    """Pick the backend once at startup: Redis when a URL is configured, else local."""
    if redis_url:
        return RedisCacheStore(redis_url)
    return LocalCacheStore(clock=clock)
