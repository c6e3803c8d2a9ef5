"""
Key-value store used for tokens, sessions and response caching.

Supports an in-memory backend for tests/local runs and a Redis-backed
implementation for production. Values are JSON-encoded on both backends,
so callers always get a fresh copy.
"""
import json
import logging
import time
from typing import Any, Dict, Optional, Protocol, Tuple

import redis.asyncio as redis
from redis import exceptions as redis_exceptions

from fitness_api.config import settings

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Optional[Any]:
        ...

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        ...

    async def delete(self, *keys: str) -> int:
        ...

    async def exists(self, key: str) -> bool:
        ...

    async def ttl(self, key: str) -> int:
        ...

    async def ping(self) -> bool:
        ...


class InMemoryCache:
    """Dictionary-backed store with per-key expiry"""

    def __init__(self):
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}

    def _live(self, key: str) -> Optional[Tuple[str, Optional[float]]]:
        entry = self._data.get(key)
        if entry is None:
            return None
        _, expires_at = entry
        if expires_at is not None and expires_at <= time.monotonic():
            del self._data[key]
            return None
        return entry

    async def get(self, key: str) -> Optional[Any]:
        entry = self._live(key)
        return json.loads(entry[0]) if entry else None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        expires_at = time.monotonic() + ttl if ttl else None
        self._data[key] = (json.dumps(value, default=str), expires_at)

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._live(key) is not None:
                del self._data[key]
                removed += 1
        return removed

    async def exists(self, key: str) -> bool:
        return self._live(key) is not None

    async def ttl(self, key: str) -> int:
        entry = self._live(key)
        if entry is None:
            return -2
        if entry[1] is None:
            return -1
        return max(0, int(round(entry[1] - time.monotonic())))

    async def ping(self) -> bool:
        return True


class RedisCache:
    """Redis-backed store"""

    def __init__(self, url: str):
        self.url = url
        self.client = redis.Redis.from_url(url, decode_responses=True)

    async def get(self, key: str) -> Optional[Any]:
        raw = await self.client.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            return raw

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        await self.client.set(key, json.dumps(value, default=str), ex=ttl or None)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self.client.delete(*keys))

    async def exists(self, key: str) -> bool:
        return bool(await self.client.exists(key))

    async def ttl(self, key: str) -> int:
        return int(await self.client.ttl(key))

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except redis_exceptions.ConnectionError:
            logger.warning("Redis ping failed for %s", self.url)
            return False


_cache: Optional[KeyValueStore] = None


def get_cache() -> KeyValueStore:
    """Return the process-wide store, built from settings on first use"""
    global _cache
    if _cache is None:
        if settings.CACHE_BACKEND == "redis":
            _cache = RedisCache(settings.REDIS_URL)
            logger.info("Using Redis key-value store")
        else:
            _cache = InMemoryCache()
            logger.info("Using in-memory key-value store")
    return _cache


def set_cache(store: Optional[KeyValueStore]) -> None:
    global _cache
    _cache = store
