"""
Result cache for upstream lookups.

Redis when REDIS_URL is set (shared by every worker process), otherwise a
bounded in-process TTL cache. Expired entries are evicted by the cache
itself, so the process never holds more than ``maxsize`` results.
"""
import json
import logging
from typing import Any, Hashable, List, Optional
from cachetools import TTLCache
from redis import asyncio as redis_asyncio
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

DEFAULT_MAXSIZE = 1024


def build_redis_client(redis_url: str) -> Optional[redis_asyncio.Redis]:
    """Redis client for the URL, or None when caching stays in-process"""
    redis_url = (redis_url or "").strip()
    if not redis_url:
        return None
    return redis_asyncio.from_url(redis_url, decode_responses=True)


class ResultCache:
    """
    TTL cache of JSON-serializable lists.

    Usage:
        cache = ResultCache("inventory", ttl=300)
        await cache.set(("1020", "TOYOTA", "PRIUS"), rows)
        rows = await cache.get(("1020", "TOYOTA", "PRIUS"))

    A ttl of 0 disables the cache. The first Redis error switches this
    cache to the in-process store for the rest of the process lifetime.
    """

    def __init__(
        self,
        namespace: str,
        ttl: float,
        redis_client: Optional[redis_asyncio.Redis] = None,
        maxsize: int = DEFAULT_MAXSIZE,
    ):
        self.namespace = namespace
        self.ttl = ttl
        self.redis_client = redis_client
        self._memory: Optional[TTLCache] = TTLCache(maxsize=maxsize, ttl=ttl) if ttl and ttl > 0 else None

    @property
    def enabled(self) -> bool:
        return self._memory is not None

    def __len__(self) -> int:
        if self._memory is None:
            return 0
        self._memory.expire()
        return len(self._memory)

    def _redis_key(self, key: Hashable) -> str:
        parts = key if isinstance(key, tuple) else (key,)
        return ":".join(["yardwatch", self.namespace, *(str(p) for p in parts)])

    async def get(self, key: Hashable) -> Optional[List[Any]]:
        if not self.enabled:
            return None

        if self.redis_client is not None:
            try:
                cached = await self.redis_client.get(self._redis_key(key))
                return json.loads(cached) if cached else None
            except RedisError as e:
                self._drop_redis(e)

        value = self._memory.get(key)
        return list(value) if value is not None else None

    async def set(self, key: Hashable, value: List[Any]):
        if not self.enabled:
            return

        if self.redis_client is not None:
            try:
                await self.redis_client.setex(self._redis_key(key), max(1, int(self.ttl)), json.dumps(value))
                return
            except RedisError as e:
                self._drop_redis(e)

        self._memory[key] = list(value)

    def _drop_redis(self, error: Exception):
        logger.warning(f"Redis not available for {self.namespace} cache, using in-process cache: {error}")
        self.redis_client = None

    def clear(self):
        """Drop the in-process entries (Redis keys expire on their own)"""
        if self._memory is not None:
            self._memory.clear()
