"""Response caches for aggregation results.

Two backends share one async interface:

- MemoryResponseCache: in-process LRU bounded by entry count, with TTL
- RedisResponseCache: shared Redis store, TTL via key expiry

Both isolate callers from the stored value: writes store a copy and reads
return a fresh copy, so mutating a returned response never reaches the cache.
"""

import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Callable, Optional, Tuple

import structlog
from pydantic import ValidationError
from redis.asyncio import Redis, from_url
from redis.exceptions import RedisError

from atlas.config import Settings
from atlas.schemas.aggregation import AggregationResponse

logger = structlog.get_logger(__name__)

ALL_PRODUCTS_KEY = "__all__"


def cache_key_for_query(normalized_query: str) -> str:
    """Cache key for a normalized query; the empty query maps to the catalog key."""
    return f"search:{normalized_query or ALL_PRODUCTS_KEY}"


class ResponseCache(ABC):
    """Async cache of AggregationResponse values."""

    @abstractmethod
    async def get(self, key: str) -> Optional[AggregationResponse]:
        pass

    @abstractmethod
    async def set(self, key: str, value: AggregationResponse) -> None:
        pass

    async def clear(self) -> None:
        pass

    async def close(self) -> None:
        pass


class MemoryResponseCache(ResponseCache):
    """In-process LRU + TTL cache.

    The least recently read or written entry is evicted once
    ``max_entries`` is exceeded; entries older than ``ttl_seconds`` are
    treated as missing.
    """

    def __init__(
        self,
        max_entries: int = 50,
        ttl_seconds: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_entries = max(1, max_entries)
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, AggregationResponse]]" = OrderedDict()
        self.logger = logger.bind(service="response_cache", backend="memory")

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> Optional[AggregationResponse]:
        entry = self._entries.get(key)
        if entry is None:
            self.logger.debug("cache_miss", key=key)
            return None

        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            self.logger.debug("cache_expired", key=key)
            return None

        self._entries.move_to_end(key)
        self.logger.debug("cache_hit", key=key)
        return value.model_copy(deep=True)

    async def set(self, key: str, value: AggregationResponse) -> None:
        self._entries[key] = (self._clock() + self.ttl_seconds, value.model_copy(deep=True))
        self._entries.move_to_end(key)

        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            self.logger.debug("cache_evicted", key=evicted)

        self.logger.debug("cache_set", key=key, ttl=self.ttl_seconds)

    async def clear(self) -> None:
        self._entries.clear()


class RedisResponseCache(ResponseCache):
    """Redis-backed cache; values are stored as JSON.

    Redis failures are logged and degrade to cache misses.
    """

    def __init__(self, redis_url: str, ttl_seconds: int = 300, prefix: str = "atlas:"):
        """Initialize cache service.

        Args:
            redis_url: Redis connection URL (e.g., "redis://localhost:6379/0")
            ttl_seconds: Expiry applied to every key
            prefix: Namespace prepended to every key
        """
        self.redis_url = redis_url
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix
        self._redis: Optional[Redis] = None
        self.logger = logger.bind(service="response_cache", backend="redis")

    async def _get_redis(self) -> Redis:
        if self._redis is None:
            self._redis = from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
            )
            self.logger.info("redis_connection_created", url=self.redis_url)

        return self._redis

    async def get(self, key: str) -> Optional[AggregationResponse]:
        try:
            redis = await self._get_redis()
            raw = await redis.get(self.prefix + key)
        except RedisError as e:
            self.logger.error("cache_get_failed", key=key, error=str(e), exc_info=True)
            return None

        if not raw:
            self.logger.debug("cache_miss", key=key)
            return None

        try:
            value = AggregationResponse.model_validate_json(raw)
        except ValidationError as e:
            self.logger.warning("cache_entry_invalid", key=key, error=str(e))
            return None

        self.logger.debug("cache_hit", key=key)
        return value

    async def set(self, key: str, value: AggregationResponse) -> None:
        payload = value.model_dump_json()
        try:
            redis = await self._get_redis()
            await redis.set(self.prefix + key, payload, ex=self.ttl_seconds)
        except RedisError as e:
            self.logger.error("cache_set_failed", key=key, error=str(e), exc_info=True)
            return

        self.logger.debug("cache_set", key=key, ttl=self.ttl_seconds, value_length=len(payload))

    async def clear(self) -> None:
        try:
            redis = await self._get_redis()
            keys = [key async for key in redis.scan_iter(match=f"{self.prefix}search:*", count=100)]
            if keys:
                await redis.delete(*keys)
        except RedisError as e:
            self.logger.error("cache_clear_failed", error=str(e), exc_info=True)

    async def close(self) -> None:
        """Close Redis connection on application shutdown."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            self.logger.info("redis_connection_closed")


def build_response_cache(settings: Settings) -> ResponseCache:
    """Select the cache backend from CACHE_BACKEND ('memory' or 'redis')."""
    backend = (settings.CACHE_BACKEND or "memory").strip().lower()
    if backend == "redis":
        logger.info("response_cache_initialized", backend="redis", redis_url=settings.REDIS_URL)
        return RedisResponseCache(settings.REDIS_URL, ttl_seconds=settings.CACHE_TTL_SECONDS)

    if backend != "memory":
        logger.warning("unknown_cache_backend", backend=backend)
    logger.info("response_cache_initialized", backend="memory", max_entries=settings.CACHE_MAX_ENTRIES)
    return MemoryResponseCache(
        max_entries=settings.CACHE_MAX_ENTRIES,
        ttl_seconds=settings.CACHE_TTL_SECONDS,
    )
