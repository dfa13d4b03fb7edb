"""
Volatility-Tiered Cache

Two-level cache (in-process LRU in front of optional Redis) whose entry
lifetimes are chosen by how quickly the cached data goes stale rather
than by a per-call TTL.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

from src.common.telemetry import get_tracer

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

T = TypeVar("T")


class VolatilityTier(str, Enum):
    """How quickly a piece of data changes upstream."""

    IMMUTABLE = "immutable"  # finalized blocks and transactions
    LONG = "long"  # addresses, token metadata
    USER_ANALYTICS = "user_analytics"  # PnL, trade history
    MARKET = "market"  # prices, funding rates
    REALTIME = "realtime"  # order book, recent trades


DEFAULT_TIER_TTLS: dict[VolatilityTier, int] = {
    VolatilityTier.IMMUTABLE: 60 * 60 * 24,
    VolatilityTier.LONG: 60 * 60,
    VolatilityTier.USER_ANALYTICS: 60 * 5,
    VolatilityTier.MARKET: 30,
    VolatilityTier.REALTIME: 5,
}


@dataclass
class CacheStats:
    """Statistics for cache operations."""

    hits: int = 0
    misses: int = 0
    sets: int = 0
    errors: int = 0

    @property
    def hit_rate(self) -> float:
        """Get cache hit rate."""
        total = self.hits + self.misses
        return (self.hits / total) if total > 0 else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "sets": self.sets,
            "errors": self.errors,
            "hit_rate": round(self.hit_rate, 4),
        }


class MemoryCache:
    """
    Simple in-memory LRU cache with TTL support.

    Each operation holds the lock only for a single-key read or write.
    """

    def __init__(self, max_size: int = 1000, default_ttl: int = 300):
        self._max_size = max_size
        self._default_ttl = default_ttl
        self._cache: OrderedDict[str, tuple[Any, float]] = OrderedDict()
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._cache)

    async def get(self, key: str) -> Any | None:
        """Get value from cache."""
        async with self._lock:
            if key not in self._cache:
                return None

            value, expiry = self._cache[key]
            if time.monotonic() > expiry:
                del self._cache[key]
                return None

            # Move to end (LRU)
            self._cache.move_to_end(key)
            return value

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Set value in cache."""
        async with self._lock:
            ttl = ttl or self._default_ttl
            expiry = time.monotonic() + ttl

            if key in self._cache:
                del self._cache[key]

            # Remove oldest if at capacity
            while len(self._cache) >= self._max_size:
                self._cache.popitem(last=False)

            self._cache[key] = (value, expiry)

    async def delete(self, key: str) -> bool:
        """Delete key from cache."""
        async with self._lock:
            if key in self._cache:
                del self._cache[key]
                return True
            return False

    async def clear(self) -> None:
        """Clear all cache entries."""
        async with self._lock:
            self._cache.clear()


class TieredCache:
    """
    Cache keyed by volatility tier.

    Features:
    - L1 in-memory LRU, always present
    - Optional L2 Redis (redis.asyncio client) holding JSON values
    - Redis errors are logged and treated as misses
    - Concurrent misses on one key may both compute; the last write wins
    """

    def __init__(
        self,
        redis_client: Any | None = None,
        tier_ttls: Mapping[VolatilityTier, int] | None = None,
        key_prefix: str = "explorer:",
        memory_max_size: int = 1000,
    ):
        self._redis = redis_client
        self._ttls = dict(DEFAULT_TIER_TTLS)
        if tier_ttls:
            self._ttls.update(tier_ttls)
        self._key_prefix = key_prefix
        self._memory = MemoryCache(
            max_size=memory_max_size,
            default_ttl=self._ttls[VolatilityTier.USER_ANALYTICS],
        )
        self._stats = CacheStats()

    @property
    def stats(self) -> CacheStats:
        """Get cache statistics."""
        return self._stats

    @property
    def redis_enabled(self) -> bool:
        return self._redis is not None

    @property
    def memory_size(self) -> int:
        return len(self._memory)

    def ttl_for(self, tier: VolatilityTier) -> int:
        """Seconds an entry of the given tier stays valid."""
        return self._ttls[tier]

    def _make_key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    async def _remaining_ttl(self, full_key: str, tier: VolatilityTier) -> int:
        tier_ttl = self.ttl_for(tier)
        try:
            remaining = await self._redis.ttl(full_key)
        except Exception as e:
            self._stats.errors += 1
            logger.warning(f"Redis ttl error: {e}")
            return tier_ttl
        # -1 means no expiry, -2 means the key is already gone
        if remaining is None or remaining < 0:
            return tier_ttl
        return max(1, min(remaining, tier_ttl))

    async def get(
        self,
        key: str,
        tier: VolatilityTier,
        decode: Callable[[Any], T] | None = None,
    ) -> T | Any | None:
        """
        Get value from cache.

        Args:
            key: Cache key (unprefixed)
            tier: Tier the value was stored under, used to refill L1
            decode: Converts the JSON value stored in Redis back to an object

        Returns:
            Cached value or None if not found
        """
        with tracer.start_as_current_span("cache.get") as span:
            full_key = self._make_key(key)
            span.set_attribute("cache.key", key[:50])

            value = await self._memory.get(full_key)
            if value is not None:
                self._stats.hits += 1
                span.set_attribute("cache.hit", True)
                span.set_attribute("cache.source", "memory")
                return value

            if self._redis is not None:
                try:
                    raw = await self._redis.get(full_key)
                except Exception as e:
                    self._stats.errors += 1
                    span.set_attribute("cache.error", str(e))
                    logger.warning(f"Redis get error: {e}")
                    raw = None

                if raw is not None:
                    try:
                        loaded = json.loads(raw)
                        value = decode(loaded) if decode else loaded
                    except (ValueError, TypeError) as e:
                        self._stats.errors += 1
                        logger.warning(f"Discarding undecodable cache entry {key}: {e}")
                    else:
                        # Refill L1 for no longer than Redis still holds the entry
                        ttl = await self._remaining_ttl(full_key, tier)
                        await self._memory.set(full_key, value, ttl)
                        self._stats.hits += 1
                        span.set_attribute("cache.hit", True)
                        span.set_attribute("cache.source", "redis")
                        return value

            self._stats.misses += 1
            span.set_attribute("cache.hit", False)
            return None

    async def set(
        self,
        key: str,
        value: Any,
        tier: VolatilityTier,
        encode: Callable[[Any], Any] | None = None,
    ) -> None:
        """
        Store a value under the TTL band of its tier.

        Args:
            key: Cache key (unprefixed)
            value: Object to cache
            tier: Volatility tier selecting the TTL
            encode: Converts the value to something json.dumps accepts
        """
        with tracer.start_as_current_span("cache.set") as span:
            full_key = self._make_key(key)
            ttl = self.ttl_for(tier)
            span.set_attribute("cache.key", key[:50])
            span.set_attribute("cache.ttl", ttl)

            await self._memory.set(full_key, value, ttl)
            self._stats.sets += 1

            if self._redis is not None:
                try:
                    serialized = json.dumps(encode(value) if encode else value)
                    await self._redis.setex(full_key, ttl, serialized)
                except Exception as e:
                    self._stats.errors += 1
                    span.set_attribute("cache.error", str(e))
                    logger.warning(f"Redis set error: {e}")

    async def delete(self, key: str) -> bool:
        """Delete key from both levels."""
        full_key = self._make_key(key)

        deleted = False
        if self._redis is not None:
            try:
                deleted = await self._redis.delete(full_key) > 0
            except Exception as e:
                logger.warning(f"Redis delete error: {e}")

        mem_deleted = await self._memory.delete(full_key)
        return deleted or mem_deleted

    async def get_or_compute(
        self,
        key: str,
        tier: VolatilityTier,
        compute: Callable[[], Awaitable[T]],
        encode: Callable[[T], Any] | None = None,
        decode: Callable[[Any], T] | None = None,
    ) -> T:
        """
        Get value from cache or compute and cache it.

        A hit returns the stored object untouched, so any timestamps it
        carries still describe when it was computed.

        Args:
            key: Cache key
            tier: Volatility tier selecting the TTL
            compute: Async function producing the value on a miss
            encode: JSON encoder for the Redis level
            decode: JSON decoder for the Redis level

        Returns:
            Cached or computed value
        """
        value = await self.get(key, tier, decode=decode)
        if value is not None:
            return value

        value = await compute()
        await self.set(key, value, tier, encode=encode)
        return value
