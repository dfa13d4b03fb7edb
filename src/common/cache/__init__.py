"""
Caching Module

Volatility-tiered caching with an in-memory level and optional Redis.
"""

from src.common.cache.tiered_cache import (
    DEFAULT_TIER_TTLS,
    CacheStats,
    MemoryCache,
    TieredCache,
    VolatilityTier,
)

__all__ = [
    "DEFAULT_TIER_TTLS",
    "CacheStats",
    "MemoryCache",
    "TieredCache",
    "VolatilityTier",
]
