"""
Cache wiring for the ledger explorer.

Builds the TieredCache from service configuration, with Redis as the
optional second level.
"""

from __future__ import annotations

import logging
from typing import Any

import redis.asyncio as redis

from src.common.cache import TieredCache
from src.common.logging import redact_url

from ..config import ExplorerServiceConfig

logger = logging.getLogger(__name__)


async def create_redis_client(redis_url: str) -> Any:
    """
    Connect to Redis and verify the connection with a PING.

    Returns:
        redis.asyncio client with decoded string responses
    """
    logger.info(f"Connecting to Redis at {redact_url(redis_url)}")
    client = redis.from_url(redis_url, decode_responses=True)
    await client.ping()
    logger.info("Redis connected")
    return client


async def create_tiered_cache(
    config: ExplorerServiceConfig,
) -> tuple[TieredCache, Any | None]:
    """
    Build the explorer cache.

    An unreachable Redis degrades to memory-only caching rather than
    failing startup.

    Returns:
        (cache, redis client or None)
    """
    client = None
    if config.redis_enabled:
        try:
            client = await create_redis_client(config.redis_url)
        except (redis.RedisError, OSError) as e:
            logger.warning(f"Redis not available, using memory cache only: {e}")
            client = None

    cache = TieredCache(
        redis_client=client,
        tier_ttls=config.tier_ttls,
        key_prefix=f"{config.server_name}:",
        memory_max_size=config.memory_cache_size,
    )
    return cache, client


async def check_redis_health(client: Any) -> dict:
    """
    Check Redis health.

    Returns:
        Health status dict
    """
    try:
        await client.ping()
        return {"connected": True}
    except (redis.RedisError, OSError) as e:
        logger.error(f"Redis health check failed: {e}")
        return {"connected": False, "error": str(e)}
