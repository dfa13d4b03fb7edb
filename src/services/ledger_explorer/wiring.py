"""
Collaborator wiring for the ledger explorer.

Builds the upstream clients, the optional event store and Redis level,
and the resolver and aggregator on top of them. Shared by the HTTP app
and the one-shot CLI commands.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import asyncpg

from src.common.cache import TieredCache
from src.common.telemetry import get_explorer_metrics

from .adapters.cache import create_tiered_cache
from .adapters.core_api import CoreInfoClient
from .adapters.database import PostgresEventStore, create_db_pool
from .adapters.evm_rpc import EvmRpcClient
from .config import ExplorerServiceConfig
from .core.aggregator import CrossDomainAggregator
from .core.resolver import EntityResolver
from .fetchers import CoreFetcher, EvmFetcher
from .probes import CoreProbe, EvmProbe

logger = logging.getLogger(__name__)


@dataclass
class ExplorerServices:
    """Everything a request needs, plus the handles that must be closed."""

    resolver: EntityResolver
    aggregator: CrossDomainAggregator
    cache: TieredCache
    core_api: CoreInfoClient
    evm_rpc: EvmRpcClient
    db_pool: asyncpg.Pool | None = None
    redis_client: Any | None = None

    async def aclose(self) -> None:
        await self.core_api.close()
        await self.evm_rpc.close()
        if self.db_pool is not None:
            await self.db_pool.close()
        if self.redis_client is not None:
            await self.redis_client.aclose()


async def _open_event_store(
    config: ExplorerServiceConfig,
) -> tuple[PostgresEventStore | None, asyncpg.Pool | None]:
    if not config.postgres_enabled:
        return None, None
    try:
        pool = await create_db_pool(
            config.postgres_url,
            min_size=config.postgres_pool_min,
            max_size=config.postgres_pool_max,
        )
    except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
        logger.warning(f"Event store not available, continuing without it: {e}")
        return None, None
    return PostgresEventStore(pool, lending_table=config.lending_table), pool


async def build_services(
    config: ExplorerServiceConfig,
    resolver: EntityResolver | None = None,
    aggregator: CrossDomainAggregator | None = None,
) -> ExplorerServices:
    """
    Connect to every configured upstream and build the explorer.

    A pre-built resolver or aggregator is used as given. Postgres and Redis
    are optional: when either is unreachable the service runs without it.
    """
    core_api = CoreInfoClient(
        config.core_info_url,
        config.core_explorer_url,
        timeout_seconds=config.http_timeout_seconds,
    )
    evm_rpc = EvmRpcClient(config.evm_rpc_url, timeout_seconds=config.http_timeout_seconds)
    store, pool = await _open_event_store(config)
    cache, redis_client = await create_tiered_cache(config)

    metrics = get_explorer_metrics()
    retry_config = config.retry_config()

    if resolver is None:
        resolver = EntityResolver(
            probes=[
                CoreProbe(core_api, store=store, cache=cache),
                EvmProbe(evm_rpc),
            ],
            cache=cache,
            retry_config=retry_config,
            probe_timeout_seconds=config.probe_timeout_seconds,
            probe_attempt_timeout_seconds=config.probe_attempt_timeout_seconds,
            metrics=metrics,
        )
    if aggregator is None:
        aggregator = CrossDomainAggregator(
            fetchers=[
                CoreFetcher(core_api, cache=cache, lookback_days=config.fills_lookback_days),
                EvmFetcher(evm_rpc, store=store, core_api=core_api, cache=cache),
            ],
            cache=cache,
            retry_config=retry_config,
            fetch_timeout_seconds=config.fetch_timeout_seconds,
            domain_deadline_seconds=config.domain_deadline_seconds,
            metrics=metrics,
        )

    logger.info(
        f"Explorer wired (event store: {'on' if store else 'off'}, "
        f"redis: {'on' if redis_client is not None else 'off'})"
    )
    return ExplorerServices(
        resolver=resolver,
        aggregator=aggregator,
        cache=cache,
        core_api=core_api,
        evm_rpc=evm_rpc,
        db_pool=pool,
        redis_client=redis_client,
    )
