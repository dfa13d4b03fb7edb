"""
Database adapter for the ledger explorer.

Handles PostgreSQL connection pool management and the read-only queries
the Core probe and EVM fetcher run against indexed economic events.
"""

from __future__ import annotations

import logging
from typing import Any

import asyncpg

from src.common.logging import redact_url

from ..core.models import Domain
from ..errors import PermanentProviderError, ProviderError, TransientProviderError

logger = logging.getLogger(__name__)

# Connection-level failures; everything else from asyncpg is a query problem
_TRANSIENT_DB_ERRORS = (
    OSError,
    TimeoutError,
    asyncpg.InterfaceError,
    asyncpg.exceptions.PostgresConnectionError,
    asyncpg.exceptions.TooManyConnectionsError,
)
_DB_ERRORS = _TRANSIENT_DB_ERRORS + (asyncpg.PostgresError,)


async def create_db_pool(
    postgres_url: str,
    min_size: int = 2,
    max_size: int = 10,
) -> asyncpg.Pool:
    """
    Create a PostgreSQL connection pool.

    Args:
        postgres_url: Connection URL
        min_size: Minimum connections
        max_size: Maximum connections

    Returns:
        asyncpg connection pool
    """
    logger.info(
        f"Creating database pool for {redact_url(postgres_url)} (min={min_size}, max={max_size})"
    )
    pool = await asyncpg.create_pool(
        postgres_url,
        min_size=min_size,
        max_size=max_size,
    )
    logger.info("Database pool created")
    return pool


async def check_db_health(pool: asyncpg.Pool) -> dict:
    """
    Check database health.

    Returns:
        Health status dict
    """
    try:
        async with pool.acquire() as conn:
            await conn.fetchval("SELECT 1")
        return {"connected": True, "pool_size": pool.get_size()}
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return {"connected": False, "error": str(e)}


def _provider_error(exc: BaseException, domain: Domain) -> ProviderError:
    if isinstance(exc, _TRANSIENT_DB_ERRORS):
        return TransientProviderError(domain, f"event store unavailable: {exc}")
    return PermanentProviderError(domain, f"event store query failed: {exc}")


_EVENT_COLUMNS = """
    e.id::text AS id, e.tx_hash, e.dedupe_key, e.ts, e.event_type, e.venue,
    e.chain, e.market, e.side, e.size, e.volume_usd, e.realized_pnl_usd,
    e.funding_usd, w.address
"""


class PostgresEventStore:
    """
    EventStore over the wallets / economic_events tables.

    Lending positions come from an optional indexed table keyed by
    address; pass lending_table=None when it is not deployed.
    """

    def __init__(self, pool: asyncpg.Pool, lending_table: str | None = "evm_lending_positions"):
        self._pool = pool
        self._lending_table = lending_table

    async def _fetchrow(self, query: str, *args: Any) -> dict[str, Any] | None:
        try:
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(query, *args)
        except _DB_ERRORS as e:
            raise _provider_error(e, Domain.CORE) from e
        return dict(row) if row is not None else None

    async def wallet_exists(self, address: str) -> bool:
        row = await self._fetchrow(
            "SELECT 1 AS present FROM wallets WHERE lower(address) = $1",
            address.lower(),
        )
        return row is not None

    async def find_event_by_id(self, event_id: str) -> dict[str, Any] | None:
        return await self._fetchrow(
            f"SELECT {_EVENT_COLUMNS} FROM economic_events e "
            "JOIN wallets w ON w.id = e.wallet_id WHERE e.id::text = $1",
            event_id,
        )

    async def find_event_by_dedupe_key(self, key: str) -> dict[str, Any] | None:
        return await self._fetchrow(
            f"SELECT {_EVENT_COLUMNS} FROM economic_events e "
            "JOIN wallets w ON w.id = e.wallet_id "
            "WHERE e.dedupe_key = $1 OR lower(e.tx_hash) = $1 "
            "ORDER BY e.ts DESC LIMIT 1",
            key,
        )

    async def lending_positions(self, address: str) -> list[dict[str, Any]]:
        """Indexed EVM lending positions; empty when no table is configured."""
        if not self._lending_table:
            return []
        try:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(
                    f"SELECT protocol, asset, position_type, amount, value_usd "
                    f"FROM {self._lending_table} WHERE lower(address) = $1",
                    address.lower(),
                )
        except _DB_ERRORS as e:
            raise _provider_error(e, Domain.EVM) from e
        return [dict(r) for r in rows]
