"""
Tests for collaborator wiring.
"""

from unittest.mock import AsyncMock

import pytest

from src.services.ledger_explorer import wiring
from src.services.ledger_explorer.config import ExplorerServiceConfig
from src.services.ledger_explorer.core.aggregator import CrossDomainAggregator
from src.services.ledger_explorer.core.models import Domain
from src.services.ledger_explorer.core.resolver import EntityResolver
from tests.unit.services.ledger_explorer.fakes import FakeProbe


class TestBuildServices:
    """Tests for build_services."""

    @pytest.mark.asyncio
    async def test_builds_without_store_or_redis(self):
        config = ExplorerServiceConfig(postgres_enabled=False, redis_enabled=False)

        services = await wiring.build_services(config)
        try:
            assert isinstance(services.resolver, EntityResolver)
            assert isinstance(services.aggregator, CrossDomainAggregator)
            assert services.aggregator.domains == (Domain.CORE, Domain.EVM)
            assert services.db_pool is None
            assert services.redis_client is None
            assert services.cache.redis_enabled is False
        finally:
            await services.aclose()

    @pytest.mark.asyncio
    async def test_resolver_gets_probe_deadlines(self):
        config = ExplorerServiceConfig(
            postgres_enabled=False,
            redis_enabled=False,
            probe_timeout_seconds=12.0,
            probe_attempt_timeout_seconds=4.0,
        )

        services = await wiring.build_services(config)
        await services.aclose()

        assert services.resolver._probe_timeout == 12.0
        assert services.resolver._attempt_timeout == 4.0

    @pytest.mark.asyncio
    async def test_keeps_injected_resolver(self):
        config = ExplorerServiceConfig(postgres_enabled=False, redis_enabled=False)
        resolver = EntityResolver([FakeProbe(Domain.CORE)])

        services = await wiring.build_services(config, resolver=resolver)
        await services.aclose()

        assert services.resolver is resolver

    @pytest.mark.asyncio
    async def test_unreachable_store_degrades(self, monkeypatch):
        monkeypatch.setattr(wiring, "create_db_pool", AsyncMock(side_effect=OSError("refused")))
        config = ExplorerServiceConfig(postgres_enabled=True, redis_enabled=False)

        services = await wiring.build_services(config)
        await services.aclose()

        assert services.db_pool is None

    @pytest.mark.asyncio
    async def test_aclose_closes_pool_and_redis(self, monkeypatch):
        pool = AsyncMock()
        monkeypatch.setattr(wiring, "create_db_pool", AsyncMock(return_value=pool))
        config = ExplorerServiceConfig(postgres_enabled=True, redis_enabled=False)

        services = await wiring.build_services(config)
        services.redis_client = AsyncMock()
        await services.aclose()

        pool.close.assert_awaited_once()
        services.redis_client.aclose.assert_awaited_once()
