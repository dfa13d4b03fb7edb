"""
Tests for the FastAPI transport.

Requests go through httpx.ASGITransport, which does not run the lifespan,
so the app serves the injected resolver and aggregator only.
"""

import httpx
import pytest

from src.services.ledger_explorer.config import ExplorerServiceConfig
from src.services.ledger_explorer.core.aggregator import CrossDomainAggregator
from src.services.ledger_explorer.core.models import Domain, WalletSnapshot
from src.services.ledger_explorer.core.resolver import EntityResolver
from src.services.ledger_explorer.errors import PermanentProviderError
from src.services.ledger_explorer.transports.http import create_app
from tests.unit.services.ledger_explorer.fakes import WALLET, FakeFetcher, FakeProbe


@pytest.fixture
def config():
    return ExplorerServiceConfig(postgres_enabled=False, redis_enabled=False)


@pytest.fixture
def fetchers():
    return [
        FakeFetcher(
            Domain.CORE,
            wallet=WalletSnapshot(domain=Domain.CORE, watermark=1_700_000_000_000, account_value_usd=100.0),
        ),
        FakeFetcher(
            Domain.EVM,
            wallet=WalletSnapshot(domain=Domain.EVM, watermark=500, account_value_usd=50.0),
        ),
    ]


def _client(config, probes, fetchers, fast_retry):
    app = create_app(
        config,
        resolver=EntityResolver(probes, retry_config=fast_retry),
        aggregator=CrossDomainAggregator(fetchers, retry_config=fast_retry),
    )
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


class TestServiceEndpoints:
    """Tests for health, readiness and info endpoints."""

    @pytest.mark.asyncio
    async def test_health(self, config, fetchers, fast_retry):
        async with _client(config, [FakeProbe(Domain.CORE)], fetchers, fast_retry) as client:
            response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {
            "status": "healthy",
            "service": "ledger-explorer",
            "version": config.server_version,
        }

    @pytest.mark.asyncio
    async def test_ready_without_store_or_redis(self, config, fetchers, fast_retry):
        async with _client(config, [FakeProbe(Domain.CORE)], fetchers, fast_retry) as client:
            response = await client.get("/ready")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ready"
        assert body["checks"] == {"database": {"enabled": False}, "redis": {"enabled": False}}

    @pytest.mark.asyncio
    async def test_root_lists_endpoints(self, config, fetchers, fast_retry):
        async with _client(config, [FakeProbe(Domain.CORE)], fetchers, fast_retry) as client:
            response = await client.get("/")

        assert "resolve" in response.json()["endpoints"]

    @pytest.mark.asyncio
    async def test_stats_without_cache(self, config, fetchers, fast_retry):
        async with _client(config, [FakeProbe(Domain.CORE)], fetchers, fast_retry) as client:
            response = await client.get("/api/stats")

        assert response.json() == {"cache": {"enabled": False}}


class TestResolveEndpoint:
    """Tests for POST /api/resolve."""

    @pytest.mark.asyncio
    async def test_resolves_wallet(self, config, fetchers, fast_retry, wallet_candidate):
        probes = [
            FakeProbe(Domain.CORE, result=wallet_candidate(Domain.CORE, 0.9)),
            FakeProbe(Domain.EVM, result=wallet_candidate(Domain.EVM, 0.9)),
        ]
        async with _client(config, probes, fetchers, fast_retry) as client:
            response = await client.post("/api/resolve", json={"query": f"  {WALLET}  "})

        assert response.status_code == 200
        body = response.json()
        assert body["primary"]["domain"] == "core"
        assert body["primary"]["canonical_id"] == WALLET
        assert body["alternates"][0]["context"] == "Also found on EVM as a wallet"
        assert body["unavailable_domains"] == []

    @pytest.mark.asyncio
    async def test_blank_query_is_bad_request(self, config, fetchers, fast_retry):
        probe = FakeProbe(Domain.CORE)
        async with _client(config, [probe], fetchers, fast_retry) as client:
            response = await client.post("/api/resolve", json={"query": "   "})

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_input"
        assert probe.calls == []

    @pytest.mark.asyncio
    async def test_empty_query_fails_validation(self, config, fetchers, fast_retry):
        async with _client(config, [FakeProbe(Domain.CORE)], fetchers, fast_retry) as client:
            response = await client.post("/api/resolve", json={"query": ""})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_all_probes_failing_is_unavailable(self, config, fetchers, fast_retry):
        probes = [
            FakeProbe(Domain.CORE, error=PermanentProviderError(Domain.CORE, "HTTP 400")),
            FakeProbe(Domain.EVM, error=PermanentProviderError(Domain.EVM, "HTTP 400")),
        ]
        async with _client(config, probes, fetchers, fast_retry) as client:
            response = await client.post("/api/resolve", json={"query": WALLET})

        assert response.status_code == 503
        body = response.json()
        assert body["error"] == "total_failure"
        assert set(body["failures"]) == {"core", "evm"}


class TestAggregateEndpoint:
    """Tests for POST /api/aggregate/{view}."""

    @pytest.mark.asyncio
    async def test_wallet_view_across_domains(self, config, fetchers, fast_retry):
        async with _client(config, [FakeProbe(Domain.CORE)], fetchers, fast_retry) as client:
            response = await client.post("/api/aggregate/wallet", json={"canonical_id": WALLET})

        assert response.status_code == 200
        body = response.json()
        assert body["data"]["total_value_usd"] == 150.0
        assert body["metadata"]["consistency_level"] == "synchronized"
        assert body["metadata"]["confidence_score"] == 100

    @pytest.mark.asyncio
    async def test_domain_subset(self, config, fetchers, fast_retry):
        async with _client(config, [FakeProbe(Domain.CORE)], fetchers, fast_retry) as client:
            response = await client.post(
                "/api/aggregate/wallet",
                json={"canonical_id": WALLET, "domains": ["evm"]},
            )

        assert response.status_code == 200
        assert response.json()["metadata"]["domains_requested"] == ["evm"]
        assert fetchers[0].calls == []

    @pytest.mark.asyncio
    async def test_unknown_domain_is_bad_request(self, config, fetchers, fast_retry):
        async with _client(config, [FakeProbe(Domain.CORE)], fetchers, fast_retry) as client:
            response = await client.post(
                "/api/aggregate/wallet",
                json={"canonical_id": WALLET, "domains": ["solana"]},
            )

        assert response.status_code == 400
        assert "solana" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_unknown_view_fails_validation(self, config, fetchers, fast_retry):
        async with _client(config, [FakeProbe(Domain.CORE)], fetchers, fast_retry) as client:
            response = await client.post("/api/aggregate/orders", json={"canonical_id": WALLET})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_every_domain_failing_is_unavailable(self, config, fast_retry):
        fetchers = [
            FakeFetcher(Domain.CORE, error=PermanentProviderError(Domain.CORE, "bad payload")),
            FakeFetcher(Domain.EVM, error=PermanentProviderError(Domain.EVM, "bad payload")),
        ]
        async with _client(config, [FakeProbe(Domain.CORE)], fetchers, fast_retry) as client:
            response = await client.post("/api/aggregate/positions", json={"canonical_id": WALLET})

        assert response.status_code == 503
        assert response.json()["error"] == "total_failure"
