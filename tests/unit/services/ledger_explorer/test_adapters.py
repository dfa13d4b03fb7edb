"""
Tests for the upstream clients, the event store and cache wiring.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import asyncpg
import httpx
import pytest

from src.services.ledger_explorer.adapters.cache import create_tiered_cache
from src.services.ledger_explorer.adapters.core_api import CoreInfoClient
from src.services.ledger_explorer.adapters.database import PostgresEventStore
from src.services.ledger_explorer.adapters.evm_rpc import (
    BALANCE_OF_SELECTOR,
    EvmRpcClient,
    hex_to_int,
)
from src.services.ledger_explorer.config import ExplorerServiceConfig
from src.services.ledger_explorer.core.models import Domain
from src.services.ledger_explorer.errors import (
    PermanentProviderError,
    TransientProviderError,
)
from tests.unit.services.ledger_explorer.fakes import CONTRACT, TX_HASH, WALLET

INFO_URL = "https://core.test/info"
EXPLORER_URL = "https://core.test/explorer"
RPC_URL = "https://evm.test/rpc"


def _core_client(handler):
    return CoreInfoClient(INFO_URL, EXPLORER_URL, transport=httpx.MockTransport(handler))


def _rpc_client(handler):
    return EvmRpcClient(RPC_URL, transport=httpx.MockTransport(handler))


class TestCoreInfoClient:
    """Tests for CoreInfoClient over httpx.MockTransport."""

    @pytest.mark.asyncio
    async def test_info_posts_type_and_params(self):
        seen = []

        def handler(request):
            seen.append((str(request.url), json.loads(request.content)))
            return httpx.Response(200, json={"marginSummary": {}})

        client = _core_client(handler)
        result = await client.info("clearinghouseState", user=WALLET)
        await client.close()

        assert result == {"marginSummary": {}}
        assert seen == [(INFO_URL, {"type": "clearinghouseState", "user": WALLET})]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,error", [(503, TransientProviderError), (429, TransientProviderError), (400, PermanentProviderError)])
    async def test_info_status_classification(self, status, error):
        client = _core_client(lambda request: httpx.Response(status))

        with pytest.raises(error) as exc_info:
            await client.info("meta")

        assert exc_info.value.domain is Domain.CORE

    @pytest.mark.asyncio
    async def test_info_transport_error_is_transient(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(TransientProviderError):
            await _core_client(handler).info("meta")

    @pytest.mark.asyncio
    async def test_info_bad_json_is_permanent(self):
        client = _core_client(lambda request: httpx.Response(200, content=b"<html>"))
        with pytest.raises(PermanentProviderError):
            await client.info("meta")

    @pytest.mark.asyncio
    async def test_explorer_unwraps_keyed_payload(self):
        client = _core_client(
            lambda request: httpx.Response(200, json={"type": "txDetails", "tx": {"hash": TX_HASH}})
        )
        assert await client.explorer("txDetails", hash=TX_HASH) == {"tx": {"hash": TX_HASH}}

    @pytest.mark.asyncio
    async def test_explorer_named_payload(self):
        client = _core_client(
            lambda request: httpx.Response(200, json={"blockDetails": {"height": 5, "numTxs": 1}})
        )
        assert await client.explorer("blockDetails", height=5) == {"height": 5, "numTxs": 1}

    @pytest.mark.asyncio
    async def test_explorer_404_is_absent(self):
        client = _core_client(lambda request: httpx.Response(404))
        assert await client.explorer("txDetails", hash=TX_HASH) is None

    @pytest.mark.asyncio
    async def test_explorer_empty_body_is_absent(self):
        client = _core_client(lambda request: httpx.Response(200, json={"type": "userDetails", "txs": []}))
        assert await client.explorer("userDetails", user=WALLET) is None


class TestEvmRpcClient:
    """Tests for EvmRpcClient over httpx.MockTransport."""

    @pytest.mark.asyncio
    async def test_call_builds_jsonrpc_envelope(self):
        bodies = []

        def handler(request):
            body = json.loads(request.content)
            bodies.append(body)
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": "0x10"})

        client = _rpc_client(handler)
        assert await client.block_number() == 16
        assert await client.call("eth_getBalance", [WALLET, "latest"]) == "0x10"
        await client.close()

        assert bodies[0] == {"jsonrpc": "2.0", "id": 1, "method": "eth_blockNumber", "params": []}
        assert bodies[1]["id"] == 2

    @pytest.mark.asyncio
    async def test_jsonrpc_error_is_permanent(self):
        client = _rpc_client(
            lambda request: httpx.Response(
                200, json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32602, "message": "invalid params"}}
            )
        )
        with pytest.raises(PermanentProviderError, match="invalid params"):
            await client.call("eth_getLogs", [{}])

    @pytest.mark.asyncio
    async def test_server_error_is_transient(self):
        client = _rpc_client(lambda request: httpx.Response(502))
        with pytest.raises(TransientProviderError) as exc_info:
            await client.call("eth_blockNumber")
        assert exc_info.value.domain is Domain.EVM

    @pytest.mark.asyncio
    async def test_erc20_call_pads_argument(self):
        payloads = []

        def handler(request):
            payloads.append(json.loads(request.content)["params"])
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": hex(1234)})

        result = await _rpc_client(handler).erc20_call(CONTRACT, BALANCE_OF_SELECTOR, WALLET)

        assert result == 1234
        call, block = payloads[0]
        assert block == "latest"
        assert call["to"] == CONTRACT
        assert call["data"] == BALANCE_OF_SELECTOR + WALLET[2:].rjust(64, "0")

    @pytest.mark.parametrize("value,expected", [(None, 0), ("0x", 0), ("0x0", 0), ("0xff", 255)])
    def test_hex_to_int(self, value, expected):
        assert hex_to_int(value) == expected


def _pool(conn):
    acquire = MagicMock()
    acquire.__aenter__ = AsyncMock(return_value=conn)
    acquire.__aexit__ = AsyncMock(return_value=False)
    pool = MagicMock()
    pool.acquire.return_value = acquire
    return pool


class TestPostgresEventStore:
    """Tests for PostgresEventStore with a mocked asyncpg pool."""

    @pytest.mark.asyncio
    async def test_wallet_exists(self):
        conn = AsyncMock()
        conn.fetchrow.return_value = {"present": 1}

        assert await PostgresEventStore(_pool(conn)).wallet_exists(WALLET.upper().replace("0X", "0x"))
        assert conn.fetchrow.await_args.args[1] == WALLET

    @pytest.mark.asyncio
    async def test_find_by_dedupe_key_matches_tx_hash(self):
        conn = AsyncMock()
        conn.fetchrow.return_value = {"id": "7", "tx_hash": TX_HASH, "address": WALLET}

        row = await PostgresEventStore(_pool(conn)).find_event_by_dedupe_key(TX_HASH)

        assert row["address"] == WALLET
        query = conn.fetchrow.await_args.args[0]
        assert "dedupe_key = $1" in query
        assert "lower(e.tx_hash) = $1" in query

    @pytest.mark.asyncio
    async def test_connection_failure_is_transient(self):
        conn = AsyncMock()
        conn.fetchrow.side_effect = OSError("connection reset")

        with pytest.raises(TransientProviderError):
            await PostgresEventStore(_pool(conn)).find_event_by_id("1")

    @pytest.mark.asyncio
    async def test_query_failure_is_permanent(self):
        conn = AsyncMock()
        conn.fetch.side_effect = asyncpg.exceptions.UndefinedTableError("no table")

        with pytest.raises(PermanentProviderError) as exc_info:
            await PostgresEventStore(_pool(conn)).lending_positions(WALLET)

        assert exc_info.value.domain is Domain.EVM

    @pytest.mark.asyncio
    async def test_lending_disabled(self):
        conn = AsyncMock()
        assert await PostgresEventStore(_pool(conn), lending_table=None).lending_positions(WALLET) == []
        conn.fetch.assert_not_awaited()


class TestCreateTieredCache:
    """Tests for cache wiring from configuration."""

    @pytest.mark.asyncio
    async def test_memory_only_when_disabled(self):
        cache, client = await create_tiered_cache(ExplorerServiceConfig(redis_enabled=False))
        assert client is None
        assert cache.redis_enabled is False

    @pytest.mark.asyncio
    async def test_unreachable_redis_degrades(self, monkeypatch):
        async def refuse(url):
            raise OSError("refused")

        monkeypatch.setattr("src.services.ledger_explorer.adapters.cache.create_redis_client", refuse)

        cache, client = await create_tiered_cache(ExplorerServiceConfig(redis_enabled=True))

        assert client is None
        assert cache.redis_enabled is False
