"""
Tests for the one-shot CLI commands.
"""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from src.services.ledger_explorer import __main__ as cli
from src.services.ledger_explorer.config import ExplorerServiceConfig
from src.services.ledger_explorer.core.models import Domain, ResolutionResult, SyntacticClass, ViewKind
from src.services.ledger_explorer.errors import AggregationFailedError, InvalidInputError
from tests.unit.services.ledger_explorer.fakes import WALLET


@pytest.fixture
def services(monkeypatch):
    """Stand-in for the wired explorer, installed in place of build_services."""
    fake = SimpleNamespace(
        resolver=SimpleNamespace(resolve=AsyncMock()),
        aggregator=SimpleNamespace(aggregate=AsyncMock()),
        aclose=AsyncMock(),
    )

    async def build(config):
        return fake

    monkeypatch.setattr("src.services.ledger_explorer.wiring.build_services", build)
    return fake


@pytest.fixture
def config():
    return ExplorerServiceConfig(postgres_enabled=False, redis_enabled=False)


class TestParseArgs:
    """Tests for command parsing."""

    def test_serve_is_default(self):
        assert cli.parse_args([]).command == "serve"

    def test_resolve(self):
        args = cli.parse_args(["--no-redis", "resolve", WALLET])
        assert args.command == "resolve"
        assert args.query == WALLET
        assert args.no_redis is True

    def test_aggregate_with_domains(self):
        args = cli.parse_args(["aggregate", "positions", WALLET, "--domains", "core"])
        assert args.view == "positions"
        assert args.canonical_id == WALLET
        assert args.domains == ["core"]

    def test_aggregate_rejects_unknown_view(self):
        with pytest.raises(SystemExit):
            cli.parse_args(["aggregate", "orders", WALLET])


class TestRunCommand:
    """Tests for run_command."""

    @pytest.mark.asyncio
    async def test_resolve_prints_json(self, services, config, capsys):
        services.resolver.resolve.return_value = ResolutionResult(
            query=WALLET, syntactic_class=SyntacticClass.EVM_ADDRESS
        )

        code = await cli.run_command(config, cli.parse_args(["resolve", WALLET]))

        assert code == cli.EXIT_OK
        body = json.loads(capsys.readouterr().out)
        assert body["query"] == WALLET
        assert body["primary"] is None
        services.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_aggregate_passes_domains(self, services, config):
        services.aggregator.aggregate.return_value = ResolutionResult(
            query=WALLET, syntactic_class=SyntacticClass.EVM_ADDRESS
        )

        await cli.run_command(config, cli.parse_args(["aggregate", "wallet", WALLET, "--domains", "both"]))

        services.aggregator.aggregate.assert_awaited_once_with(
            WALLET, [Domain.CORE, Domain.EVM], ViewKind.WALLET
        )

    @pytest.mark.asyncio
    async def test_invalid_input_exit_code(self, services, config, capsys):
        services.aggregator.aggregate.side_effect = InvalidInputError("not an address", value="x")

        code = await cli.run_command(config, cli.parse_args(["aggregate", "wallet", "x"]))

        assert code == cli.EXIT_INVALID_INPUT
        assert capsys.readouterr().out == ""
        services.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_total_failure_exit_code(self, services, config):
        services.aggregator.aggregate.side_effect = AggregationFailedError(
            "no domain produced data", {Domain.CORE: TimeoutError()}
        )

        code = await cli.run_command(config, cli.parse_args(["aggregate", "token", "HYPE"]))

        assert code == cli.EXIT_FAILURE
        services.aclose.assert_awaited_once()
