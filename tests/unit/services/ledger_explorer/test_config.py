"""
Tests for service configuration and CLI overrides.
"""

import pytest
from pydantic import ValidationError

from src.common.cache import VolatilityTier
from src.services.ledger_explorer.__main__ import build_config, parse_args
from src.services.ledger_explorer.config import ExplorerServiceConfig, load_config
from src.services.ledger_explorer.errors import TransientProviderError


class TestExplorerServiceConfig:
    """Tests for ExplorerServiceConfig."""

    def test_defaults(self):
        config = ExplorerServiceConfig(_env_file=None)
        assert config.port == 8086
        assert config.redis_enabled is False
        assert config.retry_max_attempts == 3
        assert config.tier_ttls[VolatilityTier.IMMUTABLE] == 86400
        assert config.tier_ttls[VolatilityTier.MARKET] == 30

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("EXPLORER_PORT", "9000")
        monkeypatch.setenv("EXPLORER_TTL_MARKET_SECONDS", "10")
        monkeypatch.setenv("EXPLORER_REDIS_ENABLED", "true")

        config = load_config()

        assert config.port == 9000
        assert config.redis_enabled is True
        assert config.tier_ttls[VolatilityTier.MARKET] == 10

    def test_pool_sizes_validated(self):
        with pytest.raises(ValidationError):
            ExplorerServiceConfig(postgres_pool_min=5, postgres_pool_max=2)

    def test_retry_config(self):
        config = ExplorerServiceConfig(
            retry_max_attempts=5,
            retry_base_delay=0.1,
            probe_timeout_seconds=30.0,
            domain_deadline_seconds=30.0,
        )
        retry = config.retry_config()
        assert retry.max_attempts == 5
        assert retry.base_delay == 0.1
        assert TransientProviderError in retry.retryable_exceptions

    def test_default_deadlines_fit_every_attempt(self):
        config = ExplorerServiceConfig(_env_file=None)
        attempts = config.retry_max_attempts
        assert config.probe_timeout_seconds >= attempts * config.probe_attempt_timeout_seconds
        assert config.domain_deadline_seconds >= attempts * config.fetch_timeout_seconds

    @pytest.mark.parametrize(
        "overrides",
        [
            {"probe_timeout_seconds": 8.0, "probe_attempt_timeout_seconds": 5.0},
            {"domain_deadline_seconds": 10.0, "fetch_timeout_seconds": 6.0},
            {"retry_max_attempts": 5},
        ],
    )
    def test_deadline_shorter_than_attempt_budget_rejected(self, overrides):
        with pytest.raises(ValidationError):
            ExplorerServiceConfig(**overrides)


class TestCliOverrides:
    """Tests for argparse -> config overrides."""

    def test_no_flags_keeps_defaults(self):
        config = build_config(parse_args([]))
        assert config.host == "0.0.0.0"
        assert config.log_level == "INFO"

    def test_flags_override(self):
        args = parse_args(
            ["--host", "127.0.0.1", "--port", "8100", "--redis-url", "redis://r:6379/1", "--log-level", "debug"]
        )
        config = build_config(args)
        assert config.host == "127.0.0.1"
        assert config.port == 8100
        assert config.redis_url == "redis://r:6379/1"
        assert config.redis_enabled is True
        assert config.log_level == "DEBUG"

    def test_no_redis_wins(self):
        config = build_config(parse_args(["--redis-url", "redis://r:6379/1", "--no-redis"]))
        assert config.redis_enabled is False
