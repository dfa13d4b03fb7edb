"""
Shared fixtures for ledger explorer tests.
"""

from unittest.mock import MagicMock

import pytest

from src.common.cache import TieredCache
from src.common.resilience import RetryConfig
from src.common.telemetry import ExplorerMetrics
from src.services.ledger_explorer.core.models import (
    CandidateEntity,
    Domain,
    EntityKind,
    TxMetadata,
    WalletMetadata,
)
from src.services.ledger_explorer.errors import RETRYABLE_ERRORS
from tests.unit.services.ledger_explorer.fakes import TX_HASH, WALLET


@pytest.fixture
def fast_retry():
    """Retry policy with no backoff delay."""
    return RetryConfig(
        max_attempts=3,
        base_delay=0.0,
        max_delay=0.0,
        jitter=False,
        retryable_exceptions=RETRYABLE_ERRORS,
    )


@pytest.fixture
def cache():
    """Memory-only tiered cache."""
    return TieredCache(memory_max_size=100)


@pytest.fixture
def metrics():
    """Metrics double so tests can assert on recorded outcomes."""
    return MagicMock(spec=ExplorerMetrics)


@pytest.fixture
def wallet_candidate():
    """Factory for wallet candidates on a given domain."""

    def make(domain: Domain, confidence: float = 1.0) -> CandidateEntity:
        return CandidateEntity(
            entity_type=EntityKind.WALLET,
            domain=domain,
            canonical_id=WALLET,
            confidence=confidence,
            metadata=WalletMetadata(),
        )

    return make


@pytest.fixture
def tx_candidate():
    def make(domain: Domain, confidence: float = 1.0) -> CandidateEntity:
        return CandidateEntity(
            entity_type=EntityKind.TX,
            domain=domain,
            canonical_id=TX_HASH,
            confidence=confidence,
            metadata=TxMetadata(status="success"),
        )

    return make
