"""
Cross-Domain Aggregator

Fans one fetch out per requested domain, merges whatever came back and
annotates the merged view with watermarks, a consistency level and a
confidence score.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from src.common.cache import TieredCache, VolatilityTier
from src.common.resilience import RetryConfig, with_retry
from src.common.telemetry import ExplorerMetrics, get_explorer_metrics, get_tracer

from ..errors import (
    RETRYABLE_ERRORS,
    AggregationFailedError,
    InvalidInputError,
    ProviderError,
)
from .classifier import canonicalize, classify, is_symbol
from .merge import merge_positions, merge_token, merge_wallet
from .models import (
    DOMAIN_PRIORITY,
    SNAPSHOT_TYPES,
    ConsistencyLevel,
    DataCompleteness,
    Domain,
    PositionsView,
    SourceWatermark,
    SyntacticClass,
    TokenView,
    UnifiedView,
    ViewKind,
    ViewMetadata,
    WalletView,
)
from .protocols import DomainFetcher

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

# Completeness categories each domain reports, per view
COVERAGE: dict[ViewKind, dict[Domain, frozenset[str]]] = {
    ViewKind.WALLET: {
        Domain.CORE: frozenset({"trades", "funding", "positions"}),
        Domain.EVM: frozenset({"trades", "positions"}),
    },
    ViewKind.POSITIONS: {
        Domain.CORE: frozenset({"positions", "funding"}),
        Domain.EVM: frozenset({"positions"}),
    },
    ViewKind.TOKEN: {
        Domain.CORE: frozenset({"trades", "funding", "positions"}),
        Domain.EVM: frozenset({"trades", "positions"}),
    },
}

FRESH_WEIGHT = 1.0
STALE_WEIGHT = 0.2
MISSING_WATERMARK_PENALTY = 10

_VIEW_TYPES: dict[ViewKind, type[BaseModel]] = {
    ViewKind.WALLET: WalletView,
    ViewKind.POSITIONS: PositionsView,
    ViewKind.TOKEN: TokenView,
}

_VIEW_TIERS = {
    ViewKind.WALLET: VolatilityTier.USER_ANALYTICS,
    ViewKind.POSITIONS: VolatilityTier.USER_ANALYTICS,
    ViewKind.TOKEN: VolatilityTier.MARKET,
}

_MERGERS: dict[ViewKind, Callable[[str, Sequence[Any]], BaseModel]] = {
    ViewKind.WALLET: merge_wallet,
    ViewKind.POSITIONS: merge_positions,
    ViewKind.TOKEN: merge_token,
}


@dataclass(frozen=True)
class BranchOutcome:
    """Result of one domain branch: fresh, stale (cached fallback) or failed."""

    domain: Domain
    snapshot: Any = None
    stale: bool = False
    error: BaseException | None = None

    @property
    def fresh(self) -> bool:
        return self.snapshot is not None and not self.stale

    @property
    def failed(self) -> bool:
        return self.snapshot is None


def confidence_score(outcomes: Sequence[BranchOutcome], watermark: SourceWatermark) -> int:
    """
    100 x (fresh + 0.2 x stale) / requested, less 10 when every domain was
    fresh but a watermark is missing.
    """
    units = sum(
        FRESH_WEIGHT if o.fresh else STALE_WEIGHT if o.stale else 0.0 for o in outcomes
    )
    score = round(100 * units / len(outcomes))
    if len(outcomes) > 1 and all(o.fresh for o in outcomes):
        if any(watermark.for_domain(o.domain) is None for o in outcomes):
            score -= MISSING_WATERMARK_PENALTY
    return max(0, min(100, score))


def consistency_level(
    outcomes: Sequence[BranchOutcome], watermark: SourceWatermark
) -> ConsistencyLevel:
    if any(o.stale for o in outcomes):
        return ConsistencyLevel.STALE
    requested = {o.domain for o in outcomes}
    if (
        requested == set(DOMAIN_PRIORITY)
        and all(o.fresh for o in outcomes)
        and watermark.core_seq is not None
        and watermark.evm_block is not None
    ):
        return ConsistencyLevel.SYNCHRONIZED
    return ConsistencyLevel.EVENTUAL


def data_completeness(kind: ViewKind, outcomes: Sequence[BranchOutcome]) -> DataCompleteness:
    degraded: set[str] = set()
    for outcome in outcomes:
        if not outcome.fresh:
            degraded |= COVERAGE[kind][outcome.domain]
    return DataCompleteness(
        trades="trades" not in degraded,
        funding="funding" not in degraded,
        positions="positions" not in degraded,
    )


class CrossDomainAggregator:
    """
    Aggregator over per-domain fetchers.

    Features:
    - One concurrent branch per requested domain
    - Per-attempt timeout inside retry, plus a per-domain deadline
    - Last good snapshot per domain kept in the cache as a stale fallback
    - Complete views cached under their volatility tier
    """

    def __init__(
        self,
        fetchers: Sequence[DomainFetcher],
        cache: TieredCache | None = None,
        retry_config: RetryConfig | None = None,
        fetch_timeout_seconds: float = 6.0,
        domain_deadline_seconds: float = 20.0,
        metrics: ExplorerMetrics | None = None,
    ):
        self._fetchers: dict[Domain, DomainFetcher] = {f.domain: f for f in fetchers}
        if not self._fetchers:
            raise ValueError("CrossDomainAggregator needs at least one fetcher")
        self._cache = cache
        self._retry_config = retry_config or RetryConfig(
            max_attempts=3,
            base_delay=0.5,
            max_delay=5.0,
            retryable_exceptions=RETRYABLE_ERRORS,
        )
        self._fetch_timeout = fetch_timeout_seconds
        self._domain_deadline = domain_deadline_seconds
        self._metrics = metrics or get_explorer_metrics()

    @property
    def domains(self) -> tuple[Domain, ...]:
        return tuple(d for d in DOMAIN_PRIORITY if d in self._fetchers)

    async def aggregate_wallet(
        self, address: str, domains: Iterable[Domain] | None = None
    ) -> UnifiedView[WalletView]:
        return await self.aggregate(address, domains, ViewKind.WALLET)

    async def aggregate_positions(
        self, address: str, domains: Iterable[Domain] | None = None
    ) -> UnifiedView[PositionsView]:
        return await self.aggregate(address, domains, ViewKind.POSITIONS)

    async def aggregate_token(
        self, identifier: str, domains: Iterable[Domain] | None = None
    ) -> UnifiedView[TokenView]:
        return await self.aggregate(identifier, domains, ViewKind.TOKEN)

    async def aggregate(
        self,
        canonical_id: str,
        domains: Iterable[Domain] | None,
        kind: ViewKind,
    ) -> UnifiedView:
        """
        Build a merged view of one entity.

        Args:
            canonical_id: Wallet address, or token contract address / symbol
            domains: Domains to query (None means every configured domain)
            kind: View to build

        Raises:
            InvalidInputError: Malformed identifier or domain set
            AggregationFailedError: No requested domain produced data
        """
        identifier = self._validate_identifier(canonical_id, kind)
        requested = self._validate_domains(domains)

        with tracer.start_as_current_span("explorer.aggregate") as span:
            span.set_attribute("explorer.view", kind.value)
            span.set_attribute("explorer.domains", ",".join(d.value for d in requested))

            view_type = UnifiedView[_VIEW_TYPES[kind]]
            view_key = f"view:{kind.value}:{'+'.join(d.value for d in requested)}:{identifier}"
            if self._cache is not None:
                cached = await self._cache.get(
                    view_key, _VIEW_TIERS[kind], decode=view_type.model_validate
                )
                if cached is not None:
                    span.set_attribute("explorer.cache_hit", True)
                    return cached

            started = time.perf_counter()
            outcomes = await asyncio.gather(
                *(self._run_branch(domain, kind, identifier) for domain in requested)
            )

            if all(o.failed for o in outcomes):
                span.set_attribute("explorer.consistency", "failed")
                raise AggregationFailedError(
                    f"no domain returned {kind.value} data for {identifier}",
                    {o.domain: o.error for o in outcomes},
                )

            watermark = SourceWatermark(
                core_seq=_fresh_watermark(outcomes, Domain.CORE),
                evm_block=_fresh_watermark(outcomes, Domain.EVM),
            )
            metadata = ViewMetadata(
                source_watermark=watermark,
                consistency_level=consistency_level(outcomes, watermark),
                confidence_score=confidence_score(outcomes, watermark),
                data_completeness=data_completeness(kind, outcomes),
                domains_requested=tuple(requested),
                domains_failed=tuple(o.domain for o in outcomes if o.failed),
                domains_stale=tuple(o.domain for o in outcomes if o.stale),
            )
            data = _MERGERS[kind](identifier, [o.snapshot for o in outcomes if not o.failed])
            view = view_type(data=data, metadata=metadata)

            duration_ms = (time.perf_counter() - started) * 1000
            self._metrics.record_aggregation(
                kind.value, metadata.consistency_level.value, duration_ms
            )
            span.set_attribute("explorer.consistency", metadata.consistency_level.value)
            span.set_attribute("explorer.confidence", metadata.confidence_score)

            if self._cache is not None and all(o.fresh for o in outcomes):
                await self._cache.set(
                    view_key,
                    view,
                    _VIEW_TIERS[kind],
                    encode=lambda v: v.model_dump(mode="json"),
                )
            return view

    def _validate_identifier(self, canonical_id: str, kind: ViewKind) -> str:
        syntactic_class = classify(canonical_id)
        if syntactic_class is SyntacticClass.EVM_ADDRESS:
            return canonicalize(canonical_id, syntactic_class)
        if kind is ViewKind.TOKEN and syntactic_class is SyntacticClass.UNKNOWN:
            symbol = canonicalize(canonical_id, syntactic_class)
            if is_symbol(symbol):
                return symbol
            raise InvalidInputError(
                "token identifier must be a contract address or a symbol",
                value=canonical_id,
            )
        raise InvalidInputError(
            f"{kind.value} aggregation requires an EVM address", value=canonical_id
        )

    def _validate_domains(self, domains: Iterable[Domain] | None) -> list[Domain]:
        if domains is None:
            return list(self.domains)
        wanted = set(domains)
        if not wanted:
            raise InvalidInputError("at least one domain must be requested")
        unknown = wanted - set(self._fetchers)
        if unknown:
            raise InvalidInputError(
                f"no fetcher configured for {', '.join(sorted(d.value for d in unknown))}"
            )
        return [d for d in DOMAIN_PRIORITY if d in wanted]

    async def _run_branch(self, domain: Domain, kind: ViewKind, identifier: str) -> BranchOutcome:
        fetcher = self._fetchers[domain]
        fetch = {
            ViewKind.WALLET: fetcher.fetch_wallet,
            ViewKind.POSITIONS: fetcher.fetch_positions,
            ViewKind.TOKEN: fetcher.fetch_token,
        }[kind]
        snapshot_key = f"snapshot:{kind.value}:{domain.value}:{identifier}"

        async def attempt() -> Any:
            return await asyncio.wait_for(fetch(identifier), timeout=self._fetch_timeout)

        try:
            snapshot = await asyncio.wait_for(
                with_retry(
                    attempt,
                    config=self._retry_config,
                    on_retry=lambda n, error, delay: self._metrics.record_retry(
                        kind.value, domain.value
                    ),
                ),
                timeout=self._domain_deadline,
            )
        except (ProviderError, TimeoutError, asyncio.TimeoutError) as e:
            self._metrics.record_fetch_failure(kind.value, domain.value)
            fallback = await self._last_good(snapshot_key, kind)
            if fallback is not None:
                logger.warning(
                    f"{domain.value} {kind.value} fetch failed for {identifier}, "
                    f"serving cached snapshot: {e!r}"
                )
                return BranchOutcome(domain=domain, snapshot=fallback, stale=True, error=e)
            logger.warning(f"{domain.value} {kind.value} fetch failed for {identifier}: {e!r}")
            return BranchOutcome(domain=domain, error=e)

        if self._cache is not None:
            await self._cache.set(
                snapshot_key,
                snapshot,
                VolatilityTier.LONG,
                encode=lambda s: s.model_dump(mode="json"),
            )
        return BranchOutcome(domain=domain, snapshot=snapshot)

    async def _last_good(self, key: str, kind: ViewKind) -> Any | None:
        if self._cache is None:
            return None
        return await self._cache.get(
            key, VolatilityTier.LONG, decode=SNAPSHOT_TYPES[kind].model_validate
        )


def _fresh_watermark(outcomes: Sequence[BranchOutcome], domain: Domain) -> int | None:
    for outcome in outcomes:
        if outcome.domain is domain and outcome.fresh:
            return outcome.snapshot.watermark
    return None
