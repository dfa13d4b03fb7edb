"""
Entity Resolver Implementation

Resolves a raw identifier to candidate entities on both ledgers:
- Syntactic classification and canonicalization
- Concurrent domain probes, each bounded by retry and a deadline
- Confidence ranking with Core winning ties
- Tiered caching of complete results
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass

from src.common.cache import TieredCache, VolatilityTier
from src.common.resilience import RetryConfig, retry_with_backoff
from src.common.telemetry import ExplorerMetrics, get_explorer_metrics, get_tracer

from ..errors import (
    RETRYABLE_ERRORS,
    InvalidInputError,
    ProviderError,
    ResolutionFailedError,
)
from .classifier import canonicalize, classify
from .models import (
    DOMAIN_PRIORITY,
    Alternate,
    CandidateEntity,
    Domain,
    EntityKind,
    ResolutionResult,
    SyntacticClass,
)
from .protocols import DomainProbe

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

_DOMAIN_LABELS = {Domain.CORE: "Core", Domain.EVM: "EVM"}

_RESULT_TIERS = {
    EntityKind.TX: VolatilityTier.IMMUTABLE,
    EntityKind.BLOCK: VolatilityTier.IMMUTABLE,
    EntityKind.WALLET: VolatilityTier.LONG,
    EntityKind.TOKEN: VolatilityTier.LONG,
    EntityKind.MARKET: VolatilityTier.LONG,
}


@dataclass(frozen=True)
class ProbeOutcome:
    """Candidate, confirmed absence (candidate None), or unknown (error set)."""

    domain: Domain
    candidate: CandidateEntity | None = None
    error: BaseException | None = None

    @property
    def unknown(self) -> bool:
        return self.error is not None


def rank_candidates(candidates: Sequence[CandidateEntity]) -> list[CandidateEntity]:
    """Confidence descending; ties go to the earlier domain in DOMAIN_PRIORITY."""
    return sorted(
        candidates,
        key=lambda c: (-c.confidence, DOMAIN_PRIORITY.index(c.domain)),
    )


def alternate_context(candidate: CandidateEntity) -> str:
    return f"Also found on {_DOMAIN_LABELS[candidate.domain]} as a {candidate.entity_type.value}"


class EntityResolver:
    """
    Resolver over a set of domain probes.

    A probe that fails after retries (or misses its deadline) makes its
    domain "unknown": it is ranked as absent, logged, counted, and listed
    in the result's unavailable_domains. Only when every probe is unknown
    does resolve() raise.
    """

    def __init__(
        self,
        probes: Sequence[DomainProbe],
        cache: TieredCache | None = None,
        retry_config: RetryConfig | None = None,
        probe_timeout_seconds: float = 20.0,
        probe_attempt_timeout_seconds: float = 6.0,
        metrics: ExplorerMetrics | None = None,
    ):
        if not probes:
            raise ValueError("EntityResolver needs at least one probe")
        self._probes = list(probes)
        self._cache = cache
        self._retry_config = retry_config or RetryConfig(
            max_attempts=3,
            base_delay=0.5,
            max_delay=5.0,
            retryable_exceptions=RETRYABLE_ERRORS,
        )
        self._probe_timeout = probe_timeout_seconds
        self._attempt_timeout = probe_attempt_timeout_seconds
        self._metrics = metrics or get_explorer_metrics()

    async def resolve(self, query: str) -> ResolutionResult:
        """
        Resolve an identifier.

        Returns:
            ResolutionResult; primary is None when nothing was found

        Raises:
            InvalidInputError: Blank query
            ResolutionFailedError: Every probe failed
        """
        text = query.strip()
        if not text:
            raise InvalidInputError("query must not be blank", value=query)

        with tracer.start_as_current_span("explorer.resolve") as span:
            syntactic_class = classify(text)
            canonical_id = canonicalize(text, syntactic_class)
            span.set_attribute("explorer.query_class", syntactic_class.value)

            cache_key = f"resolve:{canonical_id}"
            if self._cache is not None:
                # Results are written under several tiers; the longest one lets
                # the Redis expiry bound the L1 refill
                cached = await self._cache.get(
                    cache_key,
                    VolatilityTier.IMMUTABLE,
                    decode=ResolutionResult.model_validate,
                )
                if cached is not None:
                    span.set_attribute("explorer.cache_hit", True)
                    return cached.model_copy(update={"query": query})

            outcomes = await asyncio.gather(
                *(self._run_probe(p, canonical_id, syntactic_class) for p in self._probes)
            )

            unknown = [o for o in outcomes if o.unknown]
            if len(unknown) == len(outcomes):
                self._metrics.record_resolution("failed")
                span.set_attribute("explorer.outcome", "failed")
                raise ResolutionFailedError(
                    f"all domain probes failed for {canonical_id}",
                    {o.domain: o.error for o in unknown},
                )

            result = self._build_result(query, syntactic_class, outcomes)
            outcome = "found" if result.found else "not_found"
            if result.incomplete:
                outcome = "incomplete"
            self._metrics.record_resolution(outcome)
            span.set_attribute("explorer.outcome", outcome)

            if self._cache is not None and not result.incomplete:
                tier = (
                    _RESULT_TIERS[result.primary.entity_type]
                    if result.primary is not None
                    else VolatilityTier.USER_ANALYTICS
                )
                await self._cache.set(
                    cache_key,
                    result,
                    tier,
                    encode=lambda r: r.model_dump(mode="json"),
                )
            return result

    async def _run_probe(
        self,
        probe: DomainProbe,
        canonical_id: str,
        syntactic_class: SyntacticClass,
    ) -> ProbeOutcome:
        async def attempt() -> CandidateEntity | None:
            # A missed attempt deadline is retried like any transient failure
            return await asyncio.wait_for(
                probe.probe(canonical_id, syntactic_class),
                timeout=self._attempt_timeout,
            )

        try:
            candidate = await asyncio.wait_for(
                retry_with_backoff(
                    attempt,
                    config=self._retry_config,
                    on_retry=lambda n, error, delay: self._metrics.record_retry(
                        "probe", probe.domain.value
                    ),
                ),
                timeout=self._probe_timeout,
            )
        except (ProviderError, TimeoutError, asyncio.TimeoutError) as e:
            logger.warning(
                f"{probe.domain.value} probe failed for {canonical_id}; "
                f"result may be incomplete: {e!r}"
            )
            self._metrics.record_probe_unknown(probe.domain.value)
            return ProbeOutcome(domain=probe.domain, error=e)
        return ProbeOutcome(domain=probe.domain, candidate=candidate)

    def _build_result(
        self,
        query: str,
        syntactic_class: SyntacticClass,
        outcomes: Sequence[ProbeOutcome],
    ) -> ResolutionResult:
        ranked = rank_candidates([o.candidate for o in outcomes if o.candidate is not None])
        unavailable = tuple(o.domain for o in outcomes if o.unknown)

        if not ranked:
            return ResolutionResult(
                query=query,
                syntactic_class=syntactic_class,
                unavailable_domains=unavailable,
            )

        primary, rest = ranked[0], ranked[1:]
        return ResolutionResult(
            query=query,
            syntactic_class=syntactic_class,
            primary=primary,
            alternates=tuple(Alternate(candidate=c, context=alternate_context(c)) for c in rest),
            unavailable_domains=unavailable,
        )
