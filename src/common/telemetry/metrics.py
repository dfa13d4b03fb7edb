"""
Ledger Explorer Metrics.

Pre-defined instruments for resolution and aggregation outcomes.
"""

from __future__ import annotations

import logging

from src.common.telemetry.setup import get_meter

logger = logging.getLogger(__name__)


class ExplorerMetrics:
    """
    Metrics for the resolver and the aggregator.

    Tracks:
    - Resolution outcomes (found, not_found, incomplete, failed)
    - Probes that ended in an unknown state, by domain
    - Aggregations by view and consistency level
    - Per-domain fetch failures
    - Retried upstream attempts
    - Aggregation latency
    """

    def __init__(self, meter_name: str = "ledger-explorer"):
        self._meter = get_meter(meter_name)

        self._resolutions_total = self._meter.create_counter(
            name="explorer_resolutions_total",
            description="Identifier resolutions by outcome",
            unit="1",
        )
        self._probe_unknown_total = self._meter.create_counter(
            name="explorer_probe_unknown_total",
            description="Domain probes that failed without confirming presence or absence",
            unit="1",
        )
        self._aggregations_total = self._meter.create_counter(
            name="explorer_aggregations_total",
            description="Cross-domain aggregations by view and consistency level",
            unit="1",
        )
        self._fetch_failures_total = self._meter.create_counter(
            name="explorer_domain_fetch_failures_total",
            description="Per-domain fetches that failed after retries",
            unit="1",
        )
        self._retries_total = self._meter.create_counter(
            name="explorer_upstream_retries_total",
            description="Retried probe and fetch attempts by operation and domain",
            unit="1",
        )
        self._aggregation_duration = self._meter.create_histogram(
            name="explorer_aggregation_duration_ms",
            description="Aggregation duration",
            unit="ms",
        )

    def record_resolution(self, outcome: str) -> None:
        self._resolutions_total.add(1, {"outcome": outcome})

    def record_probe_unknown(self, domain: str) -> None:
        self._probe_unknown_total.add(1, {"domain": domain})

    def record_aggregation(self, view: str, consistency: str, duration_ms: float) -> None:
        attrs = {"view": view, "consistency": consistency}
        self._aggregations_total.add(1, attrs)
        self._aggregation_duration.record(duration_ms, attrs)

    def record_fetch_failure(self, view: str, domain: str) -> None:
        self._fetch_failures_total.add(1, {"view": view, "domain": domain})

    def record_retry(self, operation: str, domain: str) -> None:
        self._retries_total.add(1, {"operation": operation, "domain": domain})


_explorer_metrics: ExplorerMetrics | None = None


def get_explorer_metrics() -> ExplorerMetrics:
    """Get the process-wide ExplorerMetrics instance."""
    global _explorer_metrics
    if _explorer_metrics is None:
        _explorer_metrics = ExplorerMetrics()
    return _explorer_metrics
