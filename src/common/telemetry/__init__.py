"""
Unified Telemetry Module.

OpenTelemetry tracing and metrics for the explorer.

Usage:
    from src.common.telemetry import TelemetryConfig, init_telemetry, get_tracer

    # Once at application startup
    init_telemetry(TelemetryConfig(service_name="ledger-explorer"))

    tracer = get_tracer(__name__)
    with tracer.start_as_current_span("explorer.resolve") as span:
        span.set_attribute("explorer.query_class", "tx_hash")
        ...
"""

from src.common.telemetry.metrics import ExplorerMetrics, get_explorer_metrics
from src.common.telemetry.setup import (
    TelemetryConfig,
    get_meter,
    get_tracer,
    init_telemetry,
    is_telemetry_enabled,
    sdk_disabled,
    shutdown_telemetry,
)

__all__ = [
    # Setup
    "init_telemetry",
    "shutdown_telemetry",
    "get_tracer",
    "get_meter",
    "is_telemetry_enabled",
    "sdk_disabled",
    "TelemetryConfig",
    # Metrics
    "ExplorerMetrics",
    "get_explorer_metrics",
]
