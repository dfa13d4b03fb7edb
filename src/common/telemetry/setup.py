"""
OpenTelemetry Setup.

Installs SDK tracer and meter providers exporting over OTLP/gRPC. Until
init_telemetry() runs, the OpenTelemetry API hands out no-op tracers and
meters, so instrumented code runs unchanged in tests and in processes
that never export.

Honours the standard OTEL_SDK_DISABLED switch.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

logger = logging.getLogger(__name__)

_FLUSH_TIMEOUT_MS = 5000


@dataclass(frozen=True)
class TelemetryConfig:
    """What to export and where."""

    service_name: str = "ledger-explorer"
    service_version: str = "0.1.0"
    environment: str = "development"
    otlp_endpoint: str = "http://localhost:4317"
    otlp_insecure: bool = True
    tracing_enabled: bool = True
    metrics_enabled: bool = True
    metrics_export_interval_ms: int = 10_000

    def resource(self) -> Resource:
        return Resource.create(
            {
                SERVICE_NAME: self.service_name,
                SERVICE_VERSION: self.service_version,
                "deployment.environment": self.environment,
            }
        )


@dataclass
class _Providers:
    tracer: TracerProvider | None = None
    meter: MeterProvider | None = None

    @property
    def exporting(self) -> bool:
        return self.tracer is not None or self.meter is not None


# None until init_telemetry() has run once
_providers: _Providers | None = None


def sdk_disabled() -> bool:
    """True when OTEL_SDK_DISABLED asks for the no-op API."""
    return os.getenv("OTEL_SDK_DISABLED", "false").strip().lower() in ("true", "1", "yes")


def _install_tracing(config: TelemetryConfig, resource: Resource) -> TracerProvider:
    provider = TracerProvider(resource=resource)
    exporter = OTLPSpanExporter(endpoint=config.otlp_endpoint, insecure=config.otlp_insecure)
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    return provider


def _install_metrics(config: TelemetryConfig, resource: Resource) -> MeterProvider:
    reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=config.otlp_endpoint, insecure=config.otlp_insecure),
        export_interval_millis=config.metrics_export_interval_ms,
    )
    provider = MeterProvider(resource=resource, metric_readers=[reader])
    metrics.set_meter_provider(provider)
    return provider


def init_telemetry(config: TelemetryConfig | None = None) -> bool:
    """
    Install SDK providers once per process.

    Args:
        config: Export settings (defaults when omitted)

    Returns:
        True if spans or metrics are being exported
    """
    global _providers

    if _providers is not None:
        logger.debug("Telemetry already initialized")
        return _providers.exporting

    _providers = _Providers()
    if sdk_disabled():
        logger.info("Telemetry disabled via OTEL_SDK_DISABLED")
        return False

    cfg = config or TelemetryConfig()
    resource = cfg.resource()
    try:
        if cfg.tracing_enabled:
            _providers.tracer = _install_tracing(cfg, resource)
        if cfg.metrics_enabled:
            _providers.meter = _install_metrics(cfg, resource)
    except Exception as e:
        logger.error(f"Failed to initialize telemetry: {e}")
        return _providers.exporting

    logger.info(
        f"Telemetry exporting to {cfg.otlp_endpoint} "
        f"(tracing={cfg.tracing_enabled}, metrics={cfg.metrics_enabled})"
    )
    return _providers.exporting


def shutdown_telemetry() -> None:
    """Flush and shut down installed providers. Safe to call more than once."""
    global _providers

    providers, _providers = _providers, None
    if providers is None:
        return

    for provider in (providers.meter, providers.tracer):
        if provider is None:
            continue
        try:
            provider.force_flush(timeout_millis=_FLUSH_TIMEOUT_MS)
            provider.shutdown()
        except Exception as e:
            logger.warning(f"Error during telemetry shutdown: {e}")


def get_tracer(name: str = "ledger-explorer") -> trace.Tracer:
    """Tracer from the current provider (no-op until init_telemetry)."""
    return trace.get_tracer(name)


def get_meter(name: str = "ledger-explorer") -> metrics.Meter:
    """Meter from the current provider (no-op until init_telemetry)."""
    return metrics.get_meter(name)


def is_telemetry_enabled() -> bool:
    """Check if SDK providers are installed."""
    return _providers is not None and _providers.exporting
