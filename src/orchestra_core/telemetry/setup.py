"""Orchestra Telemetry Setup - OpenTelemetry initialization.

Configures OpenTelemetry SDK with:
- MeterProvider with PrometheusMetricReader
- TracerProvider with optional OTLP exporter

Supports:
- Prometheus metrics export (scraped from the default prometheus_client registry)
- OTLP trace export (grpc or http)
"""

from typing import Any

from opentelemetry import metrics, trace
from opentelemetry.exporter.prometheus import PrometheusMetricReader
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased

from orchestra_core.config.models import TelemetryConfig, TelemetryOTLPConfig

from .metrics import OrchestraMetrics

# Global telemetry state
_telemetry: dict[str, Any] | None = None


def _create_otlp_span_exporter(otlp_config: TelemetryOTLPConfig):
    """Create OTLP span exporter based on configuration.

    Args:
        otlp_config: OTLP exporter configuration

    Returns:
        OTLP span exporter instance
    """
    if otlp_config.protocol == "http":
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter

        return OTLPSpanExporter(
            endpoint=f"{otlp_config.endpoint}/v1/traces",
            headers=otlp_config.headers or None,
        )
    else:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

        return OTLPSpanExporter(
            endpoint=otlp_config.endpoint,
            insecure=otlp_config.insecure,
            headers=otlp_config.headers or None,
        )


def setup_telemetry(config: TelemetryConfig | None = None) -> dict[str, Any]:
    """Set up OpenTelemetry instrumentation.

    Initializes:
    - MeterProvider with PrometheusMetricReader
    - TracerProvider with optional OTLP exporter
    - OrchestraMetrics instance

    Args:
        config: Telemetry configuration (uses defaults if None)

    Returns:
        Dictionary with meter, tracer and metrics instances
    """
    global _telemetry  # noqa: PLW0603

    if _telemetry is not None:
        return _telemetry

    config = config or TelemetryConfig()

    if not config.enabled:
        # Components check for None and skip recording
        _telemetry = {
            "meter": None,
            "tracer": None,
            "metrics": None,
            "config": config,
        }
        return _telemetry

    resource = Resource.create(
        {
            SERVICE_NAME: config.service_name,
            SERVICE_VERSION: config.service_version,
        }
    )

    meter = None
    orchestra_metrics = None
    meter_provider = None
    if config.metrics.enabled:
        readers = [PrometheusMetricReader()] if config.metrics.prometheus_enabled else []
        meter_provider = MeterProvider(metric_readers=readers, resource=resource)
        metrics.set_meter_provider(meter_provider)
        meter = meter_provider.get_meter(config.service_name, config.service_version)
        orchestra_metrics = OrchestraMetrics(meter)
        # OTEL metrics only appear after first recording
        _initialize_metrics(orchestra_metrics)

    tracer = None
    tracer_provider = None
    if config.tracing.enabled:
        tracer_provider = TracerProvider(
            resource=resource,
            sampler=TraceIdRatioBased(config.tracing.sample_rate),
        )
        if config.tracing.export_to_otlp and config.otlp.enabled:
            span_exporter = _create_otlp_span_exporter(config.otlp)
            tracer_provider.add_span_processor(BatchSpanProcessor(span_exporter))
        trace.set_tracer_provider(tracer_provider)
        tracer = tracer_provider.get_tracer(config.service_name, config.service_version)

    _telemetry = {
        "meter": meter,
        "tracer": tracer,
        "metrics": orchestra_metrics,
        "config": config,
        "meter_provider": meter_provider,
        "tracer_provider": tracer_provider,
    }

    return _telemetry


def _initialize_metrics(orchestra_metrics: OrchestraMetrics) -> None:
    """Record zero values so key metrics appear in Prometheus immediately."""
    orchestra_metrics.workflow_executions_total.add(
        0, {"workflow_id": "_init", "status": "init"}
    )
    orchestra_metrics.step_executions_total.add(
        0, {"workflow_id": "_init", "step_id": "_init", "status": "init"}
    )
    orchestra_metrics.strategy_executions_total.add(0, {"strategy": "_init", "status": "init"})
    orchestra_metrics.dead_letters_total.add(0, {"event_type": "_init"})
    orchestra_metrics.active_workflows.add(0, {"workflow_id": "_init"})
    orchestra_metrics.open_circuits.add(0, {"breaker": "_init"})
    orchestra_metrics.registered_workflows.add(0)


def get_telemetry() -> dict[str, Any] | None:
    """Get the current telemetry instance.

    Returns:
        Telemetry dictionary or None if not initialized
    """
    return _telemetry


def reset_telemetry() -> None:
    """Reset telemetry state (for testing)."""
    global _telemetry  # noqa: PLW0603
    if _telemetry is not None:
        for key in ("meter_provider", "tracer_provider"):
            provider = _telemetry.get(key)
            if provider is not None:
                provider.shutdown()
    _telemetry = None
