"""Orchestra Telemetry - OpenTelemetry-based observability."""

from .instrumentation import (
    instrument_step,
    instrument_workflow,
    record_result,
)
from .metrics import METRIC_PREFIX, MetricLabels, OrchestraMetrics
from .setup import (
    get_telemetry,
    reset_telemetry,
    setup_telemetry,
)

__all__ = [
    # Metrics
    "OrchestraMetrics",
    "MetricLabels",
    "METRIC_PREFIX",
    # Setup
    "setup_telemetry",
    "get_telemetry",
    "reset_telemetry",
    # Instrumentation
    "instrument_workflow",
    "instrument_step",
    "record_result",
]
