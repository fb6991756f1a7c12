"""Orchestra Configuration - Config loading and management."""

from .loader import (
    CONFIG_PATH_ENV,
    ConfigLoader,
    deep_merge,
    resolve_env_vars,
)
from .models import (
    CircuitBreakerDefaultsConfig,
    EventsConfig,
    ExecutionConfig,
    LoggingComponentsConfig,
    LoggingConfig,
    LoggingOptionsConfig,
    OrchestraConfig,
    RecoveryConfig,
    RetryDefaultsConfig,
    TelemetryConfig,
    TelemetryMetricsConfig,
    TelemetryOTLPConfig,
    TelemetryTracingConfig,
    WorkflowsConfig,
)

__all__ = [
    # Config models
    "OrchestraConfig",
    "LoggingConfig",
    "LoggingComponentsConfig",
    "LoggingOptionsConfig",
    "ExecutionConfig",
    "RecoveryConfig",
    "RetryDefaultsConfig",
    "CircuitBreakerDefaultsConfig",
    "EventsConfig",
    "WorkflowsConfig",
    "TelemetryConfig",
    "TelemetryMetricsConfig",
    "TelemetryOTLPConfig",
    "TelemetryTracingConfig",
    # Loader
    "CONFIG_PATH_ENV",
    "ConfigLoader",
    # Utilities
    "resolve_env_vars",
    "deep_merge",
]
