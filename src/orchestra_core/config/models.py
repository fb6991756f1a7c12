"""Orchestra configuration data models."""

from dataclasses import dataclass, field

from orchestra_core.types import LogFormat, LogLevel


@dataclass
class LoggingComponentsConfig:
    """Logging components configuration."""

    workflow: bool = True
    step: bool = True
    recovery: bool = True
    events: bool = True


@dataclass
class LoggingOptionsConfig:
    """Logging options configuration."""

    show_context: bool = True
    truncate_at: int = 200


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.COLORED
    components: LoggingComponentsConfig = field(default_factory=LoggingComponentsConfig)
    options: LoggingOptionsConfig = field(default_factory=LoggingOptionsConfig)


@dataclass
class ExecutionConfig:
    """Workflow execution configuration.

    Attributes:
        step_timeout_seconds: Per-attempt timeout for steps that declare none
        max_history: Executions retained for history and statistics
    """

    step_timeout_seconds: float = 30.0
    max_history: int = 100


@dataclass
class RetryDefaultsConfig:
    """Defaults for the retry strategies."""

    max_retries: int = 3
    initial_delay_seconds: float = 0.1
    max_delay_seconds: float = 30.0
    jitter: bool = True


@dataclass
class CircuitBreakerDefaultsConfig:
    """Defaults for circuit breakers created without explicit settings."""

    failure_threshold: int = 5
    success_threshold: int = 1
    reset_timeout_seconds: float = 60.0
    half_open_max_calls: int = 1


@dataclass
class RecoveryConfig:
    """Recovery controller configuration."""

    error_log_size: int = 1000
    retry: RetryDefaultsConfig = field(default_factory=RetryDefaultsConfig)
    circuit_breaker: CircuitBreakerDefaultsConfig = field(
        default_factory=CircuitBreakerDefaultsConfig
    )


@dataclass
class EventsConfig:
    """Event bus configuration.

    Attributes:
        history_size: Events kept in history
        dead_letter_size: Failed deliveries kept in the dead-letter queue
        delimiter: Segment delimiter for event types and patterns
        handler_timeout_seconds: Default handler timeout (None = unbounded)
    """

    history_size: int = 1000
    dead_letter_size: int = 100
    delimiter: str = ":"
    handler_timeout_seconds: float | None = None


@dataclass
class WorkflowsConfig:
    """Workflows configuration."""

    directory: str = "./workflows"
    load_on_startup: bool = True
    load_builtin: bool = False


@dataclass
class TelemetryOTLPConfig:
    """Telemetry OTLP exporter configuration.

    Attributes:
        enabled: Whether OTLP export is enabled
        endpoint: OTLP collector endpoint (e.g., http://otel-collector:4317)
        insecure: Whether to use insecure connection (no TLS)
        protocol: Exporter protocol (grpc or http)
        headers: Additional headers for authentication
    """

    enabled: bool = False
    endpoint: str = "http://localhost:4317"
    insecure: bool = True
    protocol: str = "grpc"  # grpc | http
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class TelemetryMetricsConfig:
    """Telemetry metrics configuration (OpenTelemetry)."""

    enabled: bool = True
    prometheus_enabled: bool = True


@dataclass
class TelemetryTracingConfig:
    """Telemetry tracing configuration (OpenTelemetry).

    Attributes:
        enabled: Whether tracing is enabled
        sample_rate: Sampling rate (0.0 to 1.0, 1.0 = sample all)
        export_to_otlp: Whether to export traces to OTLP collector
    """

    enabled: bool = False
    sample_rate: float = 1.0
    export_to_otlp: bool = False


@dataclass
class TelemetryConfig:
    """Telemetry configuration."""

    enabled: bool = True
    service_name: str = "orchestra"
    service_version: str = "1.0.0"
    otlp: TelemetryOTLPConfig = field(default_factory=TelemetryOTLPConfig)
    metrics: TelemetryMetricsConfig = field(default_factory=TelemetryMetricsConfig)
    tracing: TelemetryTracingConfig = field(default_factory=TelemetryTracingConfig)


@dataclass
class OrchestraConfig:
    """Root configuration object."""

    logging: LoggingConfig = field(default_factory=LoggingConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    recovery: RecoveryConfig = field(default_factory=RecoveryConfig)
    events: EventsConfig = field(default_factory=EventsConfig)
    workflows: WorkflowsConfig = field(default_factory=WorkflowsConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)
