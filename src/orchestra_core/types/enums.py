"""Shared enumerations for Orchestra."""

from enum import Enum


class LogLevel(str, Enum):
    """Log verbosity level."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


class LogFormat(str, Enum):
    """Log output format."""

    COLORED = "colored"
    JSON = "json"


class ErrorHandlerPolicy(str, Enum):
    """Workflow-level reaction to a step that failed after its own retries."""

    FALLBACK = "fallback"
    RETRY = "retry"
    ESCALATE = "escalate"


class ExecutionStatus(str, Enum):
    """Workflow execution status."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """Whether the execution can no longer change."""
        return self is not ExecutionStatus.RUNNING


class StepStatus(str, Enum):
    """Individual step status."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        """Whether the step has been visited."""
        return self in (StepStatus.COMPLETED, StepStatus.FAILED, StepStatus.SKIPPED)


class CircuitState(str, Enum):
    """Circuit breaker state."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


class StrategyName(str, Enum):
    """Names of the built-in recovery strategies."""

    EXPONENTIAL_BACKOFF = "exponential-backoff"
    LINEAR_BACKOFF = "linear-backoff"
    FALLBACK = "fallback"
    TIMEOUT = "timeout"
    CIRCUIT_BREAKER = "circuit-breaker"
