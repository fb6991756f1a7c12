"""Recovery controller types."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol

from orchestra_core.types import CircuitState

# A zero-argument fallible operation, sync or async
RecoverableAction = Callable[[], Any]
Sleep = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class StrategyOptions:
    """Options passed to a recovery strategy.

    Attributes:
        max_retries: Retries after the first attempt (retry strategies)
        initial_delay_seconds: First backoff delay
        delay_increment_seconds: Linear backoff step (defaults to initial delay)
        max_delay_seconds: Upper bound for any single backoff delay
        jitter: Add up to 10% random jitter to exponential delays
        timeout_seconds: Per-attempt timeout
        fallback: Zero-argument alternative action (fallback strategy)
        circuit_breaker: Breaker name (circuit-breaker strategy)
        action_name: Identifier recorded in the error log
    """

    max_retries: int = 3
    initial_delay_seconds: float = 0.1
    delay_increment_seconds: float | None = None
    max_delay_seconds: float = 30.0
    jitter: bool = True
    timeout_seconds: float | None = None
    fallback: RecoverableAction | None = None
    circuit_breaker: str | None = None
    action_name: str | None = None

    @property
    def increment_seconds(self) -> float:
        if self.delay_increment_seconds is None:
            return self.initial_delay_seconds
        return self.delay_increment_seconds


class RecoveryStrategy(Protocol):
    """A named, stateless execution policy."""

    async def execute(self, action: RecoverableAction, options: StrategyOptions) -> Any: ...


class RetryPhase(str, Enum):
    """Phases of a single retry call."""

    READY = "ready"
    RUNNING = "running"
    WAITING = "waiting"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"


@dataclass
class RetryState:
    """State machine for one retrying ``execute_with_strategy`` call.

    READY -> RUNNING -> SUCCEEDED
                     -> WAITING -> RUNNING ...
                     -> EXHAUSTED
    """

    max_attempts: int
    attempt: int = 0
    next_delay: float = 0.0
    last_error: BaseException | None = None
    phase: RetryPhase = RetryPhase.READY
    delays: list[float] = field(default_factory=list)

    def begin_attempt(self) -> None:
        if self.phase not in (RetryPhase.READY, RetryPhase.WAITING):
            raise RuntimeError(f"Cannot start an attempt from phase {self.phase.value}")
        self.attempt += 1
        self.next_delay = 0.0
        self.phase = RetryPhase.RUNNING

    def record_success(self) -> None:
        self.phase = RetryPhase.SUCCEEDED

    def record_failure(self, error: BaseException, delay: float) -> None:
        """Record a failed attempt and decide whether to wait or give up."""
        self.last_error = error
        if self.attempt >= self.max_attempts:
            self.phase = RetryPhase.EXHAUSTED
            return
        self.next_delay = delay
        self.delays.append(delay)
        self.phase = RetryPhase.WAITING

    @property
    def should_retry(self) -> bool:
        return self.phase == RetryPhase.WAITING


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Per-breaker thresholds."""

    failure_threshold: int = 5
    success_threshold: int = 1
    reset_timeout_seconds: float = 60.0
    half_open_max_calls: int = 1

    def __post_init__(self) -> None:
        if self.failure_threshold < 1 or self.success_threshold < 1:
            raise ValueError("Circuit breaker thresholds must be at least 1")
        if self.half_open_max_calls < 1:
            raise ValueError("half_open_max_calls must be at least 1")
        if self.reset_timeout_seconds < 0:
            raise ValueError("reset_timeout_seconds must not be negative")


@dataclass(frozen=True)
class CircuitStateChange:
    """A circuit breaker transition, passed to state-change listeners."""

    name: str
    from_state: CircuitState
    to_state: CircuitState
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "from": self.from_state.value,
            "to": self.to_state.value,
            "timestamp": self.timestamp.isoformat(),
        }


StateChangeListener = Callable[[CircuitStateChange], Any]


@dataclass(frozen=True)
class ErrorLogEntry:
    """One ``execute_with_strategy`` outcome."""

    id: int
    strategy: str
    action_name: str
    duration_ms: int
    success: bool
    error_kind: str | None = None
    error_message: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "strategy": self.strategy,
            "action_name": self.action_name,
            "duration_ms": self.duration_ms,
            "success": self.success,
            "error_kind": self.error_kind,
            "error_message": self.error_message,
            "timestamp": self.timestamp.isoformat(),
        }
