"""Orchestra Recovery - Retry strategies and circuit breakers."""

from .circuit_breaker import CircuitBreaker
from .controller import RecoveryController
from .invoke import call_action, describe_action, run_with_timeout
from .strategies import (
    CircuitBreakerStrategy,
    ExponentialBackoffStrategy,
    FallbackStrategy,
    LinearBackoffStrategy,
    RetryStrategy,
    TimeoutStrategy,
)
from .types import (
    CircuitBreakerConfig,
    CircuitStateChange,
    ErrorLogEntry,
    RecoverableAction,
    RecoveryStrategy,
    RetryPhase,
    RetryState,
    StateChangeListener,
    StrategyOptions,
)

__all__ = [
    "RecoveryController",
    "CircuitBreaker",
    # Strategies
    "RecoveryStrategy",
    "RetryStrategy",
    "ExponentialBackoffStrategy",
    "LinearBackoffStrategy",
    "FallbackStrategy",
    "TimeoutStrategy",
    "CircuitBreakerStrategy",
    # Types
    "StrategyOptions",
    "RetryState",
    "RetryPhase",
    "CircuitBreakerConfig",
    "CircuitStateChange",
    "StateChangeListener",
    "ErrorLogEntry",
    "RecoverableAction",
    # Helpers
    "call_action",
    "run_with_timeout",
    "describe_action",
]
