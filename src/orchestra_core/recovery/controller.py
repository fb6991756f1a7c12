"""Recovery controller - runs fallible actions under named strategies."""

import asyncio
import inspect
import random
import time
from collections import Counter, deque
from collections.abc import Callable
from typing import Any

from orchestra_core.errors import OrchestraError, create_error
from orchestra_core.telemetry import MetricLabels, get_telemetry
from orchestra_core.types import StrategyName

from .circuit_breaker import CircuitBreaker
from .invoke import describe_action
from .strategies import (
    CircuitBreakerStrategy,
    ExponentialBackoffStrategy,
    FallbackStrategy,
    LinearBackoffStrategy,
    TimeoutStrategy,
)
from .types import (
    CircuitBreakerConfig,
    CircuitStateChange,
    ErrorLogEntry,
    RecoverableAction,
    RecoveryStrategy,
    Sleep,
    StateChangeListener,
    StrategyOptions,
)


class RecoveryController:
    """Registry of recovery strategies and circuit breakers.

    Every ``execute_with_strategy`` call is recorded in a bounded error log.
    """

    def __init__(
        self,
        default_options: StrategyOptions | None = None,
        breaker_defaults: CircuitBreakerConfig | None = None,
        error_log_size: int = 1000,
        logger: Any = None,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
    ):
        """Initialize recovery controller.

        Args:
            default_options: Options used when a call passes none
            breaker_defaults: Config for breakers created without one
            error_log_size: Entries kept in the error log
            logger: Optional OrchestraLogger instance
            sleep: Awaitable sleep used by retry strategies
            clock: Monotonic clock used by circuit breakers
            rng: Random source for backoff jitter
        """
        self._default_options = default_options or StrategyOptions()
        self._breaker_defaults = breaker_defaults or CircuitBreakerConfig()
        self._logger = logger.recovery() if logger else None
        self._clock = clock

        self._strategies: dict[str, RecoveryStrategy] = {}
        self._breakers: dict[str, CircuitBreaker] = {}
        self._state_listeners: list[StateChangeListener] = []
        self._error_log: deque[ErrorLogEntry] = deque(maxlen=error_log_size)
        self._next_entry_id = 1

        self.register_strategy(
            StrategyName.EXPONENTIAL_BACKOFF.value,
            ExponentialBackoffStrategy(sleep=sleep, logger=self._logger, rng=rng),
        )
        self.register_strategy(
            StrategyName.LINEAR_BACKOFF.value,
            LinearBackoffStrategy(sleep=sleep, logger=self._logger),
        )
        self.register_strategy(StrategyName.FALLBACK.value, FallbackStrategy(logger=self._logger))
        self.register_strategy(StrategyName.TIMEOUT.value, TimeoutStrategy())
        self.register_strategy(
            StrategyName.CIRCUIT_BREAKER.value,
            CircuitBreakerStrategy(get_breaker=self.get_or_create_circuit_breaker),
        )

    @property
    def default_options(self) -> StrategyOptions:
        return self._default_options

    # ── Strategies ───────────────────────────────────────────────────

    def register_strategy(self, name: str, strategy: RecoveryStrategy) -> None:
        """Add or replace a named strategy.

        Args:
            name: Strategy name
            strategy: Object with ``async execute(action, options)``
        """
        self._strategies[name] = strategy

    def get_strategy(self, name: str) -> RecoveryStrategy | None:
        return self._strategies.get(name)

    def list_strategies(self) -> list[str]:
        return list(self._strategies)

    async def execute_with_strategy(
        self,
        action: RecoverableAction,
        strategy_name: str = StrategyName.EXPONENTIAL_BACKOFF.value,
        options: StrategyOptions | None = None,
    ) -> Any:
        """Run an action under a named strategy.

        Args:
            action: Zero-argument fallible operation (sync or async)
            strategy_name: Registered strategy name
            options: Strategy options (defaults to the controller's)

        Returns:
            The action's result

        Raises:
            StrategyNotFoundError: If no strategy has that name
            Exception: Whatever the strategy surfaces on failure
        """
        strategy = self._strategies.get(strategy_name)
        if strategy is None:
            raise create_error(
                "STRATEGY_NOT_FOUND",
                strategy=strategy_name,
                available=", ".join(self._strategies),
            )

        options = options or self._default_options
        action_name = options.action_name or describe_action(action)

        start = time.perf_counter()
        try:
            result = await strategy.execute(action, options)
        except Exception as e:
            self._record(strategy_name, action_name, start, error=e)
            raise

        self._record(strategy_name, action_name, start)
        return result

    def _record(
        self,
        strategy_name: str,
        action_name: str,
        start: float,
        error: BaseException | None = None,
    ) -> None:
        duration = time.perf_counter() - start
        error_kind = None
        if error is not None:
            error_kind = error.code if isinstance(error, OrchestraError) else type(error).__name__

        self._error_log.append(
            ErrorLogEntry(
                id=self._next_entry_id,
                strategy=strategy_name,
                action_name=action_name,
                duration_ms=int(duration * 1000),
                success=error is None,
                error_kind=error_kind,
                error_message=str(error) if error is not None else None,
            )
        )
        self._next_entry_id += 1

        telemetry = get_telemetry()
        if telemetry and telemetry.get("metrics"):
            telemetry["metrics"].record_strategy_execution(
                strategy=strategy_name,
                duration_seconds=duration,
                status=MetricLabels.STATUS_SUCCESS if error is None else MetricLabels.STATUS_ERROR,
                error_code=error_kind,
            )

    # ── Circuit breakers ─────────────────────────────────────────────

    def create_circuit_breaker(
        self, name: str, config: CircuitBreakerConfig | None = None
    ) -> CircuitBreaker:
        """Create (or replace) the breaker for a service name.

        Args:
            name: Protected service name
            config: Thresholds (defaults to the controller's breaker defaults)

        Returns:
            The new CircuitBreaker
        """
        breaker = CircuitBreaker(
            name,
            config or self._breaker_defaults,
            clock=self._clock,
            logger=self._logger,
        )
        breaker.add_listener(self._dispatch_state_change)
        self._breakers[name] = breaker
        return breaker

    def get_circuit_breaker(self, name: str) -> CircuitBreaker | None:
        return self._breakers.get(name)

    def get_or_create_circuit_breaker(self, name: str) -> CircuitBreaker:
        breaker = self._breakers.get(name)
        if breaker is None:
            breaker = self.create_circuit_breaker(name)
        return breaker

    def list_circuit_breakers(self) -> list[str]:
        return list(self._breakers)

    def get_circuit_breaker_status(self, name: str) -> dict[str, Any] | None:
        """Status snapshot of a breaker, or None if unknown."""
        breaker = self._breakers.get(name)
        return breaker.get_status() if breaker else None

    async def reset_circuit_breaker(self, name: str) -> bool:
        """Force a breaker closed. Returns False if unknown."""
        breaker = self._breakers.get(name)
        if breaker is None:
            return False
        await breaker.reset()
        return True

    def on_state_change(self, listener: StateChangeListener) -> None:
        """Register a listener for transitions of every breaker."""
        self._state_listeners.append(listener)

    async def _dispatch_state_change(self, change: CircuitStateChange) -> None:
        for listener in list(self._state_listeners):
            try:
                outcome = listener(change)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                if self._logger:
                    self._logger.listener_failed(change.name, e)

    # ── Error log ────────────────────────────────────────────────────

    def get_error_log(self, limit: int = 50) -> list[ErrorLogEntry]:
        """Recent outcomes, newest first."""
        return list(self._error_log)[::-1][:limit]

    def clear_error_log(self) -> None:
        self._error_log.clear()

    def get_error_stats(self) -> dict[str, Any]:
        """Aggregate the error log by strategy, error kind and action.

        ``success_rate`` is a percentage; 100.0 when the log is empty.
        """
        entries = list(self._error_log)
        failures = [e for e in entries if not e.success]
        successes = len(entries) - len(failures)

        by_strategy: dict[str, dict[str, int]] = {}
        for entry in entries:
            counts = by_strategy.setdefault(entry.strategy, {"successes": 0, "errors": 0})
            counts["successes" if entry.success else "errors"] += 1

        errors_by_action: dict[str, dict[str, Any]] = {}
        for entry in failures:
            action = errors_by_action.setdefault(entry.action_name, {"count": 0, "strategies": {}})
            action["count"] += 1
            action["strategies"][entry.strategy] = action["strategies"].get(entry.strategy, 0) + 1

        return {
            "total_errors": len(failures),
            "total_successes": successes,
            "success_rate": (successes / len(entries) * 100) if entries else 100.0,
            "by_strategy": by_strategy,
            "by_error_kind": dict(Counter(e.error_kind for e in failures if e.error_kind)),
            "errors_by_action": errors_by_action,
            "circuit_breakers": [b.get_status() for b in self._breakers.values()],
        }
