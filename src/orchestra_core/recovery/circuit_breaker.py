"""Circuit breaker - three-state guard for a failing downstream operation."""

import asyncio
import inspect
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from orchestra_core.errors import create_error
from orchestra_core.telemetry import get_telemetry
from orchestra_core.types import CircuitState

from .invoke import call_action
from .types import CircuitBreakerConfig, CircuitStateChange, RecoverableAction, StateChangeListener


class CircuitBreaker:
    """Circuit breaker for one protected service.

    closed: calls run; ``failure_threshold`` consecutive failures open it.
    open: calls are rejected with CircuitOpenError until
        ``reset_timeout_seconds`` have elapsed since the last failure, then
        the next call moves it to half-open.
    half-open: at most ``half_open_max_calls`` trial calls run at once;
        ``success_threshold`` successes close it, any failure reopens it.

    State is only read and written under ``_lock``; the action itself runs
    outside the lock.
    """

    def __init__(
        self,
        name: str,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
        logger: Any = None,
    ):
        """Initialize circuit breaker.

        Args:
            name: Protected service name
            config: Thresholds (defaults to CircuitBreakerConfig())
            clock: Monotonic clock in seconds
            logger: Optional RecoveryLogger instance
        """
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._logger = logger

        self._lock = asyncio.Lock()
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_at: float | None = None
        self._last_failure_time: datetime | None = None
        self._half_open_in_flight = 0
        self._listeners: list[StateChangeListener] = []

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def success_count(self) -> int:
        return self._success_count

    @property
    def last_failure_at(self) -> float | None:
        """Clock reading of the most recent failure."""
        return self._last_failure_at

    def add_listener(self, listener: StateChangeListener) -> None:
        """Register a callback for state changes (sync or async)."""
        self._listeners.append(listener)

    async def execute(self, action: RecoverableAction) -> Any:
        """Run an action through the breaker.

        Raises:
            CircuitOpenError: If the call is rejected without running the action
        """
        changes: list[CircuitStateChange] = []
        rejected_after: float | None = None
        trial = False

        async with self._lock:
            if self._state == CircuitState.OPEN:
                remaining = self._remaining_timeout()
                if remaining > 0:
                    rejected_after = remaining
                else:
                    changes.append(self._transition_to(CircuitState.HALF_OPEN))

            if rejected_after is None and self._state == CircuitState.HALF_OPEN:
                if self._half_open_in_flight >= self.config.half_open_max_calls:
                    rejected_after = 0.0
                else:
                    self._half_open_in_flight += 1
                    trial = True

        await self._notify(changes)

        if rejected_after is not None:
            raise create_error(
                "CIRCUIT_OPEN",
                breaker=self.name,
                retry_after_seconds=round(rejected_after, 3),
            )

        try:
            result = await call_action(action)
        except Exception:
            await self._on_failure(trial)
            raise
        except BaseException:
            # Cancelled: release the trial slot without counting an outcome
            async with self._lock:
                if trial:
                    self._half_open_in_flight -= 1
            raise

        await self._on_success(trial)
        return result

    async def _on_success(self, trial: bool) -> None:
        changes: list[CircuitStateChange] = []
        async with self._lock:
            if trial:
                self._half_open_in_flight -= 1

            if self._state == CircuitState.CLOSED:
                self._failure_count = 0
            elif self._state == CircuitState.HALF_OPEN and trial:
                self._success_count += 1
                if self._success_count >= self.config.success_threshold:
                    changes.append(self._transition_to(CircuitState.CLOSED))

        await self._notify(changes)

    async def _on_failure(self, trial: bool) -> None:
        changes: list[CircuitStateChange] = []
        async with self._lock:
            if trial:
                self._half_open_in_flight -= 1

            self._failure_count += 1
            self._success_count = 0
            self._last_failure_at = self._clock()
            self._last_failure_time = datetime.now(UTC)

            if self._state == CircuitState.HALF_OPEN:
                changes.append(self._transition_to(CircuitState.OPEN))
            elif (
                self._state == CircuitState.CLOSED
                and self._failure_count >= self.config.failure_threshold
            ):
                changes.append(self._transition_to(CircuitState.OPEN))

        await self._notify(changes)

    def _transition_to(self, new_state: CircuitState) -> CircuitStateChange:
        """Change state. Caller holds the lock."""
        change = CircuitStateChange(name=self.name, from_state=self._state, to_state=new_state)
        self._state = new_state

        if new_state == CircuitState.HALF_OPEN:
            self._success_count = 0
            self._half_open_in_flight = 0
        elif new_state == CircuitState.CLOSED:
            self._failure_count = 0
            self._success_count = 0

        return change

    async def _notify(self, changes: list[CircuitStateChange]) -> None:
        """Report transitions. Called without the lock held."""
        for change in changes:
            if self._logger:
                self._logger.circuit_transition(
                    self.name, change.from_state.value, change.to_state.value
                )

            telemetry = get_telemetry()
            if telemetry and telemetry.get("metrics"):
                telemetry["metrics"].record_circuit_transition(
                    self.name, change.from_state.value, change.to_state.value
                )

            for listener in list(self._listeners):
                try:
                    outcome = listener(change)
                    if inspect.isawaitable(outcome):
                        await outcome
                except Exception as e:
                    if self._logger:
                        self._logger.listener_failed(self.name, e)

    def _remaining_timeout(self) -> float:
        if self._state != CircuitState.OPEN or self._last_failure_at is None:
            return 0.0
        elapsed = self._clock() - self._last_failure_at
        return max(0.0, self.config.reset_timeout_seconds - elapsed)

    async def reset(self) -> None:
        """Force the breaker closed and clear its counters."""
        changes: list[CircuitStateChange] = []
        async with self._lock:
            if self._state != CircuitState.CLOSED:
                changes.append(self._transition_to(CircuitState.CLOSED))
            self._failure_count = 0
            self._success_count = 0
            self._last_failure_at = None
            self._last_failure_time = None
            self._half_open_in_flight = 0

        await self._notify(changes)

    def get_status(self) -> dict[str, Any]:
        """Snapshot of the breaker for status reports."""
        return {
            "name": self.name,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "success_count": self._success_count,
            "failure_threshold": self.config.failure_threshold,
            "success_threshold": self.config.success_threshold,
            "reset_timeout_seconds": self.config.reset_timeout_seconds,
            "half_open_max_calls": self.config.half_open_max_calls,
            "last_failure_at": (
                self._last_failure_time.isoformat() if self._last_failure_time else None
            ),
            "retry_after_seconds": round(self._remaining_timeout(), 3),
        }
