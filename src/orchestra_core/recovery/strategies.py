"""Built-in recovery strategies."""

import asyncio
import random
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from orchestra_core.errors import FallbackFailedError, create_error
from orchestra_core.types import StrategyName

from .circuit_breaker import CircuitBreaker
from .invoke import describe_action, run_with_timeout
from .types import RecoverableAction, RetryState, Sleep, StrategyOptions

JITTER_RATIO = 0.1
DEFAULT_TIMEOUT_SECONDS = 5.0


class RetryStrategy(ABC):
    """Base for strategies that retry a failing action after a delay.

    Subclasses define ``compute_delay``; the retry loop itself is driven by
    a RetryState machine.
    """

    name: str = "retry"

    def __init__(self, sleep: Sleep = asyncio.sleep, logger: Any = None):
        """Initialize retry strategy.

        Args:
            sleep: Awaitable sleep used between attempts
            logger: Optional RecoveryLogger instance
        """
        self._sleep = sleep
        self._logger = logger

    @abstractmethod
    def compute_delay(self, attempt: int, options: StrategyOptions) -> float:
        """Delay after the given failed attempt (1-based)."""

    async def execute(self, action: RecoverableAction, options: StrategyOptions) -> Any:
        """Run the action, retrying up to ``options.max_retries`` times.

        Raises:
            RetryExhaustedError: After the last attempt fails; its cause is
                the last attempt's error
        """
        action_name = options.action_name or describe_action(action)
        state = RetryState(max_attempts=options.max_retries + 1)

        while True:
            state.begin_attempt()
            try:
                result = await run_with_timeout(action, options.timeout_seconds, action_name)
            except Exception as e:
                state.record_failure(e, self.compute_delay(state.attempt, options))
                if not state.should_retry:
                    break
                if self._logger:
                    self._logger.retrying(
                        self.name,
                        action_name,
                        state.attempt,
                        state.max_attempts,
                        state.next_delay,
                        e,
                    )
                await self._sleep(state.next_delay)
                continue

            state.record_success()
            return result

        if self._logger:
            self._logger.exhausted(self.name, action_name, state.attempt)

        last_error = state.last_error
        raise create_error(
            "RETRY_EXHAUSTED",
            action_name=action_name,
            attempts=state.attempt,
            last_error=str(last_error) or type(last_error).__name__,
            cause=last_error,
        ) from last_error


class ExponentialBackoffStrategy(RetryStrategy):
    """Retry with ``initial_delay * 2**(attempt - 1)`` plus up to 10% jitter."""

    name = StrategyName.EXPONENTIAL_BACKOFF.value

    def __init__(
        self,
        sleep: Sleep = asyncio.sleep,
        logger: Any = None,
        rng: random.Random | None = None,
    ):
        super().__init__(sleep=sleep, logger=logger)
        self._rng = rng or random.Random()

    def compute_delay(self, attempt: int, options: StrategyOptions) -> float:
        delay = options.initial_delay_seconds * (2 ** (attempt - 1))
        delay = min(delay, options.max_delay_seconds)
        if options.jitter:
            delay += self._rng.uniform(0, delay * JITTER_RATIO)
        return delay


class LinearBackoffStrategy(RetryStrategy):
    """Retry with ``increment * attempt``."""

    name = StrategyName.LINEAR_BACKOFF.value

    def compute_delay(self, attempt: int, options: StrategyOptions) -> float:
        return min(options.increment_seconds * attempt, options.max_delay_seconds)


class FallbackStrategy:
    """On primary failure, invoke ``options.fallback`` once."""

    name = StrategyName.FALLBACK.value

    def __init__(self, logger: Any = None):
        self._logger = logger

    async def execute(self, action: RecoverableAction, options: StrategyOptions) -> Any:
        """Run the primary action, falling back once on failure.

        Raises:
            FallbackFailedError: If the fallback also fails
        """
        action_name = options.action_name or describe_action(action)
        try:
            return await run_with_timeout(action, options.timeout_seconds, action_name)
        except Exception as primary:
            if options.fallback is None:
                raise
            if self._logger:
                self._logger.fallback(action_name, primary)

            try:
                return await run_with_timeout(
                    options.fallback, options.timeout_seconds, f"{action_name}:fallback"
                )
            except Exception as secondary:
                error = create_error(
                    "FALLBACK_FAILED",
                    action_name=action_name,
                    primary_error=str(primary) or type(primary).__name__,
                    fallback_error=str(secondary) or type(secondary).__name__,
                    cause=secondary,
                )
                if isinstance(error, FallbackFailedError):
                    error.primary_error = primary
                raise error from secondary


class TimeoutStrategy:
    """Race the action against ``options.timeout_seconds``."""

    name = StrategyName.TIMEOUT.value

    async def execute(self, action: RecoverableAction, options: StrategyOptions) -> Any:
        """Run the action once under a timeout.

        Raises:
            StepTimeoutError: If the action does not finish in time
        """
        action_name = options.action_name or describe_action(action)
        timeout = options.timeout_seconds or DEFAULT_TIMEOUT_SECONDS
        return await run_with_timeout(action, timeout, action_name)


class CircuitBreakerStrategy:
    """Delegate to the breaker named by ``options.circuit_breaker``.

    Falls back to the action name when no breaker is named; missing breakers
    are created with the controller's defaults.
    """

    name = StrategyName.CIRCUIT_BREAKER.value

    def __init__(self, get_breaker: Callable[[str], CircuitBreaker]):
        self._get_breaker = get_breaker

    async def execute(self, action: RecoverableAction, options: StrategyOptions) -> Any:
        action_name = options.action_name or describe_action(action)
        breaker = self._get_breaker(options.circuit_breaker or action_name)

        async def guarded() -> Any:
            return await run_with_timeout(action, options.timeout_seconds, action_name)

        return await breaker.execute(guarded)
