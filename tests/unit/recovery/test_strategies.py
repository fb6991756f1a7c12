"""Unit tests for the built-in recovery strategies."""

import asyncio
import random

import pytest

from orchestra_core.errors import (
    FallbackFailedError,
    RetryExhaustedError,
    StepTimeoutError,
)
from orchestra_core.recovery import (
    ExponentialBackoffStrategy,
    FallbackStrategy,
    LinearBackoffStrategy,
    RetryPhase,
    RetryState,
    RetryStrategy,
    StrategyOptions,
    TimeoutStrategy,
    run_with_timeout,
)
from tests.mocks import FakeSleep


def counting_failures(failures: int, value: str = "ok"):
    """Zero-argument action failing ``failures`` times."""
    calls = {"count": 0}

    def action():
        calls["count"] += 1
        if calls["count"] <= failures:
            raise ConnectionError(f"failure {calls['count']}")
        return value

    return action, calls


class TestRetryState:
    """Tests for the retry state machine."""

    def test_success_path(self):
        state = RetryState(max_attempts=3)
        state.begin_attempt()
        state.record_success()
        assert state.phase == RetryPhase.SUCCEEDED
        assert state.attempt == 1

    def test_exhaustion(self):
        """Test READY -> RUNNING -> WAITING -> RUNNING -> EXHAUSTED."""
        state = RetryState(max_attempts=2)
        state.begin_attempt()
        state.record_failure(ValueError("a"), 0.1)
        assert state.should_retry
        assert state.next_delay == 0.1

        state.begin_attempt()
        state.record_failure(ValueError("b"), 0.2)
        assert state.phase == RetryPhase.EXHAUSTED
        assert not state.should_retry
        assert state.delays == [0.1]
        assert str(state.last_error) == "b"

    def test_cannot_begin_after_exhaustion(self):
        """Test that terminal phases reject new attempts."""
        state = RetryState(max_attempts=1)
        state.begin_attempt()
        state.record_failure(ValueError("x"), 0.0)
        with pytest.raises(RuntimeError):
            state.begin_attempt()


class TestRetryStrategyBase:
    """Tests for subclassing RetryStrategy."""

    def test_base_class_is_abstract(self):
        with pytest.raises(TypeError):
            RetryStrategy()

    @pytest.mark.asyncio
    async def test_subclass_supplies_delays(self):
        """Test that a subclass only needs compute_delay."""

        class FixedDelay(RetryStrategy):
            name = "fixed"

            def compute_delay(self, attempt, options):
                return 0.05

        sleep = FakeSleep()
        action, calls = counting_failures(2)

        result = await FixedDelay(sleep=sleep).execute(action, StrategyOptions(max_retries=2))

        assert result == "ok"
        assert calls["count"] == 3
        assert sleep.delays == [0.05, 0.05]


class TestExponentialBackoff:
    """Tests for ExponentialBackoffStrategy."""

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        """Test delays double without jitter."""
        sleep = FakeSleep()
        strategy = ExponentialBackoffStrategy(sleep=sleep)
        action, calls = counting_failures(3)

        result = await strategy.execute(
            action, StrategyOptions(max_retries=3, initial_delay_seconds=0.1, jitter=False)
        )

        assert result == "ok"
        assert calls["count"] == 4
        assert sleep.delays == pytest.approx([0.1, 0.2, 0.4])

    @pytest.mark.asyncio
    async def test_exhaustion_wraps_last_error(self):
        """Test RetryExhaustedError after max_retries + 1 attempts."""
        strategy = ExponentialBackoffStrategy(sleep=FakeSleep())
        action, calls = counting_failures(10)

        with pytest.raises(RetryExhaustedError) as exc_info:
            await strategy.execute(
                action, StrategyOptions(max_retries=2, jitter=False, action_name="fetch")
            )

        assert calls["count"] == 3
        error = exc_info.value
        assert isinstance(error.cause, ConnectionError)
        assert str(error.cause) == "failure 3"
        assert error.message == "Action 'fetch' failed after 3 attempts"

    def test_delay_is_capped(self):
        """Test that max_delay_seconds bounds the delay."""
        strategy = ExponentialBackoffStrategy()
        options = StrategyOptions(initial_delay_seconds=1, max_delay_seconds=5, jitter=False)
        assert strategy.compute_delay(10, options) == 5

    def test_jitter_bounds(self):
        """Test that jitter adds at most 10%."""
        strategy = ExponentialBackoffStrategy(rng=random.Random(7))
        options = StrategyOptions(initial_delay_seconds=1, jitter=True)
        for attempt in range(1, 5):
            base = 2 ** (attempt - 1)
            delay = strategy.compute_delay(attempt, options)
            assert base <= delay <= base * 1.1 + 1e-9

    @pytest.mark.asyncio
    async def test_zero_retries_runs_once(self):
        """Test max_retries=0."""
        strategy = ExponentialBackoffStrategy(sleep=FakeSleep())
        action, calls = counting_failures(1)
        with pytest.raises(RetryExhaustedError):
            await strategy.execute(action, StrategyOptions(max_retries=0))
        assert calls["count"] == 1


class TestLinearBackoff:
    """Tests for LinearBackoffStrategy."""

    @pytest.mark.asyncio
    async def test_linear_delays(self):
        """Test increment * attempt delays."""
        sleep = FakeSleep()
        strategy = LinearBackoffStrategy(sleep=sleep)
        action, _ = counting_failures(3)

        await strategy.execute(
            action,
            StrategyOptions(max_retries=3, initial_delay_seconds=0.5, delay_increment_seconds=0.25),
        )

        assert sleep.delays == pytest.approx([0.25, 0.5, 0.75])

    def test_increment_defaults_to_initial_delay(self):
        strategy = LinearBackoffStrategy()
        options = StrategyOptions(initial_delay_seconds=0.3)
        assert strategy.compute_delay(2, options) == pytest.approx(0.6)


class TestFallback:
    """Tests for FallbackStrategy."""

    @pytest.mark.asyncio
    async def test_primary_success_skips_fallback(self):
        strategy = FallbackStrategy()
        fallback_calls = []
        result = await strategy.execute(
            lambda: "primary",
            StrategyOptions(fallback=lambda: fallback_calls.append(1)),
        )
        assert result == "primary"
        assert fallback_calls == []

    @pytest.mark.asyncio
    async def test_fallback_used_on_failure(self):
        """Test that the fallback result is returned."""

        async def fallback():
            return "cached"

        def primary():
            raise ConnectionError("down")

        result = await FallbackStrategy().execute(primary, StrategyOptions(fallback=fallback))
        assert result == "cached"

    @pytest.mark.asyncio
    async def test_both_fail(self):
        """Test that the combined error names both failures."""

        def primary():
            raise ConnectionError("primary down")

        def fallback():
            raise LookupError("cache miss")

        with pytest.raises(FallbackFailedError) as exc_info:
            await FallbackStrategy().execute(
                primary, StrategyOptions(fallback=fallback, action_name="lookup")
            )

        error = exc_info.value
        assert isinstance(error.primary_error, ConnectionError)
        assert isinstance(error.cause, LookupError)
        assert "primary down" in error.detail
        assert "cache miss" in error.detail

    @pytest.mark.asyncio
    async def test_no_fallback_reraises(self):
        """Test that without a fallback the primary error propagates."""

        def primary():
            raise ConnectionError("down")

        with pytest.raises(ConnectionError):
            await FallbackStrategy().execute(primary, StrategyOptions())


class TestTimeout:
    """Tests for TimeoutStrategy and run_with_timeout."""

    @pytest.mark.asyncio
    async def test_timeout_raises_step_timeout(self):
        async def slow():
            await asyncio.sleep(1)

        with pytest.raises(StepTimeoutError) as exc_info:
            await TimeoutStrategy().execute(
                slow, StrategyOptions(timeout_seconds=0.01, action_name="slow")
            )
        assert exc_info.value.message == "Action 'slow' timed out after 0.01s"

    @pytest.mark.asyncio
    async def test_fast_action_returns(self):
        async def fast():
            return 5

        assert await TimeoutStrategy().execute(fast, StrategyOptions(timeout_seconds=1)) == 5

    @pytest.mark.asyncio
    async def test_action_timeout_error_is_not_rewrapped(self):
        """Test that a TimeoutError raised by the action itself propagates."""

        async def raises_timeout():
            raise TimeoutError("upstream")

        with pytest.raises(TimeoutError, match="upstream"):
            await run_with_timeout(raises_timeout, 1, "upstream")

    @pytest.mark.asyncio
    async def test_retry_honors_per_attempt_timeout(self):
        """Test that each retry attempt is bounded."""
        calls = {"count": 0}

        async def slow_then_fast():
            calls["count"] += 1
            if calls["count"] == 1:
                await asyncio.sleep(1)
            return "fast"

        strategy = ExponentialBackoffStrategy(sleep=FakeSleep())
        result = await strategy.execute(
            slow_then_fast, StrategyOptions(max_retries=1, timeout_seconds=0.01, jitter=False)
        )
        assert result == "fast"
