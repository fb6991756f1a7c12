"""Unit tests for CircuitBreaker."""

import asyncio

import pytest

from orchestra_core.errors import CircuitOpenError
from orchestra_core.recovery import CircuitBreaker, CircuitBreakerConfig
from orchestra_core.types import CircuitState
from tests.mocks import FakeClock


async def _fail():
    raise ConnectionError("down")


async def _ok():
    return "ok"


class TestCircuitBreakerConfig:
    """Tests for threshold validation."""

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"failure_threshold": 0},
            {"success_threshold": 0},
            {"half_open_max_calls": 0},
            {"reset_timeout_seconds": -1},
        ],
    )
    def test_invalid_config(self, kwargs):
        with pytest.raises(ValueError):
            CircuitBreakerConfig(**kwargs)


class TestCircuitBreaker:
    """Tests for the closed/open/half-open state machine."""

    def setup_method(self):
        self.clock = FakeClock()
        self.changes = []
        self.breaker = CircuitBreaker(
            "payments",
            CircuitBreakerConfig(failure_threshold=3, reset_timeout_seconds=10),
            clock=self.clock,
        )
        self.breaker.add_listener(self.changes.append)

    async def _trip(self):
        for _ in range(3):
            with pytest.raises(ConnectionError):
                await self.breaker.execute(_fail)

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self):
        """Test that consecutive failures open the breaker."""
        await self._trip()

        assert self.breaker.state == CircuitState.OPEN
        assert self.breaker.failure_count == 3
        (change,) = self.changes
        assert change.from_state == CircuitState.CLOSED
        assert change.to_state == CircuitState.OPEN
        assert change.to_dict()["to"] == "open"

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self):
        """Test that failures must be consecutive."""
        for _ in range(2):
            with pytest.raises(ConnectionError):
                await self.breaker.execute(_fail)
        await self.breaker.execute(_ok)
        with pytest.raises(ConnectionError):
            await self.breaker.execute(_fail)

        assert self.breaker.state == CircuitState.CLOSED
        assert self.breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_open_rejects_without_running(self):
        """Test that open breakers reject with retry_after."""
        await self._trip()
        calls = []

        async def tracked():
            calls.append(1)

        self.clock.advance(4)
        with pytest.raises(CircuitOpenError) as exc_info:
            await self.breaker.execute(tracked)

        assert calls == []
        assert "6.0" in exc_info.value.suggestion
        assert self.breaker.get_status()["retry_after_seconds"] == 6.0

    @pytest.mark.asyncio
    async def test_half_open_success_closes(self):
        """Test open -> half-open -> closed after the reset timeout."""
        await self._trip()
        self.clock.advance(10)

        assert await self.breaker.execute(_ok) == "ok"

        assert self.breaker.state == CircuitState.CLOSED
        assert [(c.from_state, c.to_state) for c in self.changes] == [
            (CircuitState.CLOSED, CircuitState.OPEN),
            (CircuitState.OPEN, CircuitState.HALF_OPEN),
            (CircuitState.HALF_OPEN, CircuitState.CLOSED),
        ]
        assert self.breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_half_open_failure_reopens(self):
        """Test that a failed trial call reopens the breaker."""
        await self._trip()
        self.clock.advance(10)

        with pytest.raises(ConnectionError):
            await self.breaker.execute(_fail)

        assert self.breaker.state == CircuitState.OPEN
        with pytest.raises(CircuitOpenError):
            await self.breaker.execute(_ok)

    @pytest.mark.asyncio
    async def test_half_open_limits_concurrent_trials(self):
        """Test half_open_max_calls."""
        await self._trip()
        self.clock.advance(10)
        release = asyncio.Event()

        async def slow_ok():
            await release.wait()
            return "ok"

        trial = asyncio.create_task(self.breaker.execute(slow_ok))
        await asyncio.sleep(0)
        assert self.breaker.state == CircuitState.HALF_OPEN

        with pytest.raises(CircuitOpenError):
            await self.breaker.execute(_ok)

        release.set()
        assert await trial == "ok"
        assert self.breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_success_threshold(self):
        """Test that several trial successes can be required."""
        breaker = CircuitBreaker(
            "search",
            CircuitBreakerConfig(failure_threshold=1, success_threshold=2, reset_timeout_seconds=1),
            clock=self.clock,
        )
        with pytest.raises(ConnectionError):
            await breaker.execute(_fail)
        self.clock.advance(1)

        await breaker.execute(_ok)
        assert breaker.state == CircuitState.HALF_OPEN
        await breaker.execute(_ok)
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_async_and_failing_listeners(self):
        """Test that async listeners are awaited and failures are contained."""
        seen = []

        async def async_listener(change):
            seen.append(change.to_state)

        def broken(change):
            raise RuntimeError("listener failed")

        self.breaker.add_listener(broken)
        self.breaker.add_listener(async_listener)
        await self._trip()

        assert seen == [CircuitState.OPEN]

    @pytest.mark.asyncio
    async def test_reset(self):
        """Test forcing the breaker closed."""
        await self._trip()
        await self.breaker.reset()

        assert self.breaker.state == CircuitState.CLOSED
        assert self.breaker.get_status()["last_failure_at"] is None
        assert self.changes[-1].to_state == CircuitState.CLOSED
        assert await self.breaker.execute(_ok) == "ok"
