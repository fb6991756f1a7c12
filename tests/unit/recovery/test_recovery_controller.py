"""Unit tests for RecoveryController."""

import pytest

from orchestra_core.errors import (
    CircuitOpenError,
    RetryExhaustedError,
    StrategyNotFoundError,
)
from orchestra_core.recovery import (
    CircuitBreakerConfig,
    RecoveryController,
    StrategyOptions,
)
from orchestra_core.types import CircuitState, StrategyName


class EchoStrategy:
    """Custom strategy returning the action result tagged."""

    async def execute(self, action, options):
        return f"echo:{action()}"


class TestStrategyRegistry:
    """Tests for strategy registration and lookup."""

    def test_builtin_strategies(self, recovery: RecoveryController):
        assert set(recovery.list_strategies()) == {name.value for name in StrategyName}

    @pytest.mark.asyncio
    async def test_custom_strategy(self, recovery: RecoveryController):
        """Test registering and running a custom strategy."""
        recovery.register_strategy("echo", EchoStrategy())
        assert await recovery.execute_with_strategy(lambda: 1, "echo") == "echo:1"

    @pytest.mark.asyncio
    async def test_unknown_strategy(self, recovery: RecoveryController):
        """Test STRATEGY_NOT_FOUND lists the available names."""
        with pytest.raises(StrategyNotFoundError) as exc_info:
            await recovery.execute_with_strategy(lambda: 1, "teleport")
        assert "exponential-backoff" in exc_info.value.detail


class TestExecuteWithStrategy:
    """Tests for running actions and recording outcomes."""

    @pytest.mark.asyncio
    async def test_default_options_used(self, recovery: RecoveryController, fake_sleep):
        """Test that controller defaults apply when no options are passed."""
        calls = {"count": 0}

        def flaky():
            calls["count"] += 1
            if calls["count"] < 3:
                raise ConnectionError("retry me")
            return "done"

        assert await recovery.execute_with_strategy(flaky) == "done"
        assert fake_sleep.delays == pytest.approx([0.1, 0.2])

    @pytest.mark.asyncio
    async def test_error_log_records_outcomes(self, recovery: RecoveryController):
        """Test newest-first error log entries with error kinds."""

        def broken():
            raise ConnectionError("refused")

        await recovery.execute_with_strategy(lambda: 1, "timeout", StrategyOptions(action_name="ok"))
        with pytest.raises(RetryExhaustedError):
            await recovery.execute_with_strategy(
                broken, options=StrategyOptions(max_retries=1, jitter=False, action_name="db")
            )

        newest, oldest = recovery.get_error_log()
        assert newest.success is False
        assert newest.action_name == "db"
        assert newest.error_kind == "RETRY_EXHAUSTED"
        assert oldest.success is True
        assert oldest.id < newest.id
        assert newest.to_dict()["strategy"] == "exponential-backoff"

    @pytest.mark.asyncio
    async def test_error_log_is_bounded(self, fake_sleep):
        """Test that only the newest entries are retained."""
        controller = RecoveryController(error_log_size=2, sleep=fake_sleep)
        for i in range(4):
            await controller.execute_with_strategy(lambda: i, "timeout")

        entries = controller.get_error_log()
        assert [e.id for e in entries] == [4, 3]
        controller.clear_error_log()
        assert controller.get_error_log() == []

    @pytest.mark.asyncio
    async def test_error_stats(self, recovery: RecoveryController):
        """Test aggregate statistics."""
        assert recovery.get_error_stats()["success_rate"] == 100.0

        def broken():
            raise KeyError("x")

        await recovery.execute_with_strategy(lambda: 1, "fallback", StrategyOptions(action_name="a"))
        with pytest.raises(KeyError):
            await recovery.execute_with_strategy(broken, "fallback", StrategyOptions(action_name="b"))

        stats = recovery.get_error_stats()
        assert stats["total_errors"] == 1
        assert stats["total_successes"] == 1
        assert stats["success_rate"] == 50.0
        assert stats["by_strategy"] == {"fallback": {"successes": 1, "errors": 1}}
        assert stats["by_error_kind"] == {"KeyError": 1}
        assert stats["errors_by_action"]["b"] == {"count": 1, "strategies": {"fallback": 1}}


class TestCircuitBreakers:
    """Tests for controller-managed circuit breakers."""

    @pytest.mark.asyncio
    async def test_circuit_breaker_strategy_creates_breaker(
        self, fake_sleep, fake_clock
    ):
        """Test that the strategy creates breakers on demand with defaults."""
        controller = RecoveryController(
            breaker_defaults=CircuitBreakerConfig(failure_threshold=2),
            sleep=fake_sleep,
            clock=fake_clock,
        )
        options = StrategyOptions(circuit_breaker="inventory")

        def broken():
            raise ConnectionError("down")

        for _ in range(2):
            with pytest.raises(ConnectionError):
                await controller.execute_with_strategy(broken, "circuit-breaker", options)
        with pytest.raises(CircuitOpenError):
            await controller.execute_with_strategy(broken, "circuit-breaker", options)

        status = controller.get_circuit_breaker_status("inventory")
        assert status["state"] == "open"
        assert status["failure_threshold"] == 2
        assert controller.list_circuit_breakers() == ["inventory"]
        assert controller.get_error_stats()["by_error_kind"]["CIRCUIT_OPEN"] == 1

    @pytest.mark.asyncio
    async def test_state_change_listeners(self, recovery: RecoveryController):
        """Test controller-wide transition listeners and reset."""
        changes = []
        recovery.on_state_change(changes.append)
        breaker = recovery.create_circuit_breaker("mail", CircuitBreakerConfig(failure_threshold=1))

        async def broken():
            raise ConnectionError("down")

        with pytest.raises(ConnectionError):
            await breaker.execute(broken)
        assert await recovery.reset_circuit_breaker("mail") is True
        assert await recovery.reset_circuit_breaker("unknown") is False

        assert [c.to_state for c in changes] == [CircuitState.OPEN, CircuitState.CLOSED]

    def test_unknown_breaker_status(self, recovery: RecoveryController):
        assert recovery.get_circuit_breaker_status("nope") is None
        assert recovery.get_circuit_breaker("nope") is None
