"""Unit tests for the Orchestra logger."""

import io
import json

from orchestra_core.errors import create_error
from orchestra_core.logging import RESET, LogConfig, OrchestraLogger
from orchestra_core.types import LogFormat, LogLevel


def _json_lines(output: io.StringIO) -> list[dict]:
    return [json.loads(line) for line in output.getvalue().splitlines() if line]


class TestLogConfig:
    """Tests for LogConfig defaults."""

    def test_default_components(self):
        """Test that all components are enabled by default."""
        config = LogConfig()
        assert config.components == {
            "workflow": True,
            "step": True,
            "recovery": True,
            "events": True,
        }


class TestOrchestraLogger:
    """Tests for level filtering and output formats."""

    def test_json_output(self):
        """Test that JSON lines carry level, component and context."""
        output = io.StringIO()
        logger = OrchestraLogger(LogConfig(format=LogFormat.JSON, output=output))
        logger._log(LogLevel.INFO, "workflow", "hello", {"workflow_id": "wf"})

        (entry,) = _json_lines(output)
        assert entry["level"] == "INFO"
        assert entry["component"] == "workflow"
        assert entry["message"] == "hello"
        assert entry["workflow_id"] == "wf"
        assert entry["timestamp"].endswith("Z")

    def test_level_filtering(self):
        """Test that messages below the configured level are dropped."""
        output = io.StringIO()
        logger = OrchestraLogger(LogConfig(level=LogLevel.WARN, format=LogFormat.JSON, output=output))
        logger._log(LogLevel.INFO, "workflow", "dropped")
        logger._log(LogLevel.ERROR, "workflow", "kept")

        assert [e["message"] for e in _json_lines(output)] == ["kept"]

    def test_component_switch(self):
        """Test that disabled components are silent."""
        output = io.StringIO()
        logger = OrchestraLogger(
            LogConfig(
                format=LogFormat.JSON,
                output=output,
                components={"workflow": True, "step": False},
            )
        )
        logger._log(LogLevel.INFO, "step", "dropped")
        logger._log(LogLevel.INFO, "workflow", "kept")

        assert [e["message"] for e in _json_lines(output)] == ["kept"]

    def test_colored_output_truncates_context(self):
        """Test colored format with context truncation."""
        output = io.StringIO()
        logger = OrchestraLogger(LogConfig(truncate_at=10, output=output))
        logger._log(LogLevel.INFO, "events", "published", {"payload": "x" * 50})

        line = output.getvalue()
        assert "[EVENTS]" in line
        assert RESET in line
        assert "..." in line
        assert "x" * 50 not in line


class TestScopedLoggers:
    """Tests for workflow, step and recovery loggers."""

    def setup_method(self):
        self.output = io.StringIO()
        self.logger = OrchestraLogger(
            LogConfig(level=LogLevel.DEBUG, format=LogFormat.JSON, output=self.output)
        )

    def test_step_logger_inherits_execution_context(self):
        """Test that step entries carry workflow and execution ids."""
        wf_logger = self.logger.workflow("orders", "exec-1")
        wf_logger.started("2.0.0")
        wf_logger.step("charge").started("payments.charge", "exponential-backoff")
        wf_logger.step("charge").completed(1500, {"id": 7})

        started, step_started, step_completed = _json_lines(self.output)
        assert started["event"] == "workflow_started"
        assert started["version"] == "2.0.0"
        assert step_started["step_id"] == "charge"
        assert step_started["execution_id"] == "exec-1"
        assert step_started["strategy"] == "exponential-backoff"
        assert step_completed["duration_ms"] == 1500
        assert step_completed["output"] == "{'id': 7}"

    def test_failures_log_at_error(self):
        """Test that failure entries use the ERROR level and error type."""
        error = create_error("WORKFLOW_TIMEOUT", workflow_id="orders", timeout_seconds=5)
        self.logger.workflow("orders", "exec-1").failed(error, 5000)

        (entry,) = _json_lines(self.output)
        assert entry["level"] == "ERROR"
        assert entry["error_type"] == "WorkflowTimeoutError"

    def test_recovery_logger_open_transition_warns(self):
        """Test that opening a circuit logs a warning."""
        recovery = self.logger.recovery()
        recovery.circuit_transition("payments", "closed", "open")
        recovery.circuit_transition("payments", "open", "half-open")

        opened, half_open = _json_lines(self.output)
        assert opened["level"] == "WARN"
        assert opened["breaker"] == "payments"
        assert half_open["level"] == "INFO"

    def test_events_logger(self):
        """Test handler failure logging."""
        self.logger.events().handler_failed("order:created", "order:*", RuntimeError("boom"))

        (entry,) = _json_lines(self.output)
        assert entry["component"] == "events"
        assert entry["pattern"] == "order:*"
