"""Unit tests for OrchestrationContext wiring."""

import io
import json
from pathlib import Path

import pytest

from orchestra_core import OrchestrationContext
from orchestra_core.config import OrchestraConfig
from orchestra_core.errors import ConfigError
from orchestra_core.recovery import CircuitBreakerConfig, StrategyOptions
from orchestra_core.telemetry import get_telemetry
from orchestra_core.types import ExecutionStatus, LogFormat, LogLevel


class Notifier:
    def run(self, task, context):
        return f"notified: {task}"


def _config(workflows_dir: Path) -> OrchestraConfig:
    config = OrchestraConfig()
    config.logging.format = LogFormat.JSON
    config.workflows.directory = str(workflows_dir)
    config.telemetry.metrics.prometheus_enabled = False
    config.recovery.retry.jitter = False
    config.recovery.retry.initial_delay_seconds = 0.001
    return config


ACTIONS = {
    "validate_order": lambda ctx: {"valid": True},
    "charge_card": lambda ctx: {"charged": ctx.context["amount"]},
    "fetch_metrics": lambda ctx: {"rows": 0},
    "summarize": lambda ctx: "summary",
}


class TestOrchestrationContext:
    """Tests for initialization and the public surface."""

    @pytest.mark.asyncio
    async def test_requires_initialize(self):
        context = OrchestrationContext(config=OrchestraConfig())
        with pytest.raises(RuntimeError, match="not initialized"):
            context.get_stats()

    @pytest.mark.asyncio
    async def test_initialize_wires_components(self, workflows_dir: Path):
        """Test that startup loads workflows and sets up telemetry."""
        output = io.StringIO()
        async with OrchestrationContext(
            config=_config(workflows_dir),
            log_output=output,
            actions=ACTIONS,
            agents={"notifier": Notifier()},
        ) as context:
            assert context.initialized
            assert len(context.workflow_registry) == 2
            assert get_telemetry()["metrics"] is not None

            execution = await context.execute_workflow("order-pipeline", {"amount": 12})

            assert execution.status == ExecutionStatus.COMPLETED
            assert execution.results["charge"] == {"charged": 12}
            assert execution.results["notify"].startswith("notified: Tell the customer")
            assert context.get_execution(execution.execution_id) is execution
            assert context.get_workflow_stats("order-pipeline").completed == 1
            assert context.get_execution_history("order-pipeline") == [execution]

            types = [e.type for e in context.get_event_history("workflow:*")]
            assert types[0] == "workflow:complete"
            assert types[-1] == "workflow:start"

        assert not context.initialized
        messages = [json.loads(line)["message"] for line in output.getvalue().splitlines()]
        assert "Orchestration context initialized" in messages

    @pytest.mark.asyncio
    async def test_skips_missing_workflow_directory(self, tmp_path: Path):
        context = OrchestrationContext(config=_config(tmp_path / "absent"), log_output=io.StringIO())
        await context.initialize()
        await context.initialize()
        assert len(context.workflow_registry) == 0
        await context.shutdown()

    @pytest.mark.asyncio
    async def test_loads_config_file(self, tmp_path: Path):
        """Test building from a YAML config file."""
        path = tmp_path / "orchestra-config.yaml"
        path.write_text(
            "workflows:\n  load_on_startup: false\n"
            "execution:\n  max_history: 5\n"
            "telemetry:\n  enabled: false\n"
        )
        async with OrchestrationContext(config_path=str(path), log_output=io.StringIO()) as context:
            assert context.config.execution.max_history == 5
            assert context.config_loader.config_path == path
            assert get_telemetry()["metrics"] is None

    @pytest.mark.asyncio
    async def test_otel_environment_overrides(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("OTEL_SERVICE_NAME", "checkout")
        async with OrchestrationContext(
            config=_config(tmp_path), log_output=io.StringIO()
        ) as context:
            assert context.initialized
            assert get_telemetry()["config"].service_name == "checkout"

    @pytest.mark.asyncio
    async def test_register_yaml_and_strategies(self, tmp_path: Path):
        """Test YAML registration, custom strategies and error stats."""
        async with OrchestrationContext(
            config=_config(tmp_path), log_output=io.StringIO(), actions=ACTIONS
        ) as context:
            workflow = context.register_workflow_yaml(
                "id: report\nerror_handler: fallback\nsteps:\n"
                "  - id: fetch\n    action: fetch_metrics\n"
                "  - id: summarize\n    action: summarize\n"
                "    condition: \"results.fetch.rows > 0\"\n"
            )
            assert workflow.id == "report"

            execution = await context.execute_workflow("report")
            assert execution.steps["summarize"].skip_reason is not None

            class Doubling:
                async def execute(self, action, options):
                    return action() * 2

            context.register_strategy("doubling", Doubling())
            assert await context.execute_with_strategy(lambda: 21, "doubling") == 42
            assert context.get_error_stats()["by_strategy"]["doubling"]["successes"] == 1
            assert context.get_error_log(limit=1)[0].strategy == "doubling"

    @pytest.mark.asyncio
    async def test_circuit_transitions_are_published(self, tmp_path: Path):
        """Test that breaker state changes reach the event bus."""
        async with OrchestrationContext(config=_config(tmp_path), log_output=io.StringIO()) as context:
            seen = []
            context.subscribe("circuit:*", seen.append)
            context.recovery.create_circuit_breaker(
                "payments", CircuitBreakerConfig(failure_threshold=1)
            )

            def broken():
                raise ConnectionError("down")

            with pytest.raises(ConnectionError):
                await context.execute_with_strategy(
                    broken,
                    "circuit-breaker",
                    StrategyOptions(circuit_breaker="payments"),
                )

            (event,) = seen
            assert event.type == "circuit:state-change"
            assert event.data["name"] == "payments"
            assert event.data["from"] == "closed"
            assert event.data["to"] == "open"
            assert context.get_circuit_breaker_status("payments")["state"] == "open"

    @pytest.mark.asyncio
    async def test_event_surface(self, tmp_path: Path):
        async with OrchestrationContext(config=_config(tmp_path), log_output=io.StringIO()) as context:
            unsubscribe = context.subscribe("job:*", lambda e: 1 / 0)
            await context.publish("job:done", {"id": 1})
            unsubscribe()

            assert len(context.get_dead_letter_queue()) == 1
            assert context.get_stats()["total_events"] == 1

    @pytest.mark.asyncio
    async def test_reload_applies_logging_section(self, tmp_path: Path):
        """Test that reloading the config file reconfigures the logger."""
        path = tmp_path / "orchestra-config.yaml"
        path.write_text(
            "logging:\n  level: INFO\n"
            "workflows:\n  load_on_startup: false\n"
            "telemetry:\n  enabled: false\n"
        )
        async with OrchestrationContext(config_path=str(path), log_output=io.StringIO()) as context:
            assert context.logger.config.level == LogLevel.INFO

            path.write_text(
                "logging:\n  level: ERROR\n  components:\n    events: false\n"
                "workflows:\n  load_on_startup: false\n"
                "telemetry:\n  enabled: false\n"
            )
            config = context.reload_config()

            assert config is context.config
            assert context.logger.config.level == LogLevel.ERROR
            assert context.logger.config.components["events"] is False

    @pytest.mark.asyncio
    async def test_reload_requires_config_file(self, tmp_path: Path):
        async with OrchestrationContext(config=_config(tmp_path), log_output=io.StringIO()) as context:
            with pytest.raises(ConfigError):
                context.reload_config()

    @pytest.mark.asyncio
    async def test_builtin_catalog_runs(self, tmp_path: Path):
        """Test loading the bundled catalog and running a conditional workflow."""
        config = _config(tmp_path)
        config.workflows.load_builtin = True
        agents = {
            name: Notifier()
            for name in ("researcher", "analyst", "writer", "coder", "solver", "support")
        }
        async with OrchestrationContext(
            config=config, log_output=io.StringIO(), agents=agents
        ) as context:
            assert len(context.workflow_registry) == 3

            execution = await context.execute_workflow(
                "support-escalation", {"issue_severity": "low"}
            )

            assert execution.status == ExecutionStatus.COMPLETED
            assert execution.steps["investigate"].skip_reason is not None
            assert execution.results["solution"] == "notified: Develop solution"
