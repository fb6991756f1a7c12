"""Orchestra Application - wires all orchestration components together.

An OrchestrationContext owns one WorkflowEngine, one RecoveryController
and one EventBus, built from an OrchestraConfig. Embedders create as many
contexts as they need; nothing here is a module-level singleton apart from
the telemetry providers.
"""

import os
import sys
from collections.abc import Mapping
from dataclasses import replace
from pathlib import Path
from typing import Any, TextIO

from orchestra_core.config import ConfigLoader, OrchestraConfig, TelemetryConfig
from orchestra_core.engine import Execution, WorkflowEngine, WorkflowStats
from orchestra_core.errors import ErrorFactory, ErrorRegistry, create_error
from orchestra_core.events import DeadLetter, DeliveryOutcome, Event, EventBus, EventHandler
from orchestra_core.logging import LogConfig, OrchestraLogger
from orchestra_core.recovery import (
    CircuitBreakerConfig,
    CircuitStateChange,
    ErrorLogEntry,
    RecoverableAction,
    RecoveryController,
    RecoveryStrategy,
    StrategyOptions,
)
from orchestra_core.telemetry import setup_telemetry
from orchestra_core.types import LogLevel, StrategyName
from orchestra_core.workflow import Agent, WorkflowDefinition, WorkflowRegistry


class OrchestrationContext:
    """
    Orchestra application context.

    Initialization sequence:

    1. Config loading (unless a config object is given)
    2. Logger setup
    3. Telemetry setup
    4. Error registry & factory
    5. Event bus
    6. Recovery controller (breaker transitions published to the bus)
    7. Workflow registry (optionally loads the workflows directory and
       the bundled catalog)
    8. Workflow engine
    """

    def __init__(
        self,
        config: OrchestraConfig | None = None,
        config_path: str | None = None,
        log_output: TextIO | None = None,
        actions: Mapping[str, Any] | None = None,
        agents: Mapping[str, Agent] | None = None,
    ):
        """Initialize context.

        Args:
            config: Ready configuration (skips config loading)
            config_path: Path to config file (optional)
            log_output: Output stream for logs (default: sys.stdout)
            actions: Named actions available to YAML workflows
            agents: Named agents available to YAML workflows
        """
        self._config_path = config_path
        self._log_output = log_output or sys.stdout
        self._actions = dict(actions or {})
        self._agents = dict(agents or {})
        self._initialized = False

        # Components (initialized in initialize())
        self.config_loader: ConfigLoader | None = None
        self.config: OrchestraConfig | None = config
        self.logger: OrchestraLogger | None = None
        self.error_registry: ErrorRegistry | None = None
        self.error_factory: ErrorFactory | None = None
        self.event_bus: EventBus | None = None
        self.recovery: RecoveryController | None = None
        self.workflow_registry: WorkflowRegistry | None = None
        self.workflow_engine: WorkflowEngine | None = None

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Build and wire all components. Safe to call more than once."""
        if self._initialized:
            return

        # 1. Config
        if self.config is None:
            self.config_loader = ConfigLoader()
            self.config = self.config_loader.load(self._config_path)
        config = self.config

        # 2. Logger
        self.logger = OrchestraLogger(self._log_config(config))
        if self.config_loader is not None:
            self.config_loader.on_change(self._on_config_change)

        # 3. Telemetry
        setup_telemetry(self._telemetry_config(config.telemetry))

        # 4. Error Registry & Factory
        self.error_registry = ErrorRegistry()
        self.error_factory = ErrorFactory(self.error_registry)

        # 5. Event Bus
        self.event_bus = EventBus(
            history_size=config.events.history_size,
            dead_letter_size=config.events.dead_letter_size,
            delimiter=config.events.delimiter,
            default_timeout_seconds=config.events.handler_timeout_seconds,
            logger=self.logger,
        )

        # 6. Recovery Controller
        retry = config.recovery.retry
        breaker = config.recovery.circuit_breaker
        self.recovery = RecoveryController(
            default_options=StrategyOptions(
                max_retries=retry.max_retries,
                initial_delay_seconds=retry.initial_delay_seconds,
                max_delay_seconds=retry.max_delay_seconds,
                jitter=retry.jitter,
            ),
            breaker_defaults=CircuitBreakerConfig(
                failure_threshold=breaker.failure_threshold,
                success_threshold=breaker.success_threshold,
                reset_timeout_seconds=breaker.reset_timeout_seconds,
                half_open_max_calls=breaker.half_open_max_calls,
            ),
            error_log_size=config.recovery.error_log_size,
            logger=self.logger,
        )
        self.recovery.on_state_change(self._publish_state_change)

        # 7. Workflow Registry
        self.workflow_registry = WorkflowRegistry(
            logger=self.logger,
            known_strategies=self.recovery.list_strategies,
            actions=self._actions,
            agents=self._agents,
        )
        if config.workflows.load_on_startup:
            directory = Path(config.workflows.directory)
            if directory.is_dir():
                self.workflow_registry.load_directory(directory)
        if config.workflows.load_builtin:
            self.workflow_registry.load_builtin()

        # 8. Workflow Engine
        self.workflow_engine = WorkflowEngine(
            self.workflow_registry,
            self.recovery,
            event_bus=self.event_bus,
            logger=self.logger,
            step_timeout_seconds=config.execution.step_timeout_seconds,
            max_history=config.execution.max_history,
            error_factory=self.error_factory,
        )

        self._initialized = True
        self.logger._log(
            LogLevel.INFO,
            "workflow",
            "Orchestration context initialized",
            {
                "workflows": len(self.workflow_registry),
                "strategies": self.recovery.list_strategies(),
            },
        )

    async def shutdown(self) -> None:
        """Cancel background executions and release components."""
        if not self._initialized:
            return

        if self.workflow_engine:
            await self.workflow_engine.shutdown()

        self._initialized = False

    async def __aenter__(self) -> "OrchestrationContext":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()

    def reload_config(self) -> OrchestraConfig:
        """Re-read the config file and apply the logging section.

        Only logging is hot-reloadable; the other sections take effect on
        the next context.

        Raises:
            ConfigError: If the context was not built from a config file
        """
        self._require()
        if self.config_loader is None:
            raise create_error(
                "CONFIG_INVALID", detail="Context was not built from a config file"
            )
        return self.config_loader.reload()

    def _on_config_change(self, config: OrchestraConfig) -> None:
        self.config = config
        if self.logger is not None:
            self.logger.configure(self._log_config(config))

    def _log_config(self, config: OrchestraConfig) -> LogConfig:
        return LogConfig(
            level=config.logging.level,
            format=config.logging.format,
            show_context=config.logging.options.show_context,
            truncate_at=config.logging.options.truncate_at,
            components={
                "workflow": config.logging.components.workflow,
                "step": config.logging.components.step,
                "recovery": config.logging.components.recovery,
                "events": config.logging.components.events,
            },
            output=self._log_output,
        )

    @staticmethod
    def _telemetry_config(telemetry: TelemetryConfig) -> TelemetryConfig:
        """Apply the standard OTEL_* environment overrides."""
        service_name = os.environ.get("OTEL_SERVICE_NAME", telemetry.service_name)
        otlp = telemetry.otlp
        endpoint = os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT")
        if endpoint:
            otlp = replace(otlp, enabled=True, endpoint=endpoint)
        return replace(telemetry, service_name=service_name, otlp=otlp)

    async def _publish_state_change(self, change: CircuitStateChange) -> None:
        if self.event_bus is not None:
            await self.event_bus.publish("circuit:state-change", change.to_dict())

    def _require(self) -> None:
        if not self._initialized:
            raise RuntimeError("Orchestration context not initialized")

    # ── Workflows ────────────────────────────────────────────────────

    def register_workflow(self, workflow: WorkflowDefinition, replace: bool = False) -> None:
        self._require()
        self.workflow_engine.register_workflow(workflow, replace=replace)

    def register_workflow_yaml(
        self, yaml_content: str, replace: bool = False
    ) -> WorkflowDefinition:
        """Parse, validate and register a YAML workflow definition."""
        self._require()
        return self.workflow_registry.register_from_yaml(yaml_content, replace=replace)

    async def execute_workflow(
        self, workflow_id: str, context: dict[str, Any] | None = None
    ) -> Execution:
        self._require()
        return await self.workflow_engine.execute_workflow(workflow_id, context)

    async def start_workflow(
        self, workflow_id: str, context: dict[str, Any] | None = None
    ) -> Execution:
        self._require()
        return await self.workflow_engine.start_workflow(workflow_id, context)

    def cancel_execution(self, execution_id: str) -> bool:
        self._require()
        return self.workflow_engine.cancel_execution(execution_id)

    def get_execution(self, execution_id: str) -> Execution | None:
        self._require()
        return self.workflow_engine.get_execution(execution_id)

    def get_workflow_stats(self, workflow_id: str) -> WorkflowStats:
        self._require()
        return self.workflow_engine.get_workflow_stats(workflow_id)

    def get_execution_history(
        self, workflow_id: str | None = None, limit: int = 10
    ) -> list[Execution]:
        self._require()
        return self.workflow_engine.get_execution_history(workflow_id, limit)

    # ── Recovery ─────────────────────────────────────────────────────

    def register_strategy(self, name: str, strategy: RecoveryStrategy) -> None:
        self._require()
        self.recovery.register_strategy(name, strategy)

    async def execute_with_strategy(
        self,
        action: RecoverableAction,
        strategy_name: str = StrategyName.EXPONENTIAL_BACKOFF.value,
        options: StrategyOptions | None = None,
    ) -> Any:
        self._require()
        return await self.recovery.execute_with_strategy(action, strategy_name, options)

    def get_circuit_breaker_status(self, name: str) -> dict[str, Any] | None:
        self._require()
        return self.recovery.get_circuit_breaker_status(name)

    def get_error_stats(self) -> dict[str, Any]:
        self._require()
        return self.recovery.get_error_stats()

    def get_error_log(self, limit: int = 50) -> list[ErrorLogEntry]:
        self._require()
        return self.recovery.get_error_log(limit)

    # ── Events ───────────────────────────────────────────────────────

    def subscribe(self, pattern: str, handler: EventHandler, **options: Any):
        """Subscribe to events; returns an unsubscribe callable."""
        self._require()
        return self.event_bus.subscribe(pattern, handler, **options)

    async def publish(
        self,
        event_type: str,
        data: Any = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> list[DeliveryOutcome]:
        self._require()
        return await self.event_bus.publish(event_type, data, metadata)

    def get_event_history(self, event_type: str | None = None, limit: int = 50) -> list[Event]:
        self._require()
        return self.event_bus.get_event_history(event_type, limit)

    def get_dead_letter_queue(self, limit: int = 50) -> list[DeadLetter]:
        self._require()
        return self.event_bus.get_dead_letter_queue(limit)

    def get_stats(self) -> dict[str, Any]:
        """Event bus statistics."""
        self._require()
        return self.event_bus.get_stats()
