"""Orchestra Logger - Hierarchical colored logging for orchestration components."""

import json
import sys
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, TextIO

from orchestra_core.logging.colors import (
    CYAN,
    GREEN,
    LIGHT_BLUE,
    MAGENTA,
    ORANGE,
    RED,
    RESET,
    YELLOW,
)
from orchestra_core.types import LogFormat, LogLevel


@dataclass
class LogConfig:
    """Logger configuration."""

    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.COLORED
    show_context: bool = True
    truncate_at: int = 200
    components: dict[str, bool] = field(default_factory=dict)
    output: TextIO = field(default=sys.stdout)

    def __post_init__(self) -> None:
        """Initialize default components if not provided."""
        if not self.components:
            self.components = {
                "workflow": True,
                "step": True,
                "recovery": True,
                "events": True,
            }


class OrchestraLogger:
    """Main logger facade. Creates component-specific loggers."""

    def __init__(self, config: LogConfig | None = None):
        """Initialize logger with configuration.

        Args:
            config: Logger configuration (defaults to LogConfig())
        """
        self.config = config or LogConfig()
        self._level_order = {
            LogLevel.DEBUG: 0,
            LogLevel.INFO: 1,
            LogLevel.WARN: 2,
            LogLevel.ERROR: 3,
        }

    def workflow(self, workflow_id: str, execution_id: str) -> "WorkflowLogger":
        """Get a logger scoped to a workflow execution.

        Args:
            workflow_id: Workflow identifier
            execution_id: Execution identifier

        Returns:
            WorkflowLogger instance
        """
        return WorkflowLogger(self, workflow_id, execution_id)

    def recovery(self) -> "RecoveryLogger":
        """Get a logger for recovery strategies and circuit breakers."""
        return RecoveryLogger(self)

    def events(self) -> "EventBusLogger":
        """Get a logger for event bus delivery."""
        return EventBusLogger(self)

    def configure(self, config: LogConfig) -> None:
        """Update configuration (for hot-reload).

        Args:
            config: New logger configuration
        """
        self.config = config

    def _should_log(self, level: LogLevel) -> bool:
        return self._level_order.get(level, 0) >= self._level_order.get(self.config.level, 1)

    def _log(
        self,
        level: LogLevel,
        component: str,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Internal logging method.

        Args:
            level: Log level
            component: Component name (workflow, step, recovery, events)
            message: Log message
            context: Additional context data
        """
        if not self._should_log(level):
            return

        if not self.config.components.get(component, True):
            return

        if self.config.format == LogFormat.JSON:
            self._log_json(level, component, message, context)
        else:
            self._log_colored(level, component, message, context)

    def _log_json(
        self,
        level: LogLevel,
        component: str,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        log_entry = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": level.value,
            "component": component,
            "message": message,
        }
        if context:
            log_entry.update(context)

        print(json.dumps(log_entry, default=str), file=self.config.output)

    def _log_colored(
        self,
        level: LogLevel,
        component: str,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        level_colors = {
            LogLevel.DEBUG: LIGHT_BLUE,
            LogLevel.INFO: CYAN,
            LogLevel.WARN: YELLOW,
            LogLevel.ERROR: RED,
        }

        color = level_colors.get(level, RESET)
        component_color = {
            "workflow": MAGENTA,
            "step": CYAN,
            "recovery": ORANGE,
            "events": GREEN,
        }.get(component, RESET)

        # Format: [COMPONENT] message
        output = f"{component_color}[{component.upper()}]{RESET} {color}{message}{RESET}"

        if context and self.config.show_context:
            context_str = str(context)
            if len(context_str) > self.config.truncate_at:
                context_str = context_str[: self.config.truncate_at] + "..."
            output += f" {LIGHT_BLUE}{context_str}{RESET}"

        print(output, file=self.config.output)


class WorkflowLogger:
    """Logger for workflow-level events."""

    def __init__(self, parent: OrchestraLogger, workflow_id: str, execution_id: str):
        """Initialize workflow logger.

        Args:
            parent: Parent OrchestraLogger instance
            workflow_id: Workflow identifier
            execution_id: Execution identifier
        """
        self.parent = parent
        self.workflow_id = workflow_id
        self.execution_id = execution_id

    def _context(self, event: str) -> dict[str, Any]:
        return {
            "workflow_id": self.workflow_id,
            "execution_id": self.execution_id,
            "event": event,
        }

    def started(self, version: str | None = None) -> None:
        """Log workflow start.

        Args:
            version: Optional workflow version
        """
        context = self._context("workflow_started")
        message = f"Workflow '{self.workflow_id}' started"
        if version:
            context["version"] = version
            message += f" (v{version})"

        self.parent._log(LogLevel.INFO, "workflow", message, context)

    def completed(self, duration_ms: int, step_count: int) -> None:
        """Log workflow completion with summary.

        Args:
            duration_ms: Execution duration in milliseconds
            step_count: Number of steps that completed
        """
        context = self._context("workflow_completed")
        context["duration_ms"] = duration_ms
        context["step_count"] = step_count

        duration_s = duration_ms / 1000
        message = (
            f"Workflow '{self.workflow_id}' completed ({step_count} steps, {duration_s:.2f}s) ✓"
        )

        self.parent._log(LogLevel.INFO, "workflow", message, context)

    def failed(self, error: Exception, duration_ms: int) -> None:
        """Log workflow failure.

        Args:
            error: Exception that caused failure
            duration_ms: Execution duration in milliseconds
        """
        context = self._context("workflow_failed")
        context["duration_ms"] = duration_ms
        context["error"] = str(error)
        context["error_type"] = type(error).__name__

        duration_s = duration_ms / 1000
        message = f"Workflow '{self.workflow_id}' failed ({duration_s:.2f}s): {error}"

        self.parent._log(LogLevel.ERROR, "workflow", message, context)

    def cancelled(self) -> None:
        """Log workflow cancellation."""
        message = f"Workflow '{self.workflow_id}' cancelled"
        self.parent._log(LogLevel.WARN, "workflow", message, self._context("workflow_cancelled"))

    def retrying(self, pending_steps: list[str]) -> None:
        """Log a re-run of the remaining plan.

        Args:
            pending_steps: Steps that will be walked again
        """
        context = self._context("workflow_retrying")
        context["pending_steps"] = pending_steps

        message = f"Workflow '{self.workflow_id}' retrying {len(pending_steps)} remaining steps"

        self.parent._log(LogLevel.WARN, "workflow", message, context)

    def step(self, step_id: str) -> "StepLogger":
        """Get a logger scoped to a step.

        Args:
            step_id: Step identifier

        Returns:
            StepLogger instance
        """
        return StepLogger(self, step_id)


class StepLogger:
    """Logger for step-level events."""

    def __init__(self, parent: WorkflowLogger, step_id: str):
        """Initialize step logger.

        Args:
            parent: Parent WorkflowLogger instance
            step_id: Step identifier
        """
        self.parent = parent
        self.step_id = step_id

    def _context(self, event: str) -> dict[str, Any]:
        context = self.parent._context(event)
        context["step_id"] = self.step_id
        return context

    def started(self, action_name: str, strategy: str) -> None:
        """Log step start.

        Args:
            action_name: Name of the step's action
            strategy: Recovery strategy the action runs under
        """
        context = self._context("step_started")
        context["action"] = action_name
        context["strategy"] = strategy

        message = f"Step '{self.step_id}' started (action: {action_name}, strategy: {strategy})"

        self.parent.parent._log(LogLevel.INFO, "step", message, context)

    def completed(self, duration_ms: int, output: Any = None) -> None:
        """Log step completion.

        Args:
            duration_ms: Execution duration in milliseconds
            output: Optional step output, truncated for display
        """
        context = self._context("step_completed")
        context["duration_ms"] = duration_ms
        if output is not None:
            preview = str(output)
            truncate_at = self.parent.parent.config.truncate_at
            if len(preview) > truncate_at:
                preview = preview[:truncate_at] + "..."
            context["output"] = preview

        duration_s = duration_ms / 1000
        message = f"Step '{self.step_id}' completed ({duration_s:.2f}s) ✓"

        self.parent.parent._log(LogLevel.INFO, "step", message, context)

    def skipped(self, reason: str) -> None:
        """Log step skip.

        Args:
            reason: Reason for skipping
        """
        context = self._context("step_skipped")
        context["reason"] = reason

        message = f"Step '{self.step_id}' skipped: {reason}"

        self.parent.parent._log(LogLevel.INFO, "step", message, context)

    def failed(self, error: Exception) -> None:
        """Log step failure.

        Args:
            error: Exception that caused failure
        """
        context = self._context("step_failed")
        context["error"] = str(error)
        context["error_type"] = type(error).__name__

        message = f"Step '{self.step_id}' failed: {error}"

        self.parent.parent._log(LogLevel.ERROR, "step", message, context)


class RecoveryLogger:
    """Logger for recovery strategy attempts and circuit breaker transitions."""

    def __init__(self, parent: OrchestraLogger):
        self.parent = parent

    def retrying(
        self,
        strategy: str,
        action_name: str,
        attempt: int,
        max_attempts: int,
        delay_seconds: float,
        error: BaseException,
    ) -> None:
        """Log a failed attempt that will be retried.

        Args:
            strategy: Strategy name
            action_name: Action being retried
            attempt: Attempt that just failed (1-based)
            max_attempts: Total attempts allowed
            delay_seconds: Delay before the next attempt
            error: Error raised by the attempt
        """
        context = {
            "event": "attempt_failed",
            "strategy": strategy,
            "action": action_name,
            "attempt": attempt,
            "max_attempts": max_attempts,
            "delay_seconds": round(delay_seconds, 3),
            "error": str(error),
        }

        message = (
            f"Action '{action_name}' retrying "
            f"(attempt {attempt}/{max_attempts}, delay: {delay_seconds:.3f}s)"
        )

        self.parent._log(LogLevel.WARN, "recovery", message, context)

    def exhausted(self, strategy: str, action_name: str, attempts: int) -> None:
        """Log that a retry strategy gave up."""
        context = {
            "event": "retry_exhausted",
            "strategy": strategy,
            "action": action_name,
            "attempts": attempts,
        }
        message = f"Action '{action_name}' failed after {attempts} attempts"
        self.parent._log(LogLevel.ERROR, "recovery", message, context)

    def fallback(self, action_name: str, error: BaseException) -> None:
        """Log that the fallback is invoked after a primary failure."""
        context = {
            "event": "fallback_invoked",
            "action": action_name,
            "error": str(error),
        }
        message = f"Action '{action_name}' failed, invoking fallback: {error}"
        self.parent._log(LogLevel.WARN, "recovery", message, context)

    def circuit_transition(self, breaker: str, from_state: str, to_state: str) -> None:
        """Log a circuit breaker state change.

        Args:
            breaker: Breaker name
            from_state: Previous state
            to_state: New state
        """
        context = {
            "event": "circuit_state_change",
            "breaker": breaker,
            "from": from_state,
            "to": to_state,
        }

        message = f"Circuit '{breaker}' {from_state} -> {to_state}"
        level = LogLevel.WARN if to_state == "open" else LogLevel.INFO

        self.parent._log(level, "recovery", message, context)

    def listener_failed(self, breaker: str, error: BaseException) -> None:
        """Log a failing state-change listener."""
        context = {
            "event": "circuit_listener_failed",
            "breaker": breaker,
            "error": str(error),
            "error_type": type(error).__name__,
        }
        message = f"State-change listener for circuit '{breaker}' failed: {error}"
        self.parent._log(LogLevel.ERROR, "recovery", message, context)


class EventBusLogger:
    """Logger for event delivery failures."""

    def __init__(self, parent: OrchestraLogger):
        self.parent = parent

    def published(self, event_type: str, event_id: str, subscriber_count: int) -> None:
        """Log an event publish at debug level."""
        context = {
            "event": "event_published",
            "event_type": event_type,
            "event_id": event_id,
            "subscribers": subscriber_count,
        }
        message = f"Event '{event_type}' delivered to {subscriber_count} subscribers"
        self.parent._log(LogLevel.DEBUG, "events", message, context)

    def handler_failed(self, event_type: str, pattern: str, error: BaseException) -> None:
        """Log a handler failure that went to the dead-letter queue.

        Args:
            event_type: Type of the event being delivered
            pattern: Subscription pattern of the failing handler
            error: Handler error
        """
        context = {
            "event": "handler_failed",
            "event_type": event_type,
            "pattern": pattern,
            "error": str(error),
            "error_type": type(error).__name__,
        }

        message = f"Handler '{pattern}' failed for event '{event_type}': {error}"

        self.parent._log(LogLevel.ERROR, "events", message, context)
