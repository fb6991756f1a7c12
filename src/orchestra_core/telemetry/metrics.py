"""Orchestra Metrics Schema - OpenTelemetry conventions.

Defines all metrics exposed by Orchestra following OpenTelemetry semantic conventions.

Metrics:
- Counters: Track total occurrences
- Histograms: Track distributions (durations)
- Gauges: Track current values

Labels/Attributes:
- workflow_id: Workflow identifier
- step_id: Step identifier within workflow
- strategy: Recovery strategy name
- breaker: Circuit breaker name
- event_type: Published event type
- status: Execution status (success, error, timeout, cancelled)
- error_code: Error code when status=error

All metrics use the 'orchestra_' prefix.
"""

from dataclasses import dataclass
from typing import Any

from opentelemetry import metrics
from opentelemetry.metrics import Counter, Histogram, UpDownCounter

# Metric prefix for all Orchestra metrics
METRIC_PREFIX = "orchestra"


@dataclass
class MetricLabels:
    """Standard metric labels/attributes."""

    # Workflow labels
    WORKFLOW_ID = "workflow_id"
    STEP_ID = "step_id"

    # Recovery labels
    STRATEGY = "strategy"
    BREAKER = "breaker"
    FROM_STATE = "from_state"
    TO_STATE = "to_state"

    # Event labels
    EVENT_TYPE = "event_type"

    # Status labels
    STATUS = "status"
    ERROR_CODE = "error_code"

    # Status values
    STATUS_SUCCESS = "success"
    STATUS_ERROR = "error"
    STATUS_TIMEOUT = "timeout"
    STATUS_CANCELLED = "cancelled"


class OrchestraMetrics:
    """Orchestra metrics collection.

    Provides instrumentation for:
    - Workflow executions
    - Step executions
    - Recovery strategy executions
    - Circuit breaker transitions
    - Event publishing and dead letters
    """

    def __init__(self, meter: metrics.Meter):
        """Initialize metrics.

        Args:
            meter: OpenTelemetry Meter instance
        """
        self._meter = meter
        self._setup_counters()
        self._setup_histograms()
        self._setup_gauges()

        # Track current values for UpDownCounters (to calculate deltas)
        self._current_registered_workflows = 0

    def _setup_counters(self) -> None:
        """Set up counter metrics."""
        self.workflow_executions_total: Counter = self._meter.create_counter(
            name=f"{METRIC_PREFIX}_workflow_executions_total",
            description="Total number of workflow executions",
            unit="1",
        )

        self.step_executions_total: Counter = self._meter.create_counter(
            name=f"{METRIC_PREFIX}_step_executions_total",
            description="Total number of step executions",
            unit="1",
        )

        self.strategy_executions_total: Counter = self._meter.create_counter(
            name=f"{METRIC_PREFIX}_strategy_executions_total",
            description="Total number of actions run under a recovery strategy",
            unit="1",
        )

        self.circuit_transitions_total: Counter = self._meter.create_counter(
            name=f"{METRIC_PREFIX}_circuit_transitions_total",
            description="Total number of circuit breaker state transitions",
            unit="1",
        )

        self.events_published_total: Counter = self._meter.create_counter(
            name=f"{METRIC_PREFIX}_events_published_total",
            description="Total number of published events",
            unit="1",
        )

        self.event_deliveries_total: Counter = self._meter.create_counter(
            name=f"{METRIC_PREFIX}_event_deliveries_total",
            description="Total number of handler deliveries",
            unit="1",
        )

        self.dead_letters_total: Counter = self._meter.create_counter(
            name=f"{METRIC_PREFIX}_dead_letters_total",
            description="Total number of failed handler deliveries",
            unit="1",
        )

    def _setup_histograms(self) -> None:
        """Set up histogram metrics."""
        self.workflow_duration_seconds: Histogram = self._meter.create_histogram(
            name=f"{METRIC_PREFIX}_workflow_duration_seconds",
            description="Workflow execution duration in seconds",
            unit="s",
        )

        self.step_duration_seconds: Histogram = self._meter.create_histogram(
            name=f"{METRIC_PREFIX}_step_duration_seconds",
            description="Step execution duration in seconds",
            unit="s",
        )

        self.strategy_duration_seconds: Histogram = self._meter.create_histogram(
            name=f"{METRIC_PREFIX}_strategy_duration_seconds",
            description="Duration of strategy executions, including retries and waits",
            unit="s",
        )

    def _setup_gauges(self) -> None:
        """Set up gauge metrics (using UpDownCounter for gauges)."""
        self.active_workflows: UpDownCounter = self._meter.create_up_down_counter(
            name=f"{METRIC_PREFIX}_active_workflows",
            description="Number of currently running workflows",
            unit="1",
        )

        self.open_circuits: UpDownCounter = self._meter.create_up_down_counter(
            name=f"{METRIC_PREFIX}_open_circuits",
            description="Number of circuit breakers not in the closed state",
            unit="1",
        )

        self.registered_workflows: UpDownCounter = self._meter.create_up_down_counter(
            name=f"{METRIC_PREFIX}_registered_workflows",
            description="Number of registered workflows",
            unit="1",
        )

    # Convenience methods for recording metrics

    def record_workflow_start(self, workflow_id: str) -> None:
        """Record workflow start.

        Args:
            workflow_id: Workflow identifier
        """
        self.active_workflows.add(1, {MetricLabels.WORKFLOW_ID: workflow_id})

    def record_workflow_end(
        self,
        workflow_id: str,
        duration_seconds: float,
        status: str,
        error_code: str | None = None,
    ) -> None:
        """Record workflow completion.

        Args:
            workflow_id: Workflow identifier
            duration_seconds: Execution duration
            status: Execution status (success, error, timeout, cancelled)
            error_code: Error code if status is error
        """
        labels: dict[str, Any] = {
            MetricLabels.WORKFLOW_ID: workflow_id,
            MetricLabels.STATUS: status,
        }
        if error_code:
            labels[MetricLabels.ERROR_CODE] = error_code

        self.active_workflows.add(-1, {MetricLabels.WORKFLOW_ID: workflow_id})
        self.workflow_executions_total.add(1, labels)
        self.workflow_duration_seconds.record(duration_seconds, labels)

    def record_step_execution(
        self,
        workflow_id: str,
        step_id: str,
        duration_seconds: float,
        status: str,
        error_code: str | None = None,
    ) -> None:
        """Record step execution.

        Args:
            workflow_id: Workflow identifier
            step_id: Step identifier
            duration_seconds: Execution duration
            status: Execution status
            error_code: Error code if status is error
        """
        labels: dict[str, Any] = {
            MetricLabels.WORKFLOW_ID: workflow_id,
            MetricLabels.STEP_ID: step_id,
            MetricLabels.STATUS: status,
        }
        if error_code:
            labels[MetricLabels.ERROR_CODE] = error_code

        self.step_executions_total.add(1, labels)
        self.step_duration_seconds.record(duration_seconds, labels)

    def record_strategy_execution(
        self,
        strategy: str,
        duration_seconds: float,
        status: str,
        error_code: str | None = None,
    ) -> None:
        """Record one execute_with_strategy call.

        Args:
            strategy: Strategy name
            duration_seconds: Total duration including retries
            status: success or error
            error_code: Error code or exception type if status is error
        """
        labels: dict[str, Any] = {
            MetricLabels.STRATEGY: strategy,
            MetricLabels.STATUS: status,
        }
        if error_code:
            labels[MetricLabels.ERROR_CODE] = error_code

        self.strategy_executions_total.add(1, labels)
        self.strategy_duration_seconds.record(duration_seconds, labels)

    def record_circuit_transition(self, breaker: str, from_state: str, to_state: str) -> None:
        """Record a circuit breaker state transition.

        Keeps the open-circuits gauge in step: leaving ``closed`` adds one,
        returning to ``closed`` removes one.

        Args:
            breaker: Breaker name
            from_state: Previous state
            to_state: New state
        """
        self.circuit_transitions_total.add(
            1,
            {
                MetricLabels.BREAKER: breaker,
                MetricLabels.FROM_STATE: from_state,
                MetricLabels.TO_STATE: to_state,
            },
        )
        if from_state == "closed" and to_state != "closed":
            self.open_circuits.add(1, {MetricLabels.BREAKER: breaker})
        elif from_state != "closed" and to_state == "closed":
            self.open_circuits.add(-1, {MetricLabels.BREAKER: breaker})

    def record_event_published(self, event_type: str, subscriber_count: int) -> None:
        """Record a published event and the number of deliveries it made.

        Args:
            event_type: Event type
            subscriber_count: Handlers the event was delivered to
        """
        labels = {MetricLabels.EVENT_TYPE: event_type}
        self.events_published_total.add(1, labels)
        self.event_deliveries_total.add(subscriber_count, labels)

    def record_dead_letter(self, event_type: str) -> None:
        """Record a failed handler delivery.

        Args:
            event_type: Event type
        """
        self.dead_letters_total.add(1, {MetricLabels.EVENT_TYPE: event_type})

    def update_registered_workflows(self, count: int) -> None:
        """Update the number of registered workflows (calculates delta).

        Args:
            count: New count of registered workflows
        """
        delta = count - self._current_registered_workflows
        if delta != 0:
            self.registered_workflows.add(delta)
        self._current_registered_workflows = count
