"""Workflow engine for executing workflows."""

import asyncio
import threading
from collections import deque
from dataclasses import replace
from datetime import UTC, datetime
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from orchestra_core.errors import (
    ConditionEvaluationError,
    ErrorFactory,
    OrchestraError,
    create_error,
    get_error_factory,
)
from orchestra_core.recovery import StrategyOptions
from orchestra_core.telemetry import (
    MetricLabels,
    instrument_step,
    instrument_workflow,
    record_result,
)
from orchestra_core.types import (
    ErrorHandlerPolicy,
    ExecutionStatus,
    LogLevel,
    StepStatus,
    StrategyName,
)
from orchestra_core.workflow import StepContext, StepDefinition, WorkflowDefinition, parse_condition

from .types import Execution, StepExecution, WorkflowStats, generate_execution_id

if TYPE_CHECKING:
    from orchestra_core.events import EventBus
    from orchestra_core.logging import OrchestraLogger, StepLogger, WorkflowLogger
    from orchestra_core.recovery import RecoveryController
    from orchestra_core.workflow import WorkflowRegistry

# Returned by a step race that lost to cancellation
_CANCELLED = object()


class WorkflowEngine:
    """
    Execute workflow definitions.

    Core execution loop:
    1. Walk steps in dependency order (listed order among ties)
    2. For each step:
       a. Evaluate its condition (false -> skipped)
       b. Run its action through the RecoveryController
       c. Store output, or apply the workflow's error handler
    3. Mark unvisited steps skipped, publish the terminal event
    4. Freeze and retain the execution
    """

    def __init__(
        self,
        registry: "WorkflowRegistry",
        recovery: "RecoveryController",
        event_bus: "EventBus | None" = None,
        logger: "OrchestraLogger | None" = None,
        step_timeout_seconds: float = 30.0,
        max_history: int = 100,
        error_factory: ErrorFactory | None = None,
    ):
        """Initialize workflow engine.

        Args:
            registry: Registry for fetching workflows
            recovery: Controller that runs step actions under strategies
            event_bus: Optional bus for lifecycle events
            logger: Optional logger
            step_timeout_seconds: Per-attempt timeout for steps without one
            max_history: Terminal executions retained
            error_factory: Converts action exceptions to OrchestraErrors
        """
        self._registry = registry
        self._recovery = recovery
        self._event_bus = event_bus
        self._logger = logger
        self._step_timeout = step_timeout_seconds
        self._max_history = max_history
        self._error_factory = error_factory or get_error_factory()

        # Guards the tables below; never held across an await
        self._lock = threading.Lock()
        self._executions: dict[str, Execution] = {}
        self._terminal: deque[str] = deque()
        self._cancel_events: dict[str, asyncio.Event] = {}
        self._tasks: set[asyncio.Task[Execution]] = set()

    @property
    def registry(self) -> "WorkflowRegistry":
        return self._registry

    def register_workflow(self, workflow: WorkflowDefinition, replace: bool = False) -> None:
        """Validate and register a workflow definition.

        Raises:
            WorkflowValidationError: If the definition is invalid
            WorkflowAlreadyRegisteredError: If the id is taken and replace is False
        """
        self._registry.register(workflow, replace=replace)

    # ── Running ──────────────────────────────────────────────────────

    async def execute_workflow(
        self,
        workflow_id: str,
        context: dict[str, Any] | None = None,
    ) -> Execution:
        """
        Execute a workflow and wait for it to finish.

        Args:
            workflow_id: Registered workflow id
            context: Caller context, readable and writable by step actions

        Returns:
            The terminal Execution

        Raises:
            WorkflowNotFoundError: If the workflow doesn't exist
            WorkflowEscalatedError: If a step fails under the escalate policy
            WorkflowTimeoutError: If the overall timeout expires under the escalate policy
        """
        workflow = self._registry.get_or_raise(workflow_id)
        execution = self._create_execution(workflow, context)
        return await self._run(workflow, execution, raise_escalation=True)

    async def start_workflow(
        self,
        workflow_id: str,
        context: dict[str, Any] | None = None,
    ) -> Execution:
        """
        Start a workflow in the background.

        The returned execution is updated in place; escalations are
        recorded on it rather than raised.

        Raises:
            WorkflowNotFoundError: If the workflow doesn't exist
        """
        workflow = self._registry.get_or_raise(workflow_id)
        execution = self._create_execution(workflow, context)
        task = asyncio.create_task(
            self._run(workflow, execution, raise_escalation=False),
            name=execution.execution_id,
        )
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return execution

    def _task_done(self, task: "asyncio.Task[Execution]") -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None and self._logger:
            self._logger._log(
                LogLevel.ERROR,
                "workflow",
                f"Background execution {task.get_name()} crashed: {error}",
                {"execution_id": task.get_name()},
            )

    def cancel_execution(self, execution_id: str) -> bool:
        """Cancel a running execution.

        The step awaiting its action is cancelled at its next suspension
        point and marked skipped; completed steps are untouched.

        Returns:
            True if the execution was running, False if already terminal

        Raises:
            ExecutionNotFoundError: If the id is unknown or evicted
        """
        with self._lock:
            execution = self._executions.get(execution_id)
            if execution is None:
                raise create_error("EXECUTION_NOT_FOUND", execution_id=execution_id)
            if execution.status != ExecutionStatus.RUNNING:
                return False
            execution.status = ExecutionStatus.CANCELLED
            cancel_event = self._cancel_events.get(execution_id)

        if cancel_event is not None:
            cancel_event.set()
        return True

    async def shutdown(self) -> None:
        """Cancel background executions and wait for them to settle."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _create_execution(
        self, workflow: WorkflowDefinition, context: dict[str, Any] | None
    ) -> Execution:
        execution = Execution(
            execution_id=generate_execution_id(),
            workflow_id=workflow.id,
            steps={step.id: StepExecution(step_id=step.id) for step in workflow.steps},
            context=context if context is not None else {},
        )
        with self._lock:
            self._executions[execution.execution_id] = execution
            self._cancel_events[execution.execution_id] = asyncio.Event()
        return execution

    async def _run(
        self,
        workflow: WorkflowDefinition,
        execution: Execution,
        raise_escalation: bool,
    ) -> Execution:
        cancel_event = self._cancel_events[execution.execution_id]
        wf_logger = self._logger.workflow(workflow.id, execution.execution_id) if self._logger else None
        if wf_logger:
            wf_logger.started(workflow.version)

        await self._publish(
            "workflow:start",
            self._payload(execution, version=workflow.version),
        )

        halted: OrchestraError | None = None
        timed_out: OrchestraError | None = None
        interrupted: asyncio.CancelledError | None = None

        async with instrument_workflow(workflow.id, execution.execution_id) as telemetry_result:
            timer = asyncio.timeout(workflow.timeout_seconds)
            try:
                async with timer:
                    halted = await self._walk(workflow, execution, cancel_event, wf_logger)
            except TimeoutError as e:
                if not timer.expired():
                    halted = self._error_factory.from_exception(
                        e, workflow_id=workflow.id, execution_id=execution.execution_id
                    )
                else:
                    timed_out = create_error(
                        "WORKFLOW_TIMEOUT",
                        workflow_id=workflow.id,
                        execution_id=execution.execution_id,
                        timeout_seconds=workflow.timeout_seconds,
                        cause=e,
                    )
            except asyncio.CancelledError as e:
                # The awaiting task itself was cancelled
                interrupted = e
                with self._lock:
                    execution.status = ExecutionStatus.CANCELLED
                cancel_event.set()
            except Exception as e:
                halted = self._error_factory.from_exception(
                    e, workflow_id=workflow.id, execution_id=execution.execution_id
                )

            error = timed_out or halted
            await self._finish(execution, error, cancel_event, wf_logger, telemetry_result)

        if interrupted is not None:
            raise interrupted

        if raise_escalation and error is not None and execution.status == ExecutionStatus.FAILED:
            if workflow.error_handler == ErrorHandlerPolicy.ESCALATE:
                if timed_out is not None:
                    raise timed_out
                raise self._escalation(workflow, execution, halted)

        return execution

    def _escalation(
        self,
        workflow: WorkflowDefinition,
        execution: Execution,
        error: OrchestraError | None,
    ) -> OrchestraError:
        step_id = error.step_id if error else None
        reason = error.message if error else "unknown"
        escalation = create_error(
            "WORKFLOW_ESCALATED",
            workflow_id=workflow.id,
            execution_id=execution.execution_id,
            step_id=step_id or "unknown",
            reason=reason,
            cause=error,
        )
        return escalation

    async def _finish(
        self,
        execution: Execution,
        error: OrchestraError | None,
        cancel_event: asyncio.Event,
        wf_logger: "WorkflowLogger | None",
        telemetry_result: dict[str, Any],
    ) -> None:
        """Settle the terminal status, publish it, freeze and retain."""
        if cancel_event.is_set():
            reason = "execution cancelled"
        elif error is not None and error.code == "WORKFLOW_TIMEOUT":
            reason = "workflow timed out"
        else:
            reason = "workflow halted"
        for step_execution in execution.steps.values():
            if not step_execution.status.is_terminal:
                step_execution.status = StepStatus.SKIPPED
                step_execution.skip_reason = reason
                step_execution.completed_at = datetime.now(UTC)

        with self._lock:
            if execution.status != ExecutionStatus.CANCELLED:
                execution.status = (
                    ExecutionStatus.FAILED if error is not None else ExecutionStatus.COMPLETED
                )
            execution.completed_at = datetime.now(UTC)
            if error is not None and execution.status == ExecutionStatus.FAILED:
                execution.error = error
                if not any(e is error for e in execution.errors):
                    execution.errors.append(error)
        duration_ms = execution.duration_ms or 0

        if execution.status == ExecutionStatus.CANCELLED:
            record_result(telemetry_result, False, status=MetricLabels.STATUS_CANCELLED)
            if wf_logger:
                wf_logger.cancelled()
            await self._publish("workflow:cancelled", self._payload(execution))
        elif execution.status == ExecutionStatus.FAILED:
            status = (
                MetricLabels.STATUS_TIMEOUT
                if error.code == "WORKFLOW_TIMEOUT"
                else MetricLabels.STATUS_ERROR
            )
            record_result(telemetry_result, False, error_code=error.code, status=status)
            if wf_logger:
                wf_logger.failed(error, duration_ms)
            await self._publish(
                "workflow:error",
                self._payload(execution, step_id=error.step_id, error=error.to_dict()),
            )
        else:
            record_result(telemetry_result, True)
            if wf_logger:
                wf_logger.completed(duration_ms, execution.count(StepStatus.COMPLETED))
            await self._publish(
                "workflow:complete",
                self._payload(
                    execution,
                    duration_ms=duration_ms,
                    results=dict(execution.results),
                    errors=len(execution.errors),
                ),
            )

        execution.freeze()
        self._retain(execution)

    def _retain(self, execution: Execution) -> None:
        with self._lock:
            self._cancel_events.pop(execution.execution_id, None)
            self._terminal.append(execution.execution_id)
            while len(self._terminal) > self._max_history:
                evicted = self._terminal.popleft()
                self._executions.pop(evicted, None)

    # ── Walking the plan ─────────────────────────────────────────────

    async def _walk(
        self,
        workflow: WorkflowDefinition,
        execution: Execution,
        cancel_event: asyncio.Event,
        wf_logger: "WorkflowLogger | None",
    ) -> OrchestraError | None:
        """Walk the plan, applying the error handler.

        Returns:
            The step error that halted the walk, or None
        """
        order = workflow.get_execution_order()

        while True:
            halted = await self._walk_pass(workflow, execution, order, cancel_event, wf_logger)
            if halted is None or cancel_event.is_set():
                return None if cancel_event.is_set() else halted

            if workflow.error_handler != ErrorHandlerPolicy.RETRY or execution.plan_retries:
                return halted

            # One re-run of the remaining plan; completed results are kept
            pending = [
                step_id
                for step_id in order
                if execution.steps[step_id].status != StepStatus.COMPLETED
            ]
            for step_id in pending:
                execution.steps[step_id].reset()
            execution.plan_retries += 1

            if wf_logger:
                wf_logger.retrying(pending)
            await self._publish(
                "workflow:retry",
                self._payload(
                    execution,
                    step_id=halted.step_id,
                    error=halted.to_dict(),
                    pending_steps=pending,
                ),
            )

    async def _walk_pass(
        self,
        workflow: WorkflowDefinition,
        execution: Execution,
        order: list[str],
        cancel_event: asyncio.Event,
        wf_logger: "WorkflowLogger | None",
    ) -> OrchestraError | None:
        """Visit every pending step once.

        Returns:
            The failure that halts this pass (retry/escalate policies), or None
        """
        for step_id in order:
            if execution.steps[step_id].status != StepStatus.PENDING:
                continue
            if cancel_event.is_set():
                return None

            step = workflow.get_step(step_id)
            if step is None:
                continue

            error = await self._run_step(workflow, execution, step, cancel_event, wf_logger)
            if error is not None and workflow.error_handler != ErrorHandlerPolicy.FALLBACK:
                return error

        return None

    async def _run_step(
        self,
        workflow: WorkflowDefinition,
        execution: Execution,
        step: StepDefinition,
        cancel_event: asyncio.Event,
        wf_logger: "WorkflowLogger | None",
    ) -> OrchestraError | None:
        """Run one step.

        Returns:
            The step's error if it failed, else None
        """
        step_execution = execution.steps[step.id]
        step_logger = wf_logger.step(step.id) if wf_logger else None

        try:
            skip_reason = self._skip_reason(workflow, execution, step)
        except ConditionEvaluationError as e:
            error = e.with_context(
                step_id=step.id,
                workflow_id=workflow.id,
                execution_id=execution.execution_id,
            )
            step_execution.started_at = datetime.now(UTC)
            await self._fail_step(execution, step_execution, error, step_logger)
            return error

        if skip_reason is not None:
            step_execution.status = StepStatus.SKIPPED
            step_execution.skip_reason = skip_reason
            if step_logger:
                step_logger.skipped(skip_reason)
            await self._publish(
                "workflow:step-skipped",
                self._payload(execution, step_id=step.id, reason=skip_reason),
            )
            return None

        strategy_name, options = self._strategy_for(step)

        step_execution.status = StepStatus.RUNNING
        step_execution.started_at = datetime.now(UTC)
        if step_logger:
            step_logger.started(step.action.name, strategy_name)
        await self._publish(
            "workflow:step-start",
            self._payload(
                execution,
                step_id=step.id,
                action=step.action.name,
                strategy=strategy_name,
            ),
        )

        async def invoke() -> Any:
            step_execution.attempts += 1
            ctx = StepContext(
                execution_id=execution.execution_id,
                workflow_id=workflow.id,
                step_id=step.id,
                attempt=step_execution.attempts,
                context=execution.context,
                results=MappingProxyType(execution.results),
            )
            return await step.action.execute(ctx)

        async with instrument_step(workflow.id, step.id) as telemetry_result:
            try:
                output = await self._race(
                    self._recovery.execute_with_strategy(invoke, strategy_name, options),
                    cancel_event,
                )
            except asyncio.CancelledError:
                record_result(telemetry_result, False, status=MetricLabels.STATUS_CANCELLED)
                raise
            except Exception as e:
                error = self._error_factory.from_exception(
                    e,
                    step_id=step.id,
                    workflow_id=workflow.id,
                    execution_id=execution.execution_id,
                )
                record_result(telemetry_result, False, error_code=error.code)
                await self._fail_step(execution, step_execution, error, step_logger)
                return error

            if output is _CANCELLED:
                record_result(telemetry_result, False, status=MetricLabels.STATUS_CANCELLED)
                step_execution.status = StepStatus.SKIPPED
                step_execution.skip_reason = "execution cancelled"
                step_execution.completed_at = datetime.now(UTC)
                if step_logger:
                    step_logger.skipped("execution cancelled")
                return None

            record_result(telemetry_result, True)

        step_execution.status = StepStatus.COMPLETED
        step_execution.output = output
        step_execution.completed_at = datetime.now(UTC)
        execution.results[step.id] = output

        if step_logger:
            step_logger.completed(step_execution.duration_ms or 0, output)
        await self._publish(
            "workflow:step-complete",
            self._payload(
                execution,
                step_id=step.id,
                duration_ms=step_execution.duration_ms,
                attempts=step_execution.attempts,
                output=output,
            ),
        )
        return None

    def _skip_reason(
        self,
        workflow: WorkflowDefinition,
        execution: Execution,
        step: StepDefinition,
    ) -> str | None:
        """Why a step should be skipped, or None to run it.

        Raises:
            ConditionEvaluationError: If the condition cannot be evaluated
        """
        if step.condition is None:
            return None

        condition = parse_condition(step.condition)

        if workflow.error_handler == ErrorHandlerPolicy.FALLBACK:
            failed = [
                step_id
                for step_id in sorted(condition.referenced_results())
                if step_id in execution.steps
                and execution.steps[step_id].status == StepStatus.FAILED
            ]
            if failed:
                return f"requires the result of failed step '{failed[0]}'"

        if not condition.evaluate(execution.context, execution.results):
            return f"condition '{step.condition}' is false"
        return None

    def _strategy_for(self, step: StepDefinition) -> tuple[str, StrategyOptions]:
        """Pick the recovery strategy and options for a step.

        Explicit strategy, else circuit-breaker when a breaker is named,
        else exponential backoff when retries are requested, else a single
        timed attempt.
        """
        if step.strategy:
            name = step.strategy
        elif step.circuit_breaker:
            name = StrategyName.CIRCUIT_BREAKER.value
        elif step.retry_count > 0:
            name = StrategyName.EXPONENTIAL_BACKOFF.value
        else:
            name = StrategyName.TIMEOUT.value

        options = replace(
            self._recovery.default_options,
            max_retries=step.retry_count,
            timeout_seconds=step.timeout_seconds or self._step_timeout,
            circuit_breaker=step.circuit_breaker,
            action_name=step.action.name,
            fallback=None,
        )
        return name, options

    async def _race(self, operation: Any, cancel_event: asyncio.Event) -> Any:
        """Await an operation unless the execution is cancelled first.

        Returns:
            The operation's result, or _CANCELLED
        """
        action_task = asyncio.ensure_future(operation)
        cancel_task = asyncio.ensure_future(cancel_event.wait())
        try:
            done, _ = await asyncio.wait(
                {action_task, cancel_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in (action_task, cancel_task):
                if not task.done():
                    task.cancel()

        if action_task not in done:
            return _CANCELLED
        return action_task.result()

    async def _fail_step(
        self,
        execution: Execution,
        step_execution: StepExecution,
        error: OrchestraError,
        step_logger: "StepLogger | None",
    ) -> None:
        step_execution.status = StepStatus.FAILED
        step_execution.error = error
        step_execution.completed_at = datetime.now(UTC)
        execution.errors.append(error)

        if step_logger:
            step_logger.failed(error)
        await self._publish(
            "workflow:step-error",
            self._payload(
                execution,
                step_id=step_execution.step_id,
                attempts=step_execution.attempts,
                error=error.to_dict(),
            ),
        )

    # ── Events ───────────────────────────────────────────────────────

    @staticmethod
    def _payload(execution: Execution, **extra: Any) -> dict[str, Any]:
        return {
            "execution_id": execution.execution_id,
            "workflow_id": execution.workflow_id,
            **extra,
        }

    async def _publish(self, event_type: str, data: dict[str, Any]) -> None:
        if self._event_bus is not None:
            await self._event_bus.publish(event_type, data)

    # ── Queries ──────────────────────────────────────────────────────

    def get_execution(self, execution_id: str) -> Execution | None:
        with self._lock:
            return self._executions.get(execution_id)

    def get_execution_history(
        self,
        workflow_id: str | None = None,
        limit: int = 10,
    ) -> list[Execution]:
        """Retained executions, newest first.

        Args:
            workflow_id: Only executions of this workflow
            limit: Maximum number of executions
        """
        with self._lock:
            executions = list(self._executions.values())[::-1]

        if workflow_id is not None:
            executions = [e for e in executions if e.workflow_id == workflow_id]
        executions.sort(key=lambda e: e.started_at, reverse=True)
        return executions[:limit]

    def get_workflow_stats(self, workflow_id: str) -> WorkflowStats:
        """Aggregate the retained terminal executions of a workflow.

        Raises:
            WorkflowNotFoundError: If the workflow is not registered
        """
        workflow = self._registry.get_or_raise(workflow_id)

        with self._lock:
            runs = [
                e
                for e in self._executions.values()
                if e.workflow_id == workflow_id and e.is_terminal and e.completed_at is not None
            ]

        completed = sum(1 for e in runs if e.status == ExecutionStatus.COMPLETED)
        failed = sum(1 for e in runs if e.status == ExecutionStatus.FAILED)
        cancelled = sum(1 for e in runs if e.status == ExecutionStatus.CANCELLED)
        durations = [e.duration_ms or 0 for e in runs]

        return WorkflowStats(
            workflow_id=workflow_id,
            name=workflow.name,
            total_runs=len(runs),
            completed=completed,
            failed=failed,
            cancelled=cancelled,
            success_rate=(completed / len(runs) * 100) if runs else 0.0,
            avg_duration_ms=(sum(durations) / len(durations)) if durations else 0.0,
            last_run_at=max((e.completed_at for e in runs), default=None),
        )
