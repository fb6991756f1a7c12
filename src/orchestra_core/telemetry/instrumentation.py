"""Orchestra Telemetry Instrumentation - context managers and helpers.

Provides instrumentation helpers for:
- Workflow execution
- Step execution

Uses OpenTelemetry context propagation so step spans nest under their
workflow span.
"""

import time
from contextlib import asynccontextmanager, nullcontext
from typing import Any

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from .metrics import MetricLabels
from .setup import get_telemetry


def _error_code(error: BaseException) -> str:
    return getattr(error, "code", None) or type(error).__name__


@asynccontextmanager
async def instrument_workflow(workflow_id: str, execution_id: str | None = None):
    """Context manager for instrumenting workflow execution.

    Records:
    - Workflow start/end metrics
    - Workflow duration histogram
    - Active workflow gauge
    - Trace span for workflow

    Args:
        workflow_id: Workflow identifier
        execution_id: Execution identifier (span attribute)

    Yields:
        Dictionary to store execution status
    """
    telemetry = get_telemetry()
    start_time = time.time()
    result: dict[str, Any] = {"status": MetricLabels.STATUS_SUCCESS, "error_code": None}

    tracer = telemetry["tracer"] if telemetry else None
    metrics = telemetry["metrics"] if telemetry else None

    span = None
    scope: Any = nullcontext()
    if tracer:
        span = tracer.start_span(f"workflow:{workflow_id}")
        span.set_attribute("workflow.id", workflow_id)
        if execution_id:
            span.set_attribute("execution.id", execution_id)
        # Step spans started inside the block become children
        scope = trace.use_span(
            span, end_on_exit=False, record_exception=False, set_status_on_exception=False
        )

    if metrics:
        metrics.record_workflow_start(workflow_id)

    try:
        with scope:
            yield result
    except Exception as e:
        result["status"] = MetricLabels.STATUS_ERROR
        result["error_code"] = _error_code(e)
        if span:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            span.record_exception(e)
        raise
    finally:
        duration = time.time() - start_time

        if metrics:
            metrics.record_workflow_end(
                workflow_id=workflow_id,
                duration_seconds=duration,
                status=result["status"],
                error_code=result.get("error_code"),
            )

        if span:
            if result["status"] == MetricLabels.STATUS_SUCCESS:
                span.set_status(Status(StatusCode.OK))
            elif result.get("error_code"):
                span.set_attribute("error.code", result["error_code"])
            span.end()


@asynccontextmanager
async def instrument_step(workflow_id: str, step_id: str):
    """Context manager for instrumenting step execution.

    Records:
    - Step execution counter
    - Step duration histogram
    - Trace span for step

    Args:
        workflow_id: Workflow identifier
        step_id: Step identifier

    Yields:
        Dictionary to store execution status
    """
    telemetry = get_telemetry()
    start_time = time.time()
    result: dict[str, Any] = {"status": MetricLabels.STATUS_SUCCESS, "error_code": None}

    tracer = telemetry["tracer"] if telemetry else None
    metrics = telemetry["metrics"] if telemetry else None

    span = None
    if tracer:
        span = tracer.start_span(f"step:{step_id}")
        span.set_attribute("workflow.id", workflow_id)
        span.set_attribute("step.id", step_id)

    try:
        yield result
    except Exception as e:
        result["status"] = MetricLabels.STATUS_ERROR
        result["error_code"] = _error_code(e)
        if span:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            span.record_exception(e)
        raise
    finally:
        duration = time.time() - start_time

        if metrics:
            metrics.record_step_execution(
                workflow_id=workflow_id,
                step_id=step_id,
                duration_seconds=duration,
                status=result["status"],
                error_code=result.get("error_code"),
            )

        if span:
            if result["status"] == MetricLabels.STATUS_SUCCESS:
                span.set_status(Status(StatusCode.OK))
            span.end()


def record_result(
    result: dict[str, Any],
    success: bool,
    error_code: str | None = None,
    status: str | None = None,
) -> None:
    """Update result dictionary with execution status.

    Args:
        result: Result dictionary from context manager
        success: Whether execution succeeded
        error_code: Error code if failed
        status: Explicit status value (e.g. cancelled), overriding success/error
    """
    if status is not None:
        result["status"] = status
    elif success:
        result["status"] = MetricLabels.STATUS_SUCCESS
    else:
        result["status"] = MetricLabels.STATUS_ERROR
    result["error_code"] = None if success else error_code
