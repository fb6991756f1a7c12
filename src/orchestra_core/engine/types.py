"""Types for workflow engine."""

import uuid
from collections.abc import Mapping
from dataclasses import FrozenInstanceError, dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any

from orchestra_core.errors import OrchestraError
from orchestra_core.types import ExecutionStatus, StepStatus


def _duration_ms(started_at: datetime | None, completed_at: datetime | None) -> int | None:
    if started_at is None or completed_at is None:
        return None
    return int((completed_at - started_at).total_seconds() * 1000)


def _error_dict(error: BaseException | None) -> dict[str, Any] | None:
    if error is None:
        return None
    if isinstance(error, OrchestraError):
        return error.to_dict()
    return {"type": type(error).__name__, "message": str(error)}


@dataclass
class StepExecution:
    """Runtime state of a single step."""

    step_id: str
    status: StepStatus = StepStatus.PENDING

    # Timing
    started_at: datetime | None = None
    completed_at: datetime | None = None

    # Output (for completed steps)
    output: Any = None

    # Error info (for failed/skipped steps)
    error: OrchestraError | None = None
    skip_reason: str | None = None

    # Action invocations across all passes, including strategy retries
    attempts: int = 0

    _frozen: bool = field(default=False, init=False, repr=False, compare=False)

    def __setattr__(self, name: str, value: Any) -> None:
        if getattr(self, "_frozen", False):
            raise FrozenInstanceError(f"cannot assign to field '{name}' of a finished step")
        super().__setattr__(name, value)

    @property
    def duration_ms(self) -> int | None:
        return _duration_ms(self.started_at, self.completed_at)

    def reset(self) -> None:
        """Return the step to pending for another pass over the plan."""
        self.status = StepStatus.PENDING
        self.started_at = None
        self.completed_at = None
        self.output = None
        self.error = None
        self.skip_reason = None

    def freeze(self) -> None:
        """Make the step record read-only."""
        self._frozen = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "step_id": self.step_id,
            "status": self.status.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": self.duration_ms,
            "attempts": self.attempts,
            "output": self.output,
            "error": _error_dict(self.error),
            "skip_reason": self.skip_reason,
        }


@dataclass
class Execution:
    """
    One run of a workflow.

    Owned by the engine while running. Once terminal, ``context``,
    ``results`` and ``steps`` are frozen into read-only mappings, each
    StepExecution is frozen, and ``errors`` becomes a tuple.
    """

    # Identity
    execution_id: str
    workflow_id: str

    # Status
    status: ExecutionStatus = ExecutionStatus.RUNNING

    # Timing
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None

    # State
    steps: Mapping[str, StepExecution] = field(default_factory=dict)
    context: Mapping[str, Any] = field(default_factory=dict)
    results: Mapping[str, Any] = field(default_factory=dict)
    errors: list[OrchestraError] | tuple[OrchestraError, ...] = field(default_factory=list)

    # Terminal error (if failed)
    error: OrchestraError | None = None

    # Re-runs of the remaining plan under the retry policy
    plan_retries: int = 0

    @property
    def duration_ms(self) -> int | None:
        return _duration_ms(self.started_at, self.completed_at)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def count(self, status: StepStatus) -> int:
        """Number of steps in a status."""
        return sum(1 for s in self.steps.values() if s.status == status)

    def freeze(self) -> None:
        """Make the execution's state read-only."""
        self.context = MappingProxyType(dict(self.context))
        self.results = MappingProxyType(dict(self.results))
        self.steps = MappingProxyType(dict(self.steps))
        for step in self.steps.values():
            step.freeze()
        self.errors = tuple(self.errors)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logs and callers."""
        return {
            "execution_id": self.execution_id,
            "workflow_id": self.workflow_id,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": self.duration_ms,
            "context": dict(self.context),
            "results": dict(self.results),
            "steps": [s.to_dict() for s in self.steps.values()],
            "errors": [_error_dict(e) for e in self.errors],
            "error": _error_dict(self.error),
            "plan_retries": self.plan_retries,
            "steps_completed": self.count(StepStatus.COMPLETED),
            "steps_failed": self.count(StepStatus.FAILED),
            "steps_skipped": self.count(StepStatus.SKIPPED),
        }


@dataclass(frozen=True)
class WorkflowStats:
    """Aggregate of the retained terminal executions of one workflow."""

    workflow_id: str
    name: str
    total_runs: int
    completed: int
    failed: int
    cancelled: int
    success_rate: float  # percentage; 0.0 without runs
    avg_duration_ms: float
    last_run_at: datetime | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "workflow_id": self.workflow_id,
            "name": self.name,
            "total_runs": self.total_runs,
            "completed": self.completed,
            "failed": self.failed,
            "cancelled": self.cancelled,
            "success_rate": self.success_rate,
            "avg_duration_ms": self.avg_duration_ms,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
        }


# Helper functions


def generate_execution_id() -> str:
    """Generate a unique execution ID."""
    return f"exec-{uuid.uuid4().hex[:12]}"
