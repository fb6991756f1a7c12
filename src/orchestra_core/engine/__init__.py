"""Orchestra workflow execution engine."""

from .engine import WorkflowEngine
from .types import Execution, StepExecution, WorkflowStats, generate_execution_id

__all__ = [
    "WorkflowEngine",
    "Execution",
    "StepExecution",
    "WorkflowStats",
    "generate_execution_id",
]
