"""Workflow definitions, conditions and actions for Orchestra."""

from .actions import (
    Action,
    Agent,
    AgentAction,
    CallableAction,
    NoOpAction,
    StepContext,
    as_action,
)
from .conditions import Condition, parse_condition
from .parser import parse_workflow_yaml
from .registry import BUILTIN_WORKFLOWS_DIR, WorkflowRegistry
from .types import StepDefinition, WorkflowDefinition, WorkflowEntry
from .validator import WorkflowValidator

__all__ = [
    "WorkflowDefinition",
    "WorkflowEntry",
    "StepDefinition",
    "parse_workflow_yaml",
    "WorkflowRegistry",
    "BUILTIN_WORKFLOWS_DIR",
    "WorkflowValidator",
    # Conditions
    "Condition",
    "parse_condition",
    # Actions
    "Action",
    "Agent",
    "AgentAction",
    "CallableAction",
    "NoOpAction",
    "StepContext",
    "as_action",
]
