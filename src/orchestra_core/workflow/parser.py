"""YAML workflow parsing.

Action and agent names in YAML are bound to capability objects here, at
build time, so a registered workflow never resolves names while running.

Example::

    id: nightly-report
    name: Nightly report
    error_handler: fallback
    steps:
      - id: fetch
        action: http_fetch
        retry_count: 2
      - id: summarize
        agent: writer
        task: "Summarize the report"
        depends_on: [fetch]
        condition: "results.fetch.status == 'ok'"
"""

from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from orchestra_core.errors import create_error
from orchestra_core.types import ErrorHandlerPolicy

from .actions import Action, Agent, AgentAction, CallableAction, NoOpAction
from .types import StepDefinition, WorkflowDefinition


def parse_workflow_yaml(
    yaml_content: str,
    actions: Mapping[str, Any] | None = None,
    agents: Mapping[str, Agent] | None = None,
    source_path: Path | None = None,
) -> WorkflowDefinition:
    """Parse YAML content into WorkflowDefinition.

    Args:
        yaml_content: YAML content to parse
        actions: Action objects (or callables) by name, for ``action:``
        agents: Agent collaborators by name, for ``agent:`` + ``task:``
        source_path: Optional source file path

    Returns:
        Parsed workflow definition

    Raises:
        WorkflowValidationError: If the YAML is invalid or names are unknown
    """
    try:
        data = yaml.safe_load(yaml_content)
    except yaml.YAMLError as e:
        raise create_error("WORKFLOW_INVALID", detail=f"Invalid YAML: {e}") from e

    if not isinstance(data, dict):
        raise create_error("WORKFLOW_INVALID", detail="YAML must be a dictionary")

    workflow_id = data.get("id") or data.get("name")
    if not workflow_id:
        raise create_error("WORKFLOW_INVALID", detail="Workflow id or name is required")

    policy = data.get("error_handler", ErrorHandlerPolicy.ESCALATE.value)
    try:
        error_handler = ErrorHandlerPolicy(policy)
    except ValueError as e:
        raise create_error(
            "WORKFLOW_INVALID",
            workflow_id=workflow_id,
            detail=f"Unknown error_handler '{policy}'",
        ) from e

    raw_steps = data.get("steps") or []
    if not isinstance(raw_steps, list):
        raise create_error(
            "WORKFLOW_INVALID", workflow_id=workflow_id, detail="'steps' must be a list"
        )

    steps = [
        _parse_step(step_data, index, workflow_id, actions or {}, agents or {})
        for index, step_data in enumerate(raw_steps)
    ]

    return WorkflowDefinition(
        id=str(workflow_id),
        name=str(data.get("name") or workflow_id),
        steps=tuple(steps),
        error_handler=error_handler,
        timeout_seconds=data.get("timeout_seconds"),
        description=data.get("description"),
        version=str(data.get("version", "1.0.0")),
        tags=tuple(data.get("tags") or ()),
        source_path=source_path,
    )


def _parse_step(
    step_data: Any,
    index: int,
    workflow_id: str,
    actions: Mapping[str, Any],
    agents: Mapping[str, Agent],
) -> StepDefinition:
    if not isinstance(step_data, dict) or not step_data.get("id"):
        raise create_error(
            "WORKFLOW_INVALID",
            workflow_id=workflow_id,
            detail=f"steps[{index}] must be a mapping with an 'id'",
        )

    step_id = str(step_data["id"])
    depends_on = step_data.get("depends_on") or ()
    if isinstance(depends_on, str):
        depends_on = (depends_on,)

    return StepDefinition(
        id=step_id,
        action=_bind_action(step_data, step_id, workflow_id, actions, agents),
        timeout_seconds=step_data.get("timeout_seconds"),
        retry_count=step_data.get("retry_count", 0),
        strategy=step_data.get("strategy"),
        circuit_breaker=step_data.get("circuit_breaker"),
        condition=step_data.get("condition"),
        depends_on=tuple(str(dep) for dep in depends_on),
        description=step_data.get("description"),
    )


def _bind_action(
    step_data: dict[str, Any],
    step_id: str,
    workflow_id: str,
    actions: Mapping[str, Any],
    agents: Mapping[str, Agent],
) -> Action:
    action_name = step_data.get("action")
    agent_name = step_data.get("agent")

    if action_name and agent_name:
        raise create_error(
            "WORKFLOW_INVALID",
            workflow_id=workflow_id,
            step_id=step_id,
            detail=f"Step '{step_id}' must have either 'action' or 'agent', not both",
        )

    if agent_name:
        agent = agents.get(agent_name)
        if agent is None:
            raise create_error(
                "WORKFLOW_INVALID",
                workflow_id=workflow_id,
                step_id=step_id,
                detail=f"Step '{step_id}' references unknown agent '{agent_name}'",
            )
        return AgentAction(agent, str(step_data.get("task", "")), name=f"agent:{agent_name}")

    if action_name:
        if action_name not in actions:
            raise create_error(
                "WORKFLOW_INVALID",
                workflow_id=workflow_id,
                step_id=step_id,
                detail=f"Step '{step_id}' references unknown action '{action_name}'",
            )
        bound = actions[action_name]
        if isinstance(bound, Action):
            return bound
        if not callable(bound):
            raise create_error(
                "WORKFLOW_INVALID",
                workflow_id=workflow_id,
                step_id=step_id,
                detail=f"Action '{action_name}' is neither an Action nor callable",
            )
        return CallableAction(bound, name=action_name)

    return NoOpAction()
