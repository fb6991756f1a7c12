"""Step actions - capability objects bound to steps at build time."""

import inspect
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable


@dataclass(frozen=True)
class StepContext:
    """What an action sees while it runs.

    ``context`` is the execution's mutable context; ``results`` is a
    read-only view of the results of completed steps.
    """

    execution_id: str
    workflow_id: str
    step_id: str
    attempt: int
    context: dict[str, Any]
    results: Mapping[str, Any]


@runtime_checkable
class Action(Protocol):
    """A unit of work executed by a step."""

    name: str

    async def execute(self, ctx: StepContext) -> Any: ...


@runtime_checkable
class Agent(Protocol):
    """External collaborator that performs a task."""

    def run(self, task: str, context: dict[str, Any]) -> Any: ...


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class NoOpAction:
    """Action that does nothing and returns None."""

    name = "noop"

    async def execute(self, ctx: StepContext) -> Any:
        return None

    def __repr__(self) -> str:
        return "NoOpAction()"


class CallableAction:
    """Wraps a sync or async callable taking the StepContext."""

    def __init__(self, fn: Callable[[StepContext], Any], name: str | None = None):
        self._fn = fn
        self.name = name or getattr(fn, "__name__", None) or "callable"

    async def execute(self, ctx: StepContext) -> Any:
        return await _resolve(self._fn(ctx))

    def __repr__(self) -> str:
        return f"CallableAction(name={self.name!r})"


class AgentAction:
    """Delegates a task string to an Agent."""

    def __init__(self, agent: Agent, task: str, name: str | None = None):
        self.agent = agent
        self.task = task
        self.name = name or f"agent:{type(agent).__name__}"

    async def execute(self, ctx: StepContext) -> Any:
        return await _resolve(self.agent.run(self.task, ctx.context))

    def __repr__(self) -> str:
        return f"AgentAction(name={self.name!r}, task={self.task!r})"


def as_action(value: Action | Callable[[StepContext], Any] | None) -> Action:
    """Coerce a callable (or None) into an Action."""
    if value is None:
        return NoOpAction()
    if isinstance(value, Action):
        return value
    if callable(value):
        return CallableAction(value)
    raise TypeError(f"Not an action: {value!r}")
