"""Workflow data model types."""

from dataclasses import dataclass, field
from pathlib import Path

from orchestra_core.errors import create_error
from orchestra_core.types import ErrorHandlerPolicy

from .actions import Action, NoOpAction


@dataclass(frozen=True)
class StepDefinition:
    """Workflow step definition."""

    id: str
    action: Action = field(default_factory=NoOpAction)

    # Error handling
    timeout_seconds: float | None = None
    retry_count: int = 0
    strategy: str | None = None  # Overrides the derived recovery strategy
    circuit_breaker: str | None = None  # Breaker name guarding the action

    # Flow
    condition: str | None = None  # e.g. "results.fetch.status == 'ok'"
    depends_on: tuple[str, ...] = ()

    description: str | None = None


@dataclass(frozen=True)
class WorkflowDefinition:
    """Complete workflow definition. Immutable once registered."""

    id: str
    name: str
    steps: tuple[StepDefinition, ...] = ()
    error_handler: ErrorHandlerPolicy = ErrorHandlerPolicy.ESCALATE
    timeout_seconds: float | None = None

    # Metadata
    description: str | None = None
    version: str = "1.0.0"
    tags: tuple[str, ...] = ()

    # Source
    source_path: Path | None = None

    def get_step(self, step_id: str) -> StepDefinition | None:
        """Get step by ID.

        Args:
            step_id: Step identifier

        Returns:
            Step definition or None if not found
        """
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def get_execution_order(self) -> list[str]:
        """Get steps in execution order (topological sort).

        Respects depends_on; among steps that are ready at the same time
        the listed order wins. Dependencies on unknown steps are ignored
        here and reported by the validator.

        Returns:
            List of step IDs in execution order

        Raises:
            DependencyCycleError: If the dependency graph has a cycle
        """
        step_index = {step.id: i for i, step in enumerate(self.steps)}

        # dependents[step_id] = steps that wait on step_id
        dependents: dict[str, list[str]] = {step.id: [] for step in self.steps}
        in_degree: dict[str, int] = {step.id: 0 for step in self.steps}

        for step in self.steps:
            for dep in dict.fromkeys(step.depends_on):
                if dep in dependents:
                    dependents[dep].append(step.id)
                    in_degree[step.id] += 1

        # Kahn's algorithm
        queue = [step.id for step in self.steps if in_degree[step.id] == 0]
        result: list[str] = []

        while queue:
            queue.sort(key=lambda x: step_index[x])
            current = queue.pop(0)
            result.append(current)

            for dependent in dependents[current]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    queue.append(dependent)

        if len(result) != len(in_degree):
            remaining = [step.id for step in self.steps if step.id not in result]
            raise create_error(
                "DEPENDENCY_CYCLE",
                steps=", ".join(dict.fromkeys(remaining)),
                workflow_id=self.id,
            )

        return result

    def get_dependents(self, step_id: str, transitive: bool = False) -> list[str]:
        """Steps that depend on a step, in listed order.

        Args:
            step_id: Step identifier
            transitive: Include dependents of dependents

        Returns:
            List of step IDs
        """
        found: list[str] = []
        frontier = [step_id]
        while frontier:
            current = frontier.pop(0)
            for step in self.steps:
                if current in step.depends_on and step.id not in found:
                    found.append(step.id)
                    if transitive:
                        frontier.append(step.id)

        index = {step.id: i for i, step in enumerate(self.steps)}
        return sorted(found, key=lambda x: index[x])


@dataclass
class WorkflowEntry:
    """Registry entry for a workflow."""

    workflow: WorkflowDefinition
    registered_at: str
    source: str  # "file" | "api"
