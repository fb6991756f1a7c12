"""Workflow Registry implementation."""

from collections.abc import Callable, Iterable, Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from orchestra_core.errors import ConditionEvaluationError, DependencyCycleError, create_error
from orchestra_core.telemetry import get_telemetry
from orchestra_core.types import LogLevel, ValidationResult

from .actions import Agent
from .conditions import parse_condition
from .parser import parse_workflow_yaml
from .types import WorkflowDefinition, WorkflowEntry
from .validator import WorkflowValidator

if TYPE_CHECKING:
    from orchestra_core.logging import OrchestraLogger

BUILTIN_WORKFLOWS_DIR = Path(__file__).parent / "catalog"


class WorkflowRegistry:
    """Registry of workflow definitions.

    Definitions are validated on registration; a rejected definition
    leaves the registry untouched.
    """

    def __init__(
        self,
        logger: "OrchestraLogger | None" = None,
        known_strategies: Callable[[], Iterable[str]] | None = None,
        actions: Mapping[str, Any] | None = None,
        agents: Mapping[str, Agent] | None = None,
    ):
        """Initialize workflow registry.

        Args:
            logger: Optional logger
            known_strategies: Source of valid strategy names for validation
            actions: Named actions available to YAML workflows
            agents: Named agents available to YAML workflows
        """
        self._workflows: dict[str, WorkflowEntry] = {}
        self._logger = logger
        self._validator = WorkflowValidator(known_strategies)
        self._actions: dict[str, Any] = dict(actions or {})
        self._agents: dict[str, Agent] = dict(agents or {})

    def bind_action(self, name: str, action: Any) -> None:
        """Make an action (or callable) available to YAML workflows by name."""
        self._actions[name] = action

    def bind_agent(self, name: str, agent: Agent) -> None:
        """Make an agent available to YAML workflows by name."""
        self._agents[name] = agent

    def validate(self, workflow: WorkflowDefinition) -> ValidationResult:
        return self._validator.validate(workflow)

    def register(
        self,
        workflow: WorkflowDefinition,
        replace: bool = False,
        source: str = "api",
    ) -> ValidationResult:
        """Register a workflow.

        Args:
            workflow: Workflow to register
            replace: Replace an existing workflow with the same id
            source: Where the definition came from ("api" | "file")

        Returns:
            ValidationResult (may carry warnings)

        Raises:
            DependencyCycleError: If the step graph has a cycle
            ConditionEvaluationError: If a condition does not parse
            WorkflowValidationError: On any other validation failure
            WorkflowAlreadyRegisteredError: If the id is taken and replace is False
        """
        result = self._validator.validate(workflow)
        if not result.valid:
            raise self._rejection(workflow, result)

        if workflow.id in self._workflows and not replace:
            raise create_error("WORKFLOW_ALREADY_REGISTERED", workflow_id=workflow.id)

        self._workflows[workflow.id] = WorkflowEntry(
            workflow=workflow,
            registered_at=datetime.now(UTC).isoformat(),
            source=source,
        )
        self._update_metrics()

        if self._logger:
            self._logger._log(
                LogLevel.INFO,
                "workflow",
                "Workflow registered",
                {"workflow_id": workflow.id, "steps": len(workflow.steps), "source": source},
            )

        return result

    def _rejection(self, workflow: WorkflowDefinition, result: ValidationResult) -> Exception:
        """Pick the most specific error for a failed validation."""
        codes = {issue.code for issue in result.errors}

        if "DEPENDENCY_CYCLE" in codes:
            try:
                workflow.get_execution_order()
            except DependencyCycleError as e:
                return e

        if "CONDITION_INVALID" in codes:
            for step in workflow.steps:
                if step.condition is None:
                    continue
                try:
                    parse_condition(step.condition)
                except ConditionEvaluationError as e:
                    return e.with_context(step_id=step.id, workflow_id=workflow.id)

        error_msgs = [f"{e.path}: {e.message}" for e in result.errors]
        return create_error(
            "WORKFLOW_INVALID",
            workflow_id=workflow.id,
            detail="; ".join(error_msgs),
        )

    def register_from_yaml(
        self,
        yaml_content: str,
        source_path: Path | None = None,
        replace: bool = False,
    ) -> WorkflowDefinition:
        """Parse and register workflow from YAML.

        Args:
            yaml_content: YAML content
            source_path: Optional source file path
            replace: Replace an existing workflow with the same id

        Returns:
            The registered WorkflowDefinition

        Raises:
            WorkflowValidationError: If parsing or validation fails
        """
        workflow = parse_workflow_yaml(
            yaml_content,
            actions=self._actions,
            agents=self._agents,
            source_path=source_path,
        )
        self.register(workflow, replace=replace, source="file" if source_path else "api")
        return workflow

    def load_directory(self, directory: str | Path) -> int:
        """Register every ``*.yaml``/``*.yml`` workflow in a directory.

        Files that fail to parse or validate are logged and skipped.

        Args:
            directory: Directory to scan

        Returns:
            Number of workflows loaded
        """
        workflows_dir = Path(directory)
        if not workflows_dir.is_dir():
            if self._logger:
                self._logger._log(
                    LogLevel.WARN,
                    "workflow",
                    "Workflows directory does not exist",
                    {"directory": str(workflows_dir)},
                )
            return 0

        count = 0
        files = sorted([*workflows_dir.glob("*.yaml"), *workflows_dir.glob("*.yml")])
        for yaml_file in files:
            try:
                self.register_from_yaml(yaml_file.read_text(), source_path=yaml_file, replace=True)
                count += 1
            except Exception as e:
                if self._logger:
                    self._logger._log(
                        LogLevel.ERROR,
                        "workflow",
                        "Failed to load workflow",
                        {"file": str(yaml_file), "error": str(e)},
                    )

        if self._logger:
            self._logger._log(
                LogLevel.INFO,
                "workflow",
                "Workflows loaded",
                {"directory": str(workflows_dir), "count": count},
            )

        return count

    def load_builtin(self) -> int:
        """Register the bundled workflow catalog.

        Catalog steps name agents (researcher, analyst, writer, coder,
        solver, support); workflows whose agents are not bound are logged
        and skipped.

        Returns:
            Number of workflows loaded
        """
        return self.load_directory(BUILTIN_WORKFLOWS_DIR)

    def unregister(self, workflow_id: str) -> bool:
        """Unregister a workflow.

        Args:
            workflow_id: Workflow id

        Returns:
            True if workflow was registered, False if not found
        """
        if workflow_id in self._workflows:
            del self._workflows[workflow_id]
            self._update_metrics()
            if self._logger:
                self._logger._log(
                    LogLevel.INFO,
                    "workflow",
                    "Workflow unregistered",
                    {"workflow_id": workflow_id},
                )
            return True
        return False

    def get(self, workflow_id: str) -> WorkflowDefinition | None:
        entry = self._workflows.get(workflow_id)
        return entry.workflow if entry else None

    def get_entry(self, workflow_id: str) -> WorkflowEntry | None:
        return self._workflows.get(workflow_id)

    def get_or_raise(self, workflow_id: str) -> WorkflowDefinition:
        """Get workflow by id, raise if not found.

        Raises:
            WorkflowNotFoundError
        """
        workflow = self.get(workflow_id)
        if not workflow:
            raise create_error("WORKFLOW_NOT_FOUND", workflow_id=workflow_id)
        return workflow

    def list_workflows(self) -> list[WorkflowDefinition]:
        """List all registered workflows, in registration order."""
        return [entry.workflow for entry in self._workflows.values()]

    def __contains__(self, workflow_id: object) -> bool:
        return workflow_id in self._workflows

    def __len__(self) -> int:
        return len(self._workflows)

    def _update_metrics(self) -> None:
        telemetry = get_telemetry()
        if telemetry and telemetry.get("metrics"):
            telemetry["metrics"].update_registered_workflows(len(self._workflows))
