"""Workflow validation."""

from collections.abc import Callable, Iterable

from orchestra_core.errors import ConditionEvaluationError, DependencyCycleError
from orchestra_core.types import ValidationIssue, ValidationResult

from .actions import Action
from .conditions import parse_condition
from .types import WorkflowDefinition


class WorkflowValidator:
    """Validate workflow definitions."""

    def __init__(self, known_strategies: Callable[[], Iterable[str]] | None = None):
        """Initialize validator.

        Args:
            known_strategies: Returns the registered recovery strategy names;
                strategy overrides are not checked without it
        """
        self._known_strategies = known_strategies

    def validate(self, workflow: WorkflowDefinition) -> ValidationResult:
        """Validate workflow definition.

        Checks:
        - Required fields present
        - Unique step IDs
        - Valid depends_on references
        - No circular dependencies
        - Parseable conditions
        - Positive timeouts, non-negative retry counts
        - Known strategy overrides

        Args:
            workflow: Workflow to validate

        Returns:
            ValidationResult with errors and warnings
        """
        errors: list[ValidationIssue] = []
        warnings: list[ValidationIssue] = []

        if not workflow.id:
            errors.append(ValidationIssue(path="id", message="Workflow id is required"))
        if not workflow.name:
            errors.append(ValidationIssue(path="name", message="Workflow name is required"))

        if workflow.timeout_seconds is not None and workflow.timeout_seconds <= 0:
            errors.append(
                ValidationIssue(
                    path="timeout_seconds",
                    message=f"Timeout must be positive, got {workflow.timeout_seconds}",
                )
            )

        if not workflow.steps:
            warnings.append(
                ValidationIssue(path="steps", message="Workflow has no steps", severity="warning")
            )

        # Check unique step IDs
        step_ids = [step.id for step in workflow.steps]
        duplicates = sorted({sid for sid in step_ids if step_ids.count(sid) > 1})
        if duplicates:
            errors.append(
                ValidationIssue(
                    path="steps",
                    message=f"Duplicate step IDs: {', '.join(duplicates)}",
                )
            )

        strategies = set(self._known_strategies()) if self._known_strategies else None

        for step in workflow.steps:
            path = f"steps.{step.id}"

            if not step.id:
                errors.append(ValidationIssue(path="steps", message="Step id is required"))

            for dep in step.depends_on:
                if dep not in step_ids:
                    errors.append(
                        ValidationIssue(
                            path=f"{path}.depends_on",
                            message=f"Dependency '{dep}' not found",
                        )
                    )

            if step.condition is not None:
                try:
                    parse_condition(step.condition)
                except ConditionEvaluationError as e:
                    errors.append(
                        ValidationIssue(
                            path=f"{path}.condition",
                            message=e.detail or e.message,
                            code=e.code,
                        )
                    )

            if step.timeout_seconds is not None and step.timeout_seconds <= 0:
                errors.append(
                    ValidationIssue(
                        path=f"{path}.timeout_seconds",
                        message=f"Timeout must be positive, got {step.timeout_seconds}",
                    )
                )

            if step.retry_count < 0:
                errors.append(
                    ValidationIssue(
                        path=f"{path}.retry_count",
                        message=f"Retry count must be non-negative, got {step.retry_count}",
                    )
                )

            if not isinstance(step.action, Action):
                errors.append(
                    ValidationIssue(
                        path=f"{path}.action",
                        message="Action must have a name and an async execute(ctx) method",
                    )
                )

            if step.strategy and strategies is not None and step.strategy not in strategies:
                errors.append(
                    ValidationIssue(
                        path=f"{path}.strategy",
                        message=f"Unknown recovery strategy '{step.strategy}'",
                    )
                )

        # Check for circular dependencies
        try:
            workflow.get_execution_order()
        except DependencyCycleError as e:
            errors.append(ValidationIssue(path="steps", message=e.message, code=e.code))

        return ValidationResult(
            valid=len(errors) == 0,
            errors=errors,
            warnings=warnings,
        )
