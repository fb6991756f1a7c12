"""Error registry for creating errors from templates."""

from typing import Any

from .errors import (
    CircuitOpenError,
    ConditionEvaluationError,
    ConfigError,
    DependencyCycleError,
    ErrorCategory,
    ErrorTemplate,
    EventWaitTimeoutError,
    ExecutionNotFoundError,
    FallbackFailedError,
    HandlerError,
    HandlerTimeoutError,
    OrchestraError,
    RetryExhaustedError,
    StepActionError,
    StepTimeoutError,
    StrategyNotFoundError,
    WorkflowAlreadyRegisteredError,
    WorkflowEscalatedError,
    WorkflowNotFoundError,
    WorkflowTimeoutError,
    WorkflowValidationError,
)


class ErrorRegistry:
    """Registry of error templates. Creates errors from templates + context."""

    def __init__(self) -> None:
        """Initialize error registry with built-in templates."""
        self._templates: dict[str, ErrorTemplate] = {}
        self._load_builtin_templates()

    def get_template(self, code: str) -> ErrorTemplate | None:
        """Get template by error code.

        Args:
            code: Error code to look up

        Returns:
            ErrorTemplate if found, None otherwise
        """
        return self._templates.get(code)

    def register(self, template: ErrorTemplate) -> None:
        """Add or replace a template.

        Args:
            template: Template to register
        """
        self._templates[template.code] = template

    def list_codes(self) -> list[str]:
        """List all registered error codes.

        Returns:
            List of error codes
        """
        return list(self._templates.keys())

    def create(
        self,
        code: str,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> OrchestraError:
        """Create error instance from template + context.

        Args:
            code: Error code
            context: Context variables for template interpolation
            cause: Optional underlying exception

        Returns:
            Instance of the template's error class

        Raises:
            ValueError: If error code not found
        """
        template = self.get_template(code)
        if not template:
            msg = f"Unknown error code: {code}"
            raise ValueError(msg)

        context = context or {}

        # Interpolate templates
        message = self._interpolate(template.message_template, context)
        detail = context.get("detail") or self._interpolate(template.detail_template, context)
        suggestion = self._interpolate(template.suggestion_template, context)

        # Ensure message is not None
        if message is None:
            message = f"Error {code}"

        return template.error_type(
            code=template.code,
            category=template.category,
            message=message,
            detail=detail,
            suggestion=suggestion,
            retryable=template.default_retryable,
            step_id=context.get("step_id"),
            workflow_id=context.get("workflow_id"),
            execution_id=context.get("execution_id"),
            cause=cause,
        )

    def _interpolate(
        self,
        template: str | None,
        context: dict[str, Any],
    ) -> str | None:
        """Safe string interpolation.

        Args:
            template: Template string with {var} placeholders
            context: Context variables

        Returns:
            Interpolated string or None if template is None
        """
        if template is None:
            return None

        try:
            return template.format(**context)
        except (KeyError, IndexError):
            # Missing context variable - return template as-is
            return template

    def _load_builtin_templates(self) -> None:
        """Load hardcoded built-in templates."""
        # WORKFLOW Errors
        self._templates["WORKFLOW_NOT_FOUND"] = ErrorTemplate(
            code="WORKFLOW_NOT_FOUND",
            category=ErrorCategory.WORKFLOW,
            message_template="Workflow '{workflow_id}' not found",
            detail_template="The requested workflow is not registered",
            suggestion_template="Register the workflow before executing it",
            error_type=WorkflowNotFoundError,
        )

        self._templates["WORKFLOW_ALREADY_REGISTERED"] = ErrorTemplate(
            code="WORKFLOW_ALREADY_REGISTERED",
            category=ErrorCategory.WORKFLOW,
            message_template="Workflow '{workflow_id}' is already registered",
            detail_template="Registered workflow definitions are immutable",
            suggestion_template="Use a new workflow id or register with replace=True",
            error_type=WorkflowAlreadyRegisteredError,
        )

        self._templates["WORKFLOW_INVALID"] = ErrorTemplate(
            code="WORKFLOW_INVALID",
            category=ErrorCategory.VALIDATION,
            message_template="Invalid workflow definition",
            detail_template="The workflow definition failed validation",
            suggestion_template="Fix the reported issues and register again",
            error_type=WorkflowValidationError,
        )

        self._templates["DEPENDENCY_CYCLE"] = ErrorTemplate(
            code="DEPENDENCY_CYCLE",
            category=ErrorCategory.VALIDATION,
            message_template="Circular dependency detected between steps: {steps}",
            detail_template="The depends_on edges of the workflow form a cycle",
            suggestion_template="Remove one of the depends_on edges in the cycle",
            error_type=DependencyCycleError,
        )

        self._templates["CONDITION_INVALID"] = ErrorTemplate(
            code="CONDITION_INVALID",
            category=ErrorCategory.VALIDATION,
            message_template="Invalid condition '{condition}'",
            detail_template="{reason}",
            suggestion_template=(
                "Compare a field against a literal, e.g. 'x > 5', "
                "combined with && or ||"
            ),
            error_type=ConditionEvaluationError,
        )

        self._templates["EXECUTION_NOT_FOUND"] = ErrorTemplate(
            code="EXECUTION_NOT_FOUND",
            category=ErrorCategory.WORKFLOW,
            message_template="Execution '{execution_id}' not found",
            detail_template="The execution is unknown or was evicted from history",
            error_type=ExecutionNotFoundError,
        )

        self._templates["WORKFLOW_ESCALATED"] = ErrorTemplate(
            code="WORKFLOW_ESCALATED",
            category=ErrorCategory.WORKFLOW,
            message_template="Workflow '{workflow_id}' escalated at step '{step_id}': {reason}",
            detail_template="The step failed and the workflow error handler is 'escalate'",
            suggestion_template="Inspect the cause chain of the failing step",
            error_type=WorkflowEscalatedError,
        )

        self._templates["WORKFLOW_TIMEOUT"] = ErrorTemplate(
            code="WORKFLOW_TIMEOUT",
            category=ErrorCategory.WORKFLOW,
            message_template="Workflow '{workflow_id}' timed out after {timeout_seconds}s",
            detail_template="The workflow did not complete within its overall timeout",
            suggestion_template="Increase the workflow timeout or shorten its steps",
            error_type=WorkflowTimeoutError,
        )

        # EXECUTION Errors
        self._templates["STEP_TIMEOUT"] = ErrorTemplate(
            code="STEP_TIMEOUT",
            category=ErrorCategory.EXECUTION,
            message_template="Action '{action_name}' timed out after {timeout_seconds}s",
            detail_template="The action did not complete within its timeout",
            suggestion_template="Increase the step timeout or check if the action is stuck",
            default_retryable=True,
            error_type=StepTimeoutError,
        )

        self._templates["STEP_ACTION_FAILED"] = ErrorTemplate(
            code="STEP_ACTION_FAILED",
            category=ErrorCategory.EXECUTION,
            message_template="Action failed: {error_type}: {error_message}",
            detail_template="The step action raised an exception",
            suggestion_template="Check the action's logs for more details",
            error_type=StepActionError,
        )

        # RECOVERY Errors
        self._templates["CIRCUIT_OPEN"] = ErrorTemplate(
            code="CIRCUIT_OPEN",
            category=ErrorCategory.RECOVERY,
            message_template="Circuit breaker '{breaker}' is open",
            detail_template="Calls are rejected until the reset timeout elapses",
            suggestion_template="Retry after {retry_after_seconds}s",
            default_retryable=True,
            error_type=CircuitOpenError,
        )

        self._templates["RETRY_EXHAUSTED"] = ErrorTemplate(
            code="RETRY_EXHAUSTED",
            category=ErrorCategory.RECOVERY,
            message_template="Action '{action_name}' failed after {attempts} attempts",
            detail_template="Last error: {last_error}",
            suggestion_template="Check the cause of the last attempt",
            error_type=RetryExhaustedError,
        )

        self._templates["FALLBACK_FAILED"] = ErrorTemplate(
            code="FALLBACK_FAILED",
            category=ErrorCategory.RECOVERY,
            message_template="Action '{action_name}' and its fallback both failed",
            detail_template="Primary: {primary_error}; fallback: {fallback_error}",
            suggestion_template="Check both the primary action and the fallback",
            error_type=FallbackFailedError,
        )

        self._templates["STRATEGY_NOT_FOUND"] = ErrorTemplate(
            code="STRATEGY_NOT_FOUND",
            category=ErrorCategory.RECOVERY,
            message_template="Strategy '{strategy}' not registered",
            detail_template="Available strategies: {available}",
            suggestion_template="Register the strategy before using it",
            error_type=StrategyNotFoundError,
        )

        # EVENTS Errors
        self._templates["HANDLER_FAILED"] = ErrorTemplate(
            code="HANDLER_FAILED",
            category=ErrorCategory.EVENTS,
            message_template="Handler for '{event_type}' failed: {error_message}",
            detail_template="The subscriber raised while handling the event",
            error_type=HandlerError,
        )

        self._templates["HANDLER_TIMEOUT"] = ErrorTemplate(
            code="HANDLER_TIMEOUT",
            category=ErrorCategory.EVENTS,
            message_template="Handler for '{event_type}' timed out after {timeout_seconds}s",
            detail_template="The subscriber did not complete within its timeout",
            error_type=HandlerTimeoutError,
        )

        self._templates["EVENT_WAIT_TIMEOUT"] = ErrorTemplate(
            code="EVENT_WAIT_TIMEOUT",
            category=ErrorCategory.EVENTS,
            message_template="Timeout waiting for event '{event_type}'",
            detail_template="No matching event was published within {timeout_seconds}s",
            error_type=EventWaitTimeoutError,
        )

        # SYSTEM Errors
        self._templates["CONFIG_INVALID"] = ErrorTemplate(
            code="CONFIG_INVALID",
            category=ErrorCategory.SYSTEM,
            message_template="Invalid configuration",
            detail_template="The Orchestra configuration is invalid",
            suggestion_template="Check the configuration file and fix errors",
            error_type=ConfigError,
        )

        self._templates["INTERNAL_ERROR"] = ErrorTemplate(
            code="INTERNAL_ERROR",
            category=ErrorCategory.SYSTEM,
            message_template="Internal Orchestra error",
            detail_template="An unexpected error occurred in the orchestration core",
            suggestion_template="Check the logs and report this issue",
        )
