"""Orchestra error types."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error source categories."""

    WORKFLOW = "WORKFLOW"
    EXECUTION = "EXECUTION"
    RECOVERY = "RECOVERY"
    EVENTS = "EVENTS"
    VALIDATION = "VALIDATION"
    SYSTEM = "SYSTEM"


@dataclass
class OrchestraError(Exception):
    """Structured error with context. Base exception for all Orchestra errors."""

    # Identity
    code: str  # e.g., "CIRCUIT_OPEN"
    category: ErrorCategory

    # Messages
    message: str  # Human-readable summary
    detail: str | None = None  # Extended explanation
    suggestion: str | None = None  # Actionable fix

    # Context
    retryable: bool = False  # Is retry potentially useful?
    step_id: str | None = None  # Which step failed
    workflow_id: str | None = None  # Which workflow
    execution_id: str | None = None  # Execution identifier

    # Underlying failure (any exception, not only OrchestraError)
    cause: BaseException | None = None

    # Metadata
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        """Set Exception message."""
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logs and status reports.

        Returns:
            Dictionary representation of the error
        """
        if isinstance(self.cause, OrchestraError):
            cause: dict[str, Any] | None = self.cause.to_dict()
        elif self.cause is not None:
            cause = {"type": type(self.cause).__name__, "message": str(self.cause)}
        else:
            cause = None

        return {
            "code": self.code,
            "category": self.category.value,
            "message": self.message,
            "detail": self.detail,
            "suggestion": self.suggestion,
            "retryable": self.retryable,
            "step_id": self.step_id,
            "workflow_id": self.workflow_id,
            "execution_id": self.execution_id,
            "timestamp": self.timestamp.isoformat(),
            "cause": cause,
        }

    def with_context(
        self,
        step_id: str | None = None,
        workflow_id: str | None = None,
        execution_id: str | None = None,
    ) -> "OrchestraError":
        """Return copy with additional context.

        The copy keeps the concrete error class.

        Args:
            step_id: Optional step identifier
            workflow_id: Optional workflow identifier
            execution_id: Optional execution identifier

        Returns:
            New error instance with updated context
        """
        return replace(
            self,
            step_id=step_id or self.step_id,
            workflow_id=workflow_id or self.workflow_id,
            execution_id=execution_id or self.execution_id,
        )

    def cause_chain(self, max_depth: int = 5) -> list[str]:
        """Describe this error and its causes, outermost first.

        Args:
            max_depth: Maximum number of links to follow

        Returns:
            List of "CODE: message" / "Type: message" strings
        """
        chain: list[str] = []
        current: BaseException | None = self
        while current is not None and len(chain) < max_depth:
            if isinstance(current, OrchestraError):
                chain.append(f"{current.code}: {current.message}")
                current = current.cause
            else:
                chain.append(f"{type(current).__name__}: {current}")
                current = current.__cause__
        return chain


# Workflow definition errors


class WorkflowValidationError(OrchestraError):
    """Workflow definition rejected at registration."""


class DependencyCycleError(WorkflowValidationError):
    """The depends_on graph of a workflow contains a cycle."""


class ConditionEvaluationError(WorkflowValidationError):
    """A step condition is malformed or cannot be evaluated."""


class WorkflowNotFoundError(OrchestraError):
    """No workflow registered under the requested id."""


class WorkflowAlreadyRegisteredError(OrchestraError):
    """A workflow with the same id is already registered."""


class ExecutionNotFoundError(OrchestraError):
    """No execution retained under the requested id."""


# Execution errors


class StepTimeoutError(OrchestraError):
    """An action did not finish within its timeout."""


class StepActionError(OrchestraError):
    """An action raised; the original exception is the cause."""


class WorkflowEscalatedError(OrchestraError):
    """A step failed under the escalate policy."""


class WorkflowTimeoutError(OrchestraError):
    """A workflow exceeded its overall timeout."""


# Recovery errors


class CircuitOpenError(OrchestraError):
    """A circuit breaker rejected the call without running the action."""


class RetryExhaustedError(OrchestraError):
    """All retry attempts failed; the last attempt's error is the cause."""


@dataclass
class FallbackFailedError(OrchestraError):
    """Both the primary action and its fallback failed.

    ``cause`` is the fallback's error; ``primary_error`` the primary action's.
    """

    primary_error: BaseException | None = None

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.primary_error is not None:
            data["primary_error"] = {
                "type": type(self.primary_error).__name__,
                "message": str(self.primary_error),
            }
        return data


class StrategyNotFoundError(OrchestraError):
    """No recovery strategy registered under the requested name."""


# Event bus errors


class HandlerError(OrchestraError):
    """An event handler raised."""


class HandlerTimeoutError(HandlerError):
    """An event handler exceeded its timeout."""


class EventWaitTimeoutError(OrchestraError):
    """No matching event arrived before the wait timed out."""


# System errors


class ConfigError(OrchestraError):
    """Configuration could not be loaded or is invalid."""


@dataclass
class ErrorTemplate:
    """Template for creating errors."""

    code: str
    category: ErrorCategory
    message_template: str  # "Circuit breaker '{breaker}' is open"
    detail_template: str | None = None
    suggestion_template: str | None = None
    default_retryable: bool = False
    error_type: type[OrchestraError] = OrchestraError


@dataclass
class MatchResult:
    """Result of matching an exception."""

    code: str
    context: dict[str, Any]
    retryable: bool | None = None  # None = use template default


class ErrorMatcher(ABC):
    """Base class for exception matchers."""

    @abstractmethod
    def matches(self, error: BaseException) -> bool:
        """Check if this matcher handles the error.

        Args:
            error: Exception to check

        Returns:
            True if this matcher can handle the error
        """

    @abstractmethod
    def extract(self, error: BaseException) -> MatchResult:
        """Extract error info from the exception.

        Args:
            error: Exception to extract from

        Returns:
            MatchResult with error code and context
        """
