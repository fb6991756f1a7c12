"""Orchestra error handling - Structured errors with context."""

from .errors import (
    CircuitOpenError,
    ConditionEvaluationError,
    ConfigError,
    DependencyCycleError,
    ErrorCategory,
    ErrorMatcher,
    ErrorTemplate,
    EventWaitTimeoutError,
    ExecutionNotFoundError,
    FallbackFailedError,
    HandlerError,
    HandlerTimeoutError,
    MatchResult,
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
from .factory import ErrorFactory, create_error, get_error_factory
from .matchers import ErrorMatcherChain
from .registry import ErrorRegistry

__all__ = [
    # Core error types
    "OrchestraError",
    "ErrorCategory",
    "ErrorTemplate",
    "MatchResult",
    # Workflow errors
    "WorkflowValidationError",
    "DependencyCycleError",
    "ConditionEvaluationError",
    "WorkflowNotFoundError",
    "WorkflowAlreadyRegisteredError",
    "ExecutionNotFoundError",
    "WorkflowEscalatedError",
    "WorkflowTimeoutError",
    # Execution errors
    "StepTimeoutError",
    "StepActionError",
    # Recovery errors
    "CircuitOpenError",
    "RetryExhaustedError",
    "FallbackFailedError",
    "StrategyNotFoundError",
    # Event errors
    "HandlerError",
    "HandlerTimeoutError",
    "EventWaitTimeoutError",
    # System errors
    "ConfigError",
    # Registry and factory
    "ErrorRegistry",
    "ErrorFactory",
    "ErrorMatcherChain",
    "ErrorMatcher",
    # Convenience functions
    "get_error_factory",
    "create_error",
]
