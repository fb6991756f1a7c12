"""Error factory for creating OrchestraErrors from any exception type."""

from typing import Any

from .errors import OrchestraError
from .matchers import ErrorMatcherChain
from .registry import ErrorRegistry


class ErrorFactory:
    """Creates OrchestraErrors from any exception type."""

    def __init__(
        self,
        registry: ErrorRegistry | None = None,
        matcher_chain: ErrorMatcherChain | None = None,
    ):
        """Initialize error factory.

        Args:
            registry: Error registry (defaults to new ErrorRegistry())
            matcher_chain: Matcher chain (defaults to new ErrorMatcherChain())
        """
        self.registry = registry or ErrorRegistry()
        self.matcher_chain = matcher_chain or ErrorMatcherChain()

    def from_exception(
        self,
        error: BaseException,
        step_id: str | None = None,
        workflow_id: str | None = None,
        execution_id: str | None = None,
    ) -> OrchestraError:
        """Convert any exception to OrchestraError.

        Args:
            error: Exception to convert
            step_id: Optional step identifier
            workflow_id: Optional workflow identifier
            execution_id: Optional execution identifier

        Returns:
            OrchestraError instance whose cause is the original exception
        """
        # If already an OrchestraError, just add context
        if isinstance(error, OrchestraError):
            return error.with_context(
                step_id=step_id,
                workflow_id=workflow_id,
                execution_id=execution_id,
            )

        match_result = self.matcher_chain.match(error)

        context = match_result.context.copy()
        if step_id:
            context["step_id"] = step_id
        if workflow_id:
            context["workflow_id"] = workflow_id
        if execution_id:
            context["execution_id"] = execution_id

        orchestra_error = self.registry.create(
            code=match_result.code,
            context=context,
            cause=error,
        )

        # Override retryable if specified in match result
        if match_result.retryable is not None:
            orchestra_error.retryable = match_result.retryable

        return orchestra_error

    def create(
        self,
        code: str,
        context: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> OrchestraError:
        """Create OrchestraError directly from code.

        A ``cause`` keyword is attached as the underlying exception
        rather than interpolated.

        Args:
            code: Error code
            context: Context variables for template interpolation
            **kwargs: Additional context variables

        Returns:
            OrchestraError instance
        """
        merged_context = dict(context or {})
        merged_context.update(kwargs)
        cause = merged_context.pop("cause", None)

        return self.registry.create(code=code, context=merged_context, cause=cause)


# Convenience singleton
_default_factory: ErrorFactory | None = None


def get_error_factory() -> ErrorFactory:
    """Get default error factory singleton.

    Returns:
        Default ErrorFactory instance
    """
    global _default_factory  # noqa: PLW0603
    if _default_factory is None:
        _default_factory = ErrorFactory()
    return _default_factory


def create_error(code: str, **context: Any) -> OrchestraError:
    """Convenience function to create error.

    Args:
        code: Error code
        **context: Context variables for template interpolation

    Returns:
        OrchestraError instance
    """
    return get_error_factory().create(code, context)
