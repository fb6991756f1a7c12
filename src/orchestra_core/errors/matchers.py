"""Error matchers for converting exceptions to OrchestraErrors."""

from typing import Any

from .errors import ErrorMatcher, MatchResult


class TimeoutErrorMatcher(ErrorMatcher):
    """Matches timeout errors raised by actions themselves."""

    def matches(self, error: BaseException) -> bool:
        """Check if error is a timeout error.

        Args:
            error: Exception to check

        Returns:
            True if error is a timeout error
        """
        return isinstance(error, TimeoutError)

    def extract(self, error: BaseException) -> MatchResult:
        """Extract timeout error info.

        Args:
            error: Exception to extract from

        Returns:
            MatchResult with STEP_TIMEOUT code
        """
        return MatchResult(
            code="STEP_TIMEOUT",
            context={"timeout_seconds": "unknown", "detail": str(error) or None},
            retryable=True,
        )


class GenericErrorMatcher(ErrorMatcher):
    """Fallback matcher for any exception raised by an action."""

    def matches(self, error: BaseException) -> bool:
        """Always matches.

        Args:
            error: Exception to check

        Returns:
            Always True (fallback matcher)
        """
        return True

    def extract(self, error: BaseException) -> MatchResult:
        """Extract generic error info.

        Args:
            error: Exception to extract from

        Returns:
            MatchResult with STEP_ACTION_FAILED code
        """
        context: dict[str, Any] = {
            "error_type": type(error).__name__,
            "error_message": str(error),
        }

        return MatchResult(
            code="STEP_ACTION_FAILED",
            context=context,
        )


class ErrorMatcherChain:
    """Ordered chain of matchers. First match wins."""

    def __init__(self) -> None:
        """Initialize matcher chain with built-in matchers."""
        self.matchers: list[ErrorMatcher] = []
        self._load_builtin_matchers()

    def match(self, error: BaseException) -> MatchResult:
        """Find first matching matcher and extract result.

        Args:
            error: Exception to match

        Returns:
            MatchResult from first matching matcher
        """
        for matcher in self.matchers:
            if matcher.matches(error):
                return matcher.extract(error)

        # Should never reach here due to GenericErrorMatcher
        return MatchResult(
            code="INTERNAL_ERROR",
            context={"detail": str(error)},
        )

    def add(self, matcher: ErrorMatcher) -> None:
        """Insert a matcher ahead of the built-in fallback.

        Args:
            matcher: Matcher to add
        """
        self.matchers.insert(len(self.matchers) - 1, matcher)

    def _load_builtin_matchers(self) -> None:
        """Load built-in matchers in priority order."""
        # Order matters - more specific matchers first
        self.matchers = [
            TimeoutErrorMatcher(),
            GenericErrorMatcher(),  # Fallback - must be last
        ]
