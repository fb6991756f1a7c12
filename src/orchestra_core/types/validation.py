"""Shared validation types for Orchestra."""

from dataclasses import dataclass, field


@dataclass
class ValidationIssue:
    """Single validation issue (error or warning).

    Used by:
    - ConfigLoader (config validation)
    - WorkflowValidator (workflow validation)
    """

    path: str  # e.g., "steps.fetch.depends_on" or "recovery.circuit_breaker"
    message: str  # Human-readable description
    severity: str = "error"  # "error" | "warning"
    code: str | None = None  # Error code raised when this issue rejects a definition


@dataclass
class ValidationResult:
    """Result of validation (config or workflow).

    Used by:
    - ConfigLoader.validate()
    - WorkflowValidator.validate()
    """

    valid: bool
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Ensure valid is False if there are errors."""
        if self.errors:
            self.valid = False
