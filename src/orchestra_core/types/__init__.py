"""Shared types for Orchestra.

Import from here rather than submodules:
    from orchestra_core.types import LogLevel, StepStatus, ValidationResult
"""

from .enums import (
    CircuitState,
    ErrorHandlerPolicy,
    ExecutionStatus,
    LogFormat,
    LogLevel,
    StepStatus,
    StrategyName,
)
from .validation import ValidationIssue, ValidationResult

__all__ = [
    # Enums
    "LogLevel",
    "LogFormat",
    "ErrorHandlerPolicy",
    "ExecutionStatus",
    "StepStatus",
    "CircuitState",
    "StrategyName",
    # Validation
    "ValidationIssue",
    "ValidationResult",
]
