"""Orchestra Logging - Hierarchical colored logging for orchestration components."""

from .colors import (
    CYAN,
    GREEN,
    LIGHT_BLUE,
    MAGENTA,
    ORANGE,
    RED,
    RESET,
    YELLOW,
)
from .logger import (
    EventBusLogger,
    LogConfig,
    OrchestraLogger,
    RecoveryLogger,
    StepLogger,
    WorkflowLogger,
)

__all__ = [
    # Logger classes
    "OrchestraLogger",
    "WorkflowLogger",
    "StepLogger",
    "RecoveryLogger",
    "EventBusLogger",
    "LogConfig",
    # Colors
    "RESET",
    "GREEN",
    "RED",
    "YELLOW",
    "ORANGE",
    "LIGHT_BLUE",
    "CYAN",
    "MAGENTA",
]
