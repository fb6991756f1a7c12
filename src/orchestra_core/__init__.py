"""Orchestra Core - Embedded workflow orchestration, recovery and events.

Core components an application embeds to run dependency-ordered
workflows with retries, circuit breakers and an in-process event bus.
"""

from orchestra_core.application import OrchestrationContext

__version__ = "1.0.0"
__all__ = ["__version__", "OrchestrationContext"]
