"""Orchestra Events - In-process publish/subscribe event bus."""

from .bus import EventBus
from .patterns import DEFAULT_DELIMITER, WILDCARD, matches_pattern, validate_pattern
from .types import (
    DeadLetter,
    DeliveryOutcome,
    Event,
    EventFilter,
    EventHandler,
    EventMetadata,
    Subscription,
)

__all__ = [
    "EventBus",
    # Types
    "Event",
    "EventMetadata",
    "EventHandler",
    "EventFilter",
    "Subscription",
    "DeliveryOutcome",
    "DeadLetter",
    # Patterns
    "DEFAULT_DELIMITER",
    "WILDCARD",
    "matches_pattern",
    "validate_pattern",
]
