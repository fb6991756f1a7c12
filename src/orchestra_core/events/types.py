"""Event bus types."""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from orchestra_core.errors import OrchestraError


@dataclass(frozen=True)
class EventMetadata:
    """Metadata attached to every published event.

    ``extra`` holds caller-supplied metadata.
    """

    id: str
    timestamp: datetime
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "timestamp": self.timestamp.isoformat(), **self.extra}


@dataclass(frozen=True)
class Event:
    """A published event."""

    type: str
    data: Any
    metadata: EventMetadata

    @property
    def id(self) -> str:
        return self.metadata.id

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "data": self.data, "metadata": self.metadata.to_dict()}


EventHandler = Callable[[Event], Any]
EventFilter = Callable[[Any], bool]


@dataclass
class Subscription:
    """A registered handler.

    Attributes:
        id: Subscription identifier
        sequence: Registration order, breaks priority ties
        pattern: Exact event type, pattern with ``*`` segments, or ``*``
        handler: Sync or async callable receiving the Event
        once: Remove before the first delivery
        priority: Higher priorities are delivered first
        filter: Predicate on the event payload, or the name of a registered filter
        timeout_seconds: Per-delivery timeout (None = unbounded)
    """

    id: str
    sequence: int
    pattern: str
    handler: EventHandler
    once: bool = False
    priority: int = 0
    filter: EventFilter | str | None = None
    timeout_seconds: float | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def sort_key(self) -> tuple[int, int]:
        return (-self.priority, self.sequence)

    def describe(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "priority": self.priority,
            "once": self.once,
            "has_filter": self.filter is not None,
            "timeout_seconds": self.timeout_seconds,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class DeliveryOutcome:
    """Result of delivering one event to one subscription."""

    subscription_id: str
    pattern: str
    success: bool
    result: Any = None
    error: OrchestraError | None = None


@dataclass(frozen=True)
class DeadLetter:
    """A failed delivery kept for inspection."""

    event_type: str
    event_id: str
    error: OrchestraError
    subscription_id: str
    pattern: str
    priority: int
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_type": self.event_type,
            "event_id": self.event_id,
            "error": self.error.to_dict(),
            "subscription_id": self.subscription_id,
            "pattern": self.pattern,
            "priority": self.priority,
            "timestamp": self.timestamp.isoformat(),
        }
