"""Event bus - publish/subscribe with wildcard routing and failure isolation."""

import asyncio
import inspect
import threading
import uuid
from collections import Counter, deque
from collections.abc import Callable, Iterable, Mapping
from datetime import UTC, datetime
from typing import Any

from orchestra_core.errors import HandlerError, OrchestraError, create_error
from orchestra_core.telemetry import get_telemetry

from .patterns import DEFAULT_DELIMITER, matches_pattern, validate_pattern
from .types import (
    DeadLetter,
    DeliveryOutcome,
    Event,
    EventFilter,
    EventHandler,
    EventMetadata,
    Subscription,
)


class EventBus:
    """In-process event bus.

    Delivery order for one publish is descending priority, then registration
    order, across every matching pattern. Handler failures are captured as
    failed outcomes and dead letters and never reach the publisher.
    """

    def __init__(
        self,
        history_size: int = 1000,
        dead_letter_size: int = 100,
        delimiter: str = DEFAULT_DELIMITER,
        default_timeout_seconds: float | None = None,
        logger: Any = None,
    ):
        """Initialize event bus.

        Args:
            history_size: Events kept in history
            dead_letter_size: Failed deliveries kept in the dead-letter queue
            delimiter: Segment delimiter for event types and patterns
            default_timeout_seconds: Handler timeout for subscriptions without one
            logger: Optional OrchestraLogger instance
        """
        self._delimiter = delimiter
        self._default_timeout = default_timeout_seconds
        self._logger = logger.events() if logger else None

        # Guards the tables below; never held across an await
        self._lock = threading.Lock()
        self._subscriptions: dict[str, Subscription] = {}
        self._sequence = 0
        self._history: deque[Event] = deque(maxlen=history_size)
        self._dead_letters: deque[DeadLetter] = deque(maxlen=dead_letter_size)
        self._filters: dict[str, EventFilter] = {}

    @property
    def delimiter(self) -> str:
        return self._delimiter

    # ── Subscriptions ────────────────────────────────────────────────

    def subscribe(
        self,
        pattern: str,
        handler: EventHandler,
        *,
        once: bool = False,
        priority: int = 0,
        filter: EventFilter | str | None = None,  # noqa: A002
        timeout_seconds: float | None = None,
    ) -> Callable[[], bool]:
        """Subscribe a handler to an event pattern.

        Args:
            pattern: Exact event type, pattern with ``*`` segments, or ``*``
            handler: Sync or async callable receiving the Event
            once: Deliver at most one event, then unsubscribe
            priority: Higher priorities are delivered first
            filter: Predicate on the event payload, or the name of a registered filter
            timeout_seconds: Per-delivery timeout

        Returns:
            Unsubscribe callable; returns True if it removed the subscription

        Raises:
            ValueError: If the pattern is malformed or timeout not positive
        """
        validate_pattern(pattern, self._delimiter)
        if timeout_seconds is not None and timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")

        with self._lock:
            self._sequence += 1
            subscription = Subscription(
                id=f"sub-{uuid.uuid4().hex[:12]}",
                sequence=self._sequence,
                pattern=pattern,
                handler=handler,
                once=once,
                priority=priority,
                filter=filter,
                timeout_seconds=timeout_seconds,
            )
            self._subscriptions[subscription.id] = subscription

        def unsubscribe() -> bool:
            return self._remove(subscription.id)

        return unsubscribe

    def once(self, pattern: str, handler: EventHandler, **options: Any) -> Callable[[], bool]:
        """Subscribe a handler for a single delivery."""
        return self.subscribe(pattern, handler, once=True, **options)

    def _remove(self, subscription_id: str) -> bool:
        with self._lock:
            return self._subscriptions.pop(subscription_id, None) is not None

    def list_subscribers(self) -> dict[str, list[dict[str, Any]]]:
        """Describe active subscriptions grouped by pattern."""
        with self._lock:
            subscriptions = list(self._subscriptions.values())

        listing: dict[str, list[dict[str, Any]]] = {}
        for subscription in subscriptions:
            listing.setdefault(subscription.pattern, []).append(subscription.describe())
        return listing

    # ── Named filters ────────────────────────────────────────────────

    def register_filter(self, name: str, filter_fn: EventFilter) -> None:
        """Register a named filter usable as ``subscribe(..., filter=name)``."""
        with self._lock:
            self._filters[name] = filter_fn

    def get_filter(self, name: str) -> EventFilter | None:
        with self._lock:
            return self._filters.get(name)

    # ── Publishing ───────────────────────────────────────────────────

    async def publish(
        self,
        event_type: str,
        data: Any = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> list[DeliveryOutcome]:
        """Publish an event to every matching subscription.

        Args:
            event_type: Concrete event type
            data: Event payload
            metadata: Caller-supplied metadata

        Returns:
            One outcome per delivered subscription, in delivery order
        """
        event = Event(
            type=event_type,
            data=data,
            metadata=EventMetadata(
                id=f"evt-{uuid.uuid4().hex[:12]}",
                timestamp=datetime.now(UTC),
                extra=dict(metadata or {}),
            ),
        )

        with self._lock:
            self._history.append(event)
            matching = sorted(
                (
                    s
                    for s in self._subscriptions.values()
                    if matches_pattern(event_type, s.pattern, self._delimiter)
                ),
                key=lambda s: s.sort_key,
            )

        outcomes: list[DeliveryOutcome] = []
        for subscription in matching:
            outcome = await self._deliver(subscription, event)
            if outcome is not None:
                outcomes.append(outcome)

        if self._logger:
            self._logger.published(event_type, event.id, len(outcomes))

        telemetry = get_telemetry()
        if telemetry and telemetry.get("metrics"):
            telemetry["metrics"].record_event_published(event_type, len(outcomes))

        return outcomes

    async def emit_batch(self, events: Iterable[Mapping[str, Any]]) -> list[list[DeliveryOutcome]]:
        """Publish several events in order.

        Args:
            events: Mappings with ``type`` and optional ``data``/``metadata``

        Returns:
            Outcomes of each publish, in order
        """
        results = []
        for item in events:
            results.append(
                await self.publish(item["type"], item.get("data"), item.get("metadata"))
            )
        return results

    async def wait_for(self, event_type: str, timeout_seconds: float = 5.0) -> Event:
        """Wait for the next event matching a pattern.

        Raises:
            EventWaitTimeoutError: If no matching event arrives in time
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Event] = loop.create_future()

        def resolve(event: Event) -> None:
            if not future.done():
                future.set_result(event)

        unsubscribe = self.once(event_type, resolve)
        try:
            return await asyncio.wait_for(future, timeout_seconds)
        except TimeoutError as e:
            unsubscribe()
            error = create_error(
                "EVENT_WAIT_TIMEOUT",
                event_type=event_type,
                timeout_seconds=timeout_seconds,
                cause=e,
            )
            raise error from e

    async def _deliver(self, subscription: Subscription, event: Event) -> DeliveryOutcome | None:
        """Deliver one event to one subscription.

        Returns:
            Outcome, or None if the subscription was removed or filtered out
        """
        with self._lock:
            if subscription.id not in self._subscriptions:
                return None

        try:
            if not self._passes_filter(subscription, event):
                return None
        except Exception as e:
            return self._failed(subscription, event, e)

        # once subscriptions are claimed before the first await
        if subscription.once and not self._remove(subscription.id):
            return None

        timeout = subscription.timeout_seconds or self._default_timeout
        timer = asyncio.timeout(timeout)
        try:
            async with timer:
                result = await self._invoke(subscription, event)
        except TimeoutError as e:
            if not timer.expired():
                return self._failed(subscription, event, e)
            error = create_error(
                "HANDLER_TIMEOUT",
                event_type=event.type,
                timeout_seconds=timeout,
                cause=e,
            )
            return self._failed(subscription, event, error)
        except Exception as e:
            return self._failed(subscription, event, e)

        return DeliveryOutcome(
            subscription_id=subscription.id,
            pattern=subscription.pattern,
            success=True,
            result=result,
        )

    def _passes_filter(self, subscription: Subscription, event: Event) -> bool:
        predicate = subscription.filter
        if predicate is None:
            return True
        if isinstance(predicate, str):
            name = predicate
            predicate = self.get_filter(name)
            if predicate is None:
                raise LookupError(f"Unknown event filter '{name}'")
        return bool(predicate(event.data))

    async def _invoke(self, subscription: Subscription, event: Event) -> Any:
        result = subscription.handler(event)
        if inspect.isawaitable(result):
            result = await result
        return result

    def _failed(
        self, subscription: Subscription, event: Event, error: BaseException
    ) -> DeliveryOutcome:
        if not isinstance(error, HandlerError):
            error = create_error(
                "HANDLER_FAILED",
                event_type=event.type,
                error_message=str(error) or type(error).__name__,
                cause=error,
            )

        with self._lock:
            self._dead_letters.append(
                DeadLetter(
                    event_type=event.type,
                    event_id=event.id,
                    error=error,
                    subscription_id=subscription.id,
                    pattern=subscription.pattern,
                    priority=subscription.priority,
                )
            )

        if self._logger:
            self._logger.handler_failed(event.type, subscription.pattern, error)

        telemetry = get_telemetry()
        if telemetry and telemetry.get("metrics"):
            telemetry["metrics"].record_dead_letter(event.type)

        return DeliveryOutcome(
            subscription_id=subscription.id,
            pattern=subscription.pattern,
            success=False,
            error=error,
        )

    # ── History and statistics ───────────────────────────────────────

    def get_event_history(self, event_type: str | None = None, limit: int = 50) -> list[Event]:
        """Recent events, newest first.

        Args:
            event_type: Optional pattern the event type must match
            limit: Maximum number of events
        """
        with self._lock:
            history = list(self._history)

        if event_type:
            history = [e for e in history if matches_pattern(e.type, event_type, self._delimiter)]
        return history[::-1][:limit]

    def get_dead_letter_queue(self, limit: int = 50) -> list[DeadLetter]:
        """Recent failed deliveries, newest first."""
        with self._lock:
            return list(self._dead_letters)[::-1][:limit]

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()

    def clear_dead_letter_queue(self) -> None:
        with self._lock:
            self._dead_letters.clear()

    def get_stats(self) -> dict[str, Any]:
        """Summary of history, subscriptions and the dead-letter queue."""
        with self._lock:
            event_types = Counter(e.type for e in self._history)
            subscriber_counts = Counter(s.pattern for s in self._subscriptions.values())
            return {
                "total_events": len(self._history),
                "total_subscribers": len(self._subscriptions),
                "event_types": dict(event_types),
                "dead_letter_queue_size": len(self._dead_letters),
                "subscriber_counts": dict(subscriber_counts),
            }
