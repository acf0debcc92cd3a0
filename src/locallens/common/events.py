"""In-process event bus connecting the lens core to its observers.

The scheduler, the state machine, the location tracker and the detail-view
controllers publish here; tools and tests observe the lens by subscribing.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Awaitable

from locallens.common.logging import get_logger


@dataclass
class Event:
    """Event message."""

    topic: str
    data: dict[str, Any]
    source: str
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: float = field(default_factory=time.time)


EventHandler = Callable[[Event], Awaitable[None]]


class EventBus:
    """Async pub/sub bus with exact and wildcard topic subscriptions.

    Topics are dot separated (``scheduler.place_locked``). Patterns may use
    ``*`` for one segment and ``**`` for any number of trailing segments.
    """

    def __init__(self, history_limit: int = 200) -> None:
        self._subscribers: dict[str, list[EventHandler]] = {}
        self._wildcard_subscribers: list[tuple[str, EventHandler]] = []
        self._history: list[Event] = []
        self._history_limit = history_limit
        self._pending: set[asyncio.Task] = set()
        self.logger = get_logger("event_bus")

    async def publish(self, event: Event) -> None:
        """Publish an event to every matching subscriber.

        Handler failures are logged and never reach the publisher.
        """
        self.logger.debug(
            "publishing_event",
            topic=event.topic,
            event_id=event.event_id,
            source=event.source,
        )

        self._history.append(event)
        if len(self._history) > self._history_limit:
            self._history = self._history[-self._history_limit :]

        handlers = self._subscribers.get(event.topic, []).copy()
        for pattern, handler in self._wildcard_subscribers:
            if self._matches_pattern(event.topic, pattern):
                handlers.append(handler)

        if handlers:
            await asyncio.gather(
                *[self._safe_dispatch(handler, event) for handler in handlers],
            )

    def emit(self, topic: str, source: str, **data: Any) -> None:
        """Schedule a publish from synchronous code.

        Used by the scheduler and state machine, whose transitions must stay
        synchronous. Without a running loop the event is only recorded.
        """
        event = Event(topic=topic, data=data, source=source)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._history.append(event)
            return
        task = loop.create_task(self.publish(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait until every event scheduled with ``emit`` has been delivered."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    async def _safe_dispatch(self, handler: EventHandler, event: Event) -> None:
        try:
            await handler(event)
        except Exception as e:
            self.logger.exception(
                "event_handler_error",
                topic=event.topic,
                event_id=event.event_id,
                error=str(e),
            )

    def _matches_pattern(self, topic: str, pattern: str) -> bool:
        """Check if topic matches a wildcard pattern."""
        topic_parts = topic.split(".")
        pattern_parts = pattern.split(".")

        i, j = 0, 0
        while i < len(topic_parts) and j < len(pattern_parts):
            if pattern_parts[j] == "**":
                if j == len(pattern_parts) - 1:
                    return True
                j += 1
                while i < len(topic_parts):
                    if self._matches_pattern(
                        ".".join(topic_parts[i:]),
                        ".".join(pattern_parts[j:]),
                    ):
                        return True
                    i += 1
                return False
            elif pattern_parts[j] == "*" or pattern_parts[j] == topic_parts[i]:
                i += 1
                j += 1
            else:
                return False

        return i == len(topic_parts) and j == len(pattern_parts)

    def subscribe(
        self,
        topic: str,
        handler: EventHandler | None = None,
    ) -> Callable[[EventHandler], EventHandler] | Callable[[], None]:
        """Subscribe to events on a topic.

        Can be used as a decorator or called directly.

        Args:
            topic: Topic to subscribe to. Supports wildcards (* and **).
            handler: Async function to handle events (optional for decorator use).

        Returns:
            Decorator (when handler is None) or unsubscribe function.
        """
        if handler is not None:
            return self._register_handler(topic, handler)

        def decorator(fn: EventHandler) -> EventHandler:
            self._register_handler(topic, fn)
            return fn

        return decorator

    def _register_handler(self, topic: str, handler: EventHandler) -> Callable[[], None]:
        if "*" in topic:
            self._wildcard_subscribers.append((topic, handler))

            def unsubscribe() -> None:
                self._wildcard_subscribers.remove((topic, handler))

        else:
            self._subscribers.setdefault(topic, []).append(handler)

            def unsubscribe() -> None:
                if topic in self._subscribers:
                    self._subscribers[topic].remove(handler)

        self.logger.debug("subscribed", topic=topic)
        return unsubscribe

    def get_history(
        self,
        topic: str | None = None,
        limit: int = 100,
    ) -> list[Event]:
        """Get event history, newest first, optionally filtered by topic pattern."""
        events = self._history.copy()

        if topic:
            events = [e for e in events if self._matches_pattern(e.topic, topic)]

        return list(reversed(events[-limit:]))

    def clear_history(self) -> None:
        """Clear event history."""
        self._history.clear()
