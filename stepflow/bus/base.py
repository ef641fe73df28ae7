"""Base event bus interface."""

from __future__ import annotations

import abc
import asyncio
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Set

from ..contracts import Event

logger = logging.getLogger(__name__)

EventHandler = Callable[[Event], Awaitable[Any]]


class BaseEventBus(metaclass=abc.ABCMeta):
    """Abstract topic-based publish/subscribe bus.

    Subscribers are kept locally by every backend. Each delivery runs as its
    own asyncio task so a slow or failing subscriber never holds up the
    others. Failed deliveries are logged and not retried.
    """

    def __init__(self) -> None:
        self._subscribers: Dict[str, List[EventHandler]] = defaultdict(list)
        self._inflight: Set[asyncio.Task] = set()

    async def connect(self) -> None:
        """Open connection to broker (no-op by default)."""
        pass

    async def close(self) -> None:
        """Close connection to broker (no-op by default)."""
        pass

    @abc.abstractmethod
    async def publish(self, topic: str, data: Mapping[str, Any]) -> Event:
        """Publish ``data`` on ``topic`` and return the created event."""
        raise NotImplementedError

    async def subscribe(self, topic: str, handler: EventHandler) -> None:
        """Register ``handler`` to be invoked once per event on ``topic``."""
        self._subscribers[topic].append(handler)

    async def unsubscribe(self, topic: str, handler: EventHandler) -> None:
        handlers = self._subscribers.get(topic, [])
        if handler in handlers:
            handlers.remove(handler)

    def subscriptions(self) -> Dict[str, int]:
        """Return the number of subscribers per topic."""
        return {topic: len(h) for topic, h in self._subscribers.items() if h}

    def _fan_out(self, event: Event) -> int:
        """Schedule delivery of ``event`` to every current local subscriber."""
        handlers = list(self._subscribers.get(event.topic, []))
        if not handlers:
            logger.debug(f"No subscribers for topic '{event.topic}', dropping event {event.event_id}")
            return 0
        for handler in handlers:
            task = asyncio.create_task(self._deliver(handler, event))
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)
        return len(handlers)

    async def _deliver(self, handler: EventHandler, event: Event) -> None:
        try:
            await handler(event)
        except Exception:
            name = getattr(handler, "__qualname__", repr(handler))
            logger.exception(
                f"Subscriber {name} failed on topic '{event.topic}' (event {event.event_id})"
            )

    async def drain(self) -> None:
        """Wait until no deliveries are in flight.

        Deliveries scheduled by handlers while draining are awaited too.
        """
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)
