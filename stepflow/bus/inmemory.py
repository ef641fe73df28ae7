"""In-process event bus."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from ..contracts import Event
from ..errors import EventBusError
from .base import BaseEventBus

logger = logging.getLogger(__name__)


class InMemoryEventBus(BaseEventBus):
    """Deliver events to subscribers in the same event loop."""

    def __init__(self) -> None:
        super().__init__()
        self._closed = False

    async def connect(self) -> None:
        self._closed = False

    async def close(self) -> None:
        self._closed = True

    async def publish(self, topic: str, data: Mapping[str, Any]) -> Event:
        if self._closed:
            raise EventBusError(f"Cannot publish '{topic}': bus is closed")
        event = Event(topic=topic, data=dict(data))
        delivered = self._fan_out(event)
        logger.debug(f"Published {topic} ({event.event_id}) to {delivered} subscriber(s)")
        return event
