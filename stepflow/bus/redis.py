"""Redis pub/sub event bus for cross-process delivery."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Optional

import redis.asyncio as redis
from pydantic import ValidationError
from redis.exceptions import RedisError

from ..contracts import Event
from ..errors import EventBusError
from .base import BaseEventBus, EventHandler

logger = logging.getLogger(__name__)


class RedisEventBus(BaseEventBus):
    """Publish events on Redis channels and fan them out to local handlers.

    Every process subscribes only to the topics its own steps need; Redis
    delivers each published message to every subscribed process. If the
    listener loses its connection the bus is marked failed and every later
    publish raises :class:`EventBusError`.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        channel_prefix: str = "stepflow",
    ) -> None:
        super().__init__()
        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.channel_prefix = channel_prefix
        self._redis: Optional[Any] = None
        self._pubsub: Optional[Any] = None
        self._listener: Optional[asyncio.Task] = None
        self._failure: Optional[BaseException] = None

    def channel(self, topic: str) -> str:
        return f"{self.channel_prefix}:{topic}"

    def topic_for(self, channel: str) -> str:
        return channel.split(":", 1)[1] if ":" in channel else channel

    async def connect(self) -> None:
        """Connect to Redis and start the listener task."""
        if self._redis is not None:
            return
        self._redis = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        try:
            await self._redis.ping()
        except RedisError as exc:
            self._redis = None
            raise EventBusError(f"Cannot connect to Redis at {self.host}:{self.port}: {exc}") from exc
        self._pubsub = self._redis.pubsub()
        topics = [self.channel(t) for t, handlers in self._subscribers.items() if handlers]
        if topics:
            await self._pubsub.subscribe(*topics)
        self._start_listener()

    def _start_listener(self) -> None:
        self._failure = None
        self._listener = asyncio.create_task(self._listen())
        self._listener.add_done_callback(self._listener_done)

    def _listener_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None and self._failure is None:
            logger.error(f"Redis listener stopped unexpectedly: {exc!r}")
            self._failure = exc

    async def close(self) -> None:
        """Stop listening and disconnect from Redis."""
        if self._listener:
            self._listener.cancel()
            await asyncio.gather(self._listener, return_exceptions=True)
            self._listener = None
        if self._pubsub:
            await self._pubsub.aclose()
            self._pubsub = None
        if self._redis:
            await self._redis.aclose()
            self._redis = None
        self._failure = None

    async def subscribe(self, topic: str, handler: EventHandler) -> None:
        first = not self._subscribers.get(topic)
        await super().subscribe(topic, handler)
        if first and self._pubsub is not None:
            await self._pubsub.subscribe(self.channel(topic))

    async def unsubscribe(self, topic: str, handler: EventHandler) -> None:
        await super().unsubscribe(topic, handler)
        if not self._subscribers.get(topic) and self._pubsub is not None:
            await self._pubsub.unsubscribe(self.channel(topic))

    async def publish(self, topic: str, data: Mapping[str, Any]) -> Event:
        if self._failure is not None:
            raise EventBusError(f"Redis listener failed, bus is unusable: {self._failure}")
        if self._redis is None:
            await self.connect()
        event = Event(topic=topic, data=dict(data))
        try:
            await self._redis.publish(self.channel(topic), event.to_json())
        except RedisError as exc:
            raise EventBusError(f"Failed to publish '{topic}': {exc}") from exc
        return event

    async def _listen(self) -> None:
        while True:
            if not self._pubsub.subscribed:
                await asyncio.sleep(0.1)
                continue
            try:
                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=1.0
                )
            except RedisError as exc:
                logger.exception("Redis listener lost its connection; no further events will be delivered")
                self._failure = exc
                return
            if message is None or message.get("type") != "message":
                continue
            try:
                event = Event.from_json(message["data"])
            except ValidationError as exc:
                logger.error(f"Dropping malformed event on {message.get('channel')}: {exc}")
                continue
            self._fan_out(event)
