"""Redis bus tests against in-process stand-ins for the client."""

import asyncio

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from stepflow.bus.redis import RedisEventBus
from stepflow.contracts import Event
from stepflow.errors import EventBusError


class FakePubSub:
    def __init__(self, messages=(), error=None):
        self.channels = []
        self.unsubscribed = []
        self.messages = list(messages)
        self.error = error

    @property
    def subscribed(self):
        return bool(self.channels)

    async def subscribe(self, *channels):
        self.channels.extend(channels)

    async def unsubscribe(self, *channels):
        self.unsubscribed.extend(channels)
        self.channels = [c for c in self.channels if c not in channels]

    async def get_message(self, ignore_subscribe_messages=True, timeout=1.0):
        if self.messages:
            return self.messages.pop(0)
        if self.error is not None:
            raise self.error
        await asyncio.sleep(0.01)
        return None

    async def aclose(self):
        pass


class FakeRedis:
    def __init__(self):
        self.published = []

    async def publish(self, channel, message):
        self.published.append((channel, message))

    async def aclose(self):
        pass


def attach(bus, pubsub):
    bus._redis = FakeRedis()
    bus._pubsub = pubsub
    bus._start_listener()


async def noop(event):
    pass


@pytest.mark.asyncio
async def test_listener_failure_makes_publish_fail():
    bus = RedisEventBus(channel_prefix="test")
    pubsub = FakePubSub(error=RedisConnectionError("connection reset"))
    await bus.subscribe("data-fetched", noop)
    attach(bus, pubsub)
    await pubsub.subscribe(bus.channel("data-fetched"))

    await asyncio.wait_for(asyncio.shield(bus._listener), timeout=2)

    with pytest.raises(EventBusError, match="listener failed"):
        await bus.publish("data-fetched", {"pipelineId": "p1"})
    assert bus._redis.published == []

    await bus.close()


@pytest.mark.asyncio
async def test_listener_fans_out_received_messages():
    bus = RedisEventBus(channel_prefix="test")
    received = []

    async def handler(event):
        received.append(event)

    event = Event(topic="email-sent", data={"recipient": "a@example.com"})
    pubsub = FakePubSub(messages=[{"type": "message", "channel": "test:email-sent", "data": event.to_json()}])
    await bus.subscribe("email-sent", handler)
    await pubsub.subscribe(bus.channel("email-sent"))
    attach(bus, pubsub)

    for _ in range(50):
        if received:
            break
        await asyncio.sleep(0.01)
    await bus.drain()

    assert [e.event_id for e in received] == [event.event_id]
    await bus.close()


@pytest.mark.asyncio
async def test_last_unsubscribe_releases_channel():
    bus = RedisEventBus(channel_prefix="test")
    pubsub = FakePubSub()
    attach(bus, pubsub)

    async def other(event):
        pass

    await bus.subscribe("data-fetched", noop)
    await bus.subscribe("data-fetched", other)
    assert pubsub.channels == ["test:data-fetched"]

    await bus.unsubscribe("data-fetched", noop)
    assert pubsub.unsubscribed == []

    await bus.unsubscribe("data-fetched", other)
    assert pubsub.unsubscribed == ["test:data-fetched"]
    assert bus.subscriptions() == {}

    await bus.close()


@pytest.mark.asyncio
async def test_publish_sends_json_on_prefixed_channel():
    bus = RedisEventBus(channel_prefix="test")
    attach(bus, FakePubSub())

    event = await bus.publish("data-fetched", {"pipelineId": "p1"})

    channel, message = bus._redis.published[0]
    assert channel == "test:data-fetched"
    assert Event.from_json(message).event_id == event.event_id
    await bus.close()
