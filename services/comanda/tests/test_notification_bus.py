import asyncio

import pytest

from app.domain.enums import NotificationType
from app.api.notifications_routes import event_stream
from app.infrastructure.notifications import Notification, NotificationBus


def _note(establishment_id="est-1", title="hello"):
    return Notification(
        type=NotificationType.NEW_ORDER,
        establishment_id=establishment_id,
        title=title,
        message=title,
    )


def test_history_is_bounded_and_newest_first():
    bus = NotificationBus(buffer_size=3)
    for index in range(5):
        bus.publish("est-1", _note(title=f"n{index}"))

    assert [n.title for n in bus.recent("est-1", 10)] == ["n4", "n3", "n2"]
    assert [n.title for n in bus.recent("est-1", 2)] == ["n4", "n3"]


def test_history_is_per_establishment():
    bus = NotificationBus()
    bus.publish("est-1", _note("est-1"))
    assert bus.recent("est-2") == []
    bus.clear("est-1")
    assert bus.recent("est-1") == []


def test_subscribers_receive_only_their_establishment():
    bus = NotificationBus()
    received = []
    unsubscribe = bus.subscribe("est-1", received.append)

    bus.publish("est-1", _note("est-1", "mine"))
    bus.publish("est-2", _note("est-2", "theirs"))
    assert [n.title for n in received] == ["mine"]

    unsubscribe()
    bus.publish("est-1", _note("est-1", "after"))
    assert len(received) == 1
    assert bus.subscriber_count("est-1") == 0


def test_failing_subscriber_is_removed():
    bus = NotificationBus()
    received = []

    def broken(notification):
        raise RuntimeError("client went away")

    bus.subscribe("est-1", broken)
    bus.subscribe("est-1", received.append)
    bus.publish("est-1", _note())

    assert len(received) == 1
    assert bus.subscriber_count("est-1") == 1
    assert bus.subscriber_count() == 1


def test_closed_bus_drops_everything():
    bus = NotificationBus()
    bus.subscribe("est-1", lambda n: None)
    bus.publish("est-1", _note())
    bus.close()

    assert bus.closed
    assert bus.subscriber_count() == 0
    assert bus.recent("est-1") == []
    bus.publish("est-1", _note())
    assert bus.recent("est-1") == []
    with pytest.raises(RuntimeError):
        bus.subscribe("est-1", lambda n: None)


def test_buffer_size_must_be_positive():
    with pytest.raises(ValueError):
        NotificationBus(buffer_size=0)


def test_notification_serializes_for_clients():
    payload = _note().to_dict()
    assert payload["type"] == "new_order"
    assert payload["created_at"].endswith("Z")
    assert set(payload) == {"id", "type", "establishment_id", "title", "message", "data", "created_at"}


def test_stream_on_closed_bus_ends_without_events():
    bus = NotificationBus()
    bus.close()

    async def collect():
        return [chunk async for chunk in event_stream(None, bus, "est-1", 0.01)]

    assert asyncio.run(collect()) == []


def test_stream_stops_when_bus_closes():
    bus = NotificationBus()

    async def collect():
        stream = event_stream(None, bus, "est-1", 0.01)
        chunks = [await stream.__anext__()]
        assert bus.subscriber_count("est-1") == 1
        bus.close()
        chunks.extend([chunk async for chunk in stream])
        return chunks

    chunks = asyncio.run(collect())
    assert len(chunks) == 1
    assert chunks[0].startswith("event: connected")
