"""Tests for the typed event bus."""
from agentbot.bus.emitter import EventBus
from agentbot.bus.events import Connected, ContentNotification, EventKind, SocketClosed


async def test_fan_out_in_subscription_order():
    bus = EventBus()
    order = []

    async def first(event):
        order.append(("first", event.raw))

    async def second(event):
        order.append(("second", event.raw))

    bus.subscribe(EventKind.CONNECTED, first)
    bus.subscribe(EventKind.CONNECTED, second)
    await bus.emit(Connected(raw={"connected": True}))

    assert order == [("first", {"connected": True}), ("second", {"connected": True})]
    assert bus.subscriber_count(EventKind.CONNECTED) == 2


async def test_failing_subscriber_does_not_stop_others():
    bus = EventBus()
    received = []

    async def broken(event):
        raise RuntimeError("boom")

    async def healthy(event):
        received.append(event)

    bus.subscribe(EventKind.SOCKET_CLOSED, broken)
    bus.subscribe(EventKind.SOCKET_CLOSED, healthy)
    await bus.emit(SocketClosed(raw={"reason": "x"}))

    assert len(received) == 1


async def test_events_only_reach_their_kind():
    bus = EventBus()
    received = []

    @bus.on(EventKind.CONTENT_NOTIFICATION)
    async def on_content(event):
        received.append(event)

    await bus.emit(Connected())
    await bus.emit(ContentNotification(conversation_id="C1", sequence=1, message="hi"))

    assert [e.sequence for e in received] == [1]


async def test_unsubscribe():
    bus = EventBus()
    received = []

    async def handler(event):
        received.append(event)

    bus.subscribe(EventKind.CONNECTED, handler)
    bus.unsubscribe(EventKind.CONNECTED, handler)
    bus.unsubscribe(EventKind.CONNECTED, handler)
    await bus.emit(Connected())

    assert received == []
    assert bus.subscriber_count(EventKind.CONNECTED) == 0
