"""Tests for EventBroadcaster ordering and delivery."""

import asyncio

import pytest

from taskterm.server.broadcaster import EventBroadcaster
from taskterm.server.protocols import Event, EventType


class FailingSink:
    """Sink that fails on the first delivery, then records."""

    def __init__(self):
        self.calls = 0
        self.events = []

    async def emit(self, event):
        self.calls += 1
        if self.calls == 1:
            raise ConnectionError("client went away")
        self.events.append(event)


class RecordingSink:
    """Sink that records every event it receives."""

    def __init__(self):
        self.events = []

    async def emit(self, event):
        self.events.append(event)


class GatedSink:
    """Sink that blocks deliveries for one terminal until released."""

    def __init__(self, blocked_id: str):
        self.blocked_id = blocked_id
        self.release = asyncio.Event()
        self.events = []

    async def emit(self, event):
        if event.terminal_id == self.blocked_id:
            await self.release.wait()
        self.events.append(event)


@pytest.mark.asyncio
async def test_preserves_order_per_terminal(event_sink):
    broadcaster = EventBroadcaster(sink=event_sink)

    for i in range(50):
        broadcaster.publish_data("term-a", f"chunk{i}")
    broadcaster.publish_exit("term-a", 0)
    await broadcaster.drain()

    chunks = [e.data["chunk"] for e in event_sink.of_type(EventType.TERMINAL_DATA, "term-a")]
    assert chunks == [f"chunk{i}" for i in range(50)]
    assert event_sink.events[-1].type is EventType.TERMINAL_EXIT
    assert event_sink.events[-1].data == {"exit_code": 0}


@pytest.mark.asyncio
async def test_drops_without_sink():
    broadcaster = EventBroadcaster()

    broadcaster.publish_data("term-a", "lost")
    await broadcaster.drain()

    assert not broadcaster.attached


@pytest.mark.asyncio
async def test_attach_and_detach(event_sink):
    broadcaster = EventBroadcaster()
    broadcaster.attach(event_sink)
    broadcaster.publish_data("term-a", "seen")
    await broadcaster.drain()

    broadcaster.detach()
    broadcaster.publish_data("term-a", "dropped")
    await broadcaster.drain()

    assert [e.data["chunk"] for e in event_sink.events] == ["seen"]


@pytest.mark.asyncio
async def test_worker_stops_after_exit(event_sink):
    broadcaster = EventBroadcaster(sink=event_sink)

    broadcaster.publish_data("term-a", "x")
    assert broadcaster.active_streams == 1
    broadcaster.publish_exit("term-a", 1)
    await broadcaster.drain()
    await asyncio.sleep(0)

    assert broadcaster.active_streams == 0

    # A respawned terminal gets a fresh stream
    broadcaster.publish_data("term-a", "again")
    await broadcaster.drain()
    assert event_sink.events[-1].data == {"chunk": "again"}


@pytest.mark.asyncio
async def test_sink_failure_does_not_stop_delivery():
    sink = FailingSink()
    broadcaster = EventBroadcaster(sink=sink)

    broadcaster.publish_data("term-a", "first")
    broadcaster.publish_data("term-a", "second")
    await broadcaster.drain()

    assert [e.data["chunk"] for e in sink.events] == ["second"]


@pytest.mark.asyncio
async def test_slow_terminal_does_not_block_others():
    sink = GatedSink(blocked_id="term-slow")
    broadcaster = EventBroadcaster(sink=sink)

    broadcaster.publish_data("term-slow", "stuck")
    broadcaster.publish_data("term-fast", "through")
    await asyncio.sleep(0.05)

    assert [e.terminal_id for e in sink.events] == ["term-fast"]

    sink.release.set()
    await broadcaster.drain()
    assert [e.terminal_id for e in sink.events] == ["term-fast", "term-slow"]


@pytest.mark.asyncio
async def test_global_events(event_sink):
    broadcaster = EventBroadcaster(sink=event_sink)

    broadcaster.publish(Event(type=EventType.SERVER_STOPPED))
    await broadcaster.drain()

    assert event_sink.events[0].type is EventType.SERVER_STOPPED
    assert event_sink.events[0].terminal_id is None


@pytest.mark.asyncio
async def test_close_discards_and_rejects(event_sink):
    broadcaster = EventBroadcaster(sink=event_sink)
    broadcaster.publish_data("term-a", "x")

    await broadcaster.close()
    broadcaster.publish_data("term-a", "after close")
    await broadcaster.drain()

    assert broadcaster.active_streams == 0
    assert all(e.data.get("chunk") != "after close" for e in event_sink.events)


@pytest.mark.asyncio
async def test_worker_stops_after_cleanup(event_sink):
    broadcaster = EventBroadcaster(sink=event_sink)

    for n in range(5):
        broadcaster.publish(Event(type=EventType.TERMINAL_SPAWNED, terminal_id=f"term-{n}"))
        broadcaster.publish_data(f"term-{n}", "x")
        broadcaster.publish(Event(type=EventType.TERMINAL_CLEANED, terminal_id=f"term-{n}"))
    await broadcaster.drain()

    assert broadcaster.active_streams == 0
    assert len(event_sink.of_type(EventType.TERMINAL_CLEANED)) == 5


@pytest.mark.asyncio
async def test_worker_keeps_events_queued_behind_exit(event_sink):
    broadcaster = EventBroadcaster(sink=event_sink)

    broadcaster.publish_exit("term-a", 0)
    broadcaster.publish(Event(type=EventType.TERMINAL_CLEANED, terminal_id="term-a"))
    await broadcaster.drain()

    assert [e.type for e in event_sink.events] == [EventType.TERMINAL_EXIT, EventType.TERMINAL_CLEANED]
    assert broadcaster.active_streams == 0


@pytest.mark.asyncio
async def test_subscriber_gets_only_its_terminal(event_sink):
    panel = RecordingSink()
    broadcaster = EventBroadcaster(sink=event_sink)
    broadcaster.subscribe("term-a", panel)
    broadcaster.subscribe("term-a", panel)
    assert broadcaster.subscribers("term-a") == 1

    broadcaster.publish_data("term-a", "mine")
    broadcaster.publish_data("term-b", "other")
    broadcaster.publish(Event(type=EventType.SERVER_STOPPED))
    await broadcaster.drain()

    assert [e.data["chunk"] for e in panel.events] == ["mine"]
    assert len(event_sink.of_type(EventType.TERMINAL_DATA)) == 2
    assert len(event_sink.of_type(EventType.SERVER_STOPPED)) == 1


@pytest.mark.asyncio
async def test_unsubscribe_stops_delivery(event_sink):
    panel = RecordingSink()
    broadcaster = EventBroadcaster(sink=event_sink)
    broadcaster.subscribe("term-a", panel)

    broadcaster.publish_data("term-a", "before")
    await broadcaster.drain()
    broadcaster.unsubscribe("term-a", panel)
    broadcaster.publish_data("term-a", "after")
    await broadcaster.drain()

    assert [e.data["chunk"] for e in panel.events] == ["before"]
    assert broadcaster.subscribers("term-a") == 0
    assert [e.data["chunk"] for e in event_sink.events] == ["before", "after"]


@pytest.mark.asyncio
async def test_subscriber_without_global_sink():
    sink = FailingSink()
    broadcaster = EventBroadcaster()
    broadcaster.subscribe("term-a", sink)

    broadcaster.publish_data("term-a", "first")
    broadcaster.publish_data("term-a", "second")
    await broadcaster.drain()

    assert [e.data["chunk"] for e in sink.events] == ["second"]
