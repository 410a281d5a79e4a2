"""Tests for InProcessTransport."""

import asyncio

import pytest

from taskterm.server.engine import build_terminal_engine
from taskterm.server.protocols import Command, CommandType, Event, EventType
from taskterm.transport import InProcessTransport


@pytest.mark.asyncio
async def test_requires_engine():
    transport = InProcessTransport()

    with pytest.raises(RuntimeError, match="not bound"):
        await transport.send_command(Command(type=CommandType.PING))


@pytest.mark.asyncio
async def test_commands_and_events(config, wait_until):
    transport = InProcessTransport()
    engine = build_terminal_engine(event_sink=transport, config=config)
    transport.bind(engine)

    received: list[Event] = []

    async def consume():
        async for event in transport.events():
            received.append(event)

    consumer = asyncio.create_task(consume())
    await asyncio.sleep(0)
    try:
        result = await transport.send_command(
            Command(
                type=CommandType.SPAWN,
                params={"terminal_id": "term-ip", "cwd": "/tmp", "cols": 80, "rows": 24},
            )
        )
        assert result.data == {"spawned": True}

        await transport.send_command(
            Command(type=CommandType.WRITE, params={"terminal_id": "term-ip", "data": "exit 5\n"})
        )
        await wait_until(lambda: any(e.type is EventType.TERMINAL_EXIT for e in received))

        assert received[0].type is EventType.TERMINAL_SPAWNED
        assert received[-1].type is EventType.TERMINAL_EXIT
        assert received[-1].data == {"exit_code": 5}

        first = await transport.next_event(timeout=1)
        assert first is not None and first.type is EventType.TERMINAL_SPAWNED
        transport.clear_events()
        assert await transport.next_event(timeout=0.05) is None
    finally:
        consumer.cancel()
        await engine.shutdown()
