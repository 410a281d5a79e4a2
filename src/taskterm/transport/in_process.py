"""In-process transport - direct communication without IPC.

Useful for:
- Testing
- Embedding the terminal manager in an application
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from taskterm.server import TerminalEngine
    from taskterm.server.protocols import Command, CommandResult, Event


@dataclass
class InProcessTransport:
    """Client and server in the same process.

    Events land in an internal queue (read with ``next_event``) and in the
    queue of every ``events()`` subscriber. Queues are unbounded: terminal
    output is never dropped for a subscriber that falls behind.

    Example:
        >>> transport = InProcessTransport()
        >>> engine = build_terminal_engine(event_sink=transport)
        >>> transport.bind(engine)
        >>>
        >>> result = await transport.send_command(Command(
        ...     type=CommandType.SPAWN,
        ...     params={"terminal_id": "term-1", "cwd": "/tmp", "cols": 80, "rows": 24},
        ... ))
        >>>
        >>> async for event in transport.events():
        ...     print(event.type, event.data)
    """

    _engine: TerminalEngine | None = None
    _event_queue: asyncio.Queue[Event] = field(default_factory=asyncio.Queue)
    _subscribers: list[asyncio.Queue[Event]] = field(default_factory=list)

    def bind(self, engine: TerminalEngine) -> None:
        """Bind to an engine."""
        self._engine = engine

    async def emit(self, event: Event) -> None:
        """Receive event from the broadcaster and fan out to subscribers."""
        self._event_queue.put_nowait(event)
        for queue in self._subscribers:
            queue.put_nowait(event)

    async def send_command(self, command: Command) -> CommandResult:
        """Execute a command on the bound engine.

        Raises:
            RuntimeError: If not bound to an engine.
        """
        if not self._engine:
            raise RuntimeError("Transport not bound to engine")

        return await self._engine.execute(command)

    async def events(self) -> AsyncIterator[Event]:
        """Subscribe to events.

        Yields:
            Events as they occur, starting from the moment of subscription.
        """
        queue: asyncio.Queue[Event] = asyncio.Queue()
        self._subscribers.append(queue)

        try:
            while True:
                yield await queue.get()
        finally:
            self._subscribers.remove(queue)

    async def next_event(self, timeout: float | None = None) -> Event | None:
        """Get the next event, or None on timeout."""
        try:
            if timeout:
                return await asyncio.wait_for(self._event_queue.get(), timeout=timeout)
            return await self._event_queue.get()
        except TimeoutError:
            return None

    def clear_events(self) -> None:
        """Clear pending events."""
        while not self._event_queue.empty():
            self._event_queue.get_nowait()
