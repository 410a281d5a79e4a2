"""Interfaces shared by the socket and HTTP transports."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Protocol

from taskterm.server.protocols import EventSink

if TYPE_CHECKING:
    from taskterm.server.engine import TerminalEngine
    from taskterm.server.protocols import Command, CommandResult, Event


class ServerTransport(EventSink, Protocol):
    """Exposes one engine to its clients and receives its events."""

    async def serve(self, engine: TerminalEngine) -> None:
        """Serve until the engine asks to shut down, then shut it down."""
        ...

    async def stop(self) -> None: ...


class ClientTransport(Protocol):
    """What the CLI needs from a connection to a daemon."""

    async def connect(self) -> None: ...

    async def disconnect(self) -> None: ...

    async def send_command(self, command: Command, timeout: float = 300.0) -> CommandResult:
        """Send a command and wait for its result."""
        ...

    async def subscribe(self, terminal_ids: list[str]) -> set[str]:
        """Limit terminal output on the event stream. Returns the full subscription."""
        ...

    async def unsubscribe(self, terminal_ids: list[str]) -> set[str]: ...

    def events(self) -> AsyncIterator[Event]:
        """Events pushed by the daemon, until the connection closes."""
        ...
