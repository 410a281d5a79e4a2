"""Server - command dispatch and event emission over the core.

The server layer wraps the terminal registry with:
- A command/response protocol (Command, CommandResult)
- Ordered push events for terminal output and exits (Event, EventBroadcaster)

This layer knows about core, but not about specific transports or frontends.

Example:
    >>> from taskterm.server import build_terminal_engine
    >>> from taskterm.server.protocols import Command, CommandType, Event, EventSink
    >>>
    >>> class PrintSink:
    ...     async def emit(self, event: Event) -> None:
    ...         print(event.type.name, event.terminal_id, event.data)
    >>>
    >>> engine = build_terminal_engine(event_sink=PrintSink())
    >>> await engine.execute(Command(type=CommandType.LIST))
"""

from taskterm.server.broadcaster import EventBroadcaster
from taskterm.server.engine import TerminalEngine, build_terminal_engine
from taskterm.server.protocols import (
    Command,
    CommandResult,
    CommandType,
    Event,
    EventSink,
    EventType,
)

__all__ = [
    "TerminalEngine",
    "build_terminal_engine",
    "EventBroadcaster",
    "EventSink",
    "Event",
    "EventType",
    "Command",
    "CommandType",
    "CommandResult",
]
