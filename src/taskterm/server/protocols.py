"""Server protocols - Command/Event types and EventSink interface.

These protocols define the contract between the engine and transports.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Protocol


class EventType(Enum):
    """Types of events emitted by the server."""

    # Terminal output and lifecycle
    TERMINAL_DATA = auto()
    TERMINAL_EXIT = auto()
    TERMINAL_SPAWNED = auto()
    TERMINAL_CLEANED = auto()

    # Server lifecycle
    SERVER_STOPPED = auto()


class CommandType(Enum):
    """Types of commands accepted by the server."""

    # Terminal control
    SPAWN = auto()
    WRITE = auto()
    RESIZE = auto()
    KILL = auto()
    CLEANUP = auto()

    # Terminal queries
    GET_BUFFER = auto()
    IS_ALIVE = auto()
    LIST = auto()
    LIST_RUNNING_TASKS = auto()

    # Session persistence
    SESSION_LOAD = auto()
    SESSION_SAVE = auto()
    SESSION_DELETE = auto()

    # Server control
    STOP = auto()
    PING = auto()


@dataclass(frozen=True)
class Event:
    """Event emitted by the server.

    Attributes:
        type: The event type.
        terminal_id: Associated terminal id (if applicable).
        data: Event payload.
        timestamp: When the event occurred.
    """

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)
    terminal_id: str | None = None
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        """Wire form shared by all transports."""
        return {
            "type": "event",
            "event_type": self.type.name,
            "terminal_id": self.terminal_id,
            "data": self.data,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, message: dict[str, Any]) -> Event:
        """Parse the wire form.

        Raises:
            KeyError: If event_type is missing or unknown.
        """
        return cls(
            type=EventType[message["event_type"]],
            terminal_id=message.get("terminal_id"),
            data=message.get("data") or {},
            timestamp=message.get("timestamp", 0),
        )


@dataclass(frozen=True)
class Command:
    """Command sent to the server.

    Attributes:
        type: The command type.
        params: Command parameters.
        request_id: Optional ID for request-response correlation.
    """

    type: CommandType
    params: dict[str, Any] = field(default_factory=dict)
    request_id: str | None = None


@dataclass
class CommandResult:
    """Result of command execution.

    Attributes:
        success: Whether the command succeeded.
        data: Result data (if successful).
        error: Error message (if failed).
        request_id: Correlation ID from the command.
    """

    success: bool
    data: dict[str, Any] | None = None
    error: str | None = None
    request_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "result",
            "success": self.success,
            "data": self.data,
            "error": self.error,
            "request_id": self.request_id,
        }

    @classmethod
    def from_dict(cls, message: dict[str, Any]) -> CommandResult:
        return cls(
            success=message["success"],
            data=message.get("data"),
            error=message.get("error"),
            request_id=message.get("request_id"),
        )


class EventSink(Protocol):
    """Protocol for event consumers.

    The server emits events through this interface.
    Server transports implement this to receive events.
    """

    async def emit(self, event: Event) -> None:
        """Emit an event.

        Args:
            event: The event to emit.
        """
        ...


def wants_event(event: Event, terminal_ids: set[str] | None) -> bool:
    """Whether a client with this subscription should receive ``event``.

    ``None`` means the client never subscribed and receives everything.
    Otherwise output is limited to the subscribed terminals, while exit,
    lifecycle and server events are delivered to every client.
    """
    if terminal_ids is None or event.type is not EventType.TERMINAL_DATA:
        return True
    return event.terminal_id in terminal_ids


def parse_terminal_ids(value: Any) -> set[str]:
    """Validate a subscription list sent by a client.

    Raises:
        ValueError: If ``value`` is not a list of strings.
    """
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError("terminal_ids must be a list of strings")
    return set(value)
