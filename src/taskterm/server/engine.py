"""TerminalEngine - Command dispatcher and event emitter.

TerminalEngine is a thin wrapper that:
- Dispatches commands to domain handlers
- Wires terminal output and exits into the event broadcaster
- Owns the terminal registry for the lifetime of the server

The registry is the single source of truth for terminals.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from taskterm.core.config import TerminalConfig
from taskterm.core.session import SessionBridge, SessionStore
from taskterm.core.terminal import TerminalRegistry
from taskterm.server.broadcaster import EventBroadcaster
from taskterm.server.handlers import ServerHandler, SessionHandler, TerminalHandler
from taskterm.server.protocols import Command, CommandResult, CommandType, EventSink
from taskterm.server.validation import ValidationHelpers

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


@dataclass
class TerminalEngine:
    """Command dispatcher over the terminal registry.

    Example:
        >>> transport = InProcessTransport()
        >>> engine = build_terminal_engine(event_sink=transport)
        >>> transport.bind(engine)
        >>>
        >>> result = await engine.execute(Command(
        ...     type=CommandType.SPAWN,
        ...     params={"terminal_id": "term-1", "cwd": "/tmp", "cols": 80, "rows": 24},
        ... ))
        >>> result.data
        {'spawned': True}
    """

    registry: TerminalRegistry
    broadcaster: EventBroadcaster
    terminal_handler: TerminalHandler
    session_handler: SessionHandler
    server_handler: ServerHandler
    _handlers: dict[CommandType, Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]] = field(
        default_factory=dict, repr=False
    )

    def __post_init__(self) -> None:
        self._handlers = {
            # Terminal control
            CommandType.SPAWN: self.terminal_handler.spawn,
            CommandType.WRITE: self.terminal_handler.write,
            CommandType.RESIZE: self.terminal_handler.resize,
            CommandType.KILL: self.terminal_handler.kill,
            CommandType.CLEANUP: self.terminal_handler.cleanup,
            # Terminal queries
            CommandType.GET_BUFFER: self.terminal_handler.get_buffer,
            CommandType.IS_ALIVE: self.terminal_handler.is_alive,
            CommandType.LIST: self.terminal_handler.list_terminals,
            CommandType.LIST_RUNNING_TASKS: self.terminal_handler.list_running_tasks,
            # Session persistence
            CommandType.SESSION_LOAD: self.session_handler.load,
            CommandType.SESSION_SAVE: self.session_handler.save,
            CommandType.SESSION_DELETE: self.session_handler.delete,
            # Server control
            CommandType.STOP: self.server_handler.stop,
            CommandType.PING: self.server_handler.ping,
        }

    @property
    def shutdown_requested(self) -> bool:
        """Whether shutdown has been requested."""
        return self.server_handler.shutdown_requested

    async def execute(self, command: Command) -> CommandResult:
        """Execute a command.

        This is the single entry point for all operations. Handler
        exceptions become failed results; they never escape.

        Args:
            command: The command to execute.

        Returns:
            CommandResult with success/failure and data.
        """
        handler = self._handlers.get(command.type)
        if not handler:
            return CommandResult(
                success=False,
                error=f"Unknown command type: {command.type}",
                request_id=command.request_id,
            )

        try:
            data = await handler(command.params)
            return CommandResult(
                success=True,
                data=data,
                request_id=command.request_id,
            )
        except ValueError as e:
            logger.debug("command_rejected: type=%s error=%s", command.type.name, e)
            return CommandResult(
                success=False,
                error=str(e),
                request_id=command.request_id,
            )
        except Exception as e:
            logger.exception("Command %s failed", command.type.name)
            return CommandResult(
                success=False,
                error=str(e),
                request_id=command.request_id,
            )

    async def shutdown(self) -> None:
        """Destroy all terminals and stop event delivery."""
        await self.server_handler.shutdown()
        await self.broadcaster.close()


def build_terminal_engine(
    event_sink: EventSink | None = None,
    config: TerminalConfig | None = None,
    session_store: SessionBridge | None = None,
) -> TerminalEngine:
    """Assemble an engine with its registry, broadcaster and handlers.

    Args:
        event_sink: Receiver of push events (usually a transport). Can be
            attached later through ``engine.broadcaster.attach``.
        config: Terminal configuration. Defaults to ``TerminalConfig()``.
        session_store: Persistence bridge. Defaults to a SessionStore in
            ``config.session_dir``.

    Returns:
        A ready-to-use TerminalEngine.
    """
    config = config or TerminalConfig()
    broadcaster = EventBroadcaster(sink=event_sink)
    registry = TerminalRegistry(
        config=config,
        on_data=broadcaster.publish_data,
        on_exit=broadcaster.publish_exit,
    )
    validation = ValidationHelpers()

    return TerminalEngine(
        registry=registry,
        broadcaster=broadcaster,
        terminal_handler=TerminalHandler(
            registry=registry,
            broadcaster=broadcaster,
            validation=validation,
        ),
        session_handler=SessionHandler(
            store=session_store or SessionStore(config.session_dir),
            validation=validation,
        ),
        server_handler=ServerHandler(registry=registry, broadcaster=broadcaster),
    )
