"""Unix domain socket transport.

Newline-delimited JSON over a Unix domain socket. Efficient for local IPC
with a persistent server process.

Client to server:
    {"type": "command", "command_type": "SPAWN", "params": {...}, "request_id": "..."}
    {"type": "subscribe", "terminal_ids": ["term-1", ...]}
    {"type": "unsubscribe", "terminal_ids": ["term-1", ...]}

Server to client:
    {"type": "result", "success": true, "data": {...}, "error": null, "request_id": "..."}
    {"type": "subscribed", "terminal_ids": [...]}
    {"type": "event", "event_type": "TERMINAL_DATA", "terminal_id": "...", "data": {...}, ...}

A connection that never subscribes receives output from every terminal.
Once it subscribes (or unsubscribes) it receives output only from the
terminals in its subscription; exit and lifecycle events always arrive.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from taskterm.server.protocols import (
    Command,
    CommandResult,
    CommandType,
    Event,
    parse_terminal_ids,
    wants_event,
)

if TYPE_CHECKING:
    from taskterm.server import TerminalEngine

logger = logging.getLogger(__name__)

# Large GET_BUFFER responses travel as a single line
STREAM_LIMIT = 16 * 1024 * 1024


def _encode(message: dict[str, Any]) -> bytes:
    return (json.dumps(message) + "\n").encode()


@dataclass
class UnixSocketServer:
    """Unix socket server transport.

    Listens on a Unix domain socket and handles client connections.
    Broadcasts events to connected clients, honouring each connection's
    terminal subscription.

    Example:
        >>> transport = UnixSocketServer("/tmp/taskterm.sock")
        >>> engine = build_terminal_engine(event_sink=transport)
        >>> await transport.serve(engine)
    """

    socket_path: str
    _engine: TerminalEngine | None = None
    _server: asyncio.Server | None = None
    # Connection -> subscribed terminal ids (None: all terminals)
    _clients: dict[asyncio.StreamWriter, set[str] | None] = field(default_factory=dict)
    _running: bool = False

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def emit(self, event: Event) -> None:
        """Send an event to every client subscribed to it."""
        if not self._clients:
            return

        message = _encode(event.to_dict())

        dead_clients = []
        for writer, terminal_ids in list(self._clients.items()):
            if not wants_event(event, terminal_ids):
                continue
            try:
                writer.write(message)
                await writer.drain()
            except (ConnectionError, RuntimeError) as e:
                logger.debug("Dropping client after failed write: %s", e)
                dead_clients.append(writer)

        for writer in dead_clients:
            self._clients.pop(writer, None)

    async def serve(self, engine: TerminalEngine) -> None:
        """Start serving until the engine requests shutdown.

        Args:
            engine: The engine to serve.
        """
        self._engine = engine
        self._running = True

        socket_path = Path(self.socket_path)
        if socket_path.exists():
            socket_path.unlink()

        self._server = await asyncio.start_unix_server(
            self._handle_client,
            path=self.socket_path,
            limit=STREAM_LIMIT,
        )

        logger.info("Unix socket server started on %s", self.socket_path)

        # Poll every 0.1s for responsive shutdown
        while self._running and not engine.shutdown_requested:
            await asyncio.sleep(0.1)

        # Terminals are destroyed and queued events flushed while
        # clients are still connected
        await engine.shutdown()
        await self.stop()

    async def stop(self) -> None:
        """Stop the server."""
        self._running = False

        # Client handlers must finish before wait_closed can return
        for writer in self._clients:
            writer.close()
        self._clients.clear()

        if self._server:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

        socket_path = Path(self.socket_path)
        if socket_path.exists():
            socket_path.unlink()

        logger.info("Unix socket server stopped")

    async def _handle_client(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """Handle a client connection."""
        self._clients[writer] = None
        client_addr = writer.get_extra_info("peername") or "unknown"
        logger.debug("Client connected: %s", client_addr)

        try:
            while self._running:
                line = await reader.readline()
                if not line:
                    logger.debug("Client disconnected: %s", client_addr)
                    break

                try:
                    message = json.loads(line.decode())
                except (json.JSONDecodeError, UnicodeDecodeError) as e:
                    logger.warning("Invalid JSON from client %s: %s", client_addr, e)
                    response: dict[str, Any] = {"type": "error", "error": "Invalid JSON"}
                else:
                    response = await self._handle_message(message, writer)

                writer.write(_encode(response))
                await writer.drain()

        except asyncio.CancelledError:
            logger.debug("Client handler cancelled: %s", client_addr)
            raise
        except ConnectionResetError:
            logger.debug("Client connection reset: %s", client_addr)
        except Exception as e:
            logger.error("Error handling client %s: %s", client_addr, e, exc_info=True)
        finally:
            self._clients.pop(writer, None)
            writer.close()

    async def _handle_message(
        self, message: dict[str, Any], writer: asyncio.StreamWriter
    ) -> dict[str, Any]:
        """Turn one client message into a response message."""
        message_type = message.get("type") if isinstance(message, dict) else None
        if message_type in ("subscribe", "unsubscribe"):
            return self._update_subscription(message, writer)
        if message_type != "command":
            return {"type": "error", "error": "Unknown message type"}

        if not self._engine:
            return {"type": "error", "error": "Engine not available"}

        request_id = message.get("request_id")
        try:
            command_type = CommandType[message["command_type"]]
        except (KeyError, TypeError):
            return CommandResult(
                success=False,
                error=f"Unknown command type: {message.get('command_type')}",
                request_id=request_id,
            ).to_dict()

        params = message.get("params") or {}
        if not isinstance(params, dict):
            return CommandResult(
                success=False, error="params must be an object", request_id=request_id
            ).to_dict()

        result = await self._engine.execute(
            Command(type=command_type, params=params, request_id=request_id)
        )
        return result.to_dict()

    def _update_subscription(
        self, message: dict[str, Any], writer: asyncio.StreamWriter
    ) -> dict[str, Any]:
        try:
            terminal_ids = parse_terminal_ids(message.get("terminal_ids"))
        except ValueError as e:
            return {"type": "error", "error": str(e)}

        current = self._clients.get(writer) or set()
        if message["type"] == "subscribe":
            updated = current | terminal_ids
        else:
            updated = current - terminal_ids
        self._clients[writer] = updated
        return {"type": "subscribed", "terminal_ids": sorted(updated)}


@dataclass
class UnixSocketClient:
    """Unix socket client transport.

    Connects to a Unix socket server to send commands and receive events.
    Results and events share the socket; a background reader sorts them
    into separate queues so waiting for a result never swallows an event.

    Example:
        >>> client = UnixSocketClient("/tmp/taskterm.sock")
        >>> await client.connect()
        >>>
        >>> result = await client.send_command(Command(type=CommandType.LIST))
        >>>
        >>> async for event in client.events():
        ...     print(event.type)
    """

    socket_path: str
    _reader: asyncio.StreamReader | None = None
    _writer: asyncio.StreamWriter | None = None
    _result_queue: asyncio.Queue[dict[str, Any]] = field(default_factory=asyncio.Queue)
    _event_queue: asyncio.Queue[Event | None] = field(default_factory=asyncio.Queue)
    _send_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    _connected: bool = False
    _reader_task: asyncio.Task[Any] | None = None
    _last_error: Exception | None = field(default=None, repr=False)
    _error_count: int = field(default=0, repr=False)

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        """Connect to the server."""
        self._reader, self._writer = await asyncio.open_unix_connection(
            self.socket_path,
            limit=STREAM_LIMIT,
        )
        self._connected = True
        logger.debug("Unix socket client connected to %s", self.socket_path)

        self._reader_task = asyncio.create_task(self._read_loop())

    async def disconnect(self) -> None:
        """Disconnect from the server."""
        self._connected = False

        if self._reader_task:
            self._reader_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader_task

        if self._writer:
            self._writer.close()
            with contextlib.suppress(ConnectionError):
                await self._writer.wait_closed()

    async def send_command(self, command: Command, timeout: float = 300.0) -> CommandResult:
        """Send a command and wait for its result.

        Commands are serialized: one request is in flight at a time.

        Raises:
            RuntimeError: If not connected.
            ConnectionError: If the server closed the connection.
            TimeoutError: If response not received within timeout.
        """
        message = {
            "type": "command",
            "command_type": command.type.name,
            "params": command.params,
            "request_id": command.request_id,
        }
        response = await self._request(message, timeout)

        if response.get("type") == "error":
            return CommandResult(success=False, error=response.get("error"), request_id=command.request_id)
        return CommandResult.from_dict(response)

    async def subscribe(self, terminal_ids: list[str], timeout: float = 10.0) -> set[str]:
        """Receive output only from these terminals (plus earlier subscriptions).

        Returns:
            The connection's full subscription after the change.

        Raises:
            ValueError: If the server rejected the request.
        """
        return await self._change_subscription("subscribe", terminal_ids, timeout)

    async def unsubscribe(self, terminal_ids: list[str], timeout: float = 10.0) -> set[str]:
        """Stop receiving output from these terminals."""
        return await self._change_subscription("unsubscribe", terminal_ids, timeout)

    async def _change_subscription(
        self, message_type: str, terminal_ids: list[str], timeout: float
    ) -> set[str]:
        response = await self._request(
            {"type": message_type, "terminal_ids": list(terminal_ids)}, timeout
        )
        if response.get("type") != "subscribed":
            raise ValueError(response.get("error") or "Subscription rejected")
        return set(response["terminal_ids"])

    async def _request(self, message: dict[str, Any], timeout: float) -> dict[str, Any]:
        """Send one message and wait for the server's reply to it.

        Requests are serialized: one is in flight at a time.
        """
        if not self._writer or not self._connected:
            raise RuntimeError("Not connected")

        async with self._send_lock:
            self._writer.write(_encode(message))
            await self._writer.drain()

            try:
                response = await asyncio.wait_for(self._result_queue.get(), timeout=timeout)
            except TimeoutError:
                raise TimeoutError(f"Command timed out after {timeout}s") from None

        if response.get("type") == "closed":
            raise ConnectionError("Server closed the connection")
        return response

    async def events(self) -> AsyncIterator[Event]:
        """Yield events until the connection closes."""
        while True:
            event = await self._event_queue.get()
            if event is None:
                return
            yield event

    async def _read_loop(self) -> None:
        """Background loop to read from socket.

        Errors are logged and tracked in _last_error and _error_count.
        """
        if not self._reader:
            return

        try:
            while self._connected:
                line = await self._reader.readline()
                if not line:
                    logger.debug("Socket closed by server (empty read)")
                    break

                try:
                    message = json.loads(line.decode())
                except json.JSONDecodeError as e:
                    self._error_count += 1
                    self._last_error = e
                    logger.warning("Failed to parse JSON from server: %s (line: %s...)", e, line[:100])
                    continue

                if message.get("type") == "event":
                    try:
                        self._event_queue.put_nowait(Event.from_dict(message))
                    except KeyError as e:
                        logger.warning("Ignoring unknown event type: %s", e)
                else:
                    self._result_queue.put_nowait(message)
        except asyncio.CancelledError:
            logger.debug("Read loop cancelled")
            raise
        except ConnectionResetError as e:
            self._last_error = e
            logger.debug("Connection reset by server")
        except Exception as e:
            self._error_count += 1
            self._last_error = e
            logger.error("Unexpected error in read loop: %s", e, exc_info=True)
        finally:
            self._connected = False
            self._event_queue.put_nowait(None)
            self._result_queue.put_nowait({"type": "closed"})

    @property
    def last_error(self) -> Exception | None:
        """Last error encountered in the read loop."""
        return self._last_error

    @property
    def error_count(self) -> int:
        """Number of errors encountered in the read loop."""
        return self._error_count
