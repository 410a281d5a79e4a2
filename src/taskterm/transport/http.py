"""HTTP transport - REST API + WebSocket for events.

Provides HTTP-based communication for web clients and remote access.

Endpoints:
    POST /api/command   Execute a command, returns the result as JSON
    GET  /api/events    WebSocket stream of events; ?terminal_ids=a,b limits
                        output to those terminals
    GET  /health        Liveness check
    POST /api/shutdown  Stop the server (same as a STOP command)

Event sockets accept {"type": "subscribe" | "unsubscribe", "terminal_ids": [...]}
messages to change their subscription later. Exit and lifecycle events
reach every socket.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import aiohttp
from aiohttp import web

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


@dataclass
class HTTPServer:
    """HTTP server transport.

    Example:
        >>> transport = HTTPServer(host="127.0.0.1", port=8765)
        >>> engine = build_terminal_engine(event_sink=transport)
        >>> await transport.serve(engine)
    """

    host: str = "127.0.0.1"
    port: int = 8765
    _engine: TerminalEngine | None = None
    _app: web.Application | None = None
    _runner: web.AppRunner | None = None
    # Event socket -> subscribed terminal ids (None: all terminals)
    _websockets: dict[web.WebSocketResponse, set[str] | None] = field(default_factory=dict)
    _running: bool = False

    async def emit(self, event: Event) -> None:
        """Send an event to every WebSocket subscribed to it."""
        if not self._websockets:
            return

        data = json.dumps(event.to_dict())

        dead_sockets = []
        for ws, terminal_ids in list(self._websockets.items()):
            if not wants_event(event, terminal_ids):
                continue
            try:
                await ws.send_str(data)
            except (ConnectionError, RuntimeError) as e:
                logger.debug("Dropping WebSocket after failed send: %s", e)
                dead_sockets.append(ws)

        for ws in dead_sockets:
            self._websockets.pop(ws, None)

    def build_app(self, engine: TerminalEngine) -> web.Application:
        """Create the aiohttp application bound to ``engine``."""
        self._engine = engine
        app = web.Application()
        app.router.add_post("/api/command", self._handle_command)
        app.router.add_post("/api/shutdown", self._handle_shutdown)
        app.router.add_get("/api/events", self._handle_websocket)
        app.router.add_get("/health", self._handle_health)
        self._app = app
        return app

    async def serve(self, engine: TerminalEngine) -> None:
        """Start the HTTP server and block until the engine shuts down."""
        self._running = True

        self._runner = web.AppRunner(self.build_app(engine))
        await self._runner.setup()

        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info("HTTP server started on %s:%s", self.host, self.port)

        # Poll every 0.1s for responsive shutdown
        while self._running and not engine.shutdown_requested:
            await asyncio.sleep(0.1)

        logger.info("HTTP server shutdown requested")
        await engine.shutdown()
        await self.stop()

    async def stop(self) -> None:
        """Stop the HTTP server."""
        self._running = False

        for ws in list(self._websockets):
            await ws.close()
        self._websockets.clear()

        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    async def _handle_command(self, request: web.Request) -> web.Response:
        """Handle POST /api/command."""
        if not self._engine:
            return web.json_response({"error": "Engine not available"}, status=503)

        try:
            body = await request.json()
        except json.JSONDecodeError:
            return web.json_response({"error": "Invalid JSON"}, status=400)

        if not isinstance(body, dict):
            return web.json_response({"error": "Body must be an object"}, status=400)

        try:
            command = Command(
                type=CommandType[body["command_type"]],
                params=body.get("params") or {},
                request_id=body.get("request_id"),
            )
        except (KeyError, TypeError) as e:
            return web.json_response({"error": f"Missing or unknown field: {e}"}, status=400)

        result = await self._engine.execute(command)
        return web.json_response(result.to_dict())

    async def _handle_websocket(self, request: web.Request) -> web.WebSocketResponse:
        """Handle GET /api/events (WebSocket)."""
        query = request.query.get("terminal_ids")
        terminal_ids = {t for t in query.split(",") if t} if query is not None else None

        ws = web.WebSocketResponse()
        await ws.prepare(request)

        client_addr = request.remote or "unknown"
        logger.debug("WebSocket client connected: %s", client_addr)
        self._websockets[ws] = terminal_ids

        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self._update_subscription(ws, msg.data)
        finally:
            self._websockets.pop(ws, None)
            logger.debug("WebSocket client disconnected: %s", client_addr)

        return ws

    def _update_subscription(self, ws: web.WebSocketResponse, raw: str) -> None:
        try:
            message = json.loads(raw)
            if not isinstance(message, dict) or message.get("type") not in ("subscribe", "unsubscribe"):
                raise ValueError("Unknown message type")
            terminal_ids = parse_terminal_ids(message.get("terminal_ids"))
        except ValueError as e:
            logger.debug("Ignoring event socket message: %s", e)
            return

        current = self._websockets.get(ws) or set()
        if message["type"] == "subscribe":
            self._websockets[ws] = current | terminal_ids
        else:
            self._websockets[ws] = current - terminal_ids

    async def _handle_health(self, request: web.Request) -> web.Response:
        """Handle GET /health."""
        return web.json_response({"status": "ok"})

    async def _handle_shutdown(self, request: web.Request) -> web.Response:
        """Handle POST /api/shutdown."""
        if not self._engine:
            return web.json_response({"error": "Engine not available"}, status=503)

        await self._engine.execute(Command(type=CommandType.STOP))
        return web.json_response({"success": True, "message": "Shutdown initiated"})


@dataclass
class HTTPClient:
    """HTTP client transport.

    Example:
        >>> client = HTTPClient("http://localhost:8765")
        >>> await client.connect(with_events=True)
        >>>
        >>> result = await client.send_command(Command(
        ...     type=CommandType.WRITE,
        ...     params={"terminal_id": "term-1", "data": "ls\\r"},
        ... ))
    """

    base_url: str
    _session: aiohttp.ClientSession | None = None
    _ws: aiohttp.ClientWebSocketResponse | None = None
    _event_queue: asyncio.Queue[Event | None] = field(default_factory=asyncio.Queue)
    _subscription: set[str] | None = field(default=None, repr=False)
    _connected: bool = False
    _reader_task: asyncio.Task[Any] | None = None
    _last_error: Exception | None = field(default=None, repr=False)
    _error_count: int = field(default=0, repr=False)

    async def connect(
        self, with_events: bool = False, terminal_ids: list[str] | None = None
    ) -> None:
        """Connect to the server.

        Args:
            with_events: If True, also open the WebSocket event stream.
                For simple command/response, this isn't needed.
            terminal_ids: Limit terminal output on the event stream to these
                terminals. None receives output from every terminal.
        """
        self._session = aiohttp.ClientSession()
        self._connected = True
        logger.debug("HTTP client connected to %s", self.base_url)

        if with_events:
            ws_url = self.base_url.replace("http://", "ws://").replace("https://", "wss://")
            params = None
            if terminal_ids is not None:
                params = {"terminal_ids": ",".join(terminal_ids)}
                self._subscription = set(terminal_ids)
            try:
                self._ws = await self._session.ws_connect(f"{ws_url}/api/events", params=params)
            except aiohttp.ClientError as e:
                # Commands still work without the event stream
                self._last_error = e
                logger.warning("WebSocket connection failed (commands still work): %s", e)
            else:
                logger.debug("WebSocket connected to %s/api/events", ws_url)
                self._reader_task = asyncio.create_task(self._read_loop())

    async def disconnect(self) -> None:
        """Disconnect from the server."""
        self._connected = False

        if self._reader_task:
            self._reader_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader_task

        if self._ws:
            await self._ws.close()

        if self._session:
            await self._session.close()

    async def send_command(self, command: Command, timeout: float = 300.0) -> CommandResult:
        """POST a command and return its result.

        Raises:
            RuntimeError: If not connected.
            TimeoutError: If the request times out.
        """
        if not self._session or not self._connected:
            raise RuntimeError("Not connected")

        try:
            async with self._session.post(
                f"{self.base_url}/api/command",
                json={
                    "command_type": command.type.name,
                    "params": command.params,
                    "request_id": command.request_id,
                },
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as response:
                data = await response.json()
        except TimeoutError:
            raise TimeoutError(f"Command timed out after {timeout}s") from None

        if "success" not in data:
            return CommandResult(success=False, error=data.get("error"), request_id=command.request_id)
        return CommandResult.from_dict(data)

    async def subscribe(self, terminal_ids: list[str]) -> set[str]:
        """Receive output only from these terminals (plus earlier subscriptions).

        The server does not acknowledge; the returned set mirrors what was sent.

        Raises:
            RuntimeError: If the event stream is not open.
        """
        await self._send_subscription("subscribe", terminal_ids)
        self._subscription = (self._subscription or set()) | set(terminal_ids)
        return set(self._subscription)

    async def unsubscribe(self, terminal_ids: list[str]) -> set[str]:
        """Stop receiving output from these terminals."""
        await self._send_subscription("unsubscribe", terminal_ids)
        self._subscription = (self._subscription or set()) - set(terminal_ids)
        return set(self._subscription)

    async def _send_subscription(self, message_type: str, terminal_ids: list[str]) -> None:
        if not self._ws or self._ws.closed:
            raise RuntimeError("Event stream not open")
        await self._ws.send_json({"type": message_type, "terminal_ids": list(terminal_ids)})

    async def events(self) -> AsyncIterator[Event]:
        """Yield events until the WebSocket closes."""
        while True:
            event = await self._event_queue.get()
            if event is None:
                return
            yield event

    async def _read_loop(self) -> None:
        """Background loop to read WebSocket messages."""
        if not self._ws:
            return

        try:
            async for msg in self._ws:
                if msg.type != aiohttp.WSMsgType.TEXT:
                    continue
                try:
                    self._event_queue.put_nowait(Event.from_dict(json.loads(msg.data)))
                except (json.JSONDecodeError, KeyError) as e:
                    self._error_count += 1
                    self._last_error = e
                    logger.warning("Failed to parse event from WebSocket: %s", e)
        except asyncio.CancelledError:
            logger.debug("WebSocket read loop cancelled")
            raise
        except aiohttp.ClientError as e:
            self._last_error = e
            logger.debug("WebSocket connection closed: %s", e)
        finally:
            self._event_queue.put_nowait(None)

    @property
    def last_error(self) -> Exception | None:
        """Last error encountered in the read loop."""
        return self._last_error

    @property
    def error_count(self) -> int:
        """Number of errors encountered in the read loop."""
        return self._error_count
