"""Transport - Communication adapters.

Transport adapters carry commands from clients to the engine and events
from the engine to clients. Server-side transports implement the EventSink
protocol.

Available transports:
    InProcessTransport: Direct in-process communication (no IPC).
    UnixSocketServer / UnixSocketClient: Unix domain socket, JSON lines.
    HTTPServer / HTTPClient: HTTP REST + WebSocket events.

Example (socket server):
    >>> from taskterm.transport import UnixSocketServer
    >>> from taskterm.server import build_terminal_engine
    >>>
    >>> transport = UnixSocketServer("/tmp/taskterm.sock")
    >>> engine = build_terminal_engine(event_sink=transport)
    >>> await transport.serve(engine)
"""

from taskterm.transport.http import HTTPClient, HTTPServer
from taskterm.transport.in_process import InProcessTransport
from taskterm.transport.protocol import ClientTransport, ServerTransport
from taskterm.transport.unix_socket import UnixSocketClient, UnixSocketServer

__all__ = [
    # Protocols
    "ClientTransport",
    "ServerTransport",
    # Implementations
    "InProcessTransport",
    "UnixSocketServer",
    "UnixSocketClient",
    "HTTPServer",
    "HTTPClient",
]
