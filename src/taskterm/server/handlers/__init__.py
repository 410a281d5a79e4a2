"""Server command handlers - domain-specific request handlers.

This package contains handlers that process specific types of commands:
- TerminalHandler: Terminal lifecycle, I/O and queries
- SessionHandler: Per-task resumption metadata
- ServerHandler: Server control
"""

from taskterm.server.handlers.server_handler import ServerHandler
from taskterm.server.handlers.session_handler import SessionHandler
from taskterm.server.handlers.terminal_handler import TerminalHandler

__all__ = [
    "ServerHandler",
    "SessionHandler",
    "TerminalHandler",
]
