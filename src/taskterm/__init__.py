"""taskterm - terminal session manager for a file-backed task board.

Owns one long-lived shell per task, keeps its recent output, and streams
output and exit events to whichever UI client is connected.

Layers:
    core: ring buffer, PTY handle, sessions, registry, persistence
    server: command dispatch and event broadcasting
    transport: in-process, Unix socket and HTTP adapters
    frontends: command line
"""

__version__ = "0.1.0"
