"""Core - terminal session management without any transport.

This layer knows nothing about commands, events or clients. It provides:
- OutputRingBuffer: bounded output history per terminal
- PTYHandle: one process on a pseudo-terminal
- TerminalSession / TerminalRegistry: lifecycle and the id-keyed table
- SessionStore: file-backed resumption metadata

Example:
    >>> from taskterm.core import TerminalConfig, TerminalRegistry
    >>>
    >>> registry = TerminalRegistry(TerminalConfig.from_env())
    >>> registry.on_data = lambda tid, chunk: print(tid, chunk)
    >>> await registry.spawn("term-42", cwd="/project", cols=120, rows=40)
"""

from taskterm.core.config import TerminalConfig
from taskterm.core.errors import BufferFrozenError, SessionStoreError, SpawnError, TasktermError
from taskterm.core.pty import OutputRingBuffer, PTYConfig, PTYHandle, build_command
from taskterm.core.session import SessionBridge, SessionData, SessionStore
from taskterm.core.terminal import SpawnOutcome, TerminalRegistry, TerminalSession, TerminalState

__all__ = [
    # Config
    "TerminalConfig",
    # PTY
    "OutputRingBuffer",
    "PTYConfig",
    "PTYHandle",
    "build_command",
    # Terminals
    "SpawnOutcome",
    "TerminalRegistry",
    "TerminalSession",
    "TerminalState",
    # Persistence
    "SessionBridge",
    "SessionData",
    "SessionStore",
    # Errors
    "TasktermError",
    "SpawnError",
    "BufferFrozenError",
    "SessionStoreError",
]
