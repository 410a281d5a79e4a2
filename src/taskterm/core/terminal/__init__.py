"""Terminal sessions and the registry that owns them."""

from taskterm.core.terminal.registry import SpawnOutcome, TerminalRegistry
from taskterm.core.terminal.session import TerminalSession, TerminalState

__all__ = [
    "SpawnOutcome",
    "TerminalRegistry",
    "TerminalSession",
    "TerminalState",
]
