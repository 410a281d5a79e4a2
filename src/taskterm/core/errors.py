"""Exception hierarchy for taskterm.

Most lifecycle races (writing to an exited terminal, cleaning up an unknown
id) are not errors at all and never raise. These classes cover the cases that
are genuinely exceptional.
"""

from __future__ import annotations


class TasktermError(Exception):
    """Base class for all taskterm errors."""


class SpawnError(TasktermError):
    """The OS could not create the child process.

    Attributes:
        terminal_id: Terminal the spawn was attempted for.
        cwd: Working directory that was requested.
    """

    def __init__(self, terminal_id: str, cwd: str, cause: BaseException) -> None:
        self.terminal_id = terminal_id
        self.cwd = cwd
        super().__init__(f"Failed to spawn terminal {terminal_id} in {cwd!r}: {cause}")


class BufferFrozenError(TasktermError):
    """Raised when appending to a ring buffer that has been frozen."""


class SessionStoreError(TasktermError):
    """Session metadata could not be written to disk."""
