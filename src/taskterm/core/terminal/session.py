"""Terminal session - a stable id bound to a PTY handle and its output."""

from __future__ import annotations

import codecs
import enum
import logging
import subprocess
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from taskterm.core.config import DEFAULT_BUFFER_CAPACITY, DEFAULT_KILL_GRACE, DEFAULT_TERM
from taskterm.core.errors import SpawnError
from taskterm.core.pty.handle import PTYConfig, PTYHandle
from taskterm.core.pty.ring_buffer import OutputRingBuffer

logger = logging.getLogger(__name__)

DataListener = Callable[[str, str], None]
ExitListener = Callable[[str, int], None]


class TerminalState(enum.Enum):
    """Lifecycle states for a terminal session."""

    SPAWNING = "spawning"
    RUNNING = "running"
    EXITED = "exited"


@dataclass
class TerminalSession:
    """A terminal bound to one PTY process and one output buffer.

    State machine: SPAWNING -> RUNNING -> EXITED. A failed start never
    reaches RUNNING; the registry drops the session. EXITED is final: the
    buffer turns read-only and stays queryable until the session is destroyed.

    Writes, resizes and kills outside RUNNING are no-ops returning False,
    because callers routinely race exit notifications.

    ``session_id`` and ``resume_session_id`` are opaque values that were
    forwarded to the spawned command; they are kept for inspection only.
    """

    id: str
    command: list[str]
    cwd: str
    cols: int = 80
    rows: int = 24
    session_id: str | None = None
    resume_session_id: str | None = None
    env: dict[str, str] = field(default_factory=dict)
    term: str = DEFAULT_TERM
    kill_grace: float = DEFAULT_KILL_GRACE
    buffer_capacity: int = DEFAULT_BUFFER_CAPACITY
    on_data: DataListener | None = field(default=None, repr=False)
    on_exit: ExitListener | None = field(default=None, repr=False)
    created_at: datetime = field(default_factory=datetime.now)

    # Internal state
    buffer: OutputRingBuffer = field(init=False, repr=False)
    _state: TerminalState = field(default=TerminalState.SPAWNING, init=False)
    _exit_code: int | None = field(default=None, init=False)
    _handle: PTYHandle = field(init=False, repr=False)
    _decoder: codecs.IncrementalDecoder = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.buffer = OutputRingBuffer(self.buffer_capacity)
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._handle = PTYHandle(
            self.command,
            PTYConfig(
                cols=self.cols,
                rows=self.rows,
                cwd=self.cwd,
                env=self.env,
                term=self.term,
                kill_grace=self.kill_grace,
            ),
            on_output=self._handle_output,
            on_exit=self._handle_exit,
        )

    @property
    def state(self) -> TerminalState:
        return self._state

    @property
    def exit_code(self) -> int | None:
        """Exit code; set if and only if the session has exited."""
        return self._exit_code

    @property
    def pid(self) -> int | None:
        return self._handle.pid

    @property
    def is_live(self) -> bool:
        """Whether the session is spawning or running."""
        return self._state is not TerminalState.EXITED

    @property
    def dimensions(self) -> tuple[int, int]:
        """Last applied (cols, rows)."""
        return self.cols, self.rows

    async def start(self) -> None:
        """Start the PTY process.

        Raises:
            SpawnError: If the process could not be created.
        """
        try:
            await self._handle.start()
        except (OSError, subprocess.SubprocessError) as e:
            raise SpawnError(self.id, self.cwd, e) from e

        self._state = TerminalState.RUNNING
        logger.info(
            "terminal started: id=%s pid=%s cwd=%s",
            self.id,
            self._handle.pid,
            self.cwd,
            extra={"terminal_id": self.id},
        )

    def write(self, data: str) -> bool:
        """Send input to the process. No-op unless running."""
        if self._state is not TerminalState.RUNNING:
            return False
        return self._handle.write_input(data.encode("utf-8"))

    def resize(self, cols: int, rows: int) -> bool:
        """Resize the terminal. No-op unless running."""
        if self._state is not TerminalState.RUNNING:
            return False
        if not self._handle.resize(cols, rows):
            return False
        self.cols, self.rows = cols, rows
        return True

    def kill(self) -> bool:
        """Request termination. The exit is reported through on_exit."""
        if self._state is not TerminalState.RUNNING:
            return False
        return self._handle.terminate()

    async def destroy(self) -> None:
        """Release the process and discard buffered output."""
        await self._handle.destroy()
        self.buffer.clear()

    def snapshot(self) -> dict[str, Any]:
        """Full retained output with current state."""
        return {
            "content": self.buffer.snapshot(),
            "state": self._state.value,
            "exitCode": self._exit_code,
        }

    def to_info(self) -> dict[str, Any]:
        """Summary entry used by list()."""
        return {
            "id": self.id,
            "state": self._state.value,
            "exitCode": self._exit_code,
        }

    def _handle_output(self, data: bytes) -> None:
        # Incremental decoding keeps multi-byte characters split across reads intact
        text = self._decoder.decode(data)
        if text:
            self._publish(text)

    def _handle_exit(self, exit_code: int) -> None:
        tail = self._decoder.decode(b"", final=True)
        if tail:
            self._publish(tail)

        self._exit_code = exit_code
        self._state = TerminalState.EXITED
        self.buffer.freeze()
        logger.info(
            "terminal exited: id=%s code=%d",
            self.id,
            exit_code,
            extra={"terminal_id": self.id},
        )

        if self.on_exit is not None:
            self.on_exit(self.id, exit_code)

    def _publish(self, text: str) -> None:
        self.buffer.append(text)
        if self.on_data is not None:
            self.on_data(self.id, text)
