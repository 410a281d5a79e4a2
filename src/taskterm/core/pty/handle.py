"""PTY handle - one child process attached to a pseudo-terminal.

The handle exclusively owns the child process, the PTY master fd, and the
tasks watching them. Nothing outside the handle ever sees the fd or the
process object.
"""

from __future__ import annotations

import asyncio
import contextlib
import fcntl
import logging
import os
import pty
import signal
import struct
import termios
from collections.abc import Callable
from dataclasses import dataclass, field

from taskterm.core.config import DEFAULT_KILL_GRACE, DEFAULT_TERM

logger = logging.getLogger(__name__)

OutputCallback = Callable[[bytes], None]
ExitCallback = Callable[[int], None]

READ_CHUNK_SIZE = 65536

# How long to keep reading after the child exits. A background job that
# inherited the slave side can hold the PTY open indefinitely.
EOF_DRAIN_TIMEOUT = 1.0


@dataclass
class PTYConfig:
    """Configuration for spawning a PTY process.

    Attributes:
        cols: Terminal width in columns.
        rows: Terminal height in rows.
        cwd: Working directory for the process.
        env: Additional environment variables.
        term: Value exported as TERM.
        kill_grace: Seconds between SIGHUP and SIGKILL in terminate().
    """

    cols: int = 80
    rows: int = 24
    cwd: str | None = None
    env: dict[str, str] = field(default_factory=dict)
    term: str = DEFAULT_TERM
    kill_grace: float = DEFAULT_KILL_GRACE


def _acquire_controlling_tty() -> None:
    # Runs in the child after setsid(); stdin is the slave side of the PTY.
    # Without a controlling tty the shell still works, just without job control.
    with contextlib.suppress(OSError):
        fcntl.ioctl(0, termios.TIOCSCTTY, 0)


class PTYHandle:
    """A single process running in a pseudo-terminal.

    Output is read from the master fd by an event-loop reader and handed to
    ``on_output`` as raw bytes, in order. ``on_exit`` is called exactly once
    with the exit code after all output has been delivered, whether the
    process exited on its own or through ``terminate()``. Processes killed by
    a signal report ``-signum``.

    After ``destroy()`` neither callback fires again.

    Example:
        >>> handle = PTYHandle(["/bin/sh"], PTYConfig(cwd="/tmp"),
        ...                    on_output=print, on_exit=print)
        >>> await handle.start()
        >>> handle.write_input(b"echo hi\\n")
        >>> handle.terminate()
    """

    def __init__(
        self,
        command: list[str],
        config: PTYConfig | None = None,
        on_output: OutputCallback | None = None,
        on_exit: ExitCallback | None = None,
    ) -> None:
        if not command:
            raise ValueError("command must not be empty")
        self._command = list(command)
        self._config = config or PTYConfig()
        self._on_output = on_output
        self._on_exit = on_exit

        self._loop: asyncio.AbstractEventLoop | None = None
        self._process: asyncio.subprocess.Process | None = None
        self._master_fd: int | None = None
        self._pending_input = bytearray()
        self._eof = asyncio.Event()
        self._exit_task: asyncio.Task[None] | None = None
        self._escalation_task: asyncio.Task[None] | None = None
        self._exit_code: int | None = None
        self._destroyed = False

    @property
    def command(self) -> list[str]:
        """The argv the process was started with."""
        return list(self._command)

    @property
    def pid(self) -> int | None:
        """Process ID of the child process."""
        return self._process.pid if self._process else None

    @property
    def is_running(self) -> bool:
        """Whether the process has been started and has not exited."""
        return self._process is not None and self._exit_code is None and not self._destroyed

    @property
    def exit_code(self) -> int | None:
        """Exit code once the exit callback has fired."""
        return self._exit_code

    @property
    def destroyed(self) -> bool:
        """Whether destroy() has been called."""
        return self._destroyed

    async def start(self) -> None:
        """Spawn the process on a fresh PTY.

        Raises:
            OSError: If the PTY or the process cannot be created (missing
                executable, unusable working directory, ...).
            RuntimeError: If the handle was already started or destroyed.
        """
        if self._process is not None or self._destroyed:
            raise RuntimeError("PTY handle already used")

        self._loop = asyncio.get_running_loop()
        master_fd, slave_fd = pty.openpty()

        env = os.environ.copy()
        env.update(self._config.env)
        env["TERM"] = self._config.term

        try:
            _set_winsize(slave_fd, self._config.rows, self._config.cols)
            self._process = await asyncio.create_subprocess_exec(
                *self._command,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                cwd=self._config.cwd,
                env=env,
                start_new_session=True,
                preexec_fn=_acquire_controlling_tty,
            )
        except BaseException:
            os.close(master_fd)
            raise
        finally:
            # Parent never keeps the slave side; EOF arrives once the child closes it
            os.close(slave_fd)

        self._master_fd = master_fd
        flags = fcntl.fcntl(master_fd, fcntl.F_GETFL)
        fcntl.fcntl(master_fd, fcntl.F_SETFL, flags | os.O_NONBLOCK)

        self._loop.add_reader(master_fd, self._on_readable)
        self._exit_task = asyncio.create_task(self._watch_exit())

        logger.debug("pty started: pid=%d cmd=%s", self._process.pid, self._command)

    def write_input(self, data: bytes) -> bool:
        """Queue input for the process.

        Writes that the PTY cannot take immediately are kept in order and
        flushed when the master fd becomes writable.

        Returns:
            True if the data was accepted, False if the process is not running.
        """
        if not self.is_running or self._master_fd is None:
            return False
        if not data:
            return True

        if self._pending_input:
            self._pending_input.extend(data)
            return True

        try:
            written = os.write(self._master_fd, data)
        except BlockingIOError:
            written = 0
        except OSError as e:
            logger.debug("pty write failed (pid=%s): %s", self.pid, e)
            return False

        if written < len(data):
            self._pending_input.extend(data[written:])
            assert self._loop is not None
            self._loop.add_writer(self._master_fd, self._on_writable)
        return True

    def resize(self, cols: int, rows: int) -> bool:
        """Set the PTY window size. The kernel delivers SIGWINCH to the child.

        Returns:
            True if applied, False if the process is not running.
        """
        if not self.is_running or self._master_fd is None:
            return False
        try:
            _set_winsize(self._master_fd, rows, cols)
        except OSError as e:
            logger.debug("pty resize failed (pid=%s): %s", self.pid, e)
            return False
        self._config.cols = cols
        self._config.rows = rows
        return True

    def terminate(self) -> bool:
        """Request termination of the process group.

        Sends SIGHUP (what a closing terminal sends) and escalates to SIGKILL
        after ``kill_grace`` seconds. Returns without waiting for the exit;
        the exit callback reports when the process is gone.

        Returns:
            True if termination was requested, False if not running.
        """
        if not self.is_running:
            return False
        if self._escalation_task is not None:
            return True

        self._signal_group(signal.SIGHUP)
        self._escalation_task = asyncio.create_task(self._escalate(self._config.kill_grace))
        return True

    async def destroy(self) -> None:
        """Release every OS resource held by the handle.

        Kills the process group if it is still alive and closes the master fd.
        No output or exit callback fires after this returns. Safe to call
        more than once.
        """
        if self._destroyed:
            return
        self._destroyed = True

        if self._process is not None and self._process.returncode is None:
            self._signal_group(signal.SIGKILL)
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._process.wait(), timeout=2.0)

        for task in (self._escalation_task, self._exit_task):
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

        self._close_fd()
        logger.debug("pty destroyed: pid=%s", self.pid)

    # =========================================================================
    # Internal
    # =========================================================================

    def _on_readable(self) -> None:
        assert self._master_fd is not None
        try:
            data = os.read(self._master_fd, READ_CHUNK_SIZE)
        except BlockingIOError:
            return
        except OSError:
            # EIO on Linux once every slave fd is closed
            data = b""

        if not data:
            self._stop_reading()
            return

        self._deliver(data)

    def _on_writable(self) -> None:
        assert self._master_fd is not None
        try:
            written = os.write(self._master_fd, self._pending_input)
        except BlockingIOError:
            return
        except OSError as e:
            logger.debug("pty flush failed (pid=%s): %s", self.pid, e)
            written = len(self._pending_input)

        del self._pending_input[:written]
        if not self._pending_input:
            assert self._loop is not None
            self._loop.remove_writer(self._master_fd)

    def _deliver(self, data: bytes) -> None:
        if self._destroyed or self._on_output is None:
            return
        try:
            self._on_output(data)
        except Exception:
            logger.exception("Error in output callback (pid=%s)", self.pid)

    def _stop_reading(self) -> None:
        if self._master_fd is not None and self._loop is not None:
            self._loop.remove_reader(self._master_fd)
        self._eof.set()

    def _drain(self) -> None:
        """Read whatever is still buffered in the PTY without blocking."""
        while self._master_fd is not None:
            try:
                data = os.read(self._master_fd, READ_CHUNK_SIZE)
            except OSError:
                return
            if not data:
                return
            self._deliver(data)

    async def _watch_exit(self) -> None:
        assert self._process is not None
        returncode = await self._process.wait()

        try:
            await asyncio.wait_for(self._eof.wait(), timeout=EOF_DRAIN_TIMEOUT)
        except TimeoutError:
            self._stop_reading()
            self._drain()

        if self._escalation_task is not None and not self._escalation_task.done():
            self._escalation_task.cancel()

        self._close_fd()
        if self._destroyed:
            return

        self._exit_code = returncode
        logger.debug("pty exited: pid=%s code=%d", self.pid, returncode)
        if self._on_exit is not None:
            try:
                self._on_exit(returncode)
            except Exception:
                logger.exception("Error in exit callback (pid=%s)", self.pid)

    async def _escalate(self, grace: float) -> None:
        await asyncio.sleep(grace)
        if self._process is not None and self._process.returncode is None:
            logger.info("pty pid=%s ignored SIGHUP, sending SIGKILL", self.pid)
            self._signal_group(signal.SIGKILL)

    def _signal_group(self, sig: signal.Signals) -> None:
        if self._process is None:
            return
        try:
            # start_new_session makes the child its own group leader
            os.killpg(self._process.pid, sig)
        except ProcessLookupError:
            logger.debug("process group %s already gone", self._process.pid)
        except PermissionError:
            self._process.send_signal(sig)

    def _close_fd(self) -> None:
        if self._master_fd is None:
            return
        if self._loop is not None:
            self._loop.remove_reader(self._master_fd)
            self._loop.remove_writer(self._master_fd)
        with contextlib.suppress(OSError):
            os.close(self._master_fd)
        self._master_fd = None
        self._pending_input.clear()


def _set_winsize(fd: int, rows: int, cols: int) -> None:
    winsize = struct.pack("HHHH", rows, cols, 0, 0)
    fcntl.ioctl(fd, termios.TIOCSWINSZ, winsize)
