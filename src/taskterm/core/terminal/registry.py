"""TerminalRegistry - the process-wide table of terminal sessions.

The registry is the single authority for creating, looking up and destroying
terminals. It enforces at most one session per terminal id and never hands
out the sessions themselves: callers work through ids.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from taskterm.core.config import TerminalConfig
from taskterm.core.errors import SpawnError
from taskterm.core.pty.command import build_command
from taskterm.core.terminal.session import (
    DataListener,
    ExitListener,
    TerminalSession,
    TerminalState,
)
from taskterm.core.validation import task_id_from_terminal_id, validate_dimensions

logger = logging.getLogger(__name__)


class SpawnOutcome(enum.Enum):
    """What a spawn request did."""

    CREATED = "created"
    REATTACHED = "reattached"
    FAILED = "failed"


@dataclass
class TerminalRegistry:
    """Table of terminal sessions keyed by terminal id.

    Spawn, kill and cleanup on one id are serialized with a per-id lock, so
    a kill issued while the process is still being created is applied once
    it runs. Different ids never wait on each other. A lock lives only while
    someone holds or awaits it. Queries and I/O (write, resize) take no lock.

    Output and exit notifications from every session are forwarded to
    ``on_data`` / ``on_exit``, which must not block.

    Example:
        >>> registry = TerminalRegistry(TerminalConfig(shell="/bin/sh"))
        >>> await registry.spawn("term-1", cwd="/tmp", cols=80, rows=24)
        True
        >>> registry.write("term-1", "echo hi\\n")
        True
        >>> await registry.kill("term-1")
        True
        >>> await registry.cleanup("term-1")
        True
    """

    config: TerminalConfig = field(default_factory=TerminalConfig)
    on_data: DataListener | None = field(default=None, repr=False)
    on_exit: ExitListener | None = field(default=None, repr=False)
    _sessions: dict[str, TerminalSession] = field(default_factory=dict, repr=False)
    _locks: dict[str, asyncio.Lock] = field(default_factory=dict, repr=False)
    _lock_users: dict[str, int] = field(default_factory=dict, repr=False)

    @property
    def lock_count(self) -> int:
        """Number of ids with a lock currently held or awaited."""
        return len(self._locks)

    @asynccontextmanager
    async def _exclusive(self, terminal_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(terminal_id)
        if lock is None:
            lock = self._locks[terminal_id] = asyncio.Lock()
        self._lock_users[terminal_id] = self._lock_users.get(terminal_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[terminal_id] -= 1
            if not self._lock_users[terminal_id]:
                del self._lock_users[terminal_id]
                del self._locks[terminal_id]

    async def spawn(
        self,
        terminal_id: str,
        cwd: str,
        cols: int,
        rows: int,
        initial_prompt: str | None = None,
        session_id: str | None = None,
        resume_session_id: str | None = None,
    ) -> bool:
        """Start a terminal, or re-attach to the one already running.

        Returns:
            True on success, False if the dimensions are invalid or the
            process could not be created. See ``spawn_terminal``.
        """
        outcome = await self.spawn_terminal(
            terminal_id,
            cwd=cwd,
            cols=cols,
            rows=rows,
            initial_prompt=initial_prompt,
            session_id=session_id,
            resume_session_id=resume_session_id,
        )
        return outcome is not SpawnOutcome.FAILED

    async def spawn_terminal(
        self,
        terminal_id: str,
        cwd: str,
        cols: int,
        rows: int,
        initial_prompt: str | None = None,
        session_id: str | None = None,
        resume_session_id: str | None = None,
    ) -> SpawnOutcome:
        """Start a terminal, or re-attach to the one already running.

        - No session: spawn a new one (CREATED).
        - Spawning or running session: no-op (REATTACHED); the running
          shell is left untouched.
        - Exited session: replaced by a freshly spawned one and its old
          buffer is discarded (CREATED).

        Invalid dimensions or a process that cannot be created give FAILED.
        A failed spawn leaves no session.
        """
        try:
            cols, rows = validate_dimensions(cols, rows)
        except ValueError as e:
            logger.warning("spawn rejected: id=%s reason=%s", terminal_id, e)
            return SpawnOutcome.FAILED

        async with self._exclusive(terminal_id):
            existing = self._sessions.get(terminal_id)
            if existing is not None:
                if existing.is_live:
                    logger.debug("spawn re-attached: id=%s", terminal_id)
                    return SpawnOutcome.REATTACHED
                logger.debug("spawn replacing exited terminal: id=%s", terminal_id)
                del self._sessions[terminal_id]
                await existing.destroy()

            session = TerminalSession(
                id=terminal_id,
                command=build_command(self.config, initial_prompt, session_id, resume_session_id),
                cwd=cwd,
                cols=cols,
                rows=rows,
                session_id=session_id,
                resume_session_id=resume_session_id,
                env=dict(self.config.env),
                term=self.config.term,
                kill_grace=self.config.kill_grace,
                buffer_capacity=self.config.buffer_capacity,
                on_data=self._forward_data,
                on_exit=self._forward_exit,
            )
            # Visible as SPAWNING while the process is being created
            self._sessions[terminal_id] = session

            try:
                await session.start()
            except SpawnError as e:
                self._sessions.pop(terminal_id, None)
                logger.warning("%s", e, extra={"terminal_id": terminal_id})
                return SpawnOutcome.FAILED

            return SpawnOutcome.CREATED

    def write(self, terminal_id: str, data: str) -> bool:
        """Write input to a terminal. No-op if absent or not running."""
        session = self._sessions.get(terminal_id)
        if session is None:
            logger.debug("write ignored, unknown terminal: %s", terminal_id)
            return False
        return session.write(data)

    def resize(self, terminal_id: str, cols: int, rows: int) -> bool:
        """Resize a terminal. No-op if absent, not running, or invalid size."""
        session = self._sessions.get(terminal_id)
        if session is None:
            logger.debug("resize ignored, unknown terminal: %s", terminal_id)
            return False
        try:
            cols, rows = validate_dimensions(cols, rows)
        except ValueError as e:
            logger.debug("resize ignored for %s: %s", terminal_id, e)
            return False
        return session.resize(cols, rows)

    async def kill(self, terminal_id: str) -> bool:
        """Request termination. Idempotent; the exit arrives asynchronously.

        Waits for an in-progress spawn of the same id, so the new process
        is the one terminated.
        """
        async with self._exclusive(terminal_id):
            session = self._sessions.get(terminal_id)
            if session is None:
                return False
            killed = session.kill()
        if killed:
            logger.info("terminal kill requested: id=%s", terminal_id)
        return killed

    def get_buffer(self, terminal_id: str) -> dict[str, Any] | None:
        """Retained output plus state, or None if the terminal is unknown."""
        session = self._sessions.get(terminal_id)
        if session is None:
            return None
        return session.snapshot()

    def is_alive(self, terminal_id: str) -> dict[str, Any]:
        """Existence and state of a terminal.

        Returns:
            {"exists": False} or {"exists": True, "state": str, "exitCode": int | None}
        """
        session = self._sessions.get(terminal_id)
        if session is None:
            return {"exists": False}
        return {
            "exists": True,
            "state": session.state.value,
            "exitCode": session.exit_code,
        }

    def list(self) -> list[dict[str, Any]]:
        """Point-in-time snapshot of every terminal."""
        return [session.to_info() for session in list(self._sessions.values())]

    def running_task_ids(self) -> set[str]:
        """Task ids of running terminals named ``term-<taskId>``."""
        task_ids = set()
        for session in list(self._sessions.values()):
            if session.state is TerminalState.RUNNING:
                task_id = task_id_from_terminal_id(session.id)
                if task_id:
                    task_ids.add(task_id)
        return task_ids

    async def cleanup(self, terminal_id: str) -> bool:
        """Destroy a terminal and its buffer. Safe on unknown ids."""
        async with self._exclusive(terminal_id):
            session = self._sessions.pop(terminal_id, None)
            if session is not None:
                await session.destroy()
                logger.info("terminal cleaned up: id=%s", terminal_id)
        return True

    async def shutdown(self) -> None:
        """Destroy every terminal. Called on process shutdown."""
        terminal_ids = list(self._sessions.keys())
        results = await asyncio.gather(
            *(self.cleanup(tid) for tid in terminal_ids),
            return_exceptions=True,
        )
        for tid, result in zip(terminal_ids, results, strict=True):
            if isinstance(result, BaseException):
                logger.error("Error cleaning up terminal %s: %s", tid, result)
        logger.info("All terminals cleaned up (%d)", len(terminal_ids))

    def __contains__(self, terminal_id: object) -> bool:
        return terminal_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def _forward_data(self, terminal_id: str, chunk: str) -> None:
        if self.on_data is not None:
            self.on_data(terminal_id, chunk)

    def _forward_exit(self, terminal_id: str, exit_code: int) -> None:
        if self.on_exit is not None:
            self.on_exit(terminal_id, exit_code)
