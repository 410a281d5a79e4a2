"""TerminalHandler - terminal lifecycle, I/O and queries.

Commands: SPAWN, WRITE, RESIZE, KILL, CLEANUP, GET_BUFFER, IS_ALIVE, LIST,
LIST_RUNNING_TASKS

State: None (the TerminalRegistry owns all terminals)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from taskterm.core.terminal import SpawnOutcome
from taskterm.server.protocols import Event, EventType

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from taskterm.core.terminal import TerminalRegistry
    from taskterm.server.broadcaster import EventBroadcaster
    from taskterm.server.validation import ValidationHelpers


@dataclass
class TerminalHandler:
    """Handles terminal commands by delegating to the registry.

    Operations on unknown or exited terminals are not errors: they succeed
    with a False flag in the result, because clients race exit events all
    the time. Only malformed parameters produce a failed CommandResult.
    """

    registry: TerminalRegistry
    broadcaster: EventBroadcaster
    validation: ValidationHelpers

    async def spawn(self, params: dict[str, Any]) -> dict[str, Any]:
        """Spawn a terminal or re-attach to a live one.

        Parameters:
            terminal_id: Terminal id (required)
            cwd: Working directory (required)
            cols, rows: Terminal size (required, > 0)
            initial_prompt: Prompt for the agent (optional)
            session_id: Agent session id to start (optional)
            resume_session_id: Agent session id to resume (optional)

        Returns:
            {"spawned": True} for a new process, {"spawned": True,
            "reattached": True} when the terminal was already live, or
            {"spawned": False, "error": str} when the process could not start.
        """
        terminal_id = self.validation.terminal_id(params)
        cwd = self.validation.require_str(params, "cwd")
        cols, rows = self.validation.dimensions(params)

        outcome = await self.registry.spawn_terminal(
            terminal_id,
            cwd=cwd,
            cols=cols,
            rows=rows,
            initial_prompt=self.validation.optional_str(params, "initial_prompt"),
            session_id=self.validation.optional_str(params, "session_id"),
            resume_session_id=self.validation.optional_str(params, "resume_session_id"),
        )

        if outcome is SpawnOutcome.FAILED:
            return {"spawned": False, "error": f"Failed to spawn process in {cwd!r}"}
        if outcome is SpawnOutcome.REATTACHED:
            return {"spawned": True, "reattached": True}

        self.broadcaster.publish(
            Event(type=EventType.TERMINAL_SPAWNED, terminal_id=terminal_id, data={"cwd": cwd})
        )
        return {"spawned": True}

    async def write(self, params: dict[str, Any]) -> dict[str, Any]:
        """Write input. Returns {"written": bool}."""
        terminal_id = self.validation.terminal_id(params)
        data = self.validation.require_str(params, "data")
        return {"written": self.registry.write(terminal_id, data)}

    async def resize(self, params: dict[str, Any]) -> dict[str, Any]:
        """Resize. Returns {"resized": bool}."""
        terminal_id = self.validation.terminal_id(params)
        cols, rows = self.validation.dimensions(params)
        return {"resized": self.registry.resize(terminal_id, cols, rows)}

    async def kill(self, params: dict[str, Any]) -> dict[str, Any]:
        """Request termination. Returns {"killed": bool}."""
        terminal_id = self.validation.terminal_id(params)
        return {"killed": await self.registry.kill(terminal_id)}

    async def cleanup(self, params: dict[str, Any]) -> dict[str, Any]:
        """Destroy a terminal. Returns {"cleaned": True}."""
        terminal_id = self.validation.terminal_id(params)
        existed = terminal_id in self.registry
        await self.registry.cleanup(terminal_id)
        if existed:
            self.broadcaster.publish(Event(type=EventType.TERMINAL_CLEANED, terminal_id=terminal_id))
        return {"cleaned": True}

    async def get_buffer(self, params: dict[str, Any]) -> dict[str, Any]:
        """Returns {"buffer": {"content", "state", "exitCode"} | None}."""
        terminal_id = self.validation.terminal_id(params)
        return {"buffer": self.registry.get_buffer(terminal_id)}

    async def is_alive(self, params: dict[str, Any]) -> dict[str, Any]:
        """Returns {"exists": bool, "state"?: str, "exitCode"?: int | None}."""
        terminal_id = self.validation.terminal_id(params)
        return self.registry.is_alive(terminal_id)

    async def list_terminals(self, params: dict[str, Any]) -> dict[str, Any]:
        """Returns {"terminals": [{"id", "state", "exitCode"}, ...]}."""
        return {"terminals": self.registry.list()}

    async def list_running_tasks(self, params: dict[str, Any]) -> dict[str, Any]:
        """Returns {"task_ids": [...]} for running ``term-<taskId>`` terminals."""
        return {"task_ids": sorted(self.registry.running_task_ids())}
