"""ServerHandler - Server control and cleanup coordination.

Commands: STOP, PING

State:
- shutdown_requested: bool (exposed via property)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from taskterm.core.terminal import TerminalState
from taskterm.server.protocols import Event, EventType

logger = logging.getLogger(__name__)

# Upper bound on flushing queued events to slow clients at shutdown
DRAIN_TIMEOUT = 5.0

if TYPE_CHECKING:
    from taskterm.core.terminal import TerminalRegistry
    from taskterm.server.broadcaster import EventBroadcaster


@dataclass
class ServerHandler:
    """Server control and cleanup coordination."""

    registry: TerminalRegistry
    broadcaster: EventBroadcaster

    # Owned state
    _shutdown_requested: bool = field(default=False)
    _cleanup_task: asyncio.Task[None] | None = field(default=None, repr=False)

    @property
    def shutdown_requested(self) -> bool:
        """Whether shutdown has been requested."""
        return self._shutdown_requested

    async def stop(self, params: dict[str, Any]) -> dict[str, Any]:
        """Stop the server.

        Returns immediately after initiating stop. Cleanup happens async.

        Returns:
            {"stopped": True}
        """
        # Set shutdown flag first so serve loop will exit
        self._shutdown_requested = True
        self.broadcaster.publish(Event(type=EventType.SERVER_STOPPED))

        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup())

        return {"stopped": True}

    async def shutdown(self) -> None:
        """Destroy every terminal, then deliver what is still queued.

        Safe to call more than once and concurrently with STOP; the
        cleanup runs a single time.
        """
        self._shutdown_requested = True
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup())
        await asyncio.shield(self._cleanup_task)

    async def _cleanup(self) -> None:
        await self.registry.shutdown()
        try:
            await asyncio.wait_for(self.broadcaster.drain(), timeout=DRAIN_TIMEOUT)
        except TimeoutError:
            logger.warning("Undelivered events dropped at shutdown")

    async def ping(self, params: dict[str, Any]) -> dict[str, Any]:
        """Ping server to check if alive.

        Returns:
            {"pong": True, "terminals": int, "running": int}
        """
        terminals = self.registry.list()
        running = sum(1 for t in terminals if t["state"] == TerminalState.RUNNING.value)
        return {"pong": True, "terminals": len(terminals), "running": running}
