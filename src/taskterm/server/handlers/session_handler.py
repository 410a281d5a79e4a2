"""SessionHandler - exposes the session persistence bridge.

Commands: SESSION_LOAD, SESSION_SAVE, SESSION_DELETE

The registry never reads this metadata; clients load it to pick the
``resume_session_id`` for SPAWN and save it when UI state changes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from taskterm.core.session import SessionData

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from taskterm.core.session import SessionBridge
    from taskterm.server.validation import ValidationHelpers


@dataclass
class SessionHandler:
    """Loads, saves and deletes per-task resumption metadata."""

    store: SessionBridge
    validation: ValidationHelpers

    async def load(self, params: dict[str, Any]) -> dict[str, Any]:
        """Load metadata for a task.

        Parameters:
            task_id: Task identifier (required)

        Returns:
            {"session": dict} - empty dict if nothing was saved.
        """
        task_id = self.validation.task_id(params)
        return {"session": self.store.load(task_id).to_dict()}

    async def save(self, params: dict[str, Any]) -> dict[str, Any]:
        """Save metadata for a task.

        Parameters:
            task_id: Task identifier (required)
            session: Metadata dict (required)

        Returns:
            {"saved": True}
        """
        task_id = self.validation.task_id(params)
        data = self.validation.require_param(params, "session")
        if not isinstance(data, dict):
            raise ValueError("session must be an object")

        self.store.save(task_id, SessionData.from_dict(data))
        logger.debug("session_saved: task_id=%s", task_id)
        return {"saved": True}

    async def delete(self, params: dict[str, Any]) -> dict[str, Any]:
        """Delete metadata for a task.

        Returns:
            {"deleted": bool} - False if nothing was stored.
        """
        task_id = self.validation.task_id(params)
        return {"deleted": self.store.delete(task_id)}
