"""Session persistence - resumption metadata stored as JSON per task.

Callers use this to decide what to pass as ``resume_session_id`` when they
spawn a task's terminal, and to remember UI state for the task between
restarts. The terminal registry never calls it.

Note: This saves session *metadata*, not running PTY state.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from taskterm.core.config import get_default_session_dir
from taskterm.core.errors import SessionStoreError
from taskterm.core.validation import validate_task_id

logger = logging.getLogger(__name__)

ACTIVE_TABS = ("details", "plan", "terminal")

_KNOWN_KEYS = ("taskPath", "claudeSessionId", "activeTab", "terminalStopped")


@dataclass
class SessionData:
    """Resumption metadata for one task.

    Attributes:
        task_path: Path of the task folder.
        claude_session_id: Opaque id of the agent session to resume.
        active_tab: Tab the UI last showed for the task.
        terminal_stopped: Whether the user stopped the terminal explicitly.
        extra: Unknown keys, kept so newer clients don't lose data.
    """

    task_path: str | None = None
    claude_session_id: str | None = None
    active_tab: str | None = None
    terminal_stopped: bool | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dict, omitting unset fields."""
        data: dict[str, Any] = dict(self.extra)
        if self.task_path is not None:
            data["taskPath"] = self.task_path
        if self.claude_session_id is not None:
            data["claudeSessionId"] = self.claude_session_id
        if self.active_tab is not None:
            data["activeTab"] = self.active_tab
        if self.terminal_stopped is not None:
            data["terminalStopped"] = self.terminal_stopped
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionData:
        """Create from a JSON dict. Invalid values for known keys are dropped."""
        active_tab = data.get("activeTab")
        if active_tab not in ACTIVE_TABS:
            active_tab = None

        terminal_stopped = data.get("terminalStopped")
        if not isinstance(terminal_stopped, bool):
            terminal_stopped = None

        task_path = data.get("taskPath")
        claude_session_id = data.get("claudeSessionId")

        return cls(
            task_path=task_path if isinstance(task_path, str) else None,
            claude_session_id=claude_session_id if isinstance(claude_session_id, str) else None,
            active_tab=active_tab,
            terminal_stopped=terminal_stopped,
            extra={k: v for k, v in data.items() if k not in _KNOWN_KEYS},
        )


class SessionBridge(Protocol):
    """Interface for stores of per-task resumption metadata."""

    def load(self, task_id: str) -> SessionData: ...

    def save(self, task_id: str, data: SessionData) -> None: ...

    def delete(self, task_id: str) -> bool: ...


@dataclass
class SessionStore:
    """File-backed SessionBridge: one ``<task_id>.json`` per task.

    Example:
        >>> store = SessionStore(Path("~/.taskterm/sessions"))
        >>> store.save("abc123", SessionData(claude_session_id="s-1", active_tab="terminal"))
        >>> store.load("abc123").claude_session_id
        's-1'
        >>> store.delete("abc123")
        True
    """

    directory: Path = field(default_factory=get_default_session_dir)

    def __post_init__(self) -> None:
        self.directory = Path(self.directory).expanduser()

    def path_for(self, task_id: str) -> Path:
        """File path holding a task's metadata.

        Raises:
            ValueError: If task_id is empty or contains path components.
        """
        return self.directory / f"{validate_task_id(task_id)}.json"

    def load(self, task_id: str) -> SessionData:
        """Load a task's metadata.

        Missing or unreadable files load as empty metadata.
        """
        path = self.path_for(task_id)
        if not path.exists():
            return SessionData()

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable session file %s: %s", path, e)
            return SessionData()

        if not isinstance(data, dict):
            logger.warning("Ignoring malformed session file %s", path)
            return SessionData()
        return SessionData.from_dict(data)

    def save(self, task_id: str, data: SessionData) -> None:
        """Write a task's metadata atomically.

        Raises:
            SessionStoreError: If the file cannot be written.
        """
        path = self.path_for(task_id)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{task_id}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data.to_dict(), f, indent=2)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise SessionStoreError(f"Failed to save session for task {task_id}: {e}") from e

    def delete(self, task_id: str) -> bool:
        """Remove a task's metadata.

        Returns:
            True if a file was removed, False if there was none.
        """
        path = self.path_for(task_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    def list_task_ids(self) -> list[str]:
        """Task ids that have stored metadata."""
        if not self.directory.exists():
            return []
        return sorted(p.stem for p in self.directory.glob("*.json"))
