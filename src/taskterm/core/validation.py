"""Validation helpers for names, terminal ids and dimensions."""

from __future__ import annotations

import re

# Pattern: lowercase alphanumeric, can contain dashes but not start/end with them
NAME_PATTERN = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?$")

MAX_NAME_LENGTH = 32

TERMINAL_ID_PREFIX = "term-"

# TIOCSWINSZ packs rows/cols as unsigned short
MAX_DIMENSION = 0xFFFF


def validate_name(name: str, entity: str = "name") -> None:
    """Validate a server name.

    Rules:
    - 1-32 characters
    - Lowercase alphanumeric and dashes only
    - Cannot start or end with dash

    Args:
        name: The name to validate.
        entity: What the name is for (used in error messages).

    Raises:
        ValueError: If the name is invalid.

    Example:
        >>> validate_name("my-project", "server")  # OK
        >>> validate_name("My Project", "server")  # ValueError
    """
    entity_cap = entity.capitalize()

    if not name:
        raise ValueError(f"{entity_cap} name is required")

    if len(name) > MAX_NAME_LENGTH:
        raise ValueError(f"{entity_cap} name must be {MAX_NAME_LENGTH} characters or less")

    if not NAME_PATTERN.match(name):
        raise ValueError(
            f"{entity_cap} name must be lowercase alphanumeric with dashes, "
            f"cannot start or end with dash"
        )


def validate_terminal_id(terminal_id: object) -> str:
    """Check that a terminal id is a non-empty string.

    Terminal ids are opaque; nothing else about them is checked.

    Raises:
        ValueError: If the id is not a non-empty string.
    """
    if not isinstance(terminal_id, str) or not terminal_id:
        raise ValueError("terminal_id must be a non-empty string")
    return terminal_id


def validate_dimensions(cols: object, rows: object) -> tuple[int, int]:
    """Validate a terminal size.

    Args:
        cols: Width in columns.
        rows: Height in rows.

    Returns:
        (cols, rows) as ints.

    Raises:
        ValueError: If either value is not an int in 1..65535.
    """
    for label, value in (("cols", cols), ("rows", rows)):
        # bool is an int subclass; reject it explicitly
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"{label} must be an integer")
        if not 0 < value <= MAX_DIMENSION:
            raise ValueError(f"{label} must be between 1 and {MAX_DIMENSION}")
    return cols, rows  # type: ignore[return-value]


def validate_task_id(task_id: object) -> str:
    """Validate a task id used as a file name by the session store.

    Raises:
        ValueError: If empty, not a string, or contains path components.
    """
    if not isinstance(task_id, str) or not task_id:
        raise ValueError("task_id must be a non-empty string")
    if "/" in task_id or "\\" in task_id or task_id in (".", "..") or "\x00" in task_id:
        raise ValueError(f"Invalid task_id: {task_id!r}")
    return task_id


def task_id_from_terminal_id(terminal_id: str) -> str | None:
    """Derive the task id from a ``term-<taskId>`` terminal id.

    Returns:
        The task id, or None if the id does not follow the convention.

    Example:
        >>> task_id_from_terminal_id("term-abc123")
        'abc123'
        >>> task_id_from_terminal_id("scratch") is None
        True
    """
    if terminal_id.startswith(TERMINAL_ID_PREFIX) and len(terminal_id) > len(TERMINAL_ID_PREFIX):
        return terminal_id[len(TERMINAL_ID_PREFIX) :]
    return None


def terminal_id_for_task(task_id: str) -> str:
    """Build the conventional terminal id for a task."""
    return f"{TERMINAL_ID_PREFIX}{task_id}"
