"""ValidationHelpers - parameter checks shared by command handlers."""

from __future__ import annotations

from typing import Any

from taskterm.core.validation import validate_dimensions, validate_task_id, validate_terminal_id


class ValidationHelpers:
    """Shared validation helpers for command handlers.

    Stateless; every method raises ValueError with a message that is passed
    back to the client as the command error.

    Example:
        >>> validation = ValidationHelpers()
        >>> terminal_id = validation.terminal_id(params)
        >>> cols, rows = validation.dimensions(params)
    """

    @staticmethod
    def require_param(params: dict[str, Any], key: str) -> Any:
        """Extract required parameter or raise ValueError.

        Raises:
            ValueError: If parameter is missing or None.
        """
        value = params.get(key)
        if value is None:
            raise ValueError(f"{key} is required")
        return value

    @staticmethod
    def optional_str(params: dict[str, Any], key: str) -> str | None:
        """Extract an optional string; empty strings count as absent.

        Raises:
            ValueError: If present but not a string.
        """
        value = params.get(key)
        if value is None or value == "":
            return None
        if not isinstance(value, str):
            raise ValueError(f"{key} must be a string")
        return value

    @classmethod
    def require_str(cls, params: dict[str, Any], key: str) -> str:
        value = cls.require_param(params, key)
        if not isinstance(value, str):
            raise ValueError(f"{key} must be a string")
        return value

    @classmethod
    def terminal_id(cls, params: dict[str, Any]) -> str:
        return validate_terminal_id(cls.require_param(params, "terminal_id"))

    @classmethod
    def task_id(cls, params: dict[str, Any]) -> str:
        return validate_task_id(cls.require_param(params, "task_id"))

    @classmethod
    def dimensions(cls, params: dict[str, Any]) -> tuple[int, int]:
        return validate_dimensions(
            cls.require_param(params, "cols"),
            cls.require_param(params, "rows"),
        )
