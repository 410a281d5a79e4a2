"""Logging setup for the taskterm daemon and CLI.

Modules log through ``logging.getLogger(__name__)``; the daemon calls
``configure_logging`` once at startup.

Environment Variables:
    TASKTERM_LOG_LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    TASKTERM_LOG_FORMAT: Output format ("text" or "json")
    TASKTERM_LOG_FILE: Optional log file path
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime
from typing import Any, Literal

TEXT_FORMAT = "%(asctime)s.%(msecs)03d - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Loggers that are too chatty at INFO for a long-running daemon
NOISY_LOGGERS = ("aiohttp.access", "asyncio")

_STANDARD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys() | {"message", "taskName"}
)

_configured = False


class JsonFormatter(logging.Formatter):
    """Format records as one JSON object per line.

    Fields passed through ``extra=`` end up under the ``"extra"`` key:

        {"timestamp": "...", "level": "INFO", "logger": "taskterm.core.terminal.registry",
         "message": "terminal spawned: term-42", "extra": {"terminal_id": "term-42"}}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra = {k: v for k, v in record.__dict__.items() if k not in _STANDARD_ATTRS}
        if extra:
            log_data["extra"] = extra

        return json.dumps(log_data, default=str)


def configure_logging(
    level: str | None = None,
    format: Literal["text", "json"] | None = None,
    file_path: str | None = None,
    force: bool = False,
) -> None:
    """Configure root logging.

    Later calls are ignored unless ``force`` is set. Explicit arguments win
    over the ``TASKTERM_LOG_*`` environment variables.

    Args:
        level: Log level name. Defaults to TASKTERM_LOG_LEVEL or "INFO".
        format: "text" or "json". Defaults to TASKTERM_LOG_FORMAT or "text".
        file_path: Also log to this file. Defaults to TASKTERM_LOG_FILE.
        force: Reconfigure even if already configured.

    Raises:
        ValueError: If the level name is unknown.
    """
    global _configured
    if _configured and not force:
        return

    level = (level or os.environ.get("TASKTERM_LOG_LEVEL", "INFO")).upper()
    format = format or os.environ.get("TASKTERM_LOG_FORMAT", "text")  # type: ignore[assignment]
    file_path = file_path or os.environ.get("TASKTERM_LOG_FILE")

    numeric_level = logging.getLevelName(level)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    formatter: logging.Formatter
    if format == "json":
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(TEXT_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if file_path:
        file_handler = logging.FileHandler(file_path)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    if numeric_level > logging.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True
