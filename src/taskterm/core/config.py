"""Runtime configuration for the terminal session manager.

Values come from ``TASKTERM_*`` environment variables, optionally loaded from
a ``.env`` file in the working directory.

Environment Variables:
    TASKTERM_SHELL: Shell to run in each terminal (default: $SHELL or /bin/sh)
    TASKTERM_AGENT_COMMAND: Command launched when a prompt or session id is given
    TASKTERM_BUFFER_CAPACITY: Ring buffer capacity in characters
    TASKTERM_KILL_GRACE: Seconds between SIGHUP and SIGKILL on kill
    TASKTERM_SESSION_DIR: Directory for persisted session metadata
    TASKTERM_TERM: Value of TERM inside terminals
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

# 2 MiB worth of characters per terminal
DEFAULT_BUFFER_CAPACITY = 2 * 1024 * 1024
DEFAULT_KILL_GRACE = 3.0
DEFAULT_AGENT_COMMAND = "claude"
DEFAULT_TERM = "xterm-256color"


def _default_shell() -> str:
    return os.environ.get("SHELL") or "/bin/sh"


def get_default_session_dir() -> Path:
    """Get the default directory for session metadata.

    Returns:
        Path to ~/.taskterm/sessions
    """
    return Path.home() / ".taskterm" / "sessions"


@dataclass
class TerminalConfig:
    """Configuration shared by every terminal in a registry.

    Attributes:
        shell: Shell executable started in each terminal.
        agent_command: Command run inside the shell when a prompt or
            session id is passed to spawn.
        buffer_capacity: Maximum characters retained per terminal.
        kill_grace: Seconds to wait after SIGHUP before SIGKILL.
        session_dir: Directory used by the session persistence store.
        term: TERM value exported to the child.
        env: Extra environment variables for every child.
    """

    shell: str = field(default_factory=_default_shell)
    agent_command: str = DEFAULT_AGENT_COMMAND
    buffer_capacity: int = DEFAULT_BUFFER_CAPACITY
    kill_grace: float = DEFAULT_KILL_GRACE
    session_dir: Path = field(default_factory=get_default_session_dir)
    term: str = DEFAULT_TERM
    env: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.buffer_capacity <= 0:
            raise ValueError("buffer_capacity must be positive")
        if self.kill_grace < 0:
            raise ValueError("kill_grace must not be negative")
        self.session_dir = Path(self.session_dir).expanduser()

    @classmethod
    def from_env(cls, load_env_file: bool = True) -> TerminalConfig:
        """Build a config from ``TASKTERM_*`` environment variables.

        Args:
            load_env_file: Load ``.env`` from the working directory first.
                Variables already set in the environment are not overridden.

        Returns:
            A TerminalConfig with environment overrides applied.

        Raises:
            ValueError: If a numeric variable cannot be parsed.
        """
        if load_env_file:
            from dotenv import load_dotenv

            env_file = Path.cwd() / ".env"
            if env_file.exists():
                load_dotenv(env_file)

        config = cls()
        if shell := os.environ.get("TASKTERM_SHELL"):
            config.shell = shell
        if agent := os.environ.get("TASKTERM_AGENT_COMMAND"):
            config.agent_command = agent
        if capacity := os.environ.get("TASKTERM_BUFFER_CAPACITY"):
            config.buffer_capacity = int(capacity)
        if grace := os.environ.get("TASKTERM_KILL_GRACE"):
            config.kill_grace = float(grace)
        if session_dir := os.environ.get("TASKTERM_SESSION_DIR"):
            config.session_dir = Path(session_dir).expanduser()
        if term := os.environ.get("TASKTERM_TERM"):
            config.term = term

        # Re-run validation on overridden values
        config.__post_init__()
        return config
