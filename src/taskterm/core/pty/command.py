"""Build the argv a terminal is spawned with."""

from __future__ import annotations

import shlex

from taskterm.core.config import TerminalConfig


def build_agent_argv(
    agent_command: str,
    initial_prompt: str | None = None,
    session_id: str | None = None,
    resume_session_id: str | None = None,
) -> list[str]:
    """Build the agent invocation for a terminal.

    ``resume_session_id`` wins over ``session_id``. Both are opaque and
    forwarded as-is.

    Example:
        >>> build_agent_argv("claude", "Fix the bug", resume_session_id="abc")
        ['claude', '--resume', 'abc', 'Fix the bug']
    """
    argv = shlex.split(agent_command)
    if resume_session_id:
        argv += ["--resume", resume_session_id]
    elif session_id:
        argv += ["--session-id", session_id]
    if initial_prompt:
        argv.append(initial_prompt)
    return argv


def build_command(
    config: TerminalConfig,
    initial_prompt: str | None = None,
    session_id: str | None = None,
    resume_session_id: str | None = None,
) -> list[str]:
    """Build the full argv for a terminal process.

    Without a prompt or session id the terminal is a plain login shell.
    Otherwise the agent runs inside the shell, and the shell takes over
    again when the agent exits so the terminal stays usable.

    Example:
        >>> build_command(TerminalConfig(shell="/bin/bash"))
        ['/bin/bash', '-l']
        >>> build_command(TerminalConfig(shell="/bin/bash"), session_id="s1")
        ['/bin/bash', '-l', '-c', 'claude --session-id s1; exec /bin/bash -l']
    """
    shell = config.shell
    if not (initial_prompt or session_id or resume_session_id):
        return [shell, "-l"]

    agent = build_agent_argv(config.agent_command, initial_prompt, session_id, resume_session_id)
    script = f"{shlex.join(agent)}; exec {shlex.quote(shell)} -l"
    return [shell, "-l", "-c", script]
