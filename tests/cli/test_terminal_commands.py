"""Tests for terminal CLI commands."""

from __future__ import annotations

from taskterm.frontends.cli.terminal import (
    terminal,
    terminal_alive,
    terminal_buffer,
    terminal_cleanup,
    terminal_kill,
    terminal_list,
    terminal_resize,
    terminal_spawn,
    terminal_watch,
    terminal_write,
)

ALL_COMMANDS = [
    terminal_spawn,
    terminal_write,
    terminal_resize,
    terminal_kill,
    terminal_cleanup,
    terminal_buffer,
    terminal_alive,
    terminal_list,
    terminal_watch,
]


class TestTerminalCLI:
    """Tests for taskterm terminal commands."""

    def test_terminal_group_has_all_commands(self):
        assert set(terminal.commands) == {
            "spawn",
            "write",
            "resize",
            "kill",
            "cleanup",
            "buffer",
            "alive",
            "list",
            "watch",
        }

    def test_every_command_has_server_option(self):
        for command in ALL_COMMANDS:
            param_names = [p.name for p in command.params]
            assert "server_name" in param_names, command.name

    def test_spawn_options(self):
        param_names = [p.name for p in terminal_spawn.params]
        for name in ("terminal_id", "cwd", "cols", "rows", "initial_prompt", "session_id", "resume_session_id"):
            assert name in param_names

    def test_spawn_default_size(self):
        defaults = {p.name: p.default for p in terminal_spawn.params}
        assert defaults["cols"] == 80
        assert defaults["rows"] == 24

    def test_list_has_json_and_running_flags(self):
        param_names = [p.name for p in terminal_list.params]
        assert "json_output" in param_names
        assert "running" in param_names
