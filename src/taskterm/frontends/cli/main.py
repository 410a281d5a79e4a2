"""CLI entry point."""

from __future__ import annotations

import rich_click as click

from taskterm.frontends.cli.server import server
from taskterm.frontends.cli.session import session
from taskterm.frontends.cli.terminal import terminal

click.rich_click.USE_RICH_MARKUP = True
click.rich_click.USE_MARKDOWN = True
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.GROUP_ARGUMENTS_OPTIONS = True
click.rich_click.STYLE_ERRORS_SUGGESTION = "magenta italic"
click.rich_click.ERRORS_SUGGESTION = "Try running '--help' for more information."
click.rich_click.MAX_WIDTH = 100


@click.group()
@click.version_option(package_name="taskterm")
def cli() -> None:
    """taskterm - persistent terminals for task-driven coding agents.

    A daemon keeps one pseudo-terminal per task alive across client
    reconnects, with a scrollback buffer and live output events.

    **Commands:**

        taskterm server      Start/stop the daemon

        taskterm terminal    Spawn, drive and watch terminals

        taskterm session     Saved agent session metadata
    """
    pass


cli.add_command(server)
cli.add_command(terminal)
cli.add_command(session)


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
