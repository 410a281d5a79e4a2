"""Server commands - manage the taskterm daemon."""

from __future__ import annotations

import asyncio
import os
import signal as sig
import sys
from typing import Any

import rich_click as click

from taskterm.frontends.cli.output import error_exit, print_table
from taskterm.frontends.cli.utils import (
    create_client,
    find_all_servers,
    force_kill_server,
    get_server_transport,
    http_file,
    pid_file,
    socket_file,
)
from taskterm.server.protocols import Command, CommandType


@click.group()
def server() -> None:
    """Server commands - manage the taskterm daemon.

    The daemon owns every terminal. Clients talk to it over a Unix socket
    or HTTP; terminals survive client disconnects.

    **Lifecycle:**

        taskterm server start     Start the daemon

        taskterm server stop      Stop the daemon and all its terminals

        taskterm server status    Check if the daemon is running
    """
    pass


@server.command()
@click.argument("name", default="local")
@click.option("--host", default=None, help="Host to bind (enables HTTP transport)")
@click.option("--port", default=8765, help="Port for HTTP transport")
@click.option("--log-level", default=None, help="Log level (default: TASKTERM_LOG_LEVEL or INFO)")
@click.option("--log-format", type=click.Choice(["text", "json"]), default=None, help="Log format")
def start(
    name: str, host: str | None, port: int, log_level: str | None, log_format: str | None
) -> None:
    """Start the taskterm daemon.

    NAME determines the socket path (/tmp/taskterm-NAME.sock). Defaults to "local".
    Names must be lowercase alphanumeric with dashes, 1-32 characters.

    Configuration is read from TASKTERM_* environment variables and a
    .env file in the current directory.

    **Examples:**

        taskterm server start

        taskterm server start myproject

        taskterm server start myproject --host 127.0.0.1 --port 8765
    """
    from taskterm.core.config import TerminalConfig
    from taskterm.core.logging_config import configure_logging
    from taskterm.core.validation import validate_name
    from taskterm.server import build_terminal_engine
    from taskterm.transport import HTTPServer, ServerTransport, UnixSocketServer

    try:
        validate_name(name, "server")
        config = TerminalConfig.from_env()
    except ValueError as e:
        error_exit(str(e))

    configure_logging(level=log_level, format=log_format)  # type: ignore[arg-type]

    pid_path = pid_file(name)
    if os.path.exists(pid_path):
        try:
            with open(pid_path) as f:
                pid = int(f.read().strip())
            os.kill(pid, 0)
            error_exit(f"Server '{name}' is already running (pid {pid})")
        except (ProcessLookupError, ValueError):
            # Stale pid file
            pass

    click.echo(f"Starting taskterm daemon '{name}'...")

    transport: ServerTransport
    if host:
        transport = HTTPServer(host=host, port=port)
        click.echo(f"Listening on http://{host}:{port}")
    else:
        transport = UnixSocketServer(socket_file(name))
        click.echo(f"Listening on {socket_file(name)}")

    # New process group so a force stop can take the daemon down in one signal
    os.setpgrp()

    with open(pid_path, "w") as f:
        f.write(str(os.getpid()))
    if host:
        with open(http_file(name), "w") as f:
            f.write(f"{host}:{port}")

    async def run() -> None:
        engine = build_terminal_engine(event_sink=transport, config=config)
        loop = asyncio.get_running_loop()
        shutdown_count = 0

        def handle_shutdown(sig_name: str) -> None:
            nonlocal shutdown_count
            shutdown_count += 1
            if shutdown_count == 1:
                click.echo(f"\nReceived {sig_name}, shutting down gracefully...")
                click.echo("(Press Ctrl+C again to force quit)")
                loop.create_task(engine.execute(Command(type=CommandType.STOP)))
            else:
                click.echo("\nForce quitting...")
                os._exit(1)

        loop.add_signal_handler(sig.SIGTERM, lambda: handle_shutdown("SIGTERM"))
        loop.add_signal_handler(sig.SIGINT, lambda: handle_shutdown("SIGINT"))

        try:
            await transport.serve(engine)
        finally:
            # No-op if serve already shut the engine down
            await engine.shutdown()
            click.echo("Cleanup complete.")
            for path in (pid_path, http_file(name)):
                if os.path.exists(path):
                    os.unlink(path)
            loop.remove_signal_handler(sig.SIGTERM)
            loop.remove_signal_handler(sig.SIGINT)

    asyncio.run(run())


async def _send_to_server(
    server_name: str, command: Command, timeout: float
) -> dict[str, Any] | None:
    """Send one command to a named server. Returns result data, or None if unreachable."""
    client = create_client(server_name)
    try:
        await client.connect()
        try:
            result = await client.send_command(command, timeout=timeout)
        finally:
            await client.disconnect()
    except (OSError, TimeoutError):
        return None
    if not result.success:
        return None
    return result.data or {}


@server.command()
@click.argument("name", default="local")
@click.option("--all", "stop_all", is_flag=True, help="Stop all taskterm servers")
@click.option("--force", "-f", is_flag=True, help="Skip graceful shutdown and kill the daemon")
@click.option("--timeout", "-t", default=5.0, help="Graceful shutdown timeout in seconds")
def stop(name: str, stop_all: bool, force: bool, timeout: float) -> None:
    """Stop the taskterm daemon.

    Sends STOP to the running daemon, which destroys every terminal and
    exits. Falls back to signals if the daemon does not answer.

    **Examples:**

        taskterm server stop

        taskterm server stop myproject --force

        taskterm server stop --all
    """

    async def stop_server(server_name: str) -> bool:
        if force:
            click.echo(f"  Force stopping '{server_name}'...")
            return force_kill_server(server_name, echo_fn=click.echo)

        transport_type, _ = get_server_transport(server_name)
        click.echo(f"  Stopping '{server_name}' ({transport_type}, timeout: {timeout}s)...")
        stopped = await _send_to_server(server_name, Command(type=CommandType.STOP), timeout)
        if stopped is not None:
            # Give the daemon a moment to remove its files
            await asyncio.sleep(0.5)
            click.echo(f"  Gracefully stopped '{server_name}'")
            return True

        click.echo("  Graceful shutdown failed, force killing...")
        if force_kill_server(server_name, echo_fn=click.echo):
            return True

        click.echo(f"  Could not stop '{server_name}'", err=True)
        return False

    async def run() -> None:
        if not stop_all:
            await stop_server(name)
            return

        server_names = find_all_servers()
        if not server_names:
            click.echo("No taskterm servers found")
            return
        click.echo(f"Found {len(server_names)} server(s)")
        for server_name in sorted(server_names):
            await stop_server(server_name)

    asyncio.run(run())


@server.command()
@click.argument("name", default="local")
@click.option("--all", "show_all", is_flag=True, help="Show all taskterm servers")
def status(name: str, show_all: bool) -> None:
    """Check if the taskterm daemon is running.

    **Examples:**

        taskterm server status

        taskterm server status --all
    """

    async def get_status(server_name: str) -> dict[str, Any] | None:
        data = await _send_to_server(server_name, Command(type=CommandType.PING), 5.0)
        if data is None:
            return None
        transport_type, conn_info = get_server_transport(server_name)
        where = f"http://{conn_info}" if transport_type == "http" else conn_info
        return {"name": server_name, "transport": where, **data}

    async def run() -> None:
        if not show_all:
            data = await get_status(name)
            if data is None:
                click.echo(f"Server '{name}' not running")
                sys.exit(1)
            click.echo(f"Server '{name}' running on {data['transport']}")
            click.echo(f"  Terminals: {data.get('terminals', 0)} ({data.get('running', 0)} running)")
            return

        server_names = find_all_servers()
        running = [s for s in [await get_status(n) for n in sorted(server_names)] if s]
        if not running:
            click.echo("No taskterm servers running")
            return
        print_table(
            ["NAME", "TRANSPORT", "TERMINALS", "RUNNING"],
            [
                [s["name"], s["transport"], str(s.get("terminals", "?")), str(s.get("running", "?"))]
                for s in running
            ],
        )

    asyncio.run(run())


__all__ = ["server"]
