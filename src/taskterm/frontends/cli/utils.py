"""Shared utilities for CLI commands."""

from __future__ import annotations

import asyncio
import functools
import os
import re
import signal
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from glob import glob
from typing import Any

import rich_click as click

from taskterm.frontends.cli.output import error_exit
from taskterm.server.protocols import Command, CommandType
from taskterm.transport import ClientTransport, HTTPClient, UnixSocketClient

RUNTIME_DIR = "/tmp"
FILE_PREFIX = "taskterm-"


def socket_file(server_name: str) -> str:
    return f"{RUNTIME_DIR}/{FILE_PREFIX}{server_name}.sock"


def pid_file(server_name: str) -> str:
    return f"{RUNTIME_DIR}/{FILE_PREFIX}{server_name}.pid"


def http_file(server_name: str) -> str:
    return f"{RUNTIME_DIR}/{FILE_PREFIX}{server_name}.http"


def get_server_transport(server_name: str) -> tuple[str, str]:
    """Get server transport type and connection info.

    Returns (type, connection_info).
    - For "http": connection_info is "host:port"
    - For "unix": connection_info is the socket path
    """
    path = http_file(server_name)
    if os.path.exists(path):
        with open(path) as f:
            return "http", f.read().strip()
    return "unix", socket_file(server_name)


def create_client(server_name: str) -> ClientTransport:
    """Create (but do not connect) a client for a named server."""
    transport_type, conn_info = get_server_transport(server_name)
    if transport_type == "http":
        return HTTPClient(f"http://{conn_info}")
    return UnixSocketClient(conn_info)


@asynccontextmanager
async def server_connection(
    server_name: str, with_events: bool = False, terminal_ids: list[str] | None = None
) -> AsyncIterator[ClientTransport]:
    """Connect to a named server for the duration of the block.

    ``terminal_ids`` limits terminal output on the event stream to those
    terminals.

    Usage:
        async with server_connection("local") as client:
            result = await client.send_command(Command(type=CommandType.LIST))

    Raises:
        ConnectionError: If the server is not reachable.
    """
    client = create_client(server_name)
    try:
        if isinstance(client, HTTPClient):
            await client.connect(with_events=with_events, terminal_ids=terminal_ids)
        else:
            await client.connect()
    except (FileNotFoundError, ConnectionRefusedError) as e:
        raise ConnectionError(f"Server '{server_name}' is not running") from e

    try:
        if terminal_ids is not None and isinstance(client, UnixSocketClient):
            await client.subscribe(terminal_ids)
        yield client
    finally:
        await client.disconnect()


def async_server_command(fn: Callable[..., Awaitable[None]]) -> Callable[..., None]:
    """Run an async click callback with asyncio.run."""

    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> None:
        asyncio.run(fn(*args, **kwargs))

    return wrapper


def build_params(**kwargs: Any) -> dict[str, Any]:
    """Build a params dict, dropping options that were not given."""
    return {key: value for key, value in kwargs.items() if value is not None}


def find_all_servers() -> set[str]:
    """Find all server names from tracking files."""
    pattern = re.compile(rf"{re.escape(RUNTIME_DIR)}/{FILE_PREFIX}(.+)\.(sock|http|pid)$")
    names: set[str] = set()
    for path in glob(f"{RUNTIME_DIR}/{FILE_PREFIX}*"):
        match = pattern.match(path)
        if match:
            names.add(match.group(1))
    return names


def remove_server_files(server_name: str) -> bool:
    """Delete a server's tracking files. Returns True if any existed."""
    removed = False
    for path in (pid_file(server_name), socket_file(server_name), http_file(server_name)):
        if os.path.exists(path):
            os.unlink(path)
            removed = True
    return removed


def wait_for_process_exit(pid: int, timeout: float = 5.0) -> bool:
    """Wait for a process to exit.

    Returns True if exited, False if still running after timeout.
    """
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return True
        time.sleep(0.1)
    return False


def force_kill_server(server_name: str, echo_fn: Callable[[str], Any] = print) -> bool:
    """Stop a server by signal when it does not answer STOP.

    Sends SIGTERM first so the server can destroy its terminals, then
    SIGKILL to the server's process group.

    Returns:
        True if the server is gone, False otherwise.
    """
    path = pid_file(server_name)
    if not os.path.exists(path):
        if remove_server_files(server_name):
            echo_fn("  Cleaned up stale files")
        return False

    try:
        with open(path) as f:
            server_pid = int(f.read().strip())
    except ValueError as e:
        echo_fn(f"  Invalid pid file: {e}")
        remove_server_files(server_name)
        return False

    try:
        os.kill(server_pid, signal.SIGTERM)
    except ProcessLookupError:
        echo_fn(f"  Server {server_pid} already stopped")
        remove_server_files(server_name)
        return True
    except PermissionError as e:
        echo_fn(f"  Could not signal process: {e}")
        return False

    if wait_for_process_exit(server_pid, timeout=5.0):
        echo_fn(f"  Server {server_pid} exited gracefully")
        remove_server_files(server_name)
        return True

    echo_fn("  Server didn't respond to SIGTERM, force killing...")
    # The server leads its own process group; terminals run in their own sessions
    try:
        os.killpg(server_pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    echo_fn(f"  Killed server {server_pid}")
    remove_server_files(server_name)
    return True


server_option = click.option(
    "--server", "-s", "server_name", default="local", help="Server name (default: local)"
)


async def send_or_exit(server_name: str, command_type: CommandType, **params: Any) -> dict[str, Any]:
    """Send one command to a named server and return its data.

    Exits the CLI with an error if the server is unreachable or the
    command fails.
    """
    try:
        async with server_connection(server_name) as client:
            result = await client.send_command(
                Command(type=command_type, params=build_params(**params))
            )
    except ConnectionError as e:
        error_exit(str(e))

    if not result.success:
        error_exit(result.error or "Unknown error")
    return result.data or {}
