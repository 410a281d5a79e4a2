"""Session commands - read and write per-task resumption metadata."""

from __future__ import annotations

import json

import rich_click as click

from taskterm.frontends.cli.output import error_exit, output_json
from taskterm.frontends.cli.utils import async_server_command, send_or_exit, server_option
from taskterm.server.protocols import CommandType


@click.group()
def session() -> None:
    """Manage saved session metadata.

    Each task can store the agent session id it last used, so the next
    spawn can resume the same conversation.
    """
    pass


@session.command("load")
@click.argument("task_id")
@server_option
@async_server_command
async def session_load(task_id: str, server_name: str) -> None:
    """Print the metadata stored for TASK_ID as JSON."""
    data = await send_or_exit(server_name, CommandType.SESSION_LOAD, task_id=task_id)
    output_json(data.get("session", {}))


@session.command("save")
@click.argument("task_id")
@click.argument("metadata")
@server_option
@async_server_command
async def session_save(task_id: str, metadata: str, server_name: str) -> None:
    """Store METADATA (a JSON object) for TASK_ID.

    **Examples:**

        taskterm session save task-42 '{"claudeSessionId": "3f9c...", "activeTab": "terminal"}'
    """
    try:
        parsed = json.loads(metadata)
    except json.JSONDecodeError as e:
        error_exit(f"Invalid JSON: {e}")
    if not isinstance(parsed, dict):
        error_exit("Metadata must be a JSON object")

    await send_or_exit(server_name, CommandType.SESSION_SAVE, task_id=task_id, session=parsed)
    click.echo(f"Saved session for {task_id}")


@session.command("delete")
@click.argument("task_id")
@server_option
@async_server_command
async def session_delete(task_id: str, server_name: str) -> None:
    """Delete the metadata stored for TASK_ID."""
    data = await send_or_exit(server_name, CommandType.SESSION_DELETE, task_id=task_id)
    click.echo(f"Deleted session for {task_id}" if data.get("deleted") else f"No session for {task_id}")
