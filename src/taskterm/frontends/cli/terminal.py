"""Terminal commands - drive terminals on a running daemon."""

from __future__ import annotations

import sys

import rich_click as click

from taskterm.frontends.cli.output import (
    error_exit,
    format_state,
    output_json,
    output_json_or_table,
    print_table,
)
from taskterm.frontends.cli.utils import (
    async_server_command,
    send_or_exit,
    server_connection,
    server_option,
)
from taskterm.server.protocols import Command, CommandType, EventType


@click.group()
def terminal() -> None:
    """Manage terminals.

    A terminal is a login shell on a pseudo-terminal, optionally running
    the coding agent first. Output is kept in a scrollback buffer so
    clients can reconnect at any time.

    **Commands:**

        taskterm terminal spawn     Start (or re-attach to) a terminal

        taskterm terminal write     Send keystrokes

        taskterm terminal buffer    Print the scrollback buffer

        taskterm terminal watch     Stream live output
    """
    pass


@terminal.command("spawn")
@click.argument("terminal_id")
@server_option
@click.option("--cwd", default=".", type=click.Path(file_okay=False), help="Working directory")
@click.option("--cols", default=80, help="Columns")
@click.option("--rows", default=24, help="Rows")
@click.option("--prompt", "initial_prompt", default=None, help="Start the agent with this prompt")
@click.option("--session-id", default=None, help="Start the agent with this session id")
@click.option("--resume", "resume_session_id", default=None, help="Resume this agent session")
@async_server_command
async def terminal_spawn(
    terminal_id: str,
    server_name: str,
    cwd: str,
    cols: int,
    rows: int,
    initial_prompt: str | None,
    session_id: str | None,
    resume_session_id: str | None,
) -> None:
    """Spawn a terminal.

    Spawning an id that is already running re-attaches without starting a
    new process; an exited terminal is replaced.

    **Examples:**

        taskterm terminal spawn term-task-42 --cwd ~/src/project

        taskterm terminal spawn term-task-42 --prompt "fix the failing test"

        taskterm terminal spawn term-task-42 --resume 3f9c...
    """
    import os

    data = await send_or_exit(
        server_name,
        CommandType.SPAWN,
        terminal_id=terminal_id,
        cwd=os.path.abspath(os.path.expanduser(cwd)),
        cols=cols,
        rows=rows,
        initial_prompt=initial_prompt,
        session_id=session_id,
        resume_session_id=resume_session_id,
    )
    if not data.get("spawned"):
        error_exit(data.get("error") or f"Could not spawn {terminal_id}")
    if data.get("reattached"):
        click.echo(f"{terminal_id} is already running")
    else:
        click.echo(f"Spawned {terminal_id}")


@terminal.command("write")
@click.argument("terminal_id")
@click.argument("text")
@server_option
@click.option("--no-enter", is_flag=True, help="Do not append a carriage return")
@async_server_command
async def terminal_write(terminal_id: str, text: str, server_name: str, no_enter: bool) -> None:
    """Write TEXT to a terminal's input.

    **Examples:**

        taskterm terminal write term-task-42 "ls -la"
    """
    data = await send_or_exit(
        server_name,
        CommandType.WRITE,
        terminal_id=terminal_id,
        data=text if no_enter else text + "\r",
    )
    if not data.get("written"):
        error_exit(f"Terminal {terminal_id} is not running")


@terminal.command("resize")
@click.argument("terminal_id")
@click.argument("cols", type=int)
@click.argument("rows", type=int)
@server_option
@async_server_command
async def terminal_resize(terminal_id: str, cols: int, rows: int, server_name: str) -> None:
    """Resize a terminal to COLS x ROWS."""
    data = await send_or_exit(
        server_name, CommandType.RESIZE, terminal_id=terminal_id, cols=cols, rows=rows
    )
    if not data.get("resized"):
        error_exit(f"Terminal {terminal_id} is not running")


@terminal.command("kill")
@click.argument("terminal_id")
@server_option
@async_server_command
async def terminal_kill(terminal_id: str, server_name: str) -> None:
    """Terminate a terminal's process. Its buffer stays readable."""
    data = await send_or_exit(server_name, CommandType.KILL, terminal_id=terminal_id)
    click.echo("Kill requested" if data.get("killed") else f"Terminal {terminal_id} is not running")


@terminal.command("cleanup")
@click.argument("terminal_id")
@server_option
@async_server_command
async def terminal_cleanup(terminal_id: str, server_name: str) -> None:
    """Destroy a terminal and forget its buffer."""
    await send_or_exit(server_name, CommandType.CLEANUP, terminal_id=terminal_id)
    click.echo(f"Cleaned up {terminal_id}")


@terminal.command("buffer")
@click.argument("terminal_id")
@server_option
@click.option("--json", "-j", "json_output", is_flag=True, help="Output as JSON")
@async_server_command
async def terminal_buffer(terminal_id: str, server_name: str, json_output: bool) -> None:
    """Print a terminal's scrollback buffer."""
    data = await send_or_exit(server_name, CommandType.GET_BUFFER, terminal_id=terminal_id)
    buffer = data.get("buffer")
    if buffer is None:
        error_exit(f"No terminal {terminal_id}")
    if json_output:
        output_json(buffer)
        return
    sys.stdout.write(buffer["content"])
    sys.stdout.flush()


@terminal.command("alive")
@click.argument("terminal_id")
@server_option
@click.option("--json", "-j", "json_output", is_flag=True, help="Output as JSON")
@async_server_command
async def terminal_alive(terminal_id: str, server_name: str, json_output: bool) -> None:
    """Report whether a terminal exists and its state.

    Exits with status 1 if the terminal does not exist.
    """
    data = await send_or_exit(server_name, CommandType.IS_ALIVE, terminal_id=terminal_id)
    if json_output:
        output_json(data)
    elif data.get("exists"):
        click.echo(f"{terminal_id}: {data['state']} (exit code: {data.get('exitCode')})")
    else:
        click.echo(f"{terminal_id}: not found")
    if not data.get("exists"):
        sys.exit(1)


@terminal.command("list")
@server_option
@click.option("--running", is_flag=True, help="Only list task ids with a running terminal")
@click.option("--json", "-j", "json_output", is_flag=True, help="Output as JSON")
@async_server_command
async def terminal_list(server_name: str, running: bool, json_output: bool) -> None:
    """List terminals.

    **Examples:**

        taskterm terminal list

        taskterm terminal list --running --json
    """
    if running:
        task_ids = (await send_or_exit(server_name, CommandType.LIST_RUNNING_TASKS)).get("task_ids", [])

        def show_tasks() -> None:
            if not task_ids:
                click.echo("No running task terminals")
            for task_id in task_ids:
                click.echo(task_id)

        output_json_or_table(task_ids, json_output, show_tasks)
        return

    terminals = (await send_or_exit(server_name, CommandType.LIST)).get("terminals", [])

    def show_table() -> None:
        if not terminals:
            click.echo("No terminals")
            return
        print_table(
            ["ID", "STATE"],
            [[t["id"], format_state(t["state"], t.get("exitCode"))] for t in terminals],
        )

    output_json_or_table(terminals, json_output, show_table)


@terminal.command("watch")
@click.argument("terminal_id")
@server_option
@click.option("--replay/--no-replay", default=True, help="Print the buffer before live output")
@async_server_command
async def terminal_watch(terminal_id: str, server_name: str, replay: bool) -> None:
    """Stream a terminal's output until it exits.

    **Examples:**

        taskterm terminal watch term-task-42
    """
    try:
        async with server_connection(
            server_name, with_events=True, terminal_ids=[terminal_id]
        ) as client:
            if replay:
                result = await client.send_command(
                    Command(type=CommandType.GET_BUFFER, params={"terminal_id": terminal_id})
                )
                buffer = (result.data or {}).get("buffer") if result.success else None
                if buffer is None:
                    error_exit(f"No terminal {terminal_id}")
                sys.stdout.write(buffer["content"])
                sys.stdout.flush()
                if buffer["state"] == "exited":
                    click.echo(f"\n[exited with code {buffer['exitCode']}]")
                    return

            async for event in client.events():
                if event.terminal_id != terminal_id:
                    continue
                if event.type is EventType.TERMINAL_DATA:
                    sys.stdout.write(event.data.get("chunk", ""))
                    sys.stdout.flush()
                elif event.type is EventType.TERMINAL_EXIT:
                    click.echo(f"\n[exited with code {event.data.get('exit_code')}]")
                    return
                elif event.type is EventType.TERMINAL_CLEANED:
                    click.echo("\n[cleaned up]")
                    return
    except ConnectionError as e:
        error_exit(str(e))
