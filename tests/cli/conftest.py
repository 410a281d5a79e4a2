"""Fixtures for CLI tests."""

from __future__ import annotations

import shutil
import tempfile

import pytest

from taskterm.frontends.cli import utils


@pytest.fixture
def runtime_dir(monkeypatch):
    """Point the CLI's /tmp tracking files at a private directory."""
    directory = tempfile.mkdtemp(prefix="tt-")
    monkeypatch.setattr(utils, "RUNTIME_DIR", directory)
    yield directory
    shutil.rmtree(directory, ignore_errors=True)


@pytest.fixture
def live_server(runtime_dir, config):
    """Run a Unix socket daemon on a background thread; yields its name."""
    import asyncio
    import threading
    import time
    from pathlib import Path

    from click.testing import CliRunner

    from taskterm.frontends.cli.main import cli
    from taskterm.server import build_terminal_engine
    from taskterm.transport import UnixSocketServer

    name = "clitest"
    path = utils.socket_file(name)

    async def serve() -> None:
        transport = UnixSocketServer(path)
        engine = build_terminal_engine(event_sink=transport, config=config)
        await transport.serve(engine)

    thread = threading.Thread(target=lambda: asyncio.run(serve()), daemon=True)
    thread.start()

    deadline = time.monotonic() + 5.0
    while not Path(path).exists():
        assert time.monotonic() < deadline, "daemon did not start"
        time.sleep(0.02)

    yield name

    if thread.is_alive():
        CliRunner().invoke(cli, ["server", "stop", name])
    thread.join(timeout=10.0)
