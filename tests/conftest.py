"""Pytest configuration and fixtures."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import pytest
import pytest_asyncio

from taskterm.core.config import TerminalConfig
from taskterm.core.terminal import TerminalRegistry


class RecordingListener:
    """Collects registry notifications in arrival order."""

    def __init__(self) -> None:
        self.log: list[tuple[str, str, object]] = []

    def on_data(self, terminal_id: str, chunk: str) -> None:
        self.log.append(("data", terminal_id, chunk))

    def on_exit(self, terminal_id: str, exit_code: int) -> None:
        self.log.append(("exit", terminal_id, exit_code))

    def output(self, terminal_id: str) -> str:
        return "".join(
            str(value) for kind, tid, value in self.log if kind == "data" and tid == terminal_id
        )

    def exits(self, terminal_id: str) -> list[int]:
        return [int(value) for kind, tid, value in self.log if kind == "exit" and tid == terminal_id]


class MockEventSink:
    """Mock event sink for testing."""

    def __init__(self) -> None:
        self.events = []

    async def emit(self, event) -> None:
        self.events.append(event)

    def of_type(self, event_type, terminal_id: str | None = None) -> list:
        return [
            e
            for e in self.events
            if e.type is event_type and (terminal_id is None or e.terminal_id == terminal_id)
        ]


@pytest.fixture
def config(tmp_path) -> TerminalConfig:
    """Config running plain /bin/sh with a short kill grace."""
    return TerminalConfig(
        shell="/bin/sh",
        agent_command="echo agent",
        buffer_capacity=64 * 1024,
        kill_grace=0.5,
        session_dir=tmp_path / "sessions",
    )


@pytest.fixture
def listener() -> RecordingListener:
    return RecordingListener()


@pytest.fixture
def event_sink() -> MockEventSink:
    return MockEventSink()


@pytest_asyncio.fixture
async def registry(config, listener):
    """Registry wired to a RecordingListener; destroys all terminals afterwards."""
    registry = TerminalRegistry(config=config, on_data=listener.on_data, on_exit=listener.on_exit)
    yield registry
    await registry.shutdown()


@pytest.fixture
def wait_until() -> Callable[..., Awaitable[None]]:
    """Poll a predicate until it holds or fail after a timeout."""

    async def _wait(predicate: Callable[[], object], timeout: float = 5.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError(f"Condition not met within {timeout}s")
            await asyncio.sleep(0.02)

    return _wait
