"""Tests for TerminalSession state handling."""

import pytest

from taskterm.core.errors import SpawnError
from taskterm.core.terminal import TerminalSession, TerminalState


def make_session(**kwargs) -> TerminalSession:
    kwargs.setdefault("command", ["/bin/sh"])
    kwargs.setdefault("cwd", "/tmp")
    return TerminalSession(id="term-x", **kwargs)


class TestDecoding:
    """Tests for output decoding."""

    def test_split_multibyte_character_is_reassembled(self):
        chunks = []
        session = make_session(on_data=lambda tid, text: chunks.append(text))

        session._handle_output(b"price: \xe2\x82")
        session._handle_output(b"\xac")

        assert "".join(chunks) == "price: €"
        assert session.buffer.snapshot() == "price: €"

    def test_invalid_bytes_are_replaced(self):
        session = make_session()

        session._handle_output(b"ok \xff")

        assert session.buffer.snapshot() == "ok �"

    def test_incomplete_tail_flushed_on_exit(self):
        exits = []
        session = make_session(on_exit=lambda tid, code: exits.append((tid, code)))

        session._handle_output(b"\xe2\x82")
        session._handle_exit(0)

        assert session.buffer.snapshot() == "�"
        assert exits == [("term-x", 0)]


class TestState:
    """Tests for the state machine."""

    def test_initial_state(self):
        session = make_session()

        assert session.state is TerminalState.SPAWNING
        assert session.is_live
        assert session.exit_code is None
        assert session.to_info() == {"id": "term-x", "state": "spawning", "exitCode": None}

    def test_io_ignored_before_running(self):
        session = make_session()

        assert session.write("ls\n") is False
        assert session.resize(100, 40) is False
        assert session.kill() is False

    def test_exit_is_final(self):
        session = make_session()
        session._handle_exit(-9)

        assert session.state is TerminalState.EXITED
        assert not session.is_live
        assert session.snapshot() == {"content": "", "state": "exited", "exitCode": -9}
        assert session.buffer.frozen

    @pytest.mark.asyncio
    async def test_start_failure_raises_spawn_error(self):
        session = make_session(cwd="/definitely/not/here")

        with pytest.raises(SpawnError, match="term-x"):
            await session.start()

        assert session.state is TerminalState.SPAWNING
