"""Tests for OutputRingBuffer."""

import pytest

from taskterm.core.errors import BufferFrozenError
from taskterm.core.pty import OutputRingBuffer


class TestAppend:
    """Tests for appending and eviction."""

    def test_under_capacity_keeps_everything(self):
        buf = OutputRingBuffer(capacity=10)
        buf.append("abc")
        buf.append("def")

        assert buf.snapshot() == "abcdef"
        assert buf.size == 6
        assert buf.evicted == 0

    def test_exact_capacity_keeps_everything(self):
        buf = OutputRingBuffer(capacity=6)
        buf.append("abc")
        buf.append("def")

        assert buf.snapshot() == "abcdef"

    def test_overflow_keeps_last_capacity_chars(self):
        """Appending N+K characters leaves exactly the last N."""
        buf = OutputRingBuffer(capacity=8)
        text = "0123456789abcdef"
        for ch in text:
            buf.append(ch)

        assert buf.snapshot() == text[-8:]
        assert len(buf) == 8
        assert buf.total_appended == len(text)
        assert buf.evicted == len(text) - 8

    def test_overflow_slices_oldest_chunk(self):
        buf = OutputRingBuffer(capacity=5)
        buf.append("hello")
        buf.append(" wo")

        assert buf.snapshot() == "lo wo"

    def test_chunk_larger_than_capacity_keeps_tail(self):
        buf = OutputRingBuffer(capacity=4)
        buf.append("xx")
        buf.append("abcdefgh")

        assert buf.snapshot() == "efgh"
        assert buf.size == 4

    def test_empty_append_is_ignored(self):
        buf = OutputRingBuffer(capacity=4)
        buf.append("")

        assert buf.snapshot() == ""
        assert buf.total_appended == 0

    def test_multibyte_characters_never_split(self):
        buf = OutputRingBuffer(capacity=3)
        buf.append("€€€€")

        assert buf.snapshot() == "€€€"

    def test_invalid_capacity(self):
        with pytest.raises(ValueError, match="capacity must be positive"):
            OutputRingBuffer(capacity=0)


class TestSnapshot:
    """Tests for reading content back."""

    def test_repeated_snapshots_are_stable(self):
        buf = OutputRingBuffer(capacity=100)
        for part in ("a", "b", "c"):
            buf.append(part)

        assert buf.snapshot() == "abc"
        assert buf.snapshot() == "abc"

        buf.append("d")
        assert buf.snapshot() == "abcd"

    def test_tail(self):
        buf = OutputRingBuffer(capacity=100)
        buf.append("line1\nline2\n")

        assert buf.tail(6) == "line2\n"
        assert buf.tail(0) == ""
        assert buf.tail(1000) == "line1\nline2\n"


class TestFreeze:
    """Tests for the read-only state after exit."""

    def test_frozen_buffer_rejects_appends(self):
        buf = OutputRingBuffer(capacity=10)
        buf.append("done")
        buf.freeze()

        with pytest.raises(BufferFrozenError):
            buf.append("more")

        assert buf.frozen
        assert buf.snapshot() == "done"

    def test_clear(self):
        buf = OutputRingBuffer(capacity=10)
        buf.append("data")
        buf.clear()

        assert buf.snapshot() == ""
        assert buf.size == 0
        assert buf.total_appended == 0
