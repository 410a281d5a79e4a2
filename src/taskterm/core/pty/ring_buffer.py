"""Bounded output store for terminal sessions."""

from __future__ import annotations

from collections import deque

from taskterm.core.config import DEFAULT_BUFFER_CAPACITY
from taskterm.core.errors import BufferFrozenError


class OutputRingBuffer:
    """Fixed-capacity FIFO store of decoded terminal output.

    Keeps the most recent ``capacity`` characters. Output is stored as the
    chunks it arrived in; once the total exceeds capacity, whole chunks are
    dropped from the front and the oldest surviving chunk is sliced so the
    size is exactly ``capacity``. Content is already-decoded ``str``, so a
    slice can never split a multi-byte character.

    Appending never blocks and never fails for size reasons: history is
    traded for liveness.

    Example:
        >>> buf = OutputRingBuffer(capacity=5)
        >>> buf.append("hello")
        >>> buf.append(" world")
        >>> buf.snapshot()
        'world'
    """

    def __init__(self, capacity: int = DEFAULT_BUFFER_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._chunks: deque[str] = deque()
        self._size = 0
        self._total_appended = 0
        self._frozen = False

    @property
    def capacity(self) -> int:
        """Maximum number of characters retained."""
        return self._capacity

    @property
    def size(self) -> int:
        """Number of characters currently retained."""
        return self._size

    @property
    def total_appended(self) -> int:
        """Number of characters ever appended."""
        return self._total_appended

    @property
    def evicted(self) -> int:
        """Number of characters dropped to stay within capacity."""
        return self._total_appended - self._size

    @property
    def frozen(self) -> bool:
        """Whether the buffer has become read-only."""
        return self._frozen

    def append(self, data: str) -> None:
        """Append output, evicting the oldest content if over capacity.

        Raises:
            BufferFrozenError: If the buffer was frozen.
        """
        if self._frozen:
            raise BufferFrozenError("Cannot append to a frozen buffer")
        if not data:
            return

        self._total_appended += len(data)

        # A single chunk at least as large as the buffer replaces everything
        if len(data) >= self._capacity:
            self._chunks.clear()
            self._chunks.append(data[-self._capacity :])
            self._size = self._capacity
            return

        self._chunks.append(data)
        self._size += len(data)

        overflow = self._size - self._capacity
        while overflow > 0:
            oldest = self._chunks[0]
            if len(oldest) <= overflow:
                self._chunks.popleft()
                self._size -= len(oldest)
                overflow -= len(oldest)
            else:
                self._chunks[0] = oldest[overflow:]
                self._size -= overflow
                overflow = 0

    def snapshot(self) -> str:
        """Return the full retained content."""
        content = "".join(self._chunks)
        # Collapse to one chunk so repeated snapshots stay cheap
        if len(self._chunks) > 1:
            self._chunks.clear()
            self._chunks.append(content)
        return content

    def tail(self, chars: int) -> str:
        """Return at most the last ``chars`` characters."""
        if chars <= 0:
            return ""
        return self.snapshot()[-chars:]

    def freeze(self) -> None:
        """Make the buffer read-only. Content stays available."""
        self._frozen = True

    def clear(self) -> None:
        """Discard all content (counters are reset too)."""
        self._chunks.clear()
        self._size = 0
        self._total_appended = 0

    def __len__(self) -> int:
        return self._size
