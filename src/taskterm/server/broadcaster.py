"""EventBroadcaster - ordered, non-blocking delivery of terminal events.

Terminal output is produced synchronously from event-loop reader callbacks,
which must never wait on a slow client. The broadcaster decouples the two:
producers enqueue and return immediately, and one worker task per terminal
id forwards events to the attached sink in production order.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field

from taskterm.server.protocols import Event, EventSink, EventType

logger = logging.getLogger(__name__)

# Queue key for events not tied to a terminal
_GLOBAL_KEY = ""

# Nothing follows these for a terminal until it is spawned again
_FINAL_EVENTS = frozenset({EventType.TERMINAL_EXIT, EventType.TERMINAL_CLEANED})


@dataclass
class EventBroadcaster:
    """Per-terminal FIFO queues drained by per-terminal worker tasks.

    - Events for one terminal id are delivered in the order published.
    - Events for different ids are delivered independently.
    - Each event goes to the attached sink (the global stream) and to the
      sinks subscribed to its terminal id (the per-terminal streams).
    - With no sink attached and nobody subscribed to the terminal, events
      are dropped; the terminal's ring buffer is the durable record and
      ``GET_BUFFER`` rebuilds the view.
    - Sink failures are logged and never reach the producer.

    A terminal's worker exits after delivering its exit or cleaned event
    (unless more events for the id are already queued, e.g. from a re-spawn).

    Example:
        >>> broadcaster = EventBroadcaster()
        >>> broadcaster.attach(transport)
        >>> broadcaster.subscribe("term-42", panel)
        >>> registry.on_data = broadcaster.publish_data
        >>> registry.on_exit = broadcaster.publish_exit
    """

    sink: EventSink | None = None
    _subscribers: dict[str, list[EventSink]] = field(default_factory=dict, repr=False)
    _queues: dict[str, asyncio.Queue[Event]] = field(default_factory=dict, repr=False)
    _workers: dict[str, asyncio.Task[None]] = field(default_factory=dict, repr=False)
    _closed: bool = field(default=False, repr=False)

    @property
    def attached(self) -> bool:
        """Whether a sink is currently receiving events."""
        return self.sink is not None

    @property
    def active_streams(self) -> int:
        """Number of terminal ids with a running worker."""
        return len(self._workers)

    def attach(self, sink: EventSink) -> None:
        """Make ``sink`` the receiver of all subsequent deliveries."""
        self.sink = sink

    def detach(self) -> None:
        """Stop live delivery. Queued events are dropped as they come up."""
        self.sink = None

    def subscribe(self, terminal_id: str, sink: EventSink) -> None:
        """Deliver events for ``terminal_id`` to ``sink`` as well."""
        sinks = self._subscribers.setdefault(terminal_id, [])
        if sink not in sinks:
            sinks.append(sink)

    def unsubscribe(self, terminal_id: str, sink: EventSink | None = None) -> None:
        """Remove one subscriber of a terminal, or all of them."""
        sinks = self._subscribers.get(terminal_id)
        if sinks is None:
            return
        if sink is not None and sink in sinks:
            sinks.remove(sink)
        if sink is None or not sinks:
            del self._subscribers[terminal_id]

    def subscribers(self, terminal_id: str) -> int:
        """Number of sinks subscribed to ``terminal_id``."""
        return len(self._subscribers.get(terminal_id, ()))

    def publish_data(self, terminal_id: str, chunk: str) -> None:
        """Queue an output chunk. Never blocks."""
        self.publish(Event(type=EventType.TERMINAL_DATA, terminal_id=terminal_id, data={"chunk": chunk}))

    def publish_exit(self, terminal_id: str, exit_code: int) -> None:
        """Queue an exit notification. Never blocks."""
        self.publish(
            Event(type=EventType.TERMINAL_EXIT, terminal_id=terminal_id, data={"exit_code": exit_code})
        )

    def publish(self, event: Event) -> None:
        """Queue any event behind earlier events for the same terminal."""
        if self._closed:
            return

        key = event.terminal_id or _GLOBAL_KEY
        queue = self._queues.get(key)
        if queue is None:
            queue = self._queues[key] = asyncio.Queue()
            self._workers[key] = asyncio.create_task(self._run_worker(key, queue))
        queue.put_nowait(event)

    async def drain(self) -> None:
        """Wait until everything queued so far has been delivered or dropped."""
        await asyncio.gather(*(queue.join() for queue in list(self._queues.values())))

    async def close(self) -> None:
        """Stop all workers. Undelivered events are discarded."""
        self._closed = True
        workers = list(self._workers.values())
        for task in workers:
            task.cancel()
        for task in workers:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._workers.clear()
        self._queues.clear()
        self._subscribers.clear()

    async def _run_worker(self, key: str, queue: asyncio.Queue[Event]) -> None:
        while True:
            event = await queue.get()
            try:
                await self._deliver(event)
            finally:
                queue.task_done()

            if event.type in _FINAL_EVENTS and queue.empty():
                # No await between the check and the removal, so nothing can slip in
                self._queues.pop(key, None)
                self._workers.pop(key, None)
                return

    async def _deliver(self, event: Event) -> None:
        sinks = [self.sink] if self.sink is not None else []
        if event.terminal_id:
            sinks.extend(self._subscribers.get(event.terminal_id, ()))

        for sink in sinks:
            try:
                await sink.emit(event)
            except Exception:
                logger.warning(
                    "Event delivery failed: type=%s terminal=%s",
                    event.type.name,
                    event.terminal_id,
                    exc_info=True,
                )
