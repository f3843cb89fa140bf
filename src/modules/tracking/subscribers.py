"""Subscriber handles and the viewer-side reorder buffer.

A subscriber handle is whatever the push transport hands the broadcaster
(a websocket wrapper, an SSE stream, a queue).  The broadcaster only needs
``send`` (may raise) and ``closed`` (observable close).
"""

from __future__ import annotations

import queue
import threading
from typing import Dict, List, Optional, Protocol, runtime_checkable

from modules.tracking.events import TrackingEvent

DEFAULT_MAX_PENDING = 100


class SubscriberClosed(Exception):
    """Raised by ``send`` on a handle whose transport is closed."""


@runtime_checkable
class Subscriber(Protocol):
    @property
    def closed(self) -> bool: ...

    def send(self, event: TrackingEvent) -> None: ...


class QueueSubscriber:
    """In-memory transport backed by ``queue.Queue``.

    With a ``maxsize`` a full queue makes ``send`` raise ``queue.Full``,
    which the broadcaster treats as a broken subscriber.
    """

    def __init__(self, maxsize: int = 0) -> None:
        self._queue: queue.Queue[TrackingEvent] = queue.Queue(maxsize=maxsize)
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def close(self) -> None:
        self._closed.set()

    def send(self, event: TrackingEvent) -> None:
        if self.closed:
            raise SubscriberClosed("subscriber is closed")
        self._queue.put_nowait(event)

    def get(self, timeout: Optional[float] = None) -> TrackingEvent:
        """Block until the next event; raises ``queue.Empty`` on timeout."""
        return self._queue.get(timeout=timeout)

    def drain(self) -> List[TrackingEvent]:
        events = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events


class ReorderBuffer:
    """Releases sequenced events in order over an unordered transport.

    - events without a sequence (or sequence ``0``) pass straight through;
    - the expected sequence starts at ``start_sequence``;
    - an event behind the expected sequence, or already held, is a
      duplicate and is dropped;
    - an event ahead of the expected sequence is held until the gap fills;
    - once more than ``max_pending`` events are held, all of them are
      flushed in sequence order and the gap is abandoned.

    Not thread-safe; one buffer belongs to one viewer.
    """

    def __init__(self, start_sequence: int = 1, max_pending: int = DEFAULT_MAX_PENDING) -> None:
        self._expected = start_sequence
        self._max_pending = max_pending
        self._held: Dict[int, TrackingEvent] = {}

    @property
    def expected_sequence(self) -> int:
        return self._expected

    @property
    def pending(self) -> int:
        return len(self._held)

    def push(self, event: TrackingEvent) -> List[TrackingEvent]:
        """Accept one event and return the events now releasable, in order."""
        sequence = event.sequence
        if not sequence:
            return [event]

        if sequence < self._expected or sequence in self._held:
            return []

        if sequence > self._expected:
            self._held[sequence] = event
            if len(self._held) > self._max_pending:
                return self._flush()
            return []

        released = [event]
        self._expected += 1
        while self._expected in self._held:
            released.append(self._held.pop(self._expected))
            self._expected += 1
        return released

    def _flush(self) -> List[TrackingEvent]:
        released = [self._held[seq] for seq in sorted(self._held)]
        self._expected = max(self._held) + 1
        self._held.clear()
        return released
