"""Position broadcaster: per-order fan-out to live subscribers.

Each subscriber handle owns a mailbox.  Publishing appends the event to
the mailbox of every subscriber of the order and schedules one drain job
per mailbox on a thread pool.  A mailbox is drained by at most one job at
a time, in FIFO order, so:

- each subscriber sees the events of an order in publish order;
- a slow subscriber only ties up its own drain job;
- a subscriber whose ``send`` raises, or whose transport reports
  ``closed``, is dropped from every order and never retried.

Without an executor, events are delivered inline in the publisher's
thread (useful in tests and single-threaded embedders).
"""

from __future__ import annotations

import threading
from collections import deque
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Deque, Dict, List, Optional, Sequence, Set

import structlog

from modules.tracking.events import POSITION_UPDATE, STATUS_UPDATE, TrackingEvent
from modules.tracking.subscribers import Subscriber
from shared.domain.geo import Coordinate

logger = structlog.get_logger(__name__)


class _Mailbox:
    def __init__(self, subscriber: Subscriber) -> None:
        self.subscriber = subscriber
        self.events: Deque[TrackingEvent] = deque()
        self.scheduled = False
        self.broken = False


class PositionBroadcaster:
    """Lifecycle-scoped fan-out component (construct, use, ``close``)."""

    def __init__(
        self,
        executor: Optional[Executor] = None,
        max_workers: Optional[int] = None,
    ) -> None:
        self._owns_executor = executor is None and max_workers is not None
        if self._owns_executor:
            executor = ThreadPoolExecutor(
                max_workers=max_workers, thread_name_prefix="broadcast"
            )
        self._executor = executor
        self._lock = threading.RLock()
        self._subscriptions: Dict[str, Set[Subscriber]] = {}
        self._mailboxes: Dict[Subscriber, _Mailbox] = {}
        self._sequences: Dict[str, int] = {}
        self._closed = False

    def __enter__(self) -> PositionBroadcaster:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    def subscribe(self, order_id: str, subscriber: Subscriber) -> None:
        order_id = str(order_id)
        with self._lock:
            self._subscriptions.setdefault(order_id, set()).add(subscriber)
            self._mailboxes.setdefault(subscriber, _Mailbox(subscriber))
        logger.debug("broadcast.subscribed", order_id=order_id)

    def unsubscribe(self, order_id: str, subscriber: Subscriber) -> None:
        order_id = str(order_id)
        with self._lock:
            subscribers = self._subscriptions.get(order_id)
            if not subscribers or subscriber not in subscribers:
                return
            subscribers.discard(subscriber)
            if not subscribers:
                del self._subscriptions[order_id]
            if not self._is_subscribed_anywhere(subscriber):
                self._retire(subscriber)
        logger.debug("broadcast.unsubscribed", order_id=order_id)

    def subscribers(self, order_id: str) -> List[Subscriber]:
        with self._lock:
            return list(self._subscriptions.get(str(order_id), ()))

    def release(self, order_id: str) -> None:
        """Forget the sequence counter of an order nobody watches any more."""
        order_id = str(order_id)
        with self._lock:
            if order_id not in self._subscriptions:
                self._sequences.pop(order_id, None)

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    def publish_position(
        self,
        order_id: str,
        coordinate: Sequence[float],
        sequence: Optional[int] = None,
    ) -> TrackingEvent:
        """Fan out a position; sequence numbers are per order, from 1."""
        order_id = str(order_id)
        with self._lock:
            if sequence is None:
                sequence = self._sequences.get(order_id, 0) + 1
            self._sequences[order_id] = max(sequence, self._sequences.get(order_id, 0))
            event = TrackingEvent(
                type=POSITION_UPDATE,
                order_id=order_id,
                coordinates=Coordinate.parse(coordinate),
                sequence=sequence,
            )
            self._enqueue(event)
        return event

    def publish_status(
        self, order_id: str, status: str, message: Optional[str] = None
    ) -> TrackingEvent:
        event = TrackingEvent(
            type=STATUS_UPDATE,
            order_id=str(order_id),
            status=str(status),
            message=message,
        )
        with self._lock:
            self._enqueue(event)
        return event

    def _enqueue(self, event: TrackingEvent) -> None:
        if self._closed:
            return

        for subscriber in list(self._subscriptions.get(event.order_id, ())):
            if subscriber.closed:
                self._drop(subscriber, reason="closed")
                continue
            mailbox = self._mailboxes[subscriber]
            mailbox.events.append(event)
            if self._executor is None:
                self._drain(mailbox)
            elif not mailbox.scheduled:
                mailbox.scheduled = True
                self._executor.submit(self._drain, mailbox)

    def _drain(self, mailbox: _Mailbox) -> None:
        while True:
            with self._lock:
                if mailbox.broken or not mailbox.events:
                    mailbox.scheduled = False
                    subscriber = mailbox.subscriber
                    if (
                        self._mailboxes.get(subscriber) is mailbox
                        and not self._is_subscribed_anywhere(subscriber)
                    ):
                        del self._mailboxes[subscriber]
                    return
                event = mailbox.events.popleft()

            try:
                mailbox.subscriber.send(event)
            except Exception as exc:
                with self._lock:
                    self._drop(mailbox.subscriber, reason=type(exc).__name__)
                logger.warning(
                    "broadcast.subscriber_dropped",
                    order_id=event.order_id,
                    error=str(exc),
                )

    def _drop(self, subscriber: Subscriber, reason: str) -> None:
        mailbox = self._mailboxes.pop(subscriber, None)
        if mailbox is not None:
            mailbox.broken = True
            mailbox.events.clear()
        for order_id in [o for o, subs in self._subscriptions.items() if subscriber in subs]:
            self._subscriptions[order_id].discard(subscriber)
            if not self._subscriptions[order_id]:
                del self._subscriptions[order_id]
        logger.info("broadcast.subscriber_removed", reason=reason)

    def _retire(self, subscriber: Subscriber) -> None:
        # A running drain keeps the mailbox so a resubscribe reuses it.
        mailbox = self._mailboxes.get(subscriber)
        if mailbox is None:
            return
        mailbox.events.clear()
        if not mailbox.scheduled:
            del self._mailboxes[subscriber]

    def _is_subscribed_anywhere(self, subscriber: Subscriber) -> bool:
        return any(subscriber in subs for subs in self._subscriptions.values())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._subscriptions.clear()
            self._mailboxes.clear()
            self._sequences.clear()
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=True)
        logger.info("broadcast.closed")
