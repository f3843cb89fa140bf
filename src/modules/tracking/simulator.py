"""Delivery simulator.

Advances every ``shipping`` order along its route on an independent
clock: one daemon thread per tracked order, ticking at the cadence of
the order's dispatch rule.  A separate reconciliation thread re-scans the
ledger so orders shipped after start-up (or left over from a crash) are
picked up, and the tracking map keyed by order id guarantees a single
advancing thread per order.

Per tick:

1. at the last route vertex: stop when the vertex is within the arrival
   threshold of the recipient, otherwise idle (no write; a stuck order is
   left to the anomaly sweep, but the idle tick still re-reads its status);
2. otherwise advance the cursor and take the next vertex;
3. write it through the ledger (only while ``shipping``), attempt
   auto-arrival, publish the position;
4. on arrival publish the status and stop.

A ledger miss (order gone or no longer ``shipping``) stops tracking.  Any
other failure is logged and the order stays tracked for the next tick.
"""

from __future__ import annotations

import enum
import math
import random
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional

import structlog
from django.db import connection

from modules.orders import cache as order_cache
from modules.orders.constants import OrderStatus, SimulatedFault
from modules.orders.exceptions import OrderNotFound
from modules.zones.constants import cadence_for_rule
from shared.domain.geo import (
    Coordinate,
    distance_meters,
    nearest_point_index,
    offset_position,
)

if TYPE_CHECKING:
    from modules.orders.models import Order
    from modules.orders.services import OrderService
    from modules.tracking.broadcaster import PositionBroadcaster

logger = structlog.get_logger(__name__)

STOPPED_REPEATS = 5
DEVIATION_MIN_METERS = 6000.0
DEVIATION_MAX_METERS = 8000.0

ARRIVED_MESSAGE = "Your parcel has arrived, please get ready to receive it."


class TickOutcome(str, enum.Enum):
    ADVANCED = "advanced"
    HELD = "held"
    IDLE = "idle"
    ARRIVED = "arrived"
    FINISHED = "finished"
    LEFT_SHIPPING = "left_shipping"
    FAILED = "failed"


# Outcomes after which the order is no longer tracked.
STOP_OUTCOMES = {TickOutcome.ARRIVED, TickOutcome.FINISHED, TickOutcome.LEFT_SHIPPING}


@dataclass
class TrackedOrder:
    order_id: str
    route: List[Coordinate]
    cursor: int
    recipient: Coordinate
    cadence_ms: int
    fault: Optional[str] = None
    held_ticks: int = 0
    stop_event: threading.Event = field(default_factory=threading.Event)
    thread: Optional[threading.Thread] = None

    @property
    def last_index(self) -> int:
        return len(self.route) - 1


class DeliverySimulator:
    """Owns the per-order advancement tasks of one process."""

    def __init__(
        self,
        ledger: OrderService,
        broadcaster: PositionBroadcaster,
        *,
        arrival_threshold_meters: float,
        default_cadence_ms: int,
        reload_interval_ms: int,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._ledger = ledger
        self._broadcaster = broadcaster
        self._threshold = arrival_threshold_meters
        self._default_cadence_ms = default_cadence_ms
        self._reload_interval = reload_interval_ms / 1000
        self._rng = rng or random.Random()

        self._lock = threading.Lock()
        self._tracked: Dict[str, TrackedOrder] = {}
        self._running = False
        self._stop_event = threading.Event()
        self._reconciler: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    @property
    def tracked_ids(self) -> List[str]:
        with self._lock:
            return list(self._tracked)

    def is_tracking(self, order_id: str) -> bool:
        with self._lock:
            return str(order_id) in self._tracked

    def start(self) -> None:
        """Reconcile once, then keep reconciling in the background."""
        with self._lock:
            if self._running:
                return
            self._running = True
            self._stop_event.clear()
            # Orders tracked before start() have no thread yet.
            for tracked in self._tracked.values():
                if tracked.thread is None:
                    self._spawn(tracked)

        self.reconcile()
        self._reconciler = threading.Thread(
            target=self._reconcile_loop, name="simulator-reconcile", daemon=True
        )
        self._reconciler.start()
        logger.info(
            "simulator.started",
            tracked=len(self.tracked_ids),
            reload_interval_s=self._reload_interval,
        )

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        with self._lock:
            if not self._running:
                return
            self._running = False
            self._stop_event.set()
            tracked = list(self._tracked.values())
            self._tracked.clear()

        for item in tracked:
            item.stop_event.set()
        for item in tracked:
            if item.thread is not None and item.thread is not threading.current_thread():
                item.thread.join(timeout)
        if self._reconciler is not None:
            self._reconciler.join(timeout)
            self._reconciler = None
        logger.info("simulator.stopped", released=len(tracked))

    # ------------------------------------------------------------------
    # Tracking membership
    # ------------------------------------------------------------------

    def reconcile(self) -> List[str]:
        """Start tracking every ``shipping`` order not tracked yet."""
        started = []
        for order in self._ledger.list_shipping():
            if self.track(order):
                started.append(str(order.id))
        if started:
            logger.info("simulator.reconciled", started=len(started))
        return started

    def track(self, order: Order) -> bool:
        """Begin tracking *order*; ``False`` if already tracked or unusable."""
        order_id = str(order.id)
        route = order.route
        if not route:
            logger.warning("simulator.no_route", order_id=order_id)
            return False

        position = order.current_position
        cursor = nearest_point_index(route, position) if position else 0
        tracked = TrackedOrder(
            order_id=order_id,
            route=route,
            cursor=max(cursor, 0),
            recipient=order.recipient_coordinate,
            cadence_ms=cadence_for_rule(order.rule_id, self._default_cadence_ms),
            fault=order_cache.get_simulated_fault(order_id),
        )

        with self._lock:
            if order_id in self._tracked:
                return False
            self._tracked[order_id] = tracked
            if self._running:
                self._spawn(tracked)

        logger.info(
            "simulator.tracking",
            order_id=order_id,
            cursor=tracked.cursor,
            cadence_ms=tracked.cadence_ms,
            fault=tracked.fault,
        )
        return True

    def _spawn(self, tracked: TrackedOrder) -> None:
        tracked.thread = threading.Thread(
            target=self._run,
            args=(tracked,),
            name=f"simulator-{tracked.order_id}",
            daemon=True,
        )
        tracked.thread.start()

    def untrack(self, order_id: str) -> None:
        with self._lock:
            tracked = self._tracked.pop(str(order_id), None)
        if tracked is not None:
            tracked.stop_event.set()
            self._broadcaster.release(tracked.order_id)
            logger.info("simulator.untracked", order_id=tracked.order_id)

    # ------------------------------------------------------------------
    # Ticking
    # ------------------------------------------------------------------

    def tick(self, order_id: str) -> TickOutcome:
        """Run one advancement step for a tracked order."""
        with self._lock:
            tracked = self._tracked.get(str(order_id))
        if tracked is None:
            return TickOutcome.LEFT_SHIPPING

        outcome = self._step(tracked)
        if outcome in STOP_OUTCOMES:
            self.untrack(tracked.order_id)
        return outcome

    def _step(self, tracked: TrackedOrder) -> TickOutcome:
        if tracked.fault == SimulatedFault.LONG_TIME_NO_UPDATE:
            return self._idle(tracked)

        if tracked.cursor >= tracked.last_index:
            final = tracked.route[tracked.last_index]
            if distance_meters(final, tracked.recipient) <= self._threshold:
                logger.info("simulator.route_finished", order_id=tracked.order_id)
                return TickOutcome.FINISHED
            return self._idle(tracked)

        position, outcome = self._next_position(tracked)

        recorded = self._ledger.record_shipping_position(tracked.order_id, position)
        if recorded is None:
            self._announce_exit(tracked.order_id)
            return TickOutcome.LEFT_SHIPPING

        arrived = self._ledger.try_auto_arrive(tracked.order_id, self._threshold)
        event = self._broadcaster.publish_position(tracked.order_id, position)
        logger.debug(
            "simulator.tick",
            order_id=tracked.order_id,
            cursor=tracked.cursor,
            sequence=event.sequence,
        )

        if arrived:
            self._broadcaster.publish_status(
                tracked.order_id, OrderStatus.ARRIVED, ARRIVED_MESSAGE
            )
            return TickOutcome.ARRIVED
        return outcome

    def _next_position(self, tracked: TrackedOrder) -> tuple[Coordinate, TickOutcome]:
        if tracked.fault == SimulatedFault.LONG_TIME_STOPPED and tracked.held_ticks < STOPPED_REPEATS:
            tracked.held_ticks += 1
            return tracked.route[tracked.cursor], TickOutcome.HELD

        tracked.held_ticks = 0
        tracked.cursor += 1
        position = tracked.route[tracked.cursor]

        if tracked.fault == SimulatedFault.ROUTE_DEVIATION:
            position = offset_position(
                position,
                self._rng.uniform(DEVIATION_MIN_METERS, DEVIATION_MAX_METERS),
                self._rng.uniform(0, 2 * math.pi),
            )
        return position, TickOutcome.ADVANCED

    def _idle(self, tracked: TrackedOrder) -> TickOutcome:
        """Idle tick without a write; still notices the order leaving ``shipping``."""
        try:
            order = self._ledger.get_order(tracked.order_id)
        except OrderNotFound:
            logger.info("simulator.order_gone", order_id=tracked.order_id)
            return TickOutcome.LEFT_SHIPPING
        if order.status != OrderStatus.SHIPPING:
            self._announce_exit(tracked.order_id, order.status)
            return TickOutcome.LEFT_SHIPPING
        return TickOutcome.IDLE

    def _announce_exit(self, order_id: str, status: Optional[str] = None) -> None:
        """Tell viewers why tracking ended when the order left ``shipping``."""
        if status is None:
            try:
                status = self._ledger.get_order(order_id).status
            except OrderNotFound:
                logger.info("simulator.order_gone", order_id=order_id)
                return
        logger.info("simulator.order_left_shipping", order_id=order_id, status=status)
        self._broadcaster.publish_status(order_id, status)

    def _run(self, tracked: TrackedOrder) -> None:
        try:
            while not tracked.stop_event.wait(tracked.cadence_ms / 1000):
                try:
                    outcome = self.tick(tracked.order_id)
                except Exception:
                    logger.exception("simulator.tick_failed", order_id=tracked.order_id)
                    continue
                if outcome in STOP_OUTCOMES:
                    return
        finally:
            connection.close()

    def _reconcile_loop(self) -> None:
        try:
            while not self._stop_event.wait(self._reload_interval):
                try:
                    self.reconcile()
                except Exception:
                    logger.exception("simulator.reconcile_failed")
        finally:
            connection.close()
