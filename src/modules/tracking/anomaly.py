"""Anomaly detector.

A sweep applies four checks in a fixed order.  Each check re-queries the
ledger for orders that are still ``is_abnormal=False``, so an order
flagged by an earlier check in the same sweep is invisible to later
ones.  Each flag is itself a conditional write that re-asserts the
check's predicate, so a concurrent status change makes the write miss
instead of flagging a healthy order.

Flags are monotonic: nothing here clears ``is_abnormal``.  Running a
sweep twice without intervening changes therefore has no further effect.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable, Dict, List, Optional

import structlog
from django.conf import settings
from django.utils import timezone

from modules.orders import cache as order_cache
from modules.orders.constants import AnomalyReason, OrderStatus
from modules.orders.events import OrderFlaggedAbnormal
from modules.orders.exceptions import TransientStorageFailure
from shared.domain.geo import distance_to_polyline
from shared.infrastructure.bus import event_bus as default_event_bus

if TYPE_CHECKING:
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository
    from shared.domain.bus import IEventBus

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AnomalyThresholds:
    max_pending: timedelta
    max_shipping: timedelta
    max_position_gap: timedelta
    max_deviation_meters: float

    @classmethod
    def from_settings(cls) -> AnomalyThresholds:
        tracking = settings.TRACKING
        return cls(
            max_pending=timedelta(minutes=tracking["ANOMALY_MAX_PENDING_MINUTES"]),
            max_shipping=timedelta(minutes=tracking["ANOMALY_MAX_SHIPPING_MINUTES"]),
            max_position_gap=timedelta(
                minutes=tracking["ANOMALY_MAX_POSITION_GAP_MINUTES"]
            ),
            max_deviation_meters=tracking["ANOMALY_MAX_DEVIATION_METERS"],
        )


@dataclass
class SweepReport:
    flagged: Dict[str, str] = field(default_factory=dict)
    failed: List[str] = field(default_factory=list)

    @property
    def flagged_count(self) -> int:
        return len(self.flagged)

    def as_dict(self) -> Dict[str, object]:
        return {"flagged": dict(self.flagged), "failed": list(self.failed)}


class AnomalyDetector:
    """Classifies orders as abnormal; one instance may run many sweeps."""

    def __init__(
        self,
        order_repository: IOrderRepository,
        thresholds: Optional[AnomalyThresholds] = None,
        clock: Callable[[], datetime] = timezone.now,
        event_bus: Optional[IEventBus] = None,
    ) -> None:
        self._repo = order_repository
        self._thresholds = thresholds or AnomalyThresholds.from_settings()
        self._clock = clock
        self._event_bus = event_bus or default_event_bus

    def sweep(self) -> SweepReport:
        now = self._clock()
        report = SweepReport()

        for check in (
            self._check_pending_timeout,
            self._check_shipping_timeout,
            self._check_position_stale,
            self._check_route_deviation,
        ):
            try:
                check(now, report)
            except TransientStorageFailure:
                logger.exception("anomaly.check_failed", check=check.__name__)

        logger.info(
            "anomaly.sweep_completed",
            flagged=report.flagged_count,
            failed=len(report.failed),
        )
        return report

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def _check_pending_timeout(self, now: datetime, report: SweepReport) -> None:
        cutoff = now - self._thresholds.max_pending
        for order in self._repo.list_unflagged(OrderStatus.PENDING, created_before=cutoff):
            self._flag(
                order,
                AnomalyReason.PENDING_TIMEOUT,
                conditions={"status": OrderStatus.PENDING, "created_at__lt": cutoff},
                explanation=(
                    f"Order has been pending for {_minutes(now - order.created_at)} "
                    f"minutes (limit {_minutes(self._thresholds.max_pending)})."
                ),
                report=report,
            )

    def _check_shipping_timeout(self, now: datetime, report: SweepReport) -> None:
        cutoff = now - self._thresholds.max_shipping
        for order in self._repo.list_unflagged(OrderStatus.SHIPPING, updated_before=cutoff):
            self._flag(
                order,
                AnomalyReason.SHIPPING_TIMEOUT,
                conditions={"status": OrderStatus.SHIPPING, "last_update_time__lt": cutoff},
                explanation=(
                    f"No progress for {_minutes(now - order.last_update_time)} minutes "
                    f"while shipping (limit {_minutes(self._thresholds.max_shipping)})."
                ),
                report=report,
            )

    def _check_position_stale(self, now: datetime, report: SweepReport) -> None:
        cutoff = now - self._thresholds.max_position_gap
        for order in self._repo.list_unflagged(OrderStatus.SHIPPING, updated_before=cutoff):
            self._flag(
                order,
                AnomalyReason.POSITION_STALE,
                conditions={"status": OrderStatus.SHIPPING, "last_update_time__lt": cutoff},
                explanation=(
                    f"Last position update was {_minutes(now - order.last_update_time)} "
                    f"minutes ago (limit {_minutes(self._thresholds.max_position_gap)})."
                ),
                report=report,
            )

    def _check_route_deviation(self, now: datetime, report: SweepReport) -> None:
        limit = self._thresholds.max_deviation_meters
        for order in self._repo.list_unflagged(
            OrderStatus.SHIPPING, with_route_and_position=True
        ):
            try:
                route = order.route
                deviation = distance_to_polyline(order.current_position, route)
            except (TypeError, ValueError, IndexError):
                logger.exception("anomaly.evaluation_failed", order_id=str(order.id))
                report.failed.append(str(order.id))
                continue
            if not route or deviation <= limit:
                continue
            self._flag(
                order,
                AnomalyReason.ROUTE_DEVIATION,
                conditions={
                    "status": OrderStatus.SHIPPING,
                    "current_lng": order.current_lng,
                    "current_lat": order.current_lat,
                },
                explanation=(
                    f"Courier is {deviation:.0f} m away from the planned route "
                    f"(limit {limit:.0f} m)."
                ),
                report=report,
            )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _flag(
        self,
        order: Order,
        reason: str,
        conditions: Dict[str, object],
        explanation: str,
        report: SweepReport,
    ) -> None:
        order_id = str(order.id)
        try:
            flagged = self._repo.mark_abnormal(order.id, reason, conditions)
        except Exception:
            logger.exception("anomaly.flag_failed", order_id=order_id, reason=reason)
            report.failed.append(order_id)
            return

        if not flagged:
            logger.debug("anomaly.flag_missed", order_id=order_id, reason=reason)
            return

        report.flagged[order_id] = reason
        order_cache.store_anomaly_explanation(order.id, explanation)
        logger.warning("anomaly.flagged", order_id=order_id, reason=reason)
        self._event_bus.publish(
            OrderFlaggedAbnormal(aggregate_id=order.id, payload={"reason": reason})
        )


def _minutes(delta: timedelta) -> int:
    return int(delta.total_seconds() // 60)
