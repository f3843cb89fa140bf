"""Wiring of the tracking components from Django settings.

``TrackingRuntime`` is the lifecycle owner used by the ``run_simulator``
command and by embedders that attach their own push transport: construct
it, ``start()`` it, hand subscriber handles to ``broadcaster``, and
``stop()`` it on shutdown.
"""

from __future__ import annotations

from typing import Optional

import structlog
from django.conf import settings

from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.tracking.broadcaster import PositionBroadcaster
from modules.tracking.simulator import DeliverySimulator
from modules.zones.repositories.django_repository import ZoneDjangoRepository

logger = structlog.get_logger(__name__)


def build_order_service() -> OrderService:
    return OrderService(
        order_repository=OrderDjangoRepository(),
        zone_repository=ZoneDjangoRepository(),
    )


class TrackingRuntime:
    def __init__(
        self,
        ledger: Optional[OrderService] = None,
        broadcaster: Optional[PositionBroadcaster] = None,
    ) -> None:
        tracking = settings.TRACKING
        self.ledger = ledger or build_order_service()
        self.broadcaster = broadcaster or PositionBroadcaster(
            max_workers=tracking["BROADCAST_MAX_WORKERS"]
        )
        self.simulator = DeliverySimulator(
            self.ledger,
            self.broadcaster,
            arrival_threshold_meters=tracking["ARRIVAL_THRESHOLD_METERS"],
            default_cadence_ms=tracking["POSITION_UPDATE_INTERVAL_MS"],
            reload_interval_ms=tracking["ORDER_RELOAD_INTERVAL_MS"],
        )

    def __enter__(self) -> TrackingRuntime:
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()

    def start(self) -> None:
        self.simulator.start()
        logger.info("tracking.runtime_started")

    def stop(self) -> None:
        self.simulator.stop()
        self.broadcaster.close()
        logger.info("tracking.runtime_stopped")
