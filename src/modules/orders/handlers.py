"""Event handlers for Orders domain events."""

from __future__ import annotations

import structlog

from modules.orders.events import OrderCreated, OrderFlaggedAbnormal, OrderStatusChanged
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


class OrderCreatedHandler(IEventHandler[OrderCreated]):
    def handle(self, event: OrderCreated) -> None:
        logger.info(
            "order.event.created",
            order_id=str(event.aggregate_id),
            rule_id=event.payload.get("rule_id"),
        )


class OrderStatusChangedHandler(IEventHandler[OrderStatusChanged]):
    def handle(self, event: OrderStatusChanged) -> None:
        logger.info(
            "order.event.status_changed",
            order_id=str(event.aggregate_id),
            old_status=event.payload.get("old_status"),
            new_status=event.payload.get("new_status"),
        )


class OrderFlaggedAbnormalHandler(IEventHandler[OrderFlaggedAbnormal]):
    def handle(self, event: OrderFlaggedAbnormal) -> None:
        logger.warning(
            "order.event.flagged_abnormal",
            order_id=str(event.aggregate_id),
            reason=event.payload.get("reason"),
        )


order_created_handler = OrderCreatedHandler()
order_status_changed_handler = OrderStatusChangedHandler()
order_flagged_abnormal_handler = OrderFlaggedAbnormalHandler()
