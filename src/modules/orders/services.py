"""Order service layer (Use Cases).

The order ledger: creation, dispatch, position ingestion, arrival,
delivery confirmation and cancellation.

Every mutation goes through the repository's conditional update, so two
callers racing on one order (simulator tick vs. API request, duplicate
ticks) can never both commit.  A lost race surfaces as:

- ``None``/``False`` for the internal callers that treat it as control
  flow (``record_shipping_position``, ``try_auto_arrive``);
- a specific exception naming the violated precondition for API callers
  (``OrderNotFound``, ``NotOrderOwner``, ``InvalidOrderStatus``).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, NoReturn, Optional, Sequence
from uuid import UUID

import structlog
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from modules.orders import cache as order_cache
from modules.orders.constants import (
    CAS_MAX_RETRIES,
    SYSTEM_ACTOR,
    OrderStatus,
)
from modules.orders.dtos import MerchantStatisticsDTO
from modules.orders.events import OrderCreated, OrderStatusChanged
from modules.orders.exceptions import (
    InvalidOrderStatus,
    NotOrderOwner,
    OrderNotFound,
    OutOfDeliveryRange,
)
from modules.zones.services import ZoneService
from shared.domain.geo import distance_meters
from shared.infrastructure.bus import event_bus as default_event_bus

if TYPE_CHECKING:
    from modules.orders.dtos import CreateOrderDTO, ShipOrderDTO
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.zones.repositories.interfaces import IZoneRepository
    from shared.domain.bus import IEventBus

logger = structlog.get_logger(__name__)


class OrderService:
    """Application service for Order use-cases.

    Receives repositories via constructor injection (DIP).
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        zone_repository: IZoneRepository,
        event_bus: Optional[IEventBus] = None,
    ) -> None:
        self._order_repo = order_repository
        self._zones = ZoneService(repository=zone_repository)
        self._event_bus = event_bus or default_event_bus

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @transaction.atomic
    def create_order(self, dto: CreateOrderDTO) -> Order:
        """Create a ``pending`` order inside the merchant's delivery range.

        Raises:
            OutOfDeliveryRange: no live zone of the merchant covers the
                recipient coordinate.
        """
        log = logger.bind(merchant_id=dto.merchant_id, user_id=dto.user_id)

        check = self._zones.find_delivery_rule(
            dto.recipient_coordinate, merchant_id=dto.merchant_id
        )
        if not check.deliverable:
            log.warning(
                "order.out_of_range",
                lng=dto.recipient_coordinate[0],
                lat=dto.recipient_coordinate[1],
            )
            raise OutOfDeliveryRange(
                "Recipient address is outside every delivery zone of the merchant."
            )

        order = self._order_repo.create(
            {
                "merchant_id": dto.merchant_id,
                "user_id": dto.user_id,
                "amount": dto.amount,
                "recipient_name": dto.recipient_name,
                "recipient_address": dto.recipient_address,
                "recipient_coordinate": dto.recipient_coordinate,
                "rule_id": check.rule_id,
                "zone_id": check.zone_id,
            }
        )
        self._order_repo.add_history(
            order_id=order.id,
            status=OrderStatus.PENDING,
            actor=dto.user_id,
            notes="Order created",
        )

        if dto.simulated_fault:
            order_cache.store_simulated_fault(order.id, dto.simulated_fault)

        log.info(
            "order.created",
            order_id=str(order.id),
            rule_id=order.rule_id,
            simulated_fault=dto.simulated_fault,
        )
        self._publish_on_commit(
            OrderCreated(aggregate_id=order.id, payload={"rule_id": order.rule_id})
        )
        return order

    def attach_route_and_ship(
        self,
        order_id: UUID | str,
        dto: ShipOrderDTO,
        merchant_id: Optional[str] = None,
    ) -> Order:
        """Conditionally move ``pending -> shipping`` with a route and rule.

        Raises:
            OrderNotFound: order does not exist.
            NotOrderOwner: *merchant_id* given and not the order's merchant.
            InvalidOrderStatus: order is not ``pending`` (e.g. already shipped).
        """
        conditions = {"merchant_id": merchant_id} if merchant_id else None
        order = self._order_repo.transition(
            order_id,
            expected=OrderStatus.PENDING,
            new_status=OrderStatus.SHIPPING,
            changes={
                "rule_id": dto.rule_id,
                "route_path": [list(point) for point in dto.route_path],
                "last_update_time": timezone.now(),
            },
            conditions=conditions,
            actor=merchant_id or SYSTEM_ACTOR,
            notes=f"Shipped under rule {dto.rule_id}",
        )
        if order is None:
            self._raise_transition_failure(
                order_id,
                expected=OrderStatus.PENDING,
                owner_field="merchant_id",
                owner=merchant_id,
            )

        logger.info(
            "order.shipped",
            order_id=str(order_id),
            rule_id=dto.rule_id,
            route_points=len(dto.route_path),
        )
        self._publish_status_changed(order.id, OrderStatus.PENDING, OrderStatus.SHIPPING)
        return order

    def record_position(self, order_id: UUID | str, position: Sequence[float]) -> Order:
        """Unconditionally store the latest position; status is untouched.

        Raises:
            OrderNotFound: order does not exist.
        """
        order = self._order_repo.record_position(order_id, position)
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    def record_shipping_position(
        self, order_id: UUID | str, position: Sequence[float]
    ) -> Optional[Order]:
        """Store the latest position only while the order is ``shipping``.

        Returns ``None`` when the order is gone or left ``shipping``; the
        simulator uses this as its cue to stop tracking.
        """
        return self._order_repo.record_position(
            order_id, position, require_status=OrderStatus.SHIPPING
        )

    def try_auto_arrive(
        self, order_id: UUID | str, threshold_meters: Optional[float] = None
    ) -> bool:
        """Conditionally move ``shipping -> arrived`` when close enough.

        The conditional update is pinned to the position that was measured,
        so a concurrent position write cannot slip an un-measured position
        through.  Calling it again on an ``arrived`` order returns ``False``.
        """
        if threshold_meters is None:
            threshold_meters = settings.TRACKING["ARRIVAL_THRESHOLD_METERS"]

        order = self._order_repo.get_by_id(str(order_id))
        if order is None or order.status != OrderStatus.SHIPPING:
            return False

        position = order.current_position
        if position is None:
            return False

        distance = distance_meters(position, order.recipient_coordinate)
        if distance > threshold_meters:
            return False

        arrived = self._order_repo.transition(
            order.id,
            expected=OrderStatus.SHIPPING,
            new_status=OrderStatus.ARRIVED,
            conditions={
                "current_lng": order.current_lng,
                "current_lat": order.current_lat,
            },
            actor=SYSTEM_ACTOR,
            notes=f"Arrived within {distance:.1f} m of the recipient",
        )
        if arrived is None:
            return False

        logger.info("order.arrived", order_id=str(order.id), distance_m=round(distance, 1))
        self._publish_status_changed(order.id, OrderStatus.SHIPPING, OrderStatus.ARRIVED)
        return True

    def confirm_delivery(self, order_id: UUID | str, requesting_user_id: str) -> Order:
        """Conditionally move ``arrived -> delivered`` for the order's own user.

        Raises:
            OrderNotFound: order does not exist.
            NotOrderOwner: requester is not the order's user.
            InvalidOrderStatus: order is not ``arrived``.
        """
        order = self._order_repo.transition(
            order_id,
            expected=OrderStatus.ARRIVED,
            new_status=OrderStatus.DELIVERED,
            conditions={"user_id": requesting_user_id},
            actor=requesting_user_id,
            notes="Delivery confirmed by recipient",
        )
        if order is None:
            self._raise_transition_failure(
                order_id,
                expected=OrderStatus.ARRIVED,
                owner_field="user_id",
                owner=requesting_user_id,
            )

        logger.info("order.delivered", order_id=str(order_id))
        self._publish_status_changed(order.id, OrderStatus.ARRIVED, OrderStatus.DELIVERED)
        return order

    def cancel_order(
        self,
        order_id: UUID | str,
        notes: str = "",
        requested_by: Optional[str] = None,
    ) -> Order:
        """Cancel a non-terminal order.

        The prior status is not fixed, so the compare-and-swap is retried a
        few times against the freshly read status.

        Raises:
            OrderNotFound: order does not exist.
            NotOrderOwner: *requested_by* is neither the merchant nor the user.
            InvalidOrderStatus: order already delivered or cancelled.
        """
        for _ in range(CAS_MAX_RETRIES):
            current = self._get_or_raise(order_id)
            if requested_by and requested_by not in (current.merchant_id, current.user_id):
                raise NotOrderOwner(f"Order {order_id} does not belong to {requested_by}.")
            if current.is_terminal:
                raise InvalidOrderStatus(
                    f"Cannot cancel order {order_id} in status {current.status}."
                )

            order = self._order_repo.transition(
                current.id,
                expected=current.status,
                new_status=OrderStatus.CANCELLED,
                actor=requested_by or SYSTEM_ACTOR,
                notes=notes or "Order cancelled",
            )
            if order is not None:
                logger.info(
                    "order.cancelled", order_id=str(order_id), old_status=current.status
                )
                self._publish_status_changed(
                    order.id, current.status, OrderStatus.CANCELLED
                )
                return order

            logger.debug("order.cancel_retry", order_id=str(order_id))

        raise InvalidOrderStatus(
            f"Order {order_id} kept changing status; cancellation not applied."
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: UUID | str, party_id: Optional[str] = None) -> Order:
        """Retrieve a single order.

        With *party_id*, orders of other merchants/users read as missing.

        Raises:
            OrderNotFound: if the order does not exist (or is not visible).
        """
        order = self._get_or_raise(order_id)
        if party_id and party_id not in (order.merchant_id, order.user_id):
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    def list_orders(self, filters: Optional[Dict[str, Any]] = None) -> List[Order]:
        return self._order_repo.list(filters)

    def list_shipping(self) -> List[Order]:
        return self._order_repo.list_by_status(OrderStatus.SHIPPING)

    def merchant_statistics(self, merchant_id: str) -> MerchantStatisticsDTO:
        return MerchantStatisticsDTO(**self._order_repo.statistics(merchant_id))

    def get_anomaly_explanation(self, order_id: UUID | str) -> Optional[str]:
        return order_cache.get_anomaly_explanation(order_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get_or_raise(self, order_id: UUID | str) -> Order:
        order = self._order_repo.get_by_id(str(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    def _raise_transition_failure(
        self,
        order_id: UUID | str,
        expected: str,
        owner_field: str,
        owner: Optional[str],
    ) -> NoReturn:
        """Explain why a conditional transition matched no row."""
        order = self._get_or_raise(order_id)
        if owner and getattr(order, owner_field) != owner:
            logger.warning(
                "order.not_owner", order_id=str(order_id), owner_field=owner_field
            )
            raise NotOrderOwner(f"Order {order_id} does not belong to {owner}.")

        logger.info(
            "order.invalid_transition",
            order_id=str(order_id),
            expected=expected,
            current_status=order.status,
        )
        raise InvalidOrderStatus(
            f"Order {order_id} is {order.status}; expected {expected}."
        )

    def _publish_status_changed(
        self, order_id: UUID, old_status: str, new_status: str
    ) -> None:
        self._publish_on_commit(
            OrderStatusChanged(
                aggregate_id=order_id,
                payload={"old_status": old_status, "new_status": new_status},
            )
        )

    def _publish_on_commit(self, event: Any) -> None:
        transaction.on_commit(lambda: self._event_bus.publish(event))
