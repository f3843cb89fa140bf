"""Django ORM implementation of the Order repository.

Satisfies ``IOrderRepository`` using Django's QuerySet API.

Concurrency control is optimistic: every state change is a single
``UPDATE ... WHERE status = <expected> [AND ...]`` issued through
``QuerySet.update()``.  The affected row count is the compare-and-swap
outcome, so there is never a read-then-write window between a simulator
tick and an API call.  ``QuerySet.update()`` bypasses ``save()`` and
signals, so history rows are written explicitly in the same transaction.

``django.db.OperationalError`` (lost connection, lock timeout) is
re-raised as ``TransientStorageFailure``.
"""

from __future__ import annotations

import functools
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db import OperationalError, transaction
from django.db.models import Count, Q, Sum
from django.utils import timezone

from modules.orders.constants import IN_TRANSIT_STATES, VALID_TRANSITIONS, OrderStatus
from modules.orders.exceptions import (
    InvalidOrderStatus,
    OutOfDeliveryRange,
    TransientStorageFailure,
)
from modules.orders.models import Order, OrderStatusHistory
from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def _translate_storage_errors(func: F) -> F:
    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except OperationalError as exc:
            logger.warning("order.storage_unavailable", operation=func.__name__)
            raise TransientStorageFailure(str(exc)) from exc

    return wrapper  # type: ignore[return-value]


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    @_translate_storage_errors
    @transaction.atomic
    def create(self, data: Dict[str, Any]) -> Order:
        """Create a ``pending`` order.

        ``data`` keys:
        - ``merchant_id``, ``user_id``, ``amount`` (required)
        - ``recipient_name``, ``recipient_address`` (required)
        - ``recipient_coordinate`` (required): ``(lng, lat)``
        - ``rule_id`` (required): rule of the zone that covers the recipient
        - ``zone_id`` (optional)
        """
        if data.get("rule_id") is None:
            raise OutOfDeliveryRange("Cannot create an order without a dispatch rule.")

        lng, lat = data["recipient_coordinate"]
        order = Order(
            merchant_id=data["merchant_id"],
            user_id=data["user_id"],
            amount=data["amount"],
            recipient_name=data["recipient_name"],
            recipient_address=data["recipient_address"],
            recipient_lng=lng,
            recipient_lat=lat,
            rule_id=data["rule_id"],
            zone_id=data.get("zone_id"),
            status=OrderStatus.PENDING,
        )
        order.save()

        logger.info(
            "order.persisted",
            order_id=str(order.id),
            merchant_id=order.merchant_id,
            rule_id=order.rule_id,
        )
        return order

    # ------------------------------------------------------------------
    # Conditional writes
    # ------------------------------------------------------------------

    @_translate_storage_errors
    @transaction.atomic
    def transition(
        self,
        order_id: UUID | str,
        expected: str,
        new_status: str,
        *,
        changes: Optional[Dict[str, Any]] = None,
        conditions: Optional[Dict[str, Any]] = None,
        actor: str = "system",
        notes: str = "",
    ) -> Optional[Order]:
        """Compare-and-swap ``expected -> new_status``; ``None`` on a miss.

        Raises:
            InvalidOrderStatus: the pair is not an edge of the state machine.
        """
        if new_status not in VALID_TRANSITIONS.get(expected, set()):
            raise InvalidOrderStatus(
                f"Transition {expected} -> {new_status} is not allowed."
            )

        now = timezone.now()
        try:
            updated = Order.objects.filter(
                id=order_id, status=expected, **(conditions or {})
            ).update(status=new_status, updated_at=now, **(changes or {}))
        except (ValueError, ValidationError):
            return None

        if not updated:
            logger.debug(
                "order.transition_missed",
                order_id=str(order_id),
                expected=expected,
                new_status=new_status,
            )
            return None

        self.add_history(
            order_id=order_id,
            status=new_status,
            old_status=expected,
            actor=actor,
            notes=notes,
        )
        logger.info(
            "order.transitioned",
            order_id=str(order_id),
            old_status=expected,
            new_status=new_status,
        )
        return Order.objects.get(id=order_id)

    @_translate_storage_errors
    def record_position(
        self,
        order_id: UUID | str,
        position: Sequence[float],
        *,
        require_status: Optional[str] = None,
    ) -> Optional[Order]:
        queryset = Order.objects.filter(id=order_id)
        if require_status is not None:
            queryset = queryset.filter(status=require_status)

        now = timezone.now()
        try:
            updated = queryset.update(
                current_lng=float(position[0]),
                current_lat=float(position[1]),
                last_update_time=now,
                updated_at=now,
            )
        except (ValueError, ValidationError):
            return None

        if not updated:
            return None
        return Order.objects.get(id=order_id)

    @_translate_storage_errors
    def mark_abnormal(
        self,
        order_id: UUID | str,
        reason: str,
        conditions: Optional[Dict[str, Any]] = None,
    ) -> bool:
        updated = Order.objects.filter(
            id=order_id, is_abnormal=False, **(conditions or {})
        ).update(is_abnormal=True, abnormal_reason=reason, updated_at=timezone.now())
        return bool(updated)

    @_translate_storage_errors
    def add_history(
        self,
        order_id: UUID | str,
        status: str,
        old_status: Optional[str] = None,
        actor: str = "system",
        notes: str = "",
    ) -> OrderStatusHistory:
        """Record a status change in the order's audit trail."""
        history = OrderStatusHistory(
            order_id=order_id,
            old_status=old_status,
            new_status=status,
            actor=actor,
            notes=notes,
        )
        history.save()
        return history

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    @_translate_storage_errors
    def get_by_id(self, id: str) -> Optional[Order]:
        """Retrieve an order with its status history.

        Returns ``None`` for non-existent or invalid IDs.
        """
        try:
            return (
                Order.objects.prefetch_related("status_history")
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    @_translate_storage_errors
    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Order]:
        queryset = Order.objects.all()
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    @_translate_storage_errors
    def list_by_status(self, status: str) -> List[Order]:
        return list(Order.objects.filter(status=status).order_by("created_at", "id"))

    @_translate_storage_errors
    def list_unflagged(
        self,
        status: str,
        *,
        created_before: Optional[datetime] = None,
        updated_before: Optional[datetime] = None,
        with_route_and_position: bool = False,
    ) -> List[Order]:
        queryset = Order.objects.filter(status=status, is_abnormal=False)
        if created_before is not None:
            queryset = queryset.filter(created_at__lt=created_before)
        if updated_before is not None:
            queryset = queryset.filter(last_update_time__lt=updated_before)
        if with_route_and_position:
            queryset = queryset.filter(
                route_path__isnull=False,
                current_lng__isnull=False,
                current_lat__isnull=False,
            )
        return list(queryset.order_by("created_at", "id"))

    @_translate_storage_errors
    def statistics(self, merchant_id: str) -> Dict[str, Any]:
        row = Order.objects.filter(merchant_id=merchant_id).aggregate(
            pending_count=Count("id", filter=Q(status=OrderStatus.PENDING)),
            shipping_count=Count("id", filter=Q(status__in=IN_TRANSIT_STATES)),
            completed_count=Count("id", filter=Q(status=OrderStatus.DELIVERED)),
            total_amount=Sum("amount"),
        )
        row["total_amount"] = row["total_amount"] or Decimal("0.00")
        return row
