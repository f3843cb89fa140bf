"""Order and OrderStatusHistory models.

Business rules implemented:
- Status follows ``pending -> shipping -> arrived -> delivered`` with
  ``cancelled`` as an escape hatch (enforced by conditional updates in
  the repository, never by ``save()``).
- Each committed transition generates a history record (old/new status,
  actor, notes).
- Positions are stored as plain ``(lng, lat)`` float columns so that
  conditional updates can use them in their predicate.
- ``traveled_path`` is derived from ``route_path`` and the current
  position; it is never stored.
- The zone that validated the order is kept with PROTECT so an in-flight
  order always knows where its rule came from.
"""

from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from django.core.validators import MinValueValidator
from django.db import models

from modules.core.models import BaseModel
from modules.orders.constants import (
    TERMINAL_STATES,
    AnomalyReason,
    OrderStatus,
)
from shared.domain.geo import Coordinate, traveled_path


class Order(BaseModel):
    """Delivery order aggregate root.

    ``merchant_id`` and ``user_id`` are opaque identifiers of the parties
    (the authenticated user's primary key at the API layer).
    """

    merchant_id: models.CharField = models.CharField(max_length=64, db_index=True)
    user_id: models.CharField = models.CharField(max_length=64, db_index=True)
    amount: models.DecimalField = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    recipient_name: models.CharField = models.CharField(max_length=100)
    recipient_address: models.CharField = models.CharField(max_length=255)
    recipient_lng: models.FloatField = models.FloatField()
    recipient_lat: models.FloatField = models.FloatField()
    zone: models.ForeignKey = models.ForeignKey(
        "zones.DeliveryZone",
        on_delete=models.PROTECT,
        related_name="orders",
        null=True,
        blank=True,
    )

    status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
    )
    rule_id: models.PositiveIntegerField = models.PositiveIntegerField(
        null=True, blank=True
    )
    route_path: models.JSONField = models.JSONField(null=True, blank=True)
    current_lng: models.FloatField = models.FloatField(null=True, blank=True)
    current_lat: models.FloatField = models.FloatField(null=True, blank=True)
    last_update_time: models.DateTimeField = models.DateTimeField(
        null=True, blank=True
    )
    is_abnormal: models.BooleanField = models.BooleanField(default=False)
    abnormal_reason: models.CharField = models.CharField(
        max_length=20,
        choices=AnomalyReason.choices,
        default=AnomalyReason.NONE,
    )

    class Meta:
        db_table = "orders"
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(
                fields=["status", "is_abnormal"],
                name="orders_status_abnormal_idx",
            ),
            models.Index(
                fields=["merchant_id", "-created_at"],
                name="orders_merchant_created_idx",
            ),
        ]

    # ------------------------------------------------------------------
    # State Machine helpers
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    # ------------------------------------------------------------------
    # Geometry views
    # ------------------------------------------------------------------

    @property
    def recipient_coordinate(self) -> Coordinate:
        return Coordinate(self.recipient_lng, self.recipient_lat)

    @property
    def current_position(self) -> Optional[Coordinate]:
        if self.current_lng is None or self.current_lat is None:
            return None
        return Coordinate(self.current_lng, self.current_lat)

    @property
    def route(self) -> List[Coordinate]:
        return [Coordinate.parse(point) for point in self.route_path or []]

    @property
    def traveled_path(self) -> List[Coordinate]:
        """Route prefix up to the vertex nearest the current position."""
        return traveled_path(self.route, self.current_position)

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def __str__(self) -> str:
        return f"Order {self.id} ({self.status})"


class OrderStatusHistory(BaseModel):
    """Append-only audit trail for order status transitions.

    Audit records are immutable, hence ``BaseModel`` rather than
    ``SoftDeleteModel``.  ``actor`` is the party id that triggered the
    change, or ``"system"`` for simulator/automatic transitions.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="status_history",
    )
    old_status: models.CharField = models.CharField(  # noqa: DJ01
        max_length=20,
        choices=OrderStatus.choices,
        null=True,
        blank=True,
    )
    new_status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
    )
    actor: models.CharField = models.CharField(max_length=64, default="system")
    notes: models.TextField = models.TextField(blank=True, default="")

    class Meta:
        db_table = "order_status_history"
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(
                fields=["order", "-created_at"],
                name="osh_order_created_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.order_id} : {self.old_status} -> {self.new_status}"
