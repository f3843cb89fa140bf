"""Order DRF serializers for API input/output.

The serializer operates at the Interface layer (API Views).
Business logic lives in the Service Layer, which receives
Pydantic DTOs from ``dtos.py``.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.orders.constants import SimulatedFault
from modules.orders.models import Order, OrderStatusHistory

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class CoordinateField(serializers.ListField):
    """``[lng, lat]`` pair."""

    child = serializers.FloatField()

    def __init__(self, **kwargs) -> None:
        kwargs.setdefault("min_length", 2)
        kwargs.setdefault("max_length", 2)
        super().__init__(**kwargs)


class CreateOrderSerializer(serializers.Serializer):
    """Validates the order creation request payload."""

    merchant_id = serializers.CharField(max_length=64)
    amount = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0)
    recipient_name = serializers.CharField(max_length=100)
    recipient_address = serializers.CharField(max_length=255)
    recipient_coordinate = CoordinateField()
    simulated_fault = serializers.ChoiceField(
        choices=SimulatedFault.choices, required=False, allow_null=True, default=None
    )


class ShipOrderSerializer(serializers.Serializer):
    """Validates the dispatch payload (rule + route)."""

    rule_id = serializers.IntegerField(min_value=1)
    route_path = serializers.ListField(child=CoordinateField(), allow_empty=False)


class CancelOrderSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, default="", allow_blank=True)


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class StatusHistorySerializer(serializers.ModelSerializer):
    """Read serializer for order status history records."""

    class Meta:
        model = OrderStatusHistory
        fields = [
            "id",
            "old_status",
            "new_status",
            "actor",
            "notes",
            "created_at",
        ]
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for order list (no nested relations)."""

    recipient_coordinate = serializers.SerializerMethodField()
    current_position = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            "id",
            "merchant_id",
            "user_id",
            "status",
            "amount",
            "recipient_name",
            "recipient_address",
            "recipient_coordinate",
            "rule_id",
            "current_position",
            "last_update_time",
            "is_abnormal",
            "abnormal_reason",
            "created_at",
        ]
        read_only_fields = fields

    def get_recipient_coordinate(self, obj: Order) -> list[float]:
        return list(obj.recipient_coordinate)

    def get_current_position(self, obj: Order) -> list[float] | None:
        position = obj.current_position
        return list(position) if position else None


class OrderSerializer(OrderListSerializer):
    """Read serializer for orders with route, traveled path and history.

    ``abnormal_explanation`` comes from the cache and is passed through
    the serializer context.
    """

    traveled_path = serializers.SerializerMethodField()
    abnormal_explanation = serializers.SerializerMethodField()
    status_history = StatusHistorySerializer(many=True, read_only=True)

    class Meta(OrderListSerializer.Meta):
        fields = OrderListSerializer.Meta.fields + [
            "zone_id",
            "route_path",
            "traveled_path",
            "abnormal_explanation",
            "updated_at",
            "status_history",
        ]
        read_only_fields = fields

    def get_traveled_path(self, obj: Order) -> list[list[float]]:
        return [list(point) for point in obj.traveled_path]

    def get_abnormal_explanation(self, obj: Order) -> str | None:
        return self.context.get("abnormal_explanation")


class MerchantStatisticsSerializer(serializers.Serializer):
    pending_count = serializers.IntegerField()
    shipping_count = serializers.IntegerField()
    completed_count = serializers.IntegerField()
    total_amount = serializers.DecimalField(max_digits=14, decimal_places=2)
