"""Zone DRF serializers for API input/output.

Shape validation is delegated to ``ZoneInputDTO``; the serializers only
handle HTTP-level parsing and rendering.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.zones.constants import ShapeType
from modules.zones.models import DeliveryZone


class ZoneInputSerializer(serializers.Serializer):
    """Validates the zone create/update payload."""

    name = serializers.CharField(max_length=100)
    description = serializers.CharField(required=False, default="", allow_blank=True)
    rule_id = serializers.IntegerField(min_value=1)
    shape_type = serializers.ChoiceField(choices=ShapeType.choices)
    coordinates = serializers.ListField(
        child=serializers.ListField(
            child=serializers.FloatField(), min_length=2, max_length=2
        ),
        allow_empty=False,
    )
    radius_meters = serializers.FloatField(required=False, allow_null=True, default=None)


class ZoneSerializer(serializers.ModelSerializer):
    """Read serializer for the DeliveryZone resource."""

    class Meta:
        model = DeliveryZone
        fields = [
            "id",
            "merchant_id",
            "name",
            "description",
            "rule_id",
            "shape_type",
            "coordinates",
            "radius_meters",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class DeliveryCheckQuerySerializer(serializers.Serializer):
    lng = serializers.FloatField(min_value=-180, max_value=180)
    lat = serializers.FloatField(min_value=-90, max_value=90)


class DeliveryCheckSerializer(serializers.Serializer):
    deliverable = serializers.BooleanField()
    rule_id = serializers.IntegerField(allow_null=True)
    zone_id = serializers.UUIDField(allow_null=True)
