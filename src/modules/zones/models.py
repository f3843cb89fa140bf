"""DeliveryZone model.

Business rules implemented:
- A zone belongs to exactly one merchant (``merchant_id``).
- A zone is a polygon or a circle and carries the dispatch rule applied
  to orders delivered inside it.
- When zones overlap, the oldest live zone wins (``Meta.ordering``).
- Soft delete via ``deleted_at`` (inherited from SoftDeleteModel).
"""

from __future__ import annotations

from django.core.exceptions import ValidationError
from django.db import models

from modules.core.models import SoftDeleteModel
from modules.zones.constants import ShapeType
from modules.zones.exceptions import InvalidZoneShape
from modules.zones.shapes import ZoneShape, build_shape


class DeliveryZone(SoftDeleteModel):
    """Merchant-defined geographic area eligible for delivery."""

    merchant_id: models.CharField = models.CharField(max_length=64, db_index=True)
    name: models.CharField = models.CharField(max_length=100)
    description: models.TextField = models.TextField(blank=True, default="")
    rule_id: models.PositiveIntegerField = models.PositiveIntegerField()
    shape_type: models.CharField = models.CharField(
        max_length=10,
        choices=ShapeType.choices,
    )
    coordinates: models.JSONField = models.JSONField()
    radius_meters: models.FloatField = models.FloatField(null=True, blank=True)

    class Meta:
        db_table = "delivery_zones"
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(
                fields=["merchant_id", "created_at"],
                name="zones_merchant_created_idx",
            ),
        ]

    @property
    def shape(self) -> ZoneShape:
        return build_shape(self.shape_type, self.coordinates, self.radius_meters)

    def clean(self) -> None:
        super().clean()
        try:
            self.shape
        except InvalidZoneShape as exc:
            raise ValidationError({"coordinates": str(exc)}) from exc

    def __str__(self) -> str:
        return f"{self.name} ({self.shape_type}, rule {self.rule_id})"
