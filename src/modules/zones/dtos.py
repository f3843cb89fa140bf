"""Zone DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
DTOs are immutable (``frozen=True``).

- ``ZoneInputDTO``: input for zone creation and full update.
- ``DeliveryCheckDTO``: answer of the delivery-range check.
"""

from __future__ import annotations

from typing import List, Optional, Self, Tuple
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from modules.zones.constants import ShapeType
from modules.zones.exceptions import InvalidZoneShape
from modules.zones.shapes import ZoneShape, build_shape


class ZoneInputDTO(BaseModel):
    """Immutable DTO for zone create/update requests.

    Validates the shape invariants up front: a polygon ring has at least
    three distinct points, a circle has exactly one center and a
    positive radius.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1, max_length=100)
    description: str = ""
    rule_id: int = Field(gt=0)
    shape_type: ShapeType
    coordinates: List[Tuple[float, float]]
    radius_meters: Optional[float] = None

    @model_validator(mode="after")
    def validate_shape(self) -> Self:
        try:
            self.to_shape()
        except InvalidZoneShape as exc:
            raise ValueError(str(exc)) from exc
        return self

    def to_shape(self) -> ZoneShape:
        return build_shape(self.shape_type, self.coordinates, self.radius_meters)


class DeliveryCheckDTO(BaseModel):
    """Result of ``ZoneService.find_delivery_rule``."""

    model_config = ConfigDict(frozen=True)

    deliverable: bool
    rule_id: Optional[int] = None
    zone_id: Optional[UUID] = None
