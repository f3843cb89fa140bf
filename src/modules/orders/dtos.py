"""Order DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
These are the contracts between the API layer (DRF Serializers)
and the Service layer.  DTOs are immutable (``frozen=True``).

- ``CreateOrderDTO``: input for order creation.
- ``ShipOrderDTO``: route and rule attached when dispatching.
- ``MerchantStatisticsDTO``: dashboard counters for one merchant.
"""

from __future__ import annotations

from decimal import Decimal
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from modules.orders.constants import SimulatedFault


def _validate_lng_lat(point: Tuple[float, float]) -> Tuple[float, float]:
    lng, lat = point
    if not -180 <= lng <= 180:
        raise ValueError(f"Longitude {lng} out of range.")
    if not -90 <= lat <= 90:
        raise ValueError(f"Latitude {lat} out of range.")
    return point


# ---------------------------------------------------------------------------
# Input DTOs
# ---------------------------------------------------------------------------


class CreateOrderDTO(BaseModel):
    """Immutable DTO for order creation requests.

    ``recipient_coordinate`` is ``(lng, lat)``.  Delivery-range
    validation happens in the Service Layer against the merchant's zones.
    """

    model_config = ConfigDict(frozen=True)

    merchant_id: str = Field(min_length=1, max_length=64)
    user_id: str = Field(min_length=1, max_length=64)
    amount: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    recipient_name: str = Field(min_length=1, max_length=100)
    recipient_address: str = Field(min_length=1, max_length=255)
    recipient_coordinate: Tuple[float, float]
    simulated_fault: Optional[SimulatedFault] = None

    @field_validator("recipient_coordinate")
    @classmethod
    def coordinate_in_range(cls, v: Tuple[float, float]) -> Tuple[float, float]:
        return _validate_lng_lat(v)


class ShipOrderDTO(BaseModel):
    """Immutable DTO for attaching a route and rule to a pending order."""

    model_config = ConfigDict(frozen=True)

    rule_id: int = Field(gt=0)
    route_path: List[Tuple[float, float]] = Field(min_length=1)

    @field_validator("route_path")
    @classmethod
    def route_points_in_range(
        cls, v: List[Tuple[float, float]]
    ) -> List[Tuple[float, float]]:
        return [_validate_lng_lat(point) for point in v]


# ---------------------------------------------------------------------------
# Output DTOs
# ---------------------------------------------------------------------------


class MerchantStatisticsDTO(BaseModel):
    """Immutable DTO for the merchant order statistics."""

    model_config = ConfigDict(frozen=True)

    pending_count: int
    shipping_count: int
    completed_count: int
    total_amount: Decimal
