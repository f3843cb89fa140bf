"""Unit tests for zone DTOs."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from modules.zones.dtos import DeliveryCheckDTO, ZoneInputDTO
from modules.zones.shapes import CircleShape

pytestmark = pytest.mark.unit


def test_valid_circle_zone():
    dto = ZoneInputDTO(
        name="Center",
        rule_id=101,
        shape_type="circle",
        coordinates=[(120.3, 30.3)],
        radius_meters=2000,
    )
    assert isinstance(dto.to_shape(), CircleShape)


def test_invalid_shape_rejected():
    with pytest.raises(ValidationError):
        ZoneInputDTO(
            name="Line",
            rule_id=101,
            shape_type="polygon",
            coordinates=[(120.3, 30.3), (120.4, 30.4)],
        )


def test_rule_id_must_be_positive():
    with pytest.raises(ValidationError):
        ZoneInputDTO(
            name="Center",
            rule_id=0,
            shape_type="circle",
            coordinates=[(120.3, 30.3)],
            radius_meters=10,
        )


def test_dto_is_frozen():
    dto = DeliveryCheckDTO(deliverable=False)
    with pytest.raises(ValidationError):
        dto.deliverable = True
    assert dto.rule_id is None
