"""Zone geometry as a tagged variant.

A zone is either a ``PolygonShape`` or a ``CircleShape``; every consumer
dispatches with an exhaustive ``match`` instead of subclass polymorphism.
Shapes are persisted as ``(shape_type, coordinates, radius_meters)``:

- polygon: ``coordinates`` is the ring ``[[lng, lat], ...]`` (implicitly closed)
- circle:  ``coordinates`` is ``[[lng, lat]]`` holding the center
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

from modules.zones.constants import MIN_POLYGON_POINTS, ShapeType
from modules.zones.exceptions import InvalidZoneShape
from shared.domain.geo import Coordinate, point_in_circle, point_in_polygon


@dataclass(frozen=True)
class PolygonShape:
    ring: tuple[Coordinate, ...]

    def __post_init__(self) -> None:
        ring = _drop_closing_vertex(tuple(Coordinate.parse(c) for c in self.ring))
        if len(set(ring)) < MIN_POLYGON_POINTS:
            raise InvalidZoneShape(
                f"A polygon needs at least {MIN_POLYGON_POINTS} distinct points."
            )
        object.__setattr__(self, "ring", ring)


@dataclass(frozen=True)
class CircleShape:
    center: Coordinate
    radius_meters: float

    def __post_init__(self) -> None:
        if not self.radius_meters or self.radius_meters <= 0:
            raise InvalidZoneShape("A circle needs a radius greater than zero.")
        object.__setattr__(self, "center", Coordinate.parse(self.center))


ZoneShape = PolygonShape | CircleShape


def shape_contains(shape: ZoneShape, point: Sequence[float]) -> bool:
    match shape:
        case PolygonShape(ring=ring):
            return point_in_polygon(point, ring)
        case CircleShape(center=center, radius_meters=radius):
            return point_in_circle(point, center, radius)
    raise TypeError(f"Unsupported zone shape: {shape!r}")


def build_shape(
    shape_type: str,
    coordinates: Sequence[Sequence[float]],
    radius_meters: float | None = None,
) -> ZoneShape:
    """Build a validated shape from its persisted/serialized form."""
    try:
        points = tuple(Coordinate.parse(c) for c in coordinates or [])
    except (TypeError, ValueError) as exc:
        raise InvalidZoneShape("Coordinates must be [lng, lat] pairs.") from exc

    match shape_type:
        case ShapeType.POLYGON:
            return PolygonShape(ring=points)
        case ShapeType.CIRCLE:
            if len(points) != 1:
                raise InvalidZoneShape("A circle needs exactly one center point.")
            return CircleShape(center=points[0], radius_meters=radius_meters or 0.0)
    raise InvalidZoneShape(f"Unknown shape type: {shape_type!r}")


def shape_to_record(shape: ZoneShape) -> dict[str, Any]:
    """Inverse of ``build_shape``: the column values for a shape."""
    match shape:
        case PolygonShape(ring=ring):
            return {
                "shape_type": ShapeType.POLYGON,
                "coordinates": [list(c) for c in ring],
                "radius_meters": None,
            }
        case CircleShape(center=center, radius_meters=radius):
            return {
                "shape_type": ShapeType.CIRCLE,
                "coordinates": [list(center)],
                "radius_meters": radius,
            }
    raise TypeError(f"Unsupported zone shape: {shape!r}")


def _drop_closing_vertex(ring: tuple[Coordinate, ...]) -> tuple[Coordinate, ...]:
    if len(ring) > 1 and ring[0] == ring[-1]:
        return ring[:-1]
    return ring
