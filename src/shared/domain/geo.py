"""Geometry kernel for delivery tracking.

Pure functions over WGS84 coordinates expressed as ``(lng, lat)`` pairs.
Distances use the haversine great-circle approximation; polygon
containment is planar even-odd ray casting on the ``(lng, lat)`` plane,
which is accurate enough at city scale.

Nothing here raises for finite input.  Empty paths are a legitimate
transient state ("no route yet"), so path helpers return sentinels
(``-1`` / ``math.inf`` / ``[]``) instead of failing.
"""

from __future__ import annotations

import math
from typing import Iterable, NamedTuple, Sequence

EARTH_RADIUS_METERS = 6_371_000.0

_EDGE_EPSILON = 1e-12


class Coordinate(NamedTuple):
    """A WGS84 point.  Axis order is always longitude first."""

    lng: float
    lat: float

    @classmethod
    def parse(cls, value: Iterable[float]) -> Coordinate:
        """Build a coordinate from any ``[lng, lat]`` pair (list, tuple, JSON)."""
        lng, lat = value
        return cls(float(lng), float(lat))


def distance_meters(a: Sequence[float], b: Sequence[float]) -> float:
    """Haversine distance in meters between two ``(lng, lat)`` points."""
    lat1 = math.radians(a[1])
    lat2 = math.radians(b[1])
    delta_lat = math.radians(b[1] - a[1])
    delta_lng = math.radians(b[0] - a[0])

    h = (
        math.sin(delta_lat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(delta_lng / 2) ** 2
    )
    return EARTH_RADIUS_METERS * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def nearest_point_index(path: Sequence[Sequence[float]], point: Sequence[float]) -> int:
    """Index of the path vertex closest to *point*.

    The first index wins on exact ties.  Returns ``-1`` for an empty path.
    """
    nearest = -1
    best = math.inf
    for index, vertex in enumerate(path):
        d = distance_meters(vertex, point)
        if d < best:
            best = d
            nearest = index
    return nearest


def distance_to_polyline(
    point: Sequence[float], path: Sequence[Sequence[float]]
) -> float:
    """Approximate distance from *point* to a route.

    Each segment is approximated by the nearer of its two endpoints, so
    the result is the minimum vertex distance.  Long straight segments
    can therefore under-report deviation near their midpoint.  Returns
    ``math.inf`` for an empty path.
    """
    best = math.inf
    for index, vertex in enumerate(path):
        best = min(best, distance_meters(point, vertex))
        if index + 1 < len(path):
            segment = min(
                distance_meters(point, vertex),
                distance_meters(point, path[index + 1]),
            )
            best = min(best, segment)
    return best


def point_in_polygon(point: Sequence[float], ring: Sequence[Sequence[float]]) -> bool:
    """Even-odd containment test; vertices and edges count as inside.

    The ring is implicitly closed (the last vertex connects to the first).
    """
    if len(ring) < 3:
        return False

    x, y = point[0], point[1]
    inside = False
    j = len(ring) - 1
    for i in range(len(ring)):
        xi, yi = ring[i][0], ring[i][1]
        xj, yj = ring[j][0], ring[j][1]

        if _on_segment(x, y, xi, yi, xj, yj):
            return True

        if (yi > y) != (yj > y):
            x_cross = (xj - xi) * (y - yi) / (yj - yi) + xi
            if x < x_cross:
                inside = not inside
        j = i
    return inside


def point_in_circle(
    point: Sequence[float], center: Sequence[float], radius_meters: float
) -> bool:
    """``True`` when *point* lies within *radius_meters* of *center* (edge inclusive)."""
    return distance_meters(point, center) <= radius_meters


def traveled_path(
    route: Sequence[Sequence[float]], position: Sequence[float] | None
) -> list[Coordinate]:
    """Prefix of *route* up to (and including) the vertex nearest *position*."""
    if not route or position is None:
        return []
    index = nearest_point_index(route, position)
    return [Coordinate.parse(vertex) for vertex in route[: index + 1]]


def offset_position(
    origin: Sequence[float], distance: float, bearing_radians: float
) -> Coordinate:
    """Destination reached by travelling *distance* meters from *origin*.

    *bearing_radians* is measured clockwise from true north.
    """
    angular = distance / EARTH_RADIUS_METERS
    lat1 = math.radians(origin[1])
    lng1 = math.radians(origin[0])

    lat2 = math.asin(
        math.sin(lat1) * math.cos(angular)
        + math.cos(lat1) * math.sin(angular) * math.cos(bearing_radians)
    )
    lng2 = lng1 + math.atan2(
        math.sin(bearing_radians) * math.sin(angular) * math.cos(lat1),
        math.cos(angular) - math.sin(lat1) * math.sin(lat2),
    )
    return Coordinate(math.degrees(lng2), math.degrees(lat2))


def _on_segment(
    x: float, y: float, x1: float, y1: float, x2: float, y2: float
) -> bool:
    cross = (x - x1) * (y2 - y1) - (y - y1) * (x2 - x1)
    if abs(cross) > _EDGE_EPSILON:
        return False
    return (
        min(x1, x2) - _EDGE_EPSILON <= x <= max(x1, x2) + _EDGE_EPSILON
        and min(y1, y2) - _EDGE_EPSILON <= y <= max(y1, y2) + _EDGE_EPSILON
    )
