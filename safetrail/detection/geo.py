"""Geospatial helpers for the anomaly detector."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

EARTH_RADIUS_M = 6_371_000.0
MIN_POLYGON_VERTICES = 3


class LatLon(Protocol):
    """Anything with ``latitude`` / ``longitude`` in degrees."""

    @property
    def latitude(self) -> float: ...

    @property
    def longitude(self) -> float: ...


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters between two lat/lon points.

    Args:
        lat1: Latitude 1 in degrees.
        lon1: Longitude 1 in degrees.
        lat2: Latitude 2 in degrees.
        lon2: Longitude 2 in degrees.

    Returns:
        Distance in meters.

    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(d_phi / 2.0) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    )
    # rounding can push a just past 1 for near-antipodal points
    a = min(1.0, a)
    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))
    return EARTH_RADIUS_M * c


def path_length_m(points: Iterable[LatLon]) -> float:
    """Sum of Haversine distances between consecutive points."""
    total = 0.0
    prev: LatLon | None = None
    for point in points:
        if prev is not None:
            total += haversine_m(
                prev.latitude, prev.longitude, point.latitude, point.longitude
            )
        prev = point
    return total


def is_valid_polygon(polygon: Sequence[LatLon] | None) -> bool:
    """A polygon needs at least three vertices to enclose anything."""
    return polygon is not None and len(polygon) >= MIN_POLYGON_VERTICES


def point_in_polygon(lat: float, lon: float, polygon: Sequence[LatLon]) -> bool:
    """Ray-casting containment test.

    Longitude/latitude are treated as planar ``(x, y)``; only accurate for
    small zones. Self-intersecting polygons give undefined results.
    """
    if not is_valid_polygon(polygon):
        return False

    inside = False
    j = len(polygon) - 1
    for i in range(len(polygon)):
        xi, yi = polygon[i].longitude, polygon[i].latitude
        xj, yj = polygon[j].longitude, polygon[j].latitude
        if ((yi > lat) != (yj > lat)) and (
            lon < (xj - xi) * (lat - yi) / (yj - yi) + xi
        ):
            inside = not inside
        j = i
    return inside
