"""Geospatial helper functions."""

from __future__ import annotations

import math

from ..models.domain import Coordinate

EARTH_RADIUS_M = 6371000.0
METERS_PER_DEGREE_LAT = 111320.0


def distance_m(p1: Coordinate, p2: Coordinate) -> float:
    """Compute distance between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(p1.lat), math.radians(p2.lat)
    d_phi = math.radians(p2.lat - p1.lat)
    d_lambda = math.radians(p2.lng - p1.lng)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    # Rounding can push sqrt(a) past 1 for antipodal points.
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(max(0.0, a))))


def degrees_per_meter(lat: float) -> tuple[float, float]:
    """Return (degrees latitude, degrees longitude) per meter at ``lat``.

    Flat-Earth approximation; only valid over a few kilometers.
    """

    meters_per_degree_lng = METERS_PER_DEGREE_LAT * math.cos(math.radians(lat))
    return 1.0 / METERS_PER_DEGREE_LAT, 1.0 / meters_per_degree_lng


def local_offset(origin: Coordinate, dx_m: float, dy_m: float) -> Coordinate:
    """Shift ``origin`` by ``dx_m`` meters east and ``dy_m`` meters north."""

    dlat, dlng = degrees_per_meter(origin.lat)
    return Coordinate(lat=origin.lat + dy_m * dlat, lng=origin.lng + dx_m * dlng)


def planar_vector(a: Coordinate, b: Coordinate) -> tuple[float, float]:
    """East/north meters from ``a`` to ``b`` at the pair's mean latitude."""

    dlat, dlng = degrees_per_meter((a.lat + b.lat) / 2)
    return (b.lng - a.lng) / dlng, (b.lat - a.lat) / dlat


def is_valid_coordinate(point: Coordinate | None) -> bool:
    if point is None:
        return False
    if not (math.isfinite(point.lat) and math.isfinite(point.lng)):
        return False
    return -90.0 <= point.lat <= 90.0 and -180.0 <= point.lng <= 180.0
