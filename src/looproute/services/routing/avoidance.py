"""Avoidance polygons built from user-blocked road segments."""

from __future__ import annotations

import logging
import math
from typing import Iterable, Optional, Sequence

from shapely.geometry import MultiPolygon, Polygon, mapping

from ...models.domain import AvoidancePolygon, BlockedSegment, Coordinate
from ..geospatial import degrees_per_meter, is_valid_coordinate, planar_vector

# Segments shorter than this have no usable direction.
MIN_SEGMENT_LENGTH_M = 2.0

logger = logging.getLogger(__name__)


def segment_rectangle(segment: BlockedSegment, half_width_m: float = 18.0) -> Optional[AvoidancePolygon]:
    """Buffer a blocked segment into a closed rectangle of width ``2 * half_width_m``.

    Returns None for non-finite endpoints or a degenerate segment.
    """

    a, b = segment.a, segment.b
    if not (is_valid_coordinate(a) and is_valid_coordinate(b)):
        return None

    x, y = planar_vector(a, b)
    length = math.hypot(x, y)
    if not math.isfinite(length) or length < MIN_SEGMENT_LENGTH_M:
        return None

    # Unit normal, scaled to the half width.
    dx_m = -y / length * half_width_m
    dy_m = x / length * half_width_m
    dlat_per_m, dlng_per_m = degrees_per_meter((a.lat + b.lat) / 2)
    d_lat = dy_m * dlat_per_m
    d_lng = dx_m * dlng_per_m

    p1 = Coordinate(lat=a.lat + d_lat, lng=a.lng + d_lng)
    p2 = Coordinate(lat=a.lat - d_lat, lng=a.lng - d_lng)
    p3 = Coordinate(lat=b.lat - d_lat, lng=b.lng - d_lng)
    p4 = Coordinate(lat=b.lat + d_lat, lng=b.lng + d_lng)
    return AvoidancePolygon(vertices=(p1, p2, p3, p4, p1))


def build_avoid_polygons(
    segments: Iterable[BlockedSegment | None], half_width_m: float = 18.0
) -> Optional[list[AvoidancePolygon]]:
    """Convert blocked segments into avoidance rectangles, dropping invalid ones.

    Returns None when nothing valid remains so callers can fail before any
    provider request.
    """

    polygons: list[AvoidancePolygon] = []
    dropped = 0
    for segment in segments or ():
        if segment is None:
            dropped += 1
            continue
        polygon = segment_rectangle(segment, half_width_m)
        if polygon is None:
            dropped += 1
            continue
        polygons.append(polygon)

    if dropped:
        logger.debug(f"Dropped {dropped} blocked segment(s) that could not be buffered")
    return polygons or None


def to_shapely(polygon: AvoidancePolygon) -> Polygon:
    """Shapely polygon in (lng, lat) axis order."""

    return Polygon([(vertex.lng, vertex.lat) for vertex in polygon.vertices])


def to_multipolygon_geojson(polygons: Sequence[AvoidancePolygon]) -> dict:
    """GeoJSON MultiPolygon mapping suitable for the provider's ``avoid_polygons`` option."""

    geometry = mapping(MultiPolygon([to_shapely(polygon) for polygon in polygons]))
    # mapping() yields nested tuples; the provider expects JSON arrays.
    return {
        "type": geometry["type"],
        "coordinates": [
            [[list(point) for point in ring] for ring in polygon] for polygon in geometry["coordinates"]
        ],
    }
