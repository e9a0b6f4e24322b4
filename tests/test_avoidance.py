import pytest
from shapely.geometry import Polygon

from looproute.models.domain import BlockedSegment, Coordinate
from looproute.services.geospatial import local_offset, planar_vector
from looproute.services.routing.avoidance import (
    build_avoid_polygons,
    segment_rectangle,
    to_multipolygon_geojson,
)


def _area_m2(vertices, origin):
    return Polygon([planar_vector(origin, vertex) for vertex in vertices]).area


def test_segment_rectangle_area(start):
    segment = BlockedSegment(a=start, b=local_offset(start, 100.0, 0))
    polygon = segment_rectangle(segment, half_width_m=18.0)

    assert polygon is not None
    assert len(polygon.vertices) == 5
    assert polygon.vertices[0] == polygon.vertices[-1]
    assert _area_m2(polygon.vertices, start) == pytest.approx(100 * 36, rel=0.01)


def test_segment_rectangle_is_offset_along_the_normal(start):
    segment = BlockedSegment(a=start, b=local_offset(start, 0, 100.0))
    polygon = segment_rectangle(segment, half_width_m=18.0)

    # A north-bound segment is buffered east and west of its endpoints.
    for vertex, endpoint in zip(polygon.vertices[:4], [segment.a, segment.a, segment.b, segment.b]):
        x, y = planar_vector(endpoint, vertex)
        assert abs(x) == pytest.approx(18.0, abs=0.01)
        assert y == pytest.approx(0.0, abs=0.01)


def test_degenerate_segment_is_rejected(start):
    assert segment_rectangle(BlockedSegment(a=start, b=local_offset(start, 1.0, 0))) is None


def test_non_finite_segment_is_rejected(start):
    assert segment_rectangle(BlockedSegment(a=start, b=Coordinate(float("nan"), 4.0))) is None


def test_build_avoid_polygons_drops_invalid_segments(start):
    segments = [
        BlockedSegment(a=start, b=local_offset(start, 100.0, 0)),
        BlockedSegment(a=start, b=start),
        None,
        BlockedSegment(a=Coordinate(float("inf"), 4.0), b=start),
        BlockedSegment(a=local_offset(start, 0, 200.0), b=local_offset(start, 80.0, 260.0)),
    ]
    polygons = build_avoid_polygons(segments)
    assert polygons is not None
    assert len(polygons) == 2


def test_build_avoid_polygons_returns_none_when_nothing_is_valid(start):
    assert build_avoid_polygons([]) is None
    assert build_avoid_polygons(None) is None
    assert build_avoid_polygons([BlockedSegment(a=start, b=start)]) is None


def test_multipolygon_geojson_uses_lng_lat_order(start):
    polygons = build_avoid_polygons([BlockedSegment(a=start, b=local_offset(start, 100.0, 0))])
    geometry = to_multipolygon_geojson(polygons)

    assert geometry["type"] == "MultiPolygon"
    assert len(geometry["coordinates"]) == 1
    ring = geometry["coordinates"][0][0]
    assert len(ring) == 5
    assert ring[0] == ring[-1]
    lng, lat = ring[0]
    assert lng == pytest.approx(start.lng, abs=0.01)
    assert lat == pytest.approx(start.lat, abs=0.01)
    assert isinstance(ring[0], list)
