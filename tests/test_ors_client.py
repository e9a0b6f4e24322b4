import json

import httpx
import pytest

from looproute.config import Settings
from looproute.models.domain import BlockedSegment, Coordinate
from looproute.services.geospatial import local_offset
from looproute.services.routing.avoidance import build_avoid_polygons
from looproute.services.routing.errors import ProviderRequestFailed, RateLimited
from looproute.services.routing.ors_client import ORSClient, check_health, parse_geojson_route


def _feature_collection(coordinates, properties=None):
    return {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "properties": properties if properties is not None else {},
                "geometry": {"type": "LineString", "coordinates": coordinates},
            }
        ],
    }


class Recorder:
    def __init__(self, response):
        self.response = response
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.response(request) if callable(self.response) else self.response


def _client(settings, handler) -> ORSClient:
    return ORSClient(settings, transport=httpx.MockTransport(handler))


def test_round_trip_request_and_parsing(settings, start):
    handler = Recorder(
        httpx.Response(
            200,
            json=_feature_collection(
                [[4.0, 52.0], [4.01, 52.0, 3.5], [4.0, 52.0]],
                {"summary": {"distance": 4987.2}},
            ),
        )
    )
    client = _client(settings, handler)

    route = client.round_trip(start, 5000.4, points=6, seed=1234)

    request = handler.requests[0]
    assert request.method == "POST"
    assert str(request.url) == "https://api.openrouteservice.org/v2/directions/foot-walking/geojson"
    assert request.headers["Authorization"] == "test-key"
    body = json.loads(request.content)
    assert body["coordinates"] == [[4.0, 52.0]]
    assert body["options"]["round_trip"] == {"length": 5000, "points": 6, "seed": 1234}

    assert route.summary_distance_m == pytest.approx(4987.2)
    assert route.path[1] == Coordinate(lat=52.0, lng=4.01)
    assert len(route.path) == 3


def test_directions_sends_avoid_polygons(settings, start):
    handler = Recorder(httpx.Response(200, json=_feature_collection([[4.0, 52.0], [4.01, 52.01]])))
    client = _client(settings, handler)
    polygons = build_avoid_polygons([BlockedSegment(a=start, b=local_offset(start, 100.0, 0))])
    waypoint = Coordinate(52.01, 4.01)

    client.directions([start, waypoint, start], profile="foot-hiking", avoid_polygons=polygons)

    request = handler.requests[0]
    assert request.url.path == "/v2/directions/foot-hiking/geojson"
    body = json.loads(request.content)
    assert body["coordinates"] == [[4.0, 52.0], [4.01, 52.01], [4.0, 52.0]]
    assert body["options"]["avoid_polygons"]["type"] == "MultiPolygon"
    assert len(body["options"]["avoid_polygons"]["coordinates"]) == 1


def test_directions_without_polygons_has_no_options(settings, start):
    handler = Recorder(httpx.Response(200, json=_feature_collection([[4.0, 52.0], [4.01, 52.01]])))
    client = _client(settings, handler)

    client.directions([start, Coordinate(52.01, 4.01)])

    assert "options" not in json.loads(handler.requests[0].content)


def test_rate_limit_is_classified(settings, start):
    handler = Recorder(httpx.Response(429, text="Quota exceeded"))
    client = _client(settings, handler)

    with pytest.raises(RateLimited) as excinfo:
        client.round_trip(start, 5000, points=6, seed=1)

    assert excinfo.value.details == "Quota exceeded"
    assert excinfo.value.status_code == 429
    assert len(handler.requests) == 1


def test_other_errors_are_request_failures(settings, start):
    handler = Recorder(httpx.Response(404, json={"error": {"code": 2010, "message": "Could not find routable point"}}))
    client = _client(settings, handler)

    with pytest.raises(ProviderRequestFailed) as excinfo:
        client.directions([start, Coordinate(52.01, 4.01)])

    assert excinfo.value.status_code == 404
    assert "routable point" in excinfo.value.details
    assert len(handler.requests) == 1


def test_transport_errors_are_retried_then_fail(start):
    settings = Settings(ors_api_key="test-key", ors_max_retries=2, ors_backoff_seconds=0.0, _env_file=None)

    def fail(request):
        raise httpx.ConnectError("connection refused", request=request)

    handler = Recorder(fail)
    client = _client(settings, handler)

    with pytest.raises(ProviderRequestFailed):
        client.round_trip(start, 5000, points=8, seed=1)
    assert len(handler.requests) == 3


def test_missing_api_key_is_rejected():
    with pytest.raises(ValueError):
        ORSClient(Settings(ors_api_key=None, _env_file=None))


def test_directions_needs_two_coordinates(settings, start):
    client = _client(settings, Recorder(httpx.Response(200, json={})))
    with pytest.raises(ValueError):
        client.directions([start])


def test_parse_falls_back_to_segment_distance():
    payload = _feature_collection([[4.0, 52.0], [4.01, 52.0]], {"segments": [{"distance": 812.5}]})
    assert parse_geojson_route(payload).summary_distance_m == 812.5


def test_parse_without_distance_or_features():
    assert parse_geojson_route(_feature_collection([[4.0, 52.0], [4.01, 52.0]])).summary_distance_m is None
    empty = parse_geojson_route({"features": []})
    assert empty.path == ()
    assert empty.summary_distance_m is None


def test_check_health_reports_configuration(settings):
    assert check_health(settings) is True
    assert check_health(Settings(ors_api_key=None, _env_file=None)) is False


@pytest.mark.parametrize(
    "payload",
    [
        {"features": ["oops"]},
        None,
        {"features": {"type": "Feature"}},
        _feature_collection([[None, 52.0], [4.01, 52.0]]),
        _feature_collection([[4.0, 52.0], 7]),
        _feature_collection([[4.0, 52.0], [4.01, 52.0]], {"summary": {"distance": "far"}}),
    ],
)
def test_unexpected_payload_is_a_request_failure(settings, start, payload):
    client = _client(settings, Recorder(httpx.Response(200, json=payload)))

    with pytest.raises(ProviderRequestFailed) as excinfo:
        client.round_trip(start, 5000, points=6, seed=1)

    assert excinfo.value.message == "OpenRouteService returned an unexpected payload"
    assert excinfo.value.status_code == 502
