"""HTTP client for the OpenRouteService directions API."""

from __future__ import annotations

import logging
import time
from typing import Optional, Protocol, Sequence

import httpx

from ...config import Settings
from ...models.domain import AvoidancePolygon, Coordinate, ProviderRoute
from .avoidance import to_multipolygon_geojson
from .errors import ProviderRequestFailed, RateLimited

logger = logging.getLogger(__name__)


class RoutingProvider(Protocol):
    """Directions and round-trip operations the route composer depends on."""

    def directions(
        self,
        coordinates: Sequence[Coordinate],
        profile: Optional[str] = None,
        avoid_polygons: Optional[Sequence[AvoidancePolygon]] = None,
    ) -> ProviderRoute: ...

    def round_trip(
        self,
        start: Coordinate,
        length_m: float,
        points: int,
        seed: int,
        profile: Optional[str] = None,
    ) -> ProviderRoute: ...


class ORSClient:
    def __init__(
        self,
        settings: Settings,
        api_key: str | None = None,
        base_url: str | None = None,
        profile: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.api_key = api_key or settings.ors_api_key
        if not self.api_key:
            raise ValueError("OpenRouteService API key is not configured.")
        self.base_url = (base_url or settings.ors_base_url).rstrip("/")
        self.profile = profile or settings.ors_profile
        self.timeout = settings.ors_timeout_seconds
        self.max_retries = settings.ors_max_retries
        self.backoff_seconds = settings.ors_backoff_seconds
        self.transport = transport

    def _get_client(self) -> httpx.Client:
        """Create a per-call HTTP client so searches can run attempts on several threads."""
        return httpx.Client(
            timeout=httpx.Timeout(self.timeout, connect=10.0),
            headers={"Authorization": self.api_key, "Content-Type": "application/json"},
            transport=self.transport,
        )

    def _post_directions(self, profile: str, body: dict) -> dict:
        url = f"{self.base_url}/v2/directions/{profile}/geojson"

        client = self._get_client()
        try:
            attempt = 0
            while True:
                try:
                    response = client.post(url, json=body)
                    break
                except httpx.TransportError as e:
                    # Rate limits and HTTP errors are never retried here, only transport failures.
                    attempt += 1
                    if attempt > self.max_retries:
                        raise ProviderRequestFailed(
                            "OpenRouteService request failed",
                            details=f"Failed to reach {self.base_url}: {e}",
                        ) from e
                    wait_time = self.backoff_seconds * attempt
                    logger.debug(
                        f"ORS transport error, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries}): {e}"
                    )
                    time.sleep(wait_time)
        finally:
            client.close()

        if response.status_code == 429:
            raise RateLimited("Rate limit exceeded", details=response.text)
        if response.is_error:
            raise ProviderRequestFailed(
                "OpenRouteService request failed",
                details=response.text,
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise ProviderRequestFailed("OpenRouteService returned invalid JSON", details=str(e)) from e

    def directions(
        self,
        coordinates: Sequence[Coordinate],
        profile: Optional[str] = None,
        avoid_polygons: Optional[Sequence[AvoidancePolygon]] = None,
    ) -> ProviderRoute:
        """Route through ``coordinates`` in order; first and last may coincide for a loop."""
        if len(coordinates) < 2:
            raise ValueError("At least two coordinates are required for ORS directions.")

        body: dict = {"coordinates": [[point.lng, point.lat] for point in coordinates]}
        if avoid_polygons:
            body["options"] = {"avoid_polygons": to_multipolygon_geojson(avoid_polygons)}
        return parse_geojson_route(self._post_directions(profile or self.profile, body))

    def round_trip(
        self,
        start: Coordinate,
        length_m: float,
        points: int,
        seed: int,
        profile: Optional[str] = None,
    ) -> ProviderRoute:
        """Ask the provider to synthesize a loop of roughly ``length_m`` from ``start``."""
        body = {
            "coordinates": [[start.lng, start.lat]],
            "options": {
                "round_trip": {
                    "length": round(length_m),
                    "points": points,
                    "seed": seed,
                },
            },
        }
        return parse_geojson_route(self._post_directions(profile or self.profile, body))


def parse_geojson_route(payload: dict) -> ProviderRoute:
    """Extract the path and reported distance from an ORS GeoJSON response.

    Coordinates arrive as [lng, lat] (optionally with elevation) and are returned
    as Coordinates. A missing summary distance is reported as None. A body that
    does not have the expected shape raises ProviderRequestFailed.
    """
    try:
        return _parse_feature_collection(payload)
    except (AttributeError, TypeError, LookupError, ValueError) as e:
        raise ProviderRequestFailed("OpenRouteService returned an unexpected payload", details=str(e)) from e


def _parse_feature_collection(payload: dict) -> ProviderRoute:
    features = payload.get("features") or []
    if not features:
        return ProviderRoute(path=())

    feature = features[0] or {}
    raw_coordinates = (feature.get("geometry") or {}).get("coordinates") or []
    path = tuple(Coordinate(lat=float(item[1]), lng=float(item[0])) for item in raw_coordinates if len(item) >= 2)

    properties = feature.get("properties") or {}
    distance = (properties.get("summary") or {}).get("distance")
    if distance is None:
        segments = properties.get("segments") or []
        if segments:
            distance = (segments[0] or {}).get("distance")

    return ProviderRoute(path=path, summary_distance_m=float(distance) if distance is not None else None)


def check_health(settings: Settings) -> bool:
    """Report whether the provider can be called with the current configuration.

    OpenRouteService's public API has no free health endpoint, so this only
    checks that a key and base URL are configured.
    """
    return bool(settings.ors_api_key) and bool(settings.ors_base_url)
