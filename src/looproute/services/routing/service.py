"""Loop route composition: round trips, waypoint loops and reroutes."""

from __future__ import annotations

import logging
import math
import random
from typing import Iterable, Optional, Sequence

from ...config import Settings, settings
from ...models.domain import BlockedSegment, Coordinate, CoordinateSequence, Route
from ...schemas.routing import LatLng, LoopRequest, LoopResponse, RerouteRequest
from ..geospatial import degrees_per_meter, distance_m, is_valid_coordinate, planar_vector
from .avoidance import build_avoid_polygons
from .errors import InvalidInput, NoAvoidablePath, NoRouteFound, ProviderRequestFailed
from .metrics import overlap_ratio, path_length
from .ors_client import ORSClient, RoutingProvider
from .search import search_filler_loop, search_round_trip

# Below this start-to-waypoint distance there is no meaningful direction to offset from.
MIN_DETOUR_BASE_M = 50.0
JOIN_TOLERANCE_DEG = 1e-6

logger = logging.getLogger(__name__)


def make_detour_waypoint(start: Coordinate, waypoint: Coordinate, offset_m: float, side: int = 1) -> Coordinate:
    """Offset ``waypoint`` sideways, perpendicular to the start->waypoint direction.

    ``side`` is +1 (left of travel) or -1 (right). When the waypoint sits almost on
    top of the start the detour is placed ``offset_m`` due north instead.
    """
    x, y = planar_vector(start, waypoint)
    length = math.hypot(x, y)
    dlat_per_m, dlng_per_m = degrees_per_meter((start.lat + waypoint.lat) / 2)
    if not math.isfinite(length) or length < MIN_DETOUR_BASE_M:
        return Coordinate(lat=waypoint.lat + offset_m * dlat_per_m, lng=waypoint.lng)

    dx_m = -y / length * offset_m * side
    dy_m = x / length * offset_m * side
    return Coordinate(lat=waypoint.lat + dy_m * dlat_per_m, lng=waypoint.lng + dx_m * dlng_per_m)


def build_directions_coordinates(start: Coordinate, waypoints: Sequence[Coordinate]) -> list[Coordinate]:
    """Closed visiting order: start, each waypoint as given, back to start."""
    return [start, *waypoints, start]


def farthest_point_from(path: Sequence[Coordinate], origin: Coordinate) -> Optional[tuple[int, float]]:
    """Index of the path point farthest from ``origin`` and its distance in meters."""
    if not path or len(path) < 2:
        return None
    best_index, best_distance = 0, -1.0
    for index, point in enumerate(path):
        d = distance_m(origin, point)
        if d > best_distance:
            best_index, best_distance = index, d
    return best_index, best_distance


def nearest_index(path: Sequence[Coordinate], point: Coordinate) -> int:
    return min(range(len(path)), key=lambda index: distance_m(path[index], point))


def _same_point(a: Coordinate, b: Coordinate) -> bool:
    return abs(a.lat - b.lat) < JOIN_TOLERANCE_DEG and abs(a.lng - b.lng) < JOIN_TOLERANCE_DEG


def concat_paths(first: Sequence[Coordinate], second: Sequence[Coordinate]) -> CoordinateSequence:
    """Join two paths, dropping the duplicated join point when they meet exactly."""
    if not first:
        return tuple(second)
    if not second:
        return tuple(first)
    if _same_point(first[-1], second[0]):
        return (*first, *second[1:])
    return (*first, *second)


def splice_after(path: Sequence[Coordinate], index: int, loop: Sequence[Coordinate]) -> CoordinateSequence:
    """Insert ``loop`` into ``path`` right after ``path[index]``."""
    head, tail = path[: index + 1], path[index + 1 :]
    return concat_paths(concat_paths(head, loop), tail)


def sample_evenly(path: Sequence[Coordinate], count: int) -> CoordinateSequence:
    """Pick ``count`` points at a uniform index stride, always including both ends."""
    if not path or count <= 0:
        return ()
    if len(path) <= count:
        return tuple(path)
    if count == 1:
        return (path[0],)
    last = len(path) - 1
    return tuple(path[math.floor(i / (count - 1) * last + 0.5)] for i in range(count))


def normalize_waypoints(waypoints: Iterable[Coordinate | None] | None) -> list[Coordinate]:
    """Drop missing or non-finite waypoints, keeping the caller's order."""
    return [point for point in waypoints or () if is_valid_coordinate(point)]


class LoopComposer:
    """Builds loop routes for the three request shapes using an injected routing provider."""

    def __init__(self, provider: RoutingProvider, settings: Settings, rng: random.Random | None = None) -> None:
        self.provider = provider
        self.settings = settings
        self.rng = rng or random.Random()

    def _validate(self, start: Coordinate | None, target_m: float | None) -> None:
        if not is_valid_coordinate(start):
            raise InvalidInput("Missing or invalid start coordinates", details=f"start={start!r}")
        if target_m is None or not math.isfinite(target_m) or target_m <= 0:
            raise InvalidInput("Missing or invalid target length", details=f"target_m={target_m!r}")

    def _route(self, path: CoordinateSequence, length_m: Optional[float], target_m: float) -> Route:
        return Route(
            coordinates=path,
            length_m=length_m,
            overlap=overlap_ratio(path, self.settings.overlap_grid_m),
            target_m=target_m,
            attempts_tried=1,
        )

    def compose(
        self,
        start: Coordinate,
        target_m: float,
        waypoints: Sequence[Coordinate] = (),
        avoid_spurs: bool = True,
    ) -> Route:
        self._validate(start, target_m)
        stops = normalize_waypoints(waypoints)

        if not stops:
            return self._round_trip(start, target_m, avoid_spurs)

        if len(stops) == 1:
            offset = min(
                self.settings.detour_offset_max_m,
                max(self.settings.detour_offset_min_m, target_m * self.settings.detour_offset_ratio),
            )
            side = self.rng.choice((-1, 1))
            detour = make_detour_waypoint(start, stops[0], offset, side)
            logger.info(f"Single waypoint: added detour waypoint {offset:.0f}m to the {'left' if side > 0 else 'right'}")
            stops = [stops[0], detour]

        return self._waypoint_loop(start, target_m, stops)

    def _round_trip(self, start: Coordinate, target_m: float, avoid_spurs: bool) -> Route:
        best = search_round_trip(
            self.provider,
            start,
            target_m,
            self.settings,
            attempts=self.settings.loop_attempts,
            avoid_spurs=avoid_spurs,
            rng=self.rng,
        )
        if best is None:
            raise NoRouteFound(
                "Failed to generate route",
                details="No valid route returned by the round-trip search (try again or check the provider key/quota).",
            )
        return best.route

    def _waypoint_loop(self, start: Coordinate, target_m: float, stops: list[Coordinate]) -> Route:
        coordinates = build_directions_coordinates(start, stops)
        base = self.provider.directions(coordinates, self.settings.ors_profile)
        path = tuple(base.path)
        if len(path) < 2:
            raise NoRouteFound("Failed to generate route", details="Directions request returned no path.")

        length = path_length(path)
        if length < target_m:
            path = self._add_filler(path, start, stops, target_m - length)
            length = path_length(path)
        elif length > target_m:
            logger.info(f"Waypoint loop is {length - target_m:.0f}m over target; routes are not trimmed")

        return self._route(path, length, target_m)

    def _add_filler(
        self,
        path: CoordinateSequence,
        start: Coordinate,
        stops: list[Coordinate],
        shortfall_m: float,
    ) -> CoordinateSequence:
        filler_m = max(self.settings.filler_min_m, float(round(shortfall_m)))

        farthest = farthest_point_from(path, start)
        if farthest is not None and farthest[1] >= self.settings.anchor_min_distance_m:
            anchor_index = farthest[0]
            anchor = path[anchor_index]
        else:
            anchor = stops[0] if stops else start
            anchor_index = nearest_index(path, anchor)

        logger.info(f"Route is {shortfall_m:.0f}m short; searching {filler_m:.0f}m filler loop from path index {anchor_index}")
        filler = search_filler_loop(
            self.provider,
            anchor,
            filler_m,
            self.settings,
            attempts=self.settings.waypoint_filler_attempts,
            rng=self.rng,
        )
        if filler is None:
            logger.warning("No filler loop found; returning the short route")
            return path
        return splice_after(path, anchor_index, filler.route.coordinates)

    def reroute(
        self,
        start: Coordinate,
        target_m: float,
        prior_path: Sequence[Coordinate],
        blocked_segments: Iterable[BlockedSegment | None],
        waypoints: Sequence[Coordinate] = (),
    ) -> Route:
        """Re-plan a route around blocked segments while keeping the prior route's shape."""
        self._validate(start, target_m)

        polygons = build_avoid_polygons(blocked_segments, self.settings.avoid_half_width_m)
        if polygons is None:
            raise NoAvoidablePath("No valid blocked segments received")

        # The first and last samples sit at the loop's start.
        prior = [point for point in prior_path if is_valid_coordinate(point)]
        shape_points = sample_evenly(prior, self.settings.reroute_shape_points)[1:-1]
        coordinates = [start, *shape_points, *normalize_waypoints(waypoints), start]
        logger.info(
            f"Rerouting around {len(polygons)} blocked segment(s) via {len(shape_points)} shape point(s)"
        )

        result = self.provider.directions(coordinates, self.settings.ors_profile, avoid_polygons=polygons)
        path = tuple(result.path)
        if len(path) < 2:
            raise NoRouteFound("Failed to reroute", details="Directions request returned no path.")

        length = result.summary_distance_m if result.summary_distance_m is not None else path_length(path)
        return self._route(path, length, target_m)


def _to_coordinate(point: LatLng) -> Coordinate:
    return Coordinate(lat=point.lat, lng=point.lng)


def _build_composer() -> LoopComposer:
    try:
        client = ORSClient(settings)
    except ValueError as e:
        logger.error(f"ORS client initialization failed: {e}")
        raise ProviderRequestFailed(
            "Routing provider is not configured",
            details="Set LOOPROUTE_ORS_API_KEY.",
            status_code=503,
        ) from e
    return LoopComposer(client, settings)


def route_to_response(route: Route) -> LoopResponse:
    return LoopResponse(
        target_m=route.target_m,
        distance_m=route.length_m,
        overlap=route.overlap,
        distance_error=route.distance_error,
        attempts_tried=route.attempts_tried,
        coordinates=[[point.lat, point.lng] for point in route.coordinates],
    )


def generate_loop(payload: LoopRequest) -> LoopResponse:
    composer = _build_composer()
    route = composer.compose(
        start=Coordinate(lat=payload.lat, lng=payload.lng),
        target_m=payload.distance_km * 1000,
        waypoints=[_to_coordinate(point) for point in payload.waypoints or []],
        avoid_spurs=payload.avoid_spurs,
    )
    return route_to_response(route)


def reroute_loop(payload: RerouteRequest) -> LoopResponse:
    composer = _build_composer()
    segments = [
        BlockedSegment(a=_to_coordinate(segment.a), b=_to_coordinate(segment.b)) if segment.a and segment.b else None
        for segment in payload.blocked_segments
    ]
    route = composer.reroute(
        start=Coordinate(lat=payload.lat, lng=payload.lng),
        target_m=payload.distance_km * 1000,
        prior_path=[_to_coordinate(point) for point in payload.route],
        blocked_segments=segments,
        waypoints=[_to_coordinate(point) for point in payload.waypoints or []],
    )
    return route_to_response(route)
