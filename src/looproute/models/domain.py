"""Domain models for coordinates, routes and search candidates."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True, slots=True)
class Coordinate:
    """A WGS84 point in degrees."""

    lat: float
    lng: float


CoordinateSequence = Tuple[Coordinate, ...]


@dataclass(frozen=True, slots=True)
class BlockedSegment:
    """A road section the caller wants the route to avoid."""

    a: Coordinate
    b: Coordinate


@dataclass(frozen=True, slots=True)
class AvoidancePolygon:
    """Closed rectangle around a blocked segment; the first vertex is repeated last."""

    vertices: CoordinateSequence


@dataclass(frozen=True, slots=True)
class ProviderRoute:
    """Path returned by the routing provider with its optional reported distance."""

    path: CoordinateSequence
    summary_distance_m: Optional[float] = None


@dataclass(frozen=True, slots=True)
class Route:
    coordinates: CoordinateSequence
    length_m: Optional[float]
    overlap: float
    target_m: float
    attempts_tried: int = 1

    @property
    def distance_error(self) -> Optional[float]:
        if self.length_m is None or not self.target_m:
            return None
        return abs(self.length_m - self.target_m) / self.target_m


@dataclass(frozen=True, slots=True)
class Candidate:
    """A scored route produced during search; lower score is better."""

    route: Route
    score: float
    attempt_index: int
