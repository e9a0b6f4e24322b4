import math
from typing import Callable, Sequence

import pytest

from looproute.config import Settings
from looproute.models.domain import Coordinate
from looproute.services.geospatial import local_offset, planar_vector

START = Coordinate(lat=52.0, lng=4.0)


def densify(points: Sequence[Coordinate], step_m: float = 20.0) -> list[Coordinate]:
    """Linearly interpolate between consecutive points so no step exceeds ``step_m``."""
    dense = [points[0]]
    for a, b in zip(points, points[1:]):
        x, y = planar_vector(a, b)
        steps = max(1, math.ceil(math.hypot(x, y) / step_m))
        for k in range(1, steps + 1):
            t = k / steps
            dense.append(Coordinate(lat=a.lat + (b.lat - a.lat) * t, lng=a.lng + (b.lng - a.lng) * t))
    return dense


def square_loop(origin: Coordinate, side_m: float, step_m: float = 20.0, laps: int = 1) -> list[Coordinate]:
    corners = [
        local_offset(origin, side_m, 0),
        local_offset(origin, side_m, side_m),
        local_offset(origin, 0, side_m),
        origin,
    ]
    return densify([origin, *corners * laps], step_m)


def out_and_back(origin: Coordinate, reach_m: float = 100.0, step_m: float = 5.0) -> list[Coordinate]:
    """Straight out north and straight back, ending 1 m east of ``origin``."""
    steps = int(reach_m / step_m)
    out = [local_offset(origin, 0, k * step_m) for k in range(steps + 1)]
    back = [local_offset(origin, 0, k * step_m) for k in range(steps - 1, 0, -1)]
    return [*out, *back, local_offset(origin, 1.0, 0)]


@pytest.fixture
def start() -> Coordinate:
    return START


@pytest.fixture
def settings() -> Settings:
    return Settings(ors_api_key="test-key", _env_file=None)


@pytest.fixture
def make_square_loop() -> Callable[..., list[Coordinate]]:
    return square_loop


@pytest.fixture
def make_out_and_back() -> Callable[..., list[Coordinate]]:
    return out_and_back


@pytest.fixture
def make_dense_path() -> Callable[..., list[Coordinate]]:
    return densify
