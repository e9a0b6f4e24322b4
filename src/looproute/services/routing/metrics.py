"""Length, self-overlap and spur metrics for coordinate sequences."""

from __future__ import annotations

import math
from typing import Optional, Sequence

from ...models.domain import Coordinate
from ..geospatial import degrees_per_meter, distance_m

# Segments closer than this many indices may share a grid cell around a turn
# without being counted as a revisit.
OVERLAP_MIN_INDEX_GAP = 12

SPUR_MIN_POINTS = 40
SPUR_CLOSE_M = 12.0
SPUR_MIN_STEPS = 18
SPUR_MAX_STEPS = 90


def path_length(seq: Sequence[Coordinate]) -> Optional[float]:
    """Total length in meters, or None when there is no path (fewer than 2 points)."""

    if not seq or len(seq) < 2:
        return None
    return sum(distance_m(seq[i - 1], seq[i]) for i in range(1, len(seq)))


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def overlap_ratio(seq: Sequence[Coordinate], grid_m: float = 20.0) -> float:
    """Estimate the fraction of path length that revisits earlier ground.

    Each segment midpoint is snapped to a ``grid_m`` cell. A segment counts as
    overlapped when its cell was first touched by a segment at least
    ``OVERLAP_MIN_INDEX_GAP`` indices earlier. Degenerate input returns 1.
    """

    if not seq or len(seq) < 3:
        return 1.0

    mean_lat = sum(point.lat for point in seq) / len(seq)
    dlat, dlng = degrees_per_meter(mean_lat)
    snap_lat = grid_m * dlat
    snap_lng = grid_m * dlng

    first_visit: dict[tuple[int, int], int] = {}
    overlapped = 0.0
    total = 0.0

    for i in range(1, len(seq)):
        prev, cur = seq[i - 1], seq[i]
        seg_len = distance_m(prev, cur)
        total += seg_len

        key = (
            _round_half_up((prev.lat + cur.lat) / 2 / snap_lat),
            _round_half_up((prev.lng + cur.lng) / 2 / snap_lng),
        )
        first = first_visit.get(key)
        if first is None:
            first_visit[key] = i
        elif i - first >= OVERLAP_MIN_INDEX_GAP:
            overlapped += seg_len

    return overlapped / total if total > 0 else 1.0


def has_short_out_and_back_spur(seq: Sequence[Coordinate], max_detour_m: float = 140.0) -> bool:
    """Detect a short dead-end-and-return pattern anywhere along the path.

    From every start index the path is walked forward; a spur is a return to
    within ``SPUR_CLOSE_M`` of the start point after at least ``SPUR_MIN_STEPS``
    steps while the distance walked is still within ``max_detour_m``.
    Sequences shorter than ``SPUR_MIN_POINTS`` are never flagged.
    """

    if not seq or len(seq) < SPUR_MIN_POINTS:
        return False

    count = len(seq)
    for i in range(count - (SPUR_MIN_STEPS + 1)):
        origin = seq[i]
        detour = 0.0
        for j in range(i + 1, min(count, i + SPUR_MAX_STEPS)):
            detour += distance_m(seq[j - 1], seq[j])
            if detour > max_detour_m:
                break
            if j - i >= SPUR_MIN_STEPS and distance_m(origin, seq[j]) <= SPUR_CLOSE_M:
                return True

    return False
