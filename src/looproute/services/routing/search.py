"""Round-trip candidate search and scoring."""

from __future__ import annotations

import logging
import math
import random
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import closing
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

from ...config import Settings
from ...models.domain import Candidate, Coordinate, ProviderRoute, Route
from .errors import LoopRouteError, ProviderRequestFailed, RateLimited
from .metrics import has_short_out_and_back_spur, overlap_ratio, path_length
from .ors_client import RoutingProvider

# Round-trip point counts alternate between these to diversify loop shapes.
EVEN_ATTEMPT_POINTS = 6
ODD_ATTEMPT_POINTS = 8

FILLER_OVERLAP_WEIGHT = 1.0
FILLER_DISTANCE_WEIGHT = 0.2

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _Attempt:
    index: int
    seed: int
    points: int
    result: Optional[ProviderRoute] = None
    error: Optional[LoopRouteError] = None


def points_for_attempt(index: int) -> int:
    return EVEN_ATTEMPT_POINTS if index % 2 == 0 else ODD_ATTEMPT_POINTS


def _request(provider: RoutingProvider, start: Coordinate, length_m: float, attempt: _Attempt, profile: str) -> _Attempt:
    try:
        attempt.result = provider.round_trip(start, length_m, attempt.points, attempt.seed, profile)
    except (RateLimited, ProviderRequestFailed) as exc:
        attempt.error = exc
    return attempt


def _iter_attempts(
    provider: RoutingProvider,
    start: Coordinate,
    length_m: float,
    attempts: int,
    settings: Settings,
    rng: random.Random,
) -> Iterator[_Attempt]:
    """Yield round-trip attempts in issuance order.

    Sequential by default. With ``max_parallel_attempts > 1`` requests are issued
    concurrently but still yielded in order. Once the caller stops consuming,
    queued requests are cancelled and requests already in flight are awaited,
    so no provider call outlives the search.
    """
    planned = [
        _Attempt(index=index, seed=rng.randrange(1_000_000), points=points_for_attempt(index))
        for index in range(attempts)
    ]
    profile = settings.ors_profile

    if settings.max_parallel_attempts <= 1 or attempts <= 1:
        for attempt in planned:
            yield _request(provider, start, length_m, attempt, profile)
        return

    executor = ThreadPoolExecutor(max_workers=min(settings.max_parallel_attempts, attempts))
    try:
        futures: list[Future[_Attempt]] = [
            executor.submit(_request, provider, start, length_m, attempt, profile) for attempt in planned
        ]
        for future in futures:
            yield future.result()
    finally:
        executor.shutdown(wait=True, cancel_futures=True)


def _measured_distance(route: ProviderRoute) -> Optional[float]:
    if route.summary_distance_m is not None:
        return route.summary_distance_m
    return path_length(route.path)


def _evaluate(
    attempt: _Attempt,
    length_m: float,
    settings: Settings,
    check_spurs: bool,
    score: Callable[[float, float], float],
    label: str,
) -> Optional[tuple[Candidate, float]]:
    """Score one attempt, returning the candidate and its distance error, or None to skip it."""
    route = attempt.result
    if route is None or len(route.path) < 2:
        logger.debug(f"{label} attempt {attempt.index + 1}: provider returned no path")
        return None

    distance = _measured_distance(route)
    if distance is None or math.isnan(distance) or distance <= 0:
        logger.debug(f"{label} attempt {attempt.index + 1}: unusable distance {distance}")
        return None

    if check_spurs and has_short_out_and_back_spur(route.path, settings.spur_detour_m):
        logger.debug(f"{label} attempt {attempt.index + 1}: rejected for out-and-back spur")
        return None

    overlap = overlap_ratio(route.path, settings.overlap_grid_m)
    distance_error = abs(distance - length_m) / length_m
    candidate = Candidate(
        route=Route(
            coordinates=tuple(route.path),
            length_m=distance,
            overlap=overlap,
            target_m=length_m,
            attempts_tried=attempt.index + 1,
        ),
        score=score(distance_error, overlap),
        attempt_index=attempt.index,
    )
    logger.debug(
        f"{label} attempt {attempt.index + 1}: points={attempt.points} seed={attempt.seed} "
        f"distance={distance:.0f}m error={distance_error:.3f} overlap={overlap:.3f} score={candidate.score:.4f}"
    )
    return candidate, distance_error


def _search(
    provider: RoutingProvider,
    start: Coordinate,
    length_m: float,
    settings: Settings,
    attempts: int,
    rng: random.Random,
    check_spurs: bool,
    score: Callable[[float, float], float],
    accept_error: Optional[float],
    label: str,
) -> Optional[Candidate]:
    best: Optional[Candidate] = None
    rate_limited = 0

    with closing(_iter_attempts(provider, start, length_m, attempts, settings, rng)) as issued:
        for attempt in issued:
            if attempt.error is not None:
                if isinstance(attempt.error, RateLimited):
                    rate_limited += 1
                logger.warning(f"{label} attempt {attempt.index + 1}/{attempts} skipped: {attempt.error.message}")
                continue

            evaluated = _evaluate(attempt, length_m, settings, check_spurs, score, label)
            if evaluated is None:
                continue
            candidate, distance_error = evaluated

            if best is None or candidate.score < best.score:
                best = candidate
            if accept_error is not None and distance_error <= accept_error:
                logger.info(f"{label} accepted attempt {attempt.index + 1} with error {distance_error:.3f}")
                return best

    if best is None:
        logger.warning(f"{label} found no valid candidate in {attempts} attempts ({rate_limited} rate limited)")
    else:
        logger.info(f"{label} best candidate: attempt {best.attempt_index + 1} score {best.score:.4f}")
    return best


def search_round_trip(
    provider: RoutingProvider,
    start: Coordinate,
    target_m: float,
    settings: Settings,
    *,
    attempts: int | None = None,
    avoid_spurs: bool = True,
    rng: random.Random | None = None,
) -> Optional[Candidate]:
    """Search for the round trip whose length is closest to ``target_m``.

    Returns as soon as a candidate lands within ``settings.accept_distance_error``;
    otherwise the best of the budget, or None when no attempt produced a usable route.
    """
    return _search(
        provider,
        start,
        target_m,
        settings,
        attempts if attempts is not None else settings.loop_attempts,
        rng or random.Random(),
        check_spurs=avoid_spurs,
        score=lambda distance_error, overlap: distance_error,
        accept_error=settings.accept_distance_error,
        label="Round-trip search",
    )


def search_filler_loop(
    provider: RoutingProvider,
    anchor: Coordinate,
    length_m: float,
    settings: Settings,
    *,
    attempts: int | None = None,
    rng: random.Random | None = None,
) -> Optional[Candidate]:
    """Search for a filler loop from ``anchor`` that covers mostly new ground.

    Overlap dominates the score; distance accuracy only breaks ties. The whole
    budget is always spent.
    """
    return _search(
        provider,
        anchor,
        length_m,
        settings,
        attempts if attempts is not None else settings.filler_attempts,
        rng or random.Random(),
        check_spurs=True,
        score=lambda distance_error, overlap: overlap * FILLER_OVERLAP_WEIGHT + distance_error * FILLER_DISTANCE_WEIGHT,
        accept_error=None,
        label="Filler search",
    )
