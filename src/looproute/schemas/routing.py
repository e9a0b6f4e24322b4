"""Loop routing request/response schemas."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class LatLng(BaseModel):
    """A map point. Out-of-range waypoints and segment endpoints are dropped downstream."""
    lat: float
    lng: float


class BlockedSegmentModel(BaseModel):
    """A road section marked as blocked on the map. Incomplete segments are ignored."""
    a: Optional[LatLng] = None
    b: Optional[LatLng] = None


class LoopRequest(BaseModel):
    lat: float = Field(..., ge=-90, le=90, description="Start latitude.")
    lng: float = Field(..., ge=-180, le=180, description="Start longitude.")
    distance_km: float = Field(..., gt=0, description="Target loop length in kilometers.")
    avoid_spurs: bool = Field(
        default=True,
        description="Reject round-trip candidates containing short out-and-back spurs.",
    )
    waypoints: Optional[List[LatLng]] = Field(
        default=None,
        description="Points the loop must pass, visited in the given order.",
    )


class RerouteRequest(LoopRequest):
    route: List[LatLng] = Field(..., min_length=2, description="Coordinates of the route being rerouted.")
    blocked_segments: List[BlockedSegmentModel] = Field(default_factory=list)


class LoopResponse(BaseModel):
    target_m: float
    distance_m: Optional[float]
    overlap: float
    distance_error: Optional[float]
    attempts_tried: int
    coordinates: List[List[float]] = Field(..., description="Route coordinates as [lat, lng] pairs.")
