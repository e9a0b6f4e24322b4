"""Application configuration and settings management."""

from typing import Any, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="LOOPROUTE_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Loop Route API"
    api_prefix: str = "/api"
    ors_base_url: str = Field(
        default="https://api.openrouteservice.org",
        description="Base URL for the OpenRouteService API.",
    )
    ors_api_key: Optional[str] = Field(
        default=None,
        description="OpenRouteService API key, sent in the Authorization header.",
    )
    ors_profile: str = Field(
        default="foot-walking",
        description="OpenRouteService profile used for directions and round trips.",
    )
    ors_timeout_seconds: float = Field(default=30.0, gt=0.0)
    ors_max_retries: int = Field(default=1, ge=0)
    ors_backoff_seconds: float = Field(default=0.5, ge=0.0)

    loop_attempts: int = Field(default=10, ge=1)
    filler_attempts: int = Field(default=8, ge=1)
    waypoint_filler_attempts: int = Field(default=14, ge=1)
    max_parallel_attempts: int = Field(
        default=1,
        ge=1,
        description="Concurrent provider requests within one search. 1 keeps attempts sequential.",
    )
    accept_distance_error: float = Field(default=0.03, ge=0.0)
    spur_detour_m: float = Field(default=160.0, gt=0.0)
    overlap_grid_m: float = Field(default=20.0, gt=0.0)

    detour_offset_ratio: float = Field(default=0.08, ge=0.0)
    detour_offset_min_m: float = Field(default=250.0, ge=0.0)
    detour_offset_max_m: float = Field(default=900.0, ge=0.0)
    filler_min_m: float = Field(default=1600.0, ge=0.0)
    anchor_min_distance_m: float = Field(default=600.0, ge=0.0)

    avoid_half_width_m: float = Field(default=18.0, gt=0.0)
    reroute_shape_points: int = Field(default=7, ge=0)

    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            # Try JSON first
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            if value.strip():
                return (value.strip(),)
        return tuple()


settings = Settings()
