"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, status

from ...config import settings

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


def _get_provider_health_check():
    """Lazy import to avoid startup failures."""
    from ...services.routing.ors_client import check_health as provider_health_check
    return provider_health_check


@router.get("/health/provider", status_code=status.HTTP_200_OK)
def health_provider() -> dict:
    """Report whether the routing provider is configured."""
    try:
        provider_health_check = _get_provider_health_check()
        return {
            "service": "openrouteservice",
            "configured": provider_health_check(settings),
            "profile": settings.ors_profile,
        }
    except Exception as e:
        return {"service": "openrouteservice", "configured": False, "error": str(e)}
