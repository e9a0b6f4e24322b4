"""Loop generation and reroute endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, status

from ...schemas.routing import LoopRequest, LoopResponse, RerouteRequest
from ...services.routing.errors import LoopRouteError
from ...services.routing.service import generate_loop, reroute_loop

router = APIRouter(tags=["loops"])

logger = logging.getLogger(__name__)


@router.post("/loop", response_model=LoopResponse, status_code=status.HTTP_200_OK)
def create_loop(payload: LoopRequest) -> LoopResponse:
    try:
        return generate_loop(payload)
    except LoopRouteError as exc:
        logger.warning(f"Loop generation failed: {exc.message} ({exc.details})")
        raise HTTPException(status_code=exc.status_code, detail=exc.to_detail()) from exc
    except Exception as exc:
        logger.exception(f"Error generating loop: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "Server error", "details": str(exc)},
        ) from exc


@router.post("/reroute", response_model=LoopResponse, status_code=status.HTTP_200_OK)
def reroute(payload: RerouteRequest) -> LoopResponse:
    """Re-plan a loop around blocked road segments."""
    try:
        return reroute_loop(payload)
    except LoopRouteError as exc:
        logger.warning(f"Reroute failed: {exc.message} ({exc.details})")
        raise HTTPException(status_code=exc.status_code, detail=exc.to_detail()) from exc
    except Exception as exc:
        logger.exception(f"Error rerouting loop: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "Server error", "details": str(exc)},
        ) from exc
