"""Routing error types surfaced to the HTTP layer."""

from __future__ import annotations

from typing import Optional


class LoopRouteError(Exception):
    """Base error carrying a human-readable message, details and an HTTP status."""

    status_code = 500

    def __init__(self, message: str, details: Optional[str] = None, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        if status_code is not None:
            self.status_code = status_code

    def to_detail(self) -> dict:
        return {"message": self.message, "details": self.details}


class RateLimited(LoopRouteError):
    """Provider signaled throttling."""

    status_code = 429


class ProviderRequestFailed(LoopRouteError):
    status_code = 502


class NoRouteFound(LoopRouteError):
    status_code = 502


class NoAvoidablePath(LoopRouteError):
    """No blocked segment could be turned into an avoidance polygon."""

    status_code = 400


class InvalidInput(LoopRouteError):
    status_code = 400
