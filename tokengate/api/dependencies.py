"""Shared FastAPI dependencies."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from tokengate.gateway import Gateway


def get_gateway(request: Request) -> Gateway:
    """Return the gateway built during application startup."""
    gateway: Gateway | None = getattr(request.app.state, "gateway", None)
    if gateway is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Tokenization gateway not initialized",
        )
    return gateway
