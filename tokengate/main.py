"""FastAPI application entry point — wires the gateway, database and routes.

Usage:
    python -m tokengate.main
"""

from __future__ import annotations

import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tokengate.api.records import router as records_router
from tokengate.audit.events import emit, event_bus, subscribe
from tokengate.audit.logger import audit_on_event
from tokengate.config import settings
from tokengate.db.engine import db_lifespan
from tokengate.gateway import (
    AuthenticationError,
    ConfigurationError,
    GatewayError,
    TransportError,
    build_gateway,
)
from tokengate.schemas.events import EventType, SystemEvent

# ── Logging setup ────────────────────────────────────────────────────

logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    stream=sys.stdout,
)
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = logging.getLogger(__name__)

# ── FastAPI lifespan ─────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info("Starting tokengate (env=%s)", settings.environment)

    # Fail fast on a broken credentials file, before touching the database
    gateway = build_gateway()
    app.state.gateway = gateway

    async with db_lifespan():
        logger.info("Database initialized")

        subscribe(audit_on_event)
        await event_bus.start()
        await emit(SystemEvent(event_type=EventType.SYSTEM_STARTUP, actor_id="system", source_module="main"))

        try:
            yield
        finally:
            logger.info("Shutting down tokengate...")
            await emit(SystemEvent(event_type=EventType.SYSTEM_SHUTDOWN, actor_id="system", source_module="main"))
            await event_bus.stop()
            await gateway.aclose()
            logger.info("Gateway HTTP client closed")

    logger.info("tokengate shutdown complete")


# ── FastAPI app ──────────────────────────────────────────────────────

app = FastAPI(
    title="tokengate API",
    description="Record storage with role-gated tokenization of personal fields",
    version="0.1.0",
    lifespan=lifespan,
)
app.include_router(records_router)


def _status_for(exc: GatewayError) -> int:
    if isinstance(exc, ConfigurationError):
        return 500
    if isinstance(exc, (AuthenticationError, TransportError)):
        return 502
    return 500


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    """Map gateway failures that reach the boundary to 5xx JSON responses."""
    logger.error("Gateway error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=_status_for(exc),
        content={"error": "Tokenization gateway failure", "message": str(exc)},
    )


@app.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "ok", "environment": settings.environment}


# ── Entry point ──────────────────────────────────────────────────────

if __name__ == "__main__":
    uvicorn.run(
        "tokengate.main:app",
        host="0.0.0.0",
        port=3001,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower(),
    )
