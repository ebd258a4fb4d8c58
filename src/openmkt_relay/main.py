# src/openmkt_relay/main.py
"""Main entry point for the OpenMkt relay service."""

from __future__ import annotations

import logging

import httpx
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from openmkt_relay.api.v1 import (
    admin_router,
    chat_router,
    marketplace_router,
    notify_router,
)
from openmkt_relay.core.errors import RelayServiceError
from openmkt_relay.core.logging import configure_logging
from openmkt_relay.core.settings import settings
from openmkt_relay.services.bot import BotAgentProvider
from openmkt_relay.services.chat_proxy import ChatProxy
from openmkt_relay.services.chat_sessions import ChatSessionStore
from openmkt_relay.services.maintenance import MaintenanceWorker
from openmkt_relay.services.rate_limiter import build_rate_limiter

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Bot-mediated buyer/seller introductions over AT Protocol chat",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Include API routers
app.include_router(notify_router, prefix="/api/v1")
app.include_router(chat_router, prefix="/api/v1")
app.include_router(marketplace_router, prefix="/api/v1")
app.include_router(admin_router, prefix="/api/v1")


@app.exception_handler(RelayServiceError)
async def relay_error_handler(_request: Request, exc: RelayServiceError) -> JSONResponse:
    """Render service errors as ``{"error": ...}`` bodies."""
    if exc.status_code >= 500:
        logger.warning("%s: %s (%s)", type(exc).__name__, exc.message, exc.details)
    return JSONResponse(exc.to_payload(), status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed requests with the same body shape as other errors."""
    return JSONResponse(
        {"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
        status_code=400,
    )


@app.on_event("startup")
async def on_startup() -> None:
    configure_logging()
    http_client = httpx.AsyncClient(timeout=httpx.Timeout(settings.http_timeout_seconds))
    rate_limiter = build_rate_limiter(settings)
    chat_sessions = ChatSessionStore()

    app.state.http_client = http_client
    app.state.rate_limiter = rate_limiter
    app.state.chat_sessions = chat_sessions
    app.state.chat_proxy = ChatProxy(chat_sessions, http_client)
    app.state.bot_provider = BotAgentProvider(settings)

    if not settings.bot_configured:
        logger.warning("BOT_HANDLE/BOT_APP_PASSWORD not set; relay endpoints will answer 503")

    worker = MaintenanceWorker(
        rate_limiter,
        chat_sessions,
        interval_seconds=settings.maintenance_interval_seconds,
        session_max_idle_seconds=settings.chat_session_max_idle_seconds,
    )
    await worker.start()
    app.state.maintenance_worker = worker


@app.on_event("shutdown")
async def on_shutdown() -> None:
    worker: MaintenanceWorker | None = getattr(app.state, "maintenance_worker", None)
    if worker:
        await worker.stop()
    bot_provider: BotAgentProvider | None = getattr(app.state, "bot_provider", None)
    if bot_provider:
        await bot_provider.close()
    http_client: httpx.AsyncClient | None = getattr(app.state, "http_client", None)
    if http_client:
        await http_client.aclose()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "description": "Bot-mediated buyer/seller introductions over AT Protocol chat",
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("openmkt_relay.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
