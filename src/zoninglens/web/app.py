"""FastAPI application for ZoningLens property lookups."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from zoninglens import __version__
from zoninglens.core.config import Settings
from zoninglens.core.request_log import configure_logging
from zoninglens.gis.formatters import FactSummarizer
from zoninglens.gis.service import PropertyLookupService
from zoninglens.web.lookup_router import router as lookup_router
from zoninglens.web.ratelimit import RateLimiter

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    service: PropertyLookupService | None = None,
    summarizer: FactSummarizer | None = None,
    rate_limiter: RateLimiter | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Uses the factory pattern so tests can create isolated app instances
    with a stubbed lookup service.

    Args:
        settings: Application settings. Defaults to Settings().
        service: Optional pre-built lookup service.
        summarizer: Optional prose summarizer for full property reports.
        rate_limiter: Optional limiter, e.g. one driven by a fake clock.

    Returns:
        A configured FastAPI instance.
    """
    if settings is None:
        settings = Settings()
    configure_logging(settings.log_level)

    owns_service = service is None
    if service is None:
        service = PropertyLookupService(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        if owns_service:
            await service.close()

    app = FastAPI(
        title="ZoningLens",
        description="Parcel, zoning, overlay and assessor lookups",
        version=__version__,
        debug=settings.debug,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.lookup_service = service
    app.state.summarizer = summarizer
    app.state.rate_limiter = rate_limiter or RateLimiter()
    app.state.rate_limit_config = settings.ratelimit

    @app.exception_handler(HTTPException)
    async def http_error(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"ok": False, "error": exc.detail},
            headers=exc.headers,
        )

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s", request.url.path)
        return JSONResponse(
            status_code=500,
            content={"ok": False, "error": str(exc) or "Lookup failed"},
        )

    app.include_router(lookup_router)
    return app


def main() -> None:
    """Serve the API: ``zoninglens`` or ``uvicorn zoninglens.web.app:create_app --factory``."""
    import uvicorn

    uvicorn.run("zoninglens.web.app:create_app", factory=True, host="127.0.0.1", port=8080)
