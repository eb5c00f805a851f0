"""Application factory for the FastAPI app.

Centralizes app construction (metadata, limiter state, middleware,
handlers, routers) so each call yields an independent instance. Tests build
a fresh app per test instead of scrubbing shared limiter state.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api.routes import health_router, rate_limits_router
from app.core.config import AppSettings, settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware
from app.core.openapi import apply_openapi_customizations
from app.core.rate_limit import RateLimitRegistry, run_sweep_loop

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    interval = settings.app.rate_limit_sweep_interval_seconds
    task: asyncio.Task | None = None
    if interval > 0:
        task = asyncio.create_task(run_sweep_loop(app.state.rate_limiters, interval))
        logger.info("rate_limit.background_sweep_started", extra={"interval_s": interval})
    try:
        yield
    finally:
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task


def create_app(
    *,
    registry: RateLimitRegistry | None = None,
    app_settings: AppSettings | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        registry: Limiter registry to use; built from settings when omitted.
        app_settings: Settings used to build the registry.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Quota Guard API",
        description=(
            "Fixed-window rate limiting for write operations and HTTP endpoints. "
            "Checks return the remaining quota; rejections are HTTP 429 with a "
            "Retry-After header. /v1 routes require X-API-Key."
        ),
        version=settings.app.version,
        lifespan=lifespan,
    )

    app.state.rate_limiters = registry or RateLimitRegistry.from_settings(
        app_settings or settings.app
    )

    app.middleware("http")(request_id_middleware)
    setup_exception_handlers(app)

    app.include_router(rate_limits_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
