"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) to
improve testability compared to a monolithic main.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api.routes import health_router, power_router
from app.api.routes.power import close_power_usage_provider
from app.core.config import settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware
from app.core.openapi import apply_openapi_customizations
from app.core.rate_limit import validate_rate_limit_config


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    await close_power_usage_provider()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.

    Raises:
        ConfigurationAppError: If the rate limit configuration is invalid.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    # Fail fast on nonsensical quotas or a missing signing secret
    validate_rate_limit_config()

    app = FastAPI(
        title="Blockchain Power Usage API",
        description=(
            "Estimates the current power draw of blockchain networks from public "
            "hashrate and node statistics. Requests are admitted per client under "
            "sliding-window quotas (per minute and per day) and report "
            "X-Rate-Limit-* headers."
        ),
        version="0.1.0",
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
        lifespan=lifespan,
    )

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(power_router, prefix="/v1")
    app.include_router(health_router)

    # OpenAPI customizations (tags, rate limit headers)
    apply_openapi_customizations(app)

    return app
