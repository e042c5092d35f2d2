"""FastAPI application factory."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from peoplesync.config.logging import setup_logging
from peoplesync.config.settings import Settings, get_settings
from peoplesync.storage.database import create_engine
from peoplesync.web.dependencies import build_services
from peoplesync.web.health import VERSION, check_health
from peoplesync.web.middleware import RequestIDMiddleware
from peoplesync.web.routes.auth import router as auth_router
from peoplesync.web.routes.users import router as users_router
from peoplesync.web.routes.webhooks import router as webhook_router

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from peoplesync.services.exchange import IdentityVerifier

logger = structlog.get_logger(__name__)


def create_app(
    settings: Settings | None = None,
    engine: AsyncEngine | None = None,
    identity_verifier: IdentityVerifier | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Missing secrets or database URL raise ConfigError here, before the
    server accepts a single request.
    """
    if settings is None:
        settings = get_settings()
    else:
        settings.validate_required()
    setup_logging(log_level=settings.log_level, json_output=not settings.debug)

    owns_engine = engine is None
    if engine is None:
        engine = create_engine(settings.database_url or "", echo=settings.debug)
    services = build_services(settings, engine, identity_verifier=identity_verifier)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        yield
        if owns_engine:
            await services.engine.dispose()

    app = FastAPI(
        title="PeopleSync",
        description="Identity synchronization and tenant authorization for the HR platform",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.services = services

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled_error", path=request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    # Middleware: last added runs first
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    )
    app.add_middleware(RequestIDMiddleware)

    # Public routes: signature-verified webhooks and token exchange
    app.include_router(webhook_router)
    app.include_router(auth_router)

    @app.get("/api/health")
    async def health_check() -> dict[str, object]:
        return await check_health(services.engine)

    # Every route in users_router declares the tenant gate dependency itself
    app.include_router(users_router)

    logger.info("app_created")
    return app
