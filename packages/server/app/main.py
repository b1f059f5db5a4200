"""
Yoink API Server

Entry point for the FastAPI application.
"""

from __future__ import annotations

from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.admin import router as admin_router
from app.api.v1 import router as api_router
from app.core.auth import drain_refresh_tasks
from app.core.config import Settings, get_settings
from app.core.database import create_engine, create_session_factory, init_db
from app.core.deps import Services, build_services
from app.core.errors import GENERIC_SERVER_MESSAGE, ApiError, ErrorType, StorageFailure
from app.core.locks import LocalOrganizationLocks, RedisOrganizationLocks
from app.core.logging import configure_logging
from app.core.middleware import RequestContextMiddleware, SecurityHeadersMiddleware
from app.core.redis import close_redis, get_redis
from app.stores import memory_stores, sql_stores

log = structlog.get_logger()


def _error_response(error: ApiError) -> JSONResponse:
    return JSONResponse(status_code=error.status, content=error.to_body())


def create_app(
    services: Optional[Services] = None, settings: Optional[Settings] = None
) -> FastAPI:
    """Create and configure the FastAPI application.

    Tests pass a prebuilt ``services`` container; otherwise one is built
    from ``settings`` (memory stores when ``database_url`` is ``memory``).
    """
    settings = settings or (services.settings if services else get_settings())
    configure_logging(settings.log_level, settings.log_format)

    engine = None
    if services is None:
        locks = (
            RedisOrganizationLocks(get_redis(settings.redis_url))
            if settings.redis_url
            else LocalOrganizationLocks()
        )
        if settings.database_url == "memory":
            stores = memory_stores()
        else:
            engine = create_engine(settings.database_url, echo=settings.debug)
            stores = sql_stores(create_session_factory(engine))
        services = build_services(settings, stores, locks=locks)

    app = FastAPI(
        title="Yoink",
        description="Authentication and organization membership for Yoink.",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
        openapi_url="/openapi.json" if settings.debug else None,
    )
    app.state.services = services

    # Middleware (last added runs first)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )
    app.add_middleware(RequestContextMiddleware)

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        if exc.status >= 500:
            log.error("api.error", code=exc.code.value, status=exc.status)
        return _error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return _error_response(ApiError(ErrorType.VALIDATION_ERROR, message, 400))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        log.exception("api.unhandled_error", error_type=type(exc).__name__)
        return _error_response(ApiError(ErrorType.INTERNAL_ERROR, GENERIC_SERVER_MESSAGE, 500))

    app.include_router(api_router, prefix="/api")
    app.include_router(admin_router, prefix="/admin", tags=["Admin"])

    @app.get("/health", tags=["System"])
    async def health_check():
        """Liveness check."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness check: the stores answer a lookup."""
        try:
            await services.stores.users.get_by_email("ready@healthcheck.invalid")
        except StorageFailure:
            log.exception("ready.store_unavailable")
            return JSONResponse(status_code=503, content={"status": "unavailable"})
        return {"status": "ready"}

    @app.on_event("startup")
    async def on_startup():
        if engine is not None:
            await init_db(engine)
        log.info(
            "yoink.starting",
            stores="memory" if settings.database_url == "memory" else "sql",
            admin_enabled=services.admin is not None,
            redis_locks=bool(settings.redis_url),
        )

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("yoink.shutting_down")
        await drain_refresh_tasks()
        await close_redis()
        if engine is not None:
            await engine.dispose()

    return app


app = create_app()
