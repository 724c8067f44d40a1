"""
FastAPI application factory.

``create_app()`` wires the runtime, middleware, error handlers and routers
into a single ``FastAPI`` instance::

    uvicorn.run("enginebridge.api:create_app", factory=True)

Tests pass their own settings (and optionally a prebuilt runtime with a
scripted engine)::

    app = create_app(settings=BridgeAPISettings(data_dir=tmp_path))
    with TestClient(app) as client:
        client.get("/health")
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from enginebridge.api.deps import get_settings
from enginebridge.api.middleware.cors import PermissiveCORSMiddleware
from enginebridge.api.middleware.errors import (
    bridge_error_handler,
    http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from enginebridge.api.middleware.timing import TimingMiddleware
from enginebridge.api.settings import BridgeAPISettings
from enginebridge.core.errors import BridgeError
from enginebridge.core.logging import configure_logging, get_logger
from enginebridge.runtime import BridgeRuntime, build_runtime

log = get_logger("enginebridge.api")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan -- the runtime is closed on shutdown."""
    runtime: BridgeRuntime = app.state.runtime
    log.info("bridge_api_starting", version=app.version, engine=runtime.engine.name)
    try:
        yield
    finally:
        log.info("bridge_api_stopping", jobs=len(runtime.registry))
        runtime.close()


def create_app(
    *,
    settings: BridgeAPISettings | None = None,
    runtime: BridgeRuntime | None = None,
) -> FastAPI:
    """Build and return a fully-configured FastAPI application.

    Parameters
    ----------
    settings : BridgeAPISettings | None
        Override settings (useful for testing).  When ``None`` the cached
        singleton from :func:`get_settings` is used.
    runtime : BridgeRuntime | None
        Prebuilt runtime; built from *settings* when omitted.
    """
    settings = settings or get_settings()
    configure_logging(
        level="DEBUG" if settings.debug else settings.log_level,
        json_format=settings.log_json,
    )
    runtime = runtime or build_runtime(settings)

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.docs_enabled else None,
        redoc_url=None,
        openapi_url="/openapi.json" if settings.docs_enabled else None,
    )

    app.state.settings = settings
    app.state.runtime = runtime
    app.dependency_overrides[get_settings] = lambda: settings

    # ── Middleware (last added is outermost) ─────────────────────────
    app.add_middleware(TimingMiddleware)
    app.add_middleware(PermissiveCORSMiddleware, allow_origin=settings.cors_allow_origin)

    # ── Exception handlers ───────────────────────────────────────────
    app.add_exception_handler(BridgeError, bridge_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # ── Routers ──────────────────────────────────────────────────────
    from enginebridge.api.routers import catalog, datasets, discovery, jobs, programs

    app.include_router(discovery.router, tags=["discovery"])
    app.include_router(catalog.router, tags=["catalog"])
    app.include_router(datasets.router, tags=["datasets"])
    app.include_router(programs.router, tags=["programs"])
    app.include_router(jobs.router, tags=["jobs"])

    return app
