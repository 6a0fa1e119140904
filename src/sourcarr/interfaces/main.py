"""FastAPI application factory (build_app)."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.responses import Response

from sourcarr import __version__
from sourcarr.domain.entities.errors import (
    CatalogError,
    ManifestFetchError,
    SessionClosedError,
    SourceNotFoundError,
)
from sourcarr.infrastructure.config import AppConfig
from sourcarr.interfaces.app_state import AppState
from sourcarr.interfaces.composition import lifespan

log = structlog.get_logger(__name__)


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(SourceNotFoundError)
    async def _source_not_found(
        request: Request, exc: SourceNotFoundError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=404,
            content={"error": "source_not_found", "detail": str(exc)},
        )

    @app.exception_handler(SessionClosedError)
    async def _session_closed(request: Request, exc: SessionClosedError) -> JSONResponse:
        return JSONResponse(
            status_code=409,
            content={"error": "session_closed", "detail": str(exc)},
        )

    @app.exception_handler(CatalogError)
    async def _catalog_failed(request: Request, exc: CatalogError) -> JSONResponse:
        return JSONResponse(
            status_code=502,
            content={"error": "catalog_unavailable", "detail": str(exc)},
        )

    @app.exception_handler(ManifestFetchError)
    async def _manifest_failed(request: Request, exc: ManifestFetchError) -> JSONResponse:
        return JSONResponse(
            status_code=502,
            content={"error": "manifest_unavailable", "detail": str(exc)},
        )


def build_app(config: AppConfig) -> FastAPI:
    """Build FastAPI app - configuration ONLY, NO resource initialization.

    Resources (HTTP client, cache, session factory) are created in lifespan().
    """
    app = FastAPI(
        title="Sourcarr",
        description="Multi-provider video source resolution",
        version=__version__,
        lifespan=lifespan,
    )

    app.state = AppState()
    app.state.config = config

    _register_error_handlers(app)

    from sourcarr.interfaces.api.manifest.router import router as manifest_router
    from sourcarr.interfaces.api.search.router import router as search_router
    from sourcarr.interfaces.api.sessions.router import router as sessions_router
    from sourcarr.interfaces.api.stats.router import router as stats_router

    app.include_router(sessions_router, prefix="/api/v1")
    app.include_router(search_router, prefix="/api/v1")
    app.include_router(manifest_router, prefix="/api/v1")
    app.include_router(stats_router, prefix="/api/v1")

    @app.get("/api/v1/healthz")
    async def healthz() -> dict[str, str | int]:
        """Liveness probe - returns 200 as long as the process is running."""
        registry = getattr(app.state, "registry", None)
        return {
            "status": "ok",
            "sessions": len(registry) if registry is not None else 0,
        }

    @app.middleware("http")
    async def log_requests(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ):
        start = time.perf_counter()
        try:
            response = await call_next(request)
            return response
        finally:
            duration_ms = (time.perf_counter() - start) * 1000.0
            status_code = getattr(locals().get("response", None), "status_code", 500)

            log.info(
                "http_request",
                method=request.method,
                path=request.url.path,
                query=str(request.url.query),
                status_code=status_code,
                duration_ms=round(duration_ms, 2),
                client_host=(request.client.host if request.client else None),
            )

    return app
