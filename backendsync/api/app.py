"""FastAPI application factory for the backendsync admin API.

Usage::

    from backendsync.api.app import create_app

    app = create_app(registry=registry, tracker=tracker, session=session, config=config)

The factory is used by both the production bootstrap (``backendsync.app``)
and the tests.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from backendsync.api.routes import router
from backendsync.api.schemas import ErrorResponse

_log = structlog.get_logger(component="api.app")

_API_PREFIX = "/api/v1"


def create_app(
    registry: Any,
    tracker: Any,
    session: Any = None,
    config: Any = None,
) -> FastAPI:
    """Create and configure the admin FastAPI application.

    Args:
        registry: RegistryAdapter the loop writes to.
        tracker:  PodStateTracker owned by the loop (read-only here).
        session:  WatchSessionManager, for health reporting.
        config:   BackendSyncConfig.  Used for the namespace.
    """
    from backendsync import __version__

    namespace = ""
    if config is not None and hasattr(config, "cluster"):
        namespace = config.cluster.namespace

    app = FastAPI(
        title="backendsync",
        summary="Cluster-driven proxy backend discovery",
        version=__version__,
        docs_url="/api/v1/docs",
        redoc_url=None,
        openapi_url="/api/v1/openapi.json",
    )

    app.state.registry = registry
    app.state.tracker = tracker
    app.state.session = session
    app.state.config = config
    app.state.namespace = namespace

    app.include_router(router, prefix=_API_PREFIX)

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Catch-all for unhandled exceptions; never expose stack traces."""
        _log.error(
            "unhandled_exception",
            path=str(request.url.path),
            method=request.method,
            error=str(exc),
        )
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="INTERNAL_ERROR",
                detail="An unexpected error occurred.",
            ).model_dump(),
        )

    return app
