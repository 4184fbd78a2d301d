"""
FastAPI Application Factory.

Local bridge that lets a UI process observe and drive the sync engine over
HTTP. It is responsible for:

1.  **Lifecycle**: building the `Engine` on startup (resuming pinned downloads
    on the server's event loop) and cancelling background tasks on shutdown.
2.  **Exception Handling**: structured JSON for engine and validation errors.
3.  **Routing**: mounting the offline/sync/library router and `/health`.

Tests pass ``engine_factory`` to run the app against fakes.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shelfsync import __version__
from shelfsync.api.routers import offline
from shelfsync.core.errors import (
    NetworkUnavailableError,
    RemoteServiceError,
    ShelfSyncError,
)
from shelfsync.core.settings import get_logger
from shelfsync.engine import Engine

logger = get_logger(__name__)


def create_app(engine_factory: Callable[[], Engine] | None = None) -> FastAPI:
    """
    Construct and configure the shelfsync FastAPI application.

    Parameters
    ----------
    engine_factory:
        Builds the engine at startup. Defaults to `Engine.from_settings`.
    """
    factory = engine_factory or Engine.from_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        engine = factory()
        await engine.start()
        app.state.engine = engine
        logger.info("shelfsync API ready (data dir %s)", engine.data_dir)
        try:
            yield
        finally:
            await engine.close()
            logger.info("shelfsync API stopped")

    app = FastAPI(
        title="shelfsync API",
        description="Offline copies and queued reading state for a document reader",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -----------------------------------------------------------------------
    # Exception handlers
    # -----------------------------------------------------------------------
    @app.exception_handler(ShelfSyncError)
    async def engine_error_handler(request: Request, exc: ShelfSyncError) -> JSONResponse:
        """Remote failures become 502/503; anything else from the engine is a 500."""
        status_code = 500
        if isinstance(exc, NetworkUnavailableError):
            status_code = 503
        elif isinstance(exc, RemoteServiceError):
            status_code = 502
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=status_code,
            content={"error": type(exc).__name__, "detail": str(exc), "path": request.url.path},
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        """Map ValueErrors (e.g. an unusable document id) to 400 Bad Request."""
        return JSONResponse(
            status_code=400,
            content={"error": "Bad Request", "detail": str(exc)},
        )

    # -----------------------------------------------------------------------
    # Routes
    # -----------------------------------------------------------------------
    app.include_router(offline.router)

    @app.get("/health", tags=["System"])
    async def health_check() -> dict[str, str]:
        """Simple liveness probe."""
        return {"status": "ok", "version": __version__}

    return app


__all__ = ["create_app"]
