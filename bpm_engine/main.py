"""Main entry point for the BPM engine server."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import settings
from .core.logging_config import configure_logging
from .engine.engine import WorkflowEngine
from .engine.node_registry import register_all_nodes
from .routes import api_router
from .schemas.common import HealthResponse, RootResponse

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    configure_logging(settings.log_level)
    register_all_nodes()

    if getattr(app.state, "engine", None) is not None:
        # Engine injected by create_app(engine=...)
        yield
        return

    http_client = httpx.AsyncClient(timeout=settings.http_timeout)
    db_engine = None

    if settings.store_backend == "sql":
        from .db import build_engine, build_session_factory, init_db
        from .repositories import SqlDefinitionRepository, SqlInstanceStore

        db_engine = build_engine()
        await init_db(db_engine)
        logger.info("Database initialized")
        session_factory = build_session_factory(db_engine)
        definitions = SqlDefinitionRepository(session_factory)
        store = SqlInstanceStore(session_factory)
    else:
        from .storage import InMemoryDefinitionStore, InMemoryInstanceStore

        definitions = InMemoryDefinitionStore()
        store = InMemoryInstanceStore()

    engine = WorkflowEngine(
        definitions,
        store,
        http_client=http_client,
        database=db_engine,
        settings=settings,
    )
    app.state.engine = engine

    if settings.recover_timers_on_startup:
        await engine.recover()

    logger.info("%s v%s started on http://%s:%s", settings.app_name, settings.app_version, settings.host, settings.port)
    logger.info("API documentation available at /docs")

    try:
        yield
    finally:
        await engine.shutdown()
        await http_client.aclose()
        if db_engine is not None:
            await db_engine.dispose()
        app.state.engine = None
        logger.info("%s stopped", settings.app_name)


def create_app(engine: WorkflowEngine | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description="BPM workflow engine - human tasks, timers and parallel branches",
        version=settings.app_version,
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.engine = engine

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

    # Include routers
    app.include_router(api_router)

    # Root endpoints
    @app.get("/", response_model=RootResponse)
    async def root() -> RootResponse:
        """Root endpoint."""
        return RootResponse(
            name=settings.app_name,
            version=settings.app_version,
            status="running",
        )

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        running = getattr(app.state, "engine", None) is not None
        return HealthResponse(
            status="healthy" if running else "starting",
            version=settings.app_version,
            engine_running=running,
            store_backend=settings.store_backend,
        )

    return app


# Create app instance
app = create_app()


def main() -> None:
    """Run the server."""
    uvicorn.run(
        "bpm_engine.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
    )


if __name__ == "__main__":
    main()
