"""Prior Authorization Review Pipeline: FastAPI entry point."""
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional
import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from priorauth import __version__
from priorauth.config.settings import Settings, get_settings, build_rng
from priorauth.config.logging_config import setup_logging, get_logger
from priorauth.storage.database import create_engine_for_url, create_session_factory, init_db
from priorauth.storage.seed_data import seed_reference_data
from priorauth.storage.sql_store import SqlPriorAuthStore, SqlReferenceDataSource
from priorauth.mcp.tools import build_tool_registry
from priorauth.pipeline.processor import PipelineProcessor
from priorauth.api.routes import prior_auth, tools, websocket

logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Application settings (defaults to the cached environment settings)

    Returns:
        Configured FastAPI app; collaborators are created in the lifespan
    """
    settings = settings or get_settings()
    setup_logging(log_level=settings.log_level, json_logs=settings.log_json)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Database, seed data, tool registry and pipeline processor."""
        logger.info("Starting Prior Authorization Pipeline", env=settings.app_env)

        engine = create_engine_for_url(settings.database_url)
        session_factory = create_session_factory(engine)
        await init_db(engine)

        if settings.seed_demo_data:
            await seed_reference_data(session_factory)

        rng = build_rng(settings)
        store = SqlPriorAuthStore(session_factory)
        registry = build_tool_registry(SqlReferenceDataSource(session_factory), rng=rng, settings=settings)

        app.state.settings = settings
        app.state.store = store
        app.state.registry = registry
        app.state.processor = PipelineProcessor(store, registry, rng=rng, settings=settings)
        logger.info("Pipeline ready", tools=len(registry))

        yield

        logger.info("Shutting down Prior Authorization Pipeline")
        await engine.dispose()

    app = FastAPI(
        title="Prior Authorization Pipeline",
        description="Prior authorization review through sensing, planning, tool orchestration and decision",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Accept", "X-Requested-With"],
    )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        error_id = str(uuid.uuid4())[:8]
        logger.error("Unhandled exception", error_id=error_id, error=str(exc), path=request.url.path, exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Internal server error", "error_id": error_id})

    # Routes
    app.include_router(prior_auth.router, prefix="/api/v1")
    app.include_router(tools.router, prefix="/api/v1")
    app.include_router(websocket.router)

    @app.get("/health")
    async def health_check(request: Request):
        processor: Optional[PipelineProcessor] = getattr(request.app.state, "processor", None)
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": __version__,
            "components": {
                "database": True,
                "tools": len(processor.registry) if processor else 0,
                "in_flight": len(processor.in_flight) if processor else 0,
            },
        }

    @app.get("/")
    async def root():
        return {
            "name": "Prior Authorization Pipeline",
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("priorauth.main:app", host="0.0.0.0", port=8002, reload=True)
