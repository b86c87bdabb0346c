"""
Taskweave API Server

Entry point for the FastAPI application.
"""

import asyncio

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from app.core.config import get_settings
from app.core.database import engine
from app.core.errors import register_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import RequestContextMiddleware, SecurityHeadersMiddleware
from app.core.redis import close_redis, get_redis
from app.api.v1 import router as api_v1_router

settings = get_settings()
log = structlog.get_logger()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="Taskweave",
        description="Team task tracking with dependency graphs.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # One writer at a time on task_dependencies within this process.
    app.state.dependency_write_lock = asyncio.Lock()

    # Middleware: the last one added is outermost
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    )
    app.add_middleware(RequestContextMiddleware)

    register_exception_handlers(app)

    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness check: the database must answer, Redis only if fan-out is on."""
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        if settings.activity_pubsub_enabled:
            await (await get_redis()).ping()
        return {"status": "ready"}

    @app.on_event("startup")
    async def on_startup():
        log.info("taskweave.starting", pubsub=settings.activity_pubsub_enabled)

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("taskweave.stopping")
        await close_redis()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host=settings.host, port=settings.port, log_level=settings.log_level)
