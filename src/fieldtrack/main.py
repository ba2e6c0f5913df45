"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.routes import health, tracking
from .config import settings
from .data import position_repository
from .services.tracking.session import TrackingRegistry


def _log_recalculation(entity_id: str) -> None:
    logging.info(f"Route recalculation requested for {entity_id}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    source = await position_repository.build_position_source()
    registry = None
    if source is not None:
        registry = TrackingRegistry(
            source,
            poll_interval_ms=settings.poll_interval_ms,
            on_recalculate=_log_recalculation,
        )
    app.state.registry = registry
    try:
        yield
    finally:
        if registry is not None:
            await registry.close()


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.app_name,
        lifespan=lifespan,
    )
    if settings.frontend_allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.frontend_allowed_origins),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Root endpoint for diagnostics
    @app.get("/")
    def root():
        return {
            "service": settings.app_name,
            "status": "running",
            "api_prefix": settings.api_prefix,
            "health": f"{settings.api_prefix}/health",
            "docs": "/docs",
        }

    app.include_router(health.router, prefix=settings.api_prefix)
    app.include_router(tracking.router, prefix=settings.api_prefix)
    return app


app = create_app()
