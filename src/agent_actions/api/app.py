"""FastAPI application factory for the action engine API."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from ..config import get_settings
from ..storage.database import dispose_engine, init_db
from .routes import (
    actions_router,
    agents_router,
    health_router,
    records_router,
    schedules_router,
)


def create_app() -> FastAPI:
    """Instantiate and configure the FastAPI application."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):  # noqa: ARG001 - signature requirement
        logging.basicConfig(level=get_settings().log_level)
        await init_db()
        try:
            yield
        finally:
            await dispose_engine()

    app = FastAPI(
        title="Agent Actions API",
        description="Run multi-step AI actions against records and schedule them",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(agents_router, prefix="/api/v1/agents", tags=["agents"])
    app.include_router(records_router, prefix="/api/v1/agents", tags=["records"])
    app.include_router(actions_router, prefix="/api/v1/actions", tags=["actions"])
    app.include_router(schedules_router, prefix="/api/v1/schedules", tags=["schedules"])
    app.include_router(health_router, tags=["health"])

    return app


__all__ = ["create_app"]
