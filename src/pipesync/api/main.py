"""FastAPI application factory."""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlmodel import SQLModel

from pipesync.api.routes import mappings
from pipesync.db.engine import get_engine


def create_app() -> FastAPI:
    """Build and return the FastAPI app."""

    engine = get_engine()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Create tables on startup (idempotent)
        SQLModel.metadata.create_all(engine)
        yield

    app = FastAPI(
        title="pipesync API",
        description="Sync mapping state and on-demand pulls",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(mappings.router, prefix="/mappings", tags=["mappings"])

    return app
