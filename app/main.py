"""FastAPI application factory."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.config import configure_structlog, get_settings
from app.db.session import dispose_engine
from app.error_handlers import register_exception_handlers
from app.middleware import RequestLoggingMiddleware
from app.routers import admin, auth, health


@asynccontextmanager
async def _lifespan(_: FastAPI) -> AsyncIterator[None]:
    yield
    await dispose_engine()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    configure_structlog(settings)

    app = FastAPI(title=settings.app.service, lifespan=_lifespan)
    app.add_middleware(RequestLoggingMiddleware)
    register_exception_handlers(app, environment=settings.app.environment)

    app.include_router(auth.router)
    app.include_router(admin.router)
    app.include_router(health.router)
    return app


app = create_app()
