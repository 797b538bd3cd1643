"""FastAPI application for the teletherapy availability service."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from teletherapy import __version__
from teletherapy.api.middleware import APIKeyMiddleware, RequestLoggingMiddleware
from teletherapy.api.routes import availability, health
from teletherapy.config import get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info(
        "Starting availability API v%s (strict validation %s)",
        __version__, "on" if settings.availability_strict_validation else "off",
    )
    if settings.uses_sqlite:
        # Local SQLite databases have no migrations; create tables on boot.
        from teletherapy.core.database import init_db

        await init_db()
    yield
    logger.info("Availability API stopped")


def create_app() -> FastAPI:
    """Build the application: CORS, logging, optional API key, routers."""
    settings = get_settings()

    app = FastAPI(
        title="Teletherapy Availability API",
        description="Therapist weekly schedules, date overrides and bookable slots",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "PUT", "POST", "DELETE"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)
    if settings.api_key:
        app.add_middleware(APIKeyMiddleware, api_key=settings.api_key)

    app.include_router(health.router, tags=["health"])
    app.include_router(availability.router, prefix="/api/v1", tags=["availability"])

    def _detail(exc: Exception):
        return str(exc) if settings.debug_mode else None

    @app.exception_handler(SQLAlchemyError)
    async def store_error_handler(request: Request, exc: SQLAlchemyError):
        logger.error("Scheduling store error on %s: %s", request.url.path, exc)
        return JSONResponse(
            status_code=503,
            content={"error": "Scheduling store unavailable", "detail": _detail(exc)},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception on %s", request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "detail": _detail(exc)},
        )

    return app
