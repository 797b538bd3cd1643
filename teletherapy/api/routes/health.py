"""Health check endpoints."""

import logging

from fastapi import APIRouter

from teletherapy import __version__
from teletherapy.core.database import ping_db

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check() -> dict:
    """Basic health check."""
    return {
        "status": "healthy",
        "service": "teletherapy-availability",
        "version": __version__,
    }


@router.get("/health/ready")
async def readiness_check() -> dict:
    """Readiness check - verifies the relational store answers."""
    try:
        await ping_db()
    except Exception as e:
        logger.warning(f"Readiness check failed: {e}")
        return {
            "status": "not_ready",
            "errors": [f"Database check failed: {e}"],
        }

    return {"status": "ready", "database": True}


@router.get("/health/live")
async def liveness_check() -> dict:
    """Liveness check - basic process health."""
    return {"status": "alive"}
