"""FastAPI dependencies for the availability routes."""

from __future__ import annotations

import uuid

from fastapi import Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from teletherapy.availability.models import SessionSettings
from teletherapy.availability.service import AvailabilityService
from teletherapy.config import get_settings
from teletherapy.core.database import get_db


def get_availability_service(db: AsyncSession = Depends(get_db)) -> AvailabilityService:
    """Build a request-scoped service bound to the request's session."""
    settings = get_settings()
    return AvailabilityService(
        db,
        strict_validation=settings.availability_strict_validation,
        default_settings=SessionSettings(
            session_duration=settings.availability_default_session_duration,
            buffer_time=settings.availability_default_buffer_time,
            max_sessions_per_day=settings.availability_default_max_sessions_per_day,
        ),
    )


def parse_uuid(value: str, name: str = "ID") -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {name}: {value}")
