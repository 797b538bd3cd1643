"""Main entry point for the teletherapy availability service."""

import logging
import sys
import uuid
from datetime import date

from teletherapy.config import get_settings


def setup_logging():
    """Configure logging from ``LOG_LEVEL``; SQL echo only in debug mode."""
    settings = get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.debug_mode else logging.WARNING
    )


def main():
    """Main entry point - runs CLI."""
    setup_logging()

    from teletherapy.cli.commands import app

    app()


async def bookable_slots(therapist_id: str, day: str):
    """Programmatic API for a one-off slot lookup.

    Example:
        import asyncio
        from teletherapy.main import bookable_slots

        slots = asyncio.run(bookable_slots(
            "bbbbbbbb-bbbb-bbbb-bbbb-bbbbbbbbbbbb", "2025-03-10",
        ))
    """
    from teletherapy.api.dependencies import get_availability_service
    from teletherapy.core.database import session_scope

    tid = uuid.UUID(therapist_id)
    target = date.fromisoformat(day)

    async with session_scope() as session:
        service = get_availability_service(session)
        return await service.get_bookable_slots(tid, target)


if __name__ == "__main__":
    main()
