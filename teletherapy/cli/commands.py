"""CLI commands for the teletherapy availability service."""

import asyncio
import uuid
from datetime import date

import typer
from rich.console import Console
from rich.table import Table

from teletherapy.availability.models import BookableSlot, TimeSlot, WeeklyAvailability
from teletherapy.availability.slots import generate_time_slots, is_valid_time

app = typer.Typer(
    name="teletherapy",
    help="Therapist availability, date overrides and bookable slots",
    add_completion=False,
)
console = Console()


def _parse_therapist_id(value: str) -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError:
        console.print(f"[red]Invalid therapist id: {value}[/red]")
        raise typer.Exit(1)


async def _with_service(fn):
    """Run ``fn(service)`` in one unit of work."""
    from teletherapy.api.dependencies import get_availability_service
    from teletherapy.core.database import session_scope

    async with session_scope() as session:
        return await fn(get_availability_service(session))


def _slot_table(title: str, slots: list[TimeSlot]) -> Table:
    table = Table(title=title)
    table.add_column("#", justify="right")
    table.add_column("Start")
    table.add_column("End")
    table.add_column("Minutes", justify="right")
    table.add_column("Type")
    for i, slot in enumerate(slots, start=1):
        table.add_row(str(i), slot.start or "-", slot.end or "-", str(slot.duration), slot.type.value)
    return table


def _display_availability(availability: WeeklyAvailability) -> None:
    table = Table(title="Weekly Availability")
    table.add_column("Day")
    table.add_column("Enabled")
    table.add_column("Slots")
    if availability.standard_hours is not None:
        for name, day in availability.standard_hours.days():
            enabled = "[green]yes[/green]" if day.enabled else "[dim]no[/dim]"
            slots = ", ".join(f"{s.start}-{s.end}" for s in day.time_slots) or "-"
            table.add_row(name.capitalize(), enabled, slots)
    console.print(table)

    settings = availability.session_settings
    if settings is not None:
        console.print(
            f"Session: {settings.session_duration} min, buffer {settings.buffer_time} min, "
            f"max {settings.max_sessions_per_day}/day"
        )


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", "--host", "-h", help="Host to bind"),
    port: int = typer.Option(8080, "--port", "-p", help="Port to bind"),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload"),
):
    """Start the REST API server."""
    import uvicorn

    console.print(f"Starting availability API server on {host}:{port}")
    uvicorn.run(
        "teletherapy.api.app:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
    )


@app.command()
def init_db():
    """Create the scheduling tables (development databases only)."""
    from teletherapy.core.database import init_db as _init_db

    asyncio.run(_init_db())
    console.print("[green]Scheduling tables created[/green]")


@app.command()
def version():
    """Show version information."""
    from teletherapy import __version__

    console.print(f"Teletherapy Availability v{__version__}")


@app.command()
def generate_slots(
    start: str = typer.Argument(..., help="Window start, HH:MM"),
    end: str = typer.Argument(..., help="Window end, HH:MM"),
    duration: int = typer.Option(60, "--duration", "-d", help="Session length in minutes"),
    buffer: int = typer.Option(0, "--buffer", "-b", help="Minutes between sessions"),
):
    """Preview the sessions a working window produces."""
    if not (is_valid_time(start) and is_valid_time(end)):
        console.print("[red]Times must be HH:MM[/red]")
        raise typer.Exit(1)
    if duration <= 0 or buffer < 0:
        console.print("[red]Duration must be positive and buffer non-negative[/red]")
        raise typer.Exit(1)

    slots = generate_time_slots(start, end, duration, buffer)
    console.print(_slot_table(f"{len(slots)} sessions between {start} and {end}", slots))


@app.command()
def show_availability(
    therapist_id: str = typer.Argument(..., help="Therapist UUID"),
    output_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Show a therapist's effective weekly schedule."""
    tid = _parse_therapist_id(therapist_id)
    availability = asyncio.run(_with_service(lambda svc: svc.get_therapist_availability(tid)))

    if output_json:
        console.print(availability.model_dump_json(indent=2))
    else:
        _display_availability(availability)


@app.command()
def slots(
    therapist_id: str = typer.Argument(..., help="Therapist UUID"),
    day: str = typer.Argument(..., help="Date, YYYY-MM-DD"),
):
    """List bookable slots for a therapist on a date."""
    tid = _parse_therapist_id(therapist_id)
    try:
        target = date.fromisoformat(day)
    except ValueError:
        console.print("[red]Invalid date format. Use YYYY-MM-DD format.[/red]")
        raise typer.Exit(1)

    bookable: list[BookableSlot] = asyncio.run(
        _with_service(lambda svc: svc.get_bookable_slots(tid, target))
    )
    if not bookable:
        console.print(f"[yellow]No available slots on {target.isoformat()}[/yellow]")
        return

    table = Table(title=f"Bookable slots on {target.isoformat()}")
    table.add_column("Start")
    table.add_column("End")
    table.add_column("Type")
    table.add_column("Override")
    for slot in bookable:
        table.add_row(slot.start_time, slot.end_time, slot.session_type.value, "yes" if slot.is_override else "")
    console.print(table)
