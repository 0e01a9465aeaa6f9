"""
Main CLI application using Typer.
"""

import asyncio
from pathlib import Path
from typing import Annotated, Optional

import pendulum
import typer
from rich.console import Console
from rich.table import Table

from ..config import AppConfig, get_default_config_path
from ..container import Container, build_container
from ..domain.exceptions import SlotbookError
from ..logging_setup import configure_logging
from ..services.booking import BookingRequest

app = typer.Typer(
    name="slotbook",
    help="Publish weekly availability and book slots synced to external calendars",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml"),
]
MockOption = Annotated[
    bool,
    typer.Option("--mock", help="Use mock calendars and skip provider authentication."),
]


def _load(config_file: Optional[Path], mock: bool = False) -> Container:
    """Load configuration and wire the application, exiting on config errors."""
    try:
        config_path = config_file or get_default_config_path()
        config = AppConfig.load_from_yaml(config_path)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    configure_logging(config.log_level)
    if mock:
        console.print("[yellow]⚠  MOCK MODE: using mock calendar data[/yellow]\n")
    return build_container(config, mock=mock)


def _parse_instant(value: str, option: str):
    try:
        parsed = pendulum.parse(value)
    except ValueError as e:
        console.print(f"[red]Could not parse {option}: {e}[/red]")
        raise typer.Exit(1)
    return parsed.in_timezone("UTC")


@app.command()
def slots(
    seller: Annotated[str, typer.Argument(help="Seller id")],
    day: Annotated[Optional[str], typer.Option("--date", "-d", help="Date (YYYY-MM-DD), defaults to today")] = None,
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Show the bookable slots of a seller on one date.

    Examples:

        slotbook slots alice --date 2024-11-25
        slotbook slots alice --mock
    """
    container = _load(config_file, mock)
    tz = container.config.timezone

    try:
        target = pendulum.from_format(day, "YYYY-MM-DD") if day else pendulum.now(tz)
    except ValueError as e:
        console.print(f"[red]Could not parse date: {e}[/red]")
        raise typer.Exit(1)

    try:
        found = asyncio.run(container.availability.find_slots(seller_id=seller, day=target.date()))
    except SlotbookError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    if not found:
        console.print(f"[yellow]⚠ No bookable slots for {seller} on {target.format('YYYY-MM-DD')}.[/yellow]")
        return

    table = Table(
        title=f"Slots for {seller} on {target.format('dddd, YYYY-MM-DD')}",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Start (UTC)", style="bold yellow")
    table.add_column("End (UTC)")
    table.add_column(f"Local ({tz})", style="dim")

    for slot in found:
        local = slot.start.in_timezone(tz)
        table.add_row(
            slot.start.to_iso8601_string(),
            slot.end.to_iso8601_string(),
            local.format("HH:mm"),
        )

    console.print()
    console.print(table)
    console.print()


@app.command()
def book(
    seller: Annotated[str, typer.Argument(help="Seller id")],
    buyer: Annotated[str, typer.Option("--as", help="Id of the booking user")],
    start: Annotated[str, typer.Option("--start", help="Start instant (ISO 8601)")],
    end: Annotated[str, typer.Option("--end", help="End instant (ISO 8601)")],
    title: Annotated[str, typer.Option("--title", "-t", help="Meeting title")],
    description: Annotated[Optional[str], typer.Option("--description", help="Meeting description")] = None,
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Book a slot with a seller.
    """
    container = _load(config_file, mock)
    request = BookingRequest(
        seller_id=seller,
        start=_parse_instant(start, "--start"),
        end=_parse_instant(end, "--end"),
        title=title,
        description=description,
    )

    try:
        view = asyncio.run(container.booking.book(buyer, request))
    except SlotbookError as e:
        console.print(f"[bold red]Booking failed:[/bold red] {e}")
        raise typer.Exit(1)

    appointment = view.appointment
    console.print(f"\n[bold green]✓ Booked {appointment.title}[/bold green] ({appointment.id})")
    console.print(f"   {appointment.time_range}")
    console.print(f"   Meeting link: {appointment.meeting_link or '[dim]none[/dim]'}\n")


@app.command()
def appointments(
    user: Annotated[str, typer.Option("--as", help="Id of the user whose appointments to list")],
    config_file: ConfigOption = None,
):
    """
    List a user's appointments, newest first.
    """
    container = _load(config_file)
    principal = container.users.get(user)
    if principal is None:
        console.print(f"[bold red]Error:[/bold red] Unknown user '{user}'")
        raise typer.Exit(1)

    views = container.listing.list_for(principal)
    if not views:
        console.print("[yellow]No appointments.[/yellow]")
        return

    table = Table(title=f"Appointments of {principal.name}", show_header=True, header_style="bold cyan")
    table.add_column("When", style="bold yellow")
    table.add_column("Title")
    table.add_column("With")
    table.add_column("Status")
    table.add_column("Link", style="dim")

    for view in views:
        other = view.buyer if principal.is_seller else view.seller
        table.add_row(
            str(view.appointment.time_range),
            view.appointment.title,
            other.name if other else "?",
            view.appointment.status.value,
            view.appointment.meeting_link or "",
        )

    console.print()
    console.print(table)
    console.print()


@app.command()
def sellers(config_file: ConfigOption = None):
    """
    List sellers that have connected a calendar.
    """
    container = _load(config_file)
    found = container.users.list_sellers()
    if not found:
        console.print("[yellow]No sellers with a connected calendar.[/yellow]")
        return

    table = Table(title="Sellers", show_header=True, header_style="bold cyan")
    table.add_column("Id", style="bold yellow")
    table.add_column("Name")
    table.add_column("E-Mail", style="dim")
    for seller in found:
        table.add_row(seller.id, seller.name, seller.email)

    console.print()
    console.print(table)
    console.print()


@app.command()
def serve(
    host: Annotated[str, typer.Option("--host", help="Bind address")] = "127.0.0.1",
    port: Annotated[int, typer.Option("--port", help="Bind port")] = 8000,
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Run the HTTP API.
    """
    import uvicorn

    from ..api.app import create_app

    container = _load(config_file, mock)
    uvicorn.run(create_app(container), host=host, port=port, log_config=None)


@app.command()
def clear_credentials(
    user: Annotated[str, typer.Argument(help="Id of the user")],
    config_file: ConfigOption = None,
):
    """
    Remove stored refreshed calendar credentials of a user.
    """
    container = _load(config_file)
    if container.credential_store is None:
        console.print("[yellow]No credential store configured.[/yellow]")
        return

    container.credential_store.delete(user)
    console.print(f"\n[green]✓ Stored credentials of {user} removed.[/green]")
    console.print("The credentials from the config file are used on the next call.\n")


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]slotbook[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
