"""
Main CLI application using Typer.
"""

import asyncio
import logging
from pathlib import Path
from typing import Annotated, Optional

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ..adapters.json_store import JsonAppointmentStore
from ..adapters.rest_store import RestAppointmentStore
from ..config import AppConfig, get_default_config_path, load_config
from ..domain.availability import AvailabilityCalculator
from ..domain.clock import is_iso_date, today
from ..domain.exceptions import AppointmentSourceError
from ..domain.models import DayStatus, Service
from ..services.availability_service import AvailabilityService

app = typer.Typer(
    name="salonslots",
    help="Compute bookable salon appointment slots",
    add_completion=False
)

console = Console()

STATUS_STYLES = {
    DayStatus.MINE: "bold magenta",
    DayStatus.FULL: "red",
    DayStatus.PARTIAL: "yellow",
    DayStatus.AVAILABLE: "green",
    DayStatus.DISABLED: "dim",
}


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging.")] = False,
):
    """
    Salon appointment availability engine.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _load_config_or_exit(config_file: Optional[Path]) -> AppConfig:
    try:
        return load_config(config_file)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


def _build_source(config: AppConfig, config_file: Optional[Path], mock: bool):
    """Pick the JSON mock store or the hosted store."""
    if mock:
        return JsonAppointmentStore(config.resolve_mock_data_file(config_file or get_default_config_path()))

    if not config.store.is_configured():
        console.print(
            "[bold red]Error:[/bold red] store.url and store.api_key are not configured. "
            "Use --mock to run with sample data."
        )
        raise typer.Exit(1)

    return RestAppointmentStore(
        config.store.url,
        config.store.api_key,
        table=config.store.table,
        timeout=config.store.timeout_seconds,
    )


def _load_state(config: AppConfig, config_file: Optional[Path], mock: bool, viewer: Optional[str], service: Optional[Service]):
    calculator = AvailabilityCalculator.from_config(config)
    availability = AvailabilityService(
        _build_source(config, config_file, mock),
        calculator,
        viewer_id=viewer,
        service=service,
    )
    state = asyncio.run(availability.refresh())

    if state.error:
        console.print(f"[bold red]Error:[/bold red] {state.error}")
        raise typer.Exit(1)

    return calculator, state.snapshot


@app.command()
def slots(
    date: Annotated[str, typer.Argument(help="Day to check (YYYY-MM-DD)")],
    duration: Annotated[int, typer.Option("--duration", "-d", help="Service duration in minutes")],
    buffer: Annotated[Optional[int], typer.Option("--buffer", "-b", help="Service buffer in minutes (defaults to the fallback buffer)")] = None,
    viewer: Annotated[Optional[str], typer.Option("--viewer", help="Customer id viewing the calendar")] = None,
    config_file: Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")] = None,
    mock: Annotated[bool, typer.Option("--mock", help="Use mock appointment data instead of the hosted store.")] = False,
    explain: Annotated[bool, typer.Option("--explain", help="Show why each template slot was rejected.")] = False,
):
    """
    List bookable start times for one day.

    Examples:

        salonslots slots 2026-10-20 --duration 60 --mock

        salonslots slots 2026-10-20 -d 90 -b 30 --explain
    """
    if not is_iso_date(date):
        console.print(f"[bold red]Error:[/bold red] Invalid date '{date}', expected YYYY-MM-DD.")
        raise typer.Exit(1)

    config = _load_config_or_exit(config_file)
    service = Service(id="cli", duration_minutes=duration, buffer_minutes=buffer)
    if not service.is_offerable():
        console.print("[bold red]Error:[/bold red] --duration must be greater than zero.")
        raise typer.Exit(1)

    calculator, snapshot = _load_state(config, config_file, mock, viewer, service)

    if mock:
        console.print("[yellow]⚠  MOCK MODE: using sample appointment data[/yellow]\n")

    if explain:
        table = Table(title=f"Slots on {date} ({config.timezone})", show_header=True, header_style="bold cyan")
        table.add_column("Start", style="bold")
        table.add_column("Ends (with buffer)")
        table.add_column("Result")

        for decision in calculator.explain_slots(date, service, snapshot):
            end = decision.end.in_timezone(config.timezone).format("HH:mm") if decision.end else "-"
            result = "[green]bookable[/green]" if decision.accepted else f"[red]{decision.rejection.value}[/red]"
            table.add_row(decision.slot, end, result)

        console.print(table)
        return

    available = calculator.slots_for(date, service, snapshot)
    if not available:
        console.print(f"[yellow]⚠ No bookable slots on {date}.[/yellow]")
        return

    console.print(f"[bold green]✓ {len(available)} bookable slot(s) on {date}:[/bold green]\n")
    console.print("  " + "  ".join(available))


@app.command()
def calendar(
    month: Annotated[Optional[str], typer.Option("--month", "-m", help="Month to show (YYYY-MM). Defaults to the current month.")] = None,
    viewer: Annotated[Optional[str], typer.Option("--viewer", help="Customer id viewing the calendar")] = None,
    duration: Annotated[Optional[int], typer.Option("--duration", "-d", help="Classify days for a service of this duration")] = None,
    buffer: Annotated[Optional[int], typer.Option("--buffer", "-b", help="Service buffer in minutes")] = None,
    config_file: Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to config file")] = None,
    mock: Annotated[bool, typer.Option("--mock", help="Use mock appointment data instead of the hosted store.")] = False,
):
    """
    Show how each day of a month is classified.
    """
    config = _load_config_or_exit(config_file)

    if month:
        try:
            first_day = pendulum.from_format(month, "YYYY-MM", tz=config.timezone)
        except ValueError as e:
            console.print(f"[bold red]Error:[/bold red] Invalid month '{month}': {e}")
            raise typer.Exit(1)
    else:
        first_day = pendulum.parse(today(config.timezone), tz=config.timezone)

    service = None
    if duration is not None:
        service = Service(id="cli", duration_minutes=duration, buffer_minutes=buffer)

    calculator, snapshot = _load_state(config, config_file, mock, viewer, service)

    table = Table(
        title=f"{first_day.format('MMMM YYYY')} ({config.timezone})",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Date", style="bold")
    table.add_column("Weekday")
    table.add_column("Status")
    table.add_column("Bookable", justify="center")

    for cell in calculator.calendar_month(first_day.year, first_day.month, snapshot):
        weekday = pendulum.parse(cell.iso_date).format("ddd")
        style = STATUS_STYLES[cell.status]
        table.add_row(
            cell.iso_date,
            weekday,
            f"[{style}]{cell.status.value}[/{style}]",
            "no" if cell.is_disabled else "yes",
        )

    console.print()
    console.print(table)
    console.print()


@app.command()
def check_config(
    config_file: Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to config file")] = None,
    ping: Annotated[bool, typer.Option("--ping", help="Also check that the appointment store is reachable.")] = False,
):
    """
    Validate the configuration and print the effective settings.
    """
    config = _load_config_or_exit(config_file)

    table = Table(title="Effective configuration", show_header=True, header_style="bold cyan")
    table.add_column("Setting", style="bold yellow")
    table.add_column("Value")

    table.add_row("timezone", config.timezone)
    table.add_row("fallback_buffer_minutes", str(config.fallback_buffer_minutes))
    table.add_row("opening_time", config.schedule.opening_time)
    table.add_row("closing_time", config.schedule.closing_time)
    table.add_row("slot_step_minutes", str(config.schedule.slot_step_minutes))
    table.add_row("horizon_days", str(config.schedule.horizon_days))
    table.add_row("day_overrides", ", ".join(sorted(config.schedule.day_overrides)) or "-")
    table.add_row("store", config.store.url or "[dim]not configured[/dim]")

    console.print()
    console.print(table)
    console.print()

    if not ping:
        return

    if not config.store.is_configured():
        console.print("[bold red]✗ Error:[/bold red] store.url and store.api_key are not configured.")
        raise typer.Exit(1)

    store = RestAppointmentStore(
        config.store.url,
        config.store.api_key,
        table=config.store.table,
        timeout=config.store.timeout_seconds,
    )
    try:
        result = store.test_connection()
    except AppointmentSourceError as e:
        console.print(f"[bold red]✗ Error:[/bold red] {e}\n")
        raise typer.Exit(1)

    console.print(f"[bold green]✓ Store reachable[/bold green] ({result['url']}, HTTP {result['status_code']})\n")


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]salonslots[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
