"""
Main CLI application using Typer.
"""

import asyncio
import logging
from pathlib import Path
from typing import Annotated, Optional, Tuple

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ..adapters.file_store import FileCalendarStore
from ..config import AppConfig, get_default_config_path
from ..domain.exceptions import ScheduleNotFound, SchedulingError, SlotBusy
from ..domain.models import WEEKDAY_NAMES, GERMAN_WEEKDAY_NAMES, ScheduleConfig, Slot
from ..domain.slot_generator import group_by_day
from ..domain.timezone import TimezoneOffset
from ..services.booking import BookingService

app = typer.Typer(
    name="meetslots",
    help="Publish availability and book meetings without double-booking",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml"),
]
VerboseOption = Annotated[bool, typer.Option("--verbose", "-v", help="Debug-Logging aktivieren.")]
GuestOption = Annotated[str, typer.Option("--guest", "-g", help="Teilnehmer-ID (E-Mail) des Gastes")]


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _load(config_file: Optional[Path], verbose: bool) -> Tuple[AppConfig, FileCalendarStore]:
    """Load config, set up logging and open the calendar data file."""
    config_path = config_file or get_default_config_path()
    config = AppConfig.load_from_yaml(config_path)
    _setup_logging("DEBUG" if verbose else config.log_level)

    store = FileCalendarStore(config.data_file, schedules=config.schedule_configs())
    return config, store


def _require_schedule(store: FileCalendarStore, schedule_id: str) -> ScheduleConfig:
    schedule = asyncio.run(store.get_schedule(schedule_id))
    if schedule is None:
        raise ScheduleNotFound(f"Schedule not found for {schedule_id}")
    return schedule


def _parse_slot(start: str, schedule: ScheduleConfig) -> Slot:
    """Parse ``YYYY-MM-DD HH:mm`` in the schedule's zone into a slot of meeting length."""
    try:
        wall = pendulum.from_format(start, "YYYY-MM-DD HH:mm", tz="UTC")
    except ValueError as e:
        raise typer.BadParameter(f"Ungültige Startzeit '{start}', erwartet YYYY-MM-DD HH:mm") from e

    # Read on the UTC axis, the result is the local-shifted wall time
    local = int(wall.timestamp() * 1000)
    start_ms = TimezoneOffset().local_to_instant(local, schedule.time_zone)
    if start_ms is None:
        raise typer.BadParameter(
            f"Startzeit '{start}' existiert in {schedule.time_zone} nicht (Zeitumstellung)"
        )
    return Slot(start=start_ms, end=start_ms + schedule.meeting_duration)


def _determine_period_start(
    *,
    tz: str,
    this_week: bool,
    next_week: bool,
    start_option: Optional[str],
) -> pendulum.DateTime:
    """
    Resolve the period start based on shortcut flags or an explicit date.
    """
    if this_week and next_week:
        console.print("[red]Fehler: --this-week und --next-week können nicht gleichzeitig verwendet werden.[/red]")
        raise typer.Exit(1)

    now = pendulum.now(tz)

    if this_week:
        return now.start_of("week")

    if next_week:
        return now.next(pendulum.MONDAY).start_of("day")

    if start_option:
        try:
            return pendulum.from_format(start_option, "YYYY-MM-DD", tz=tz).start_of("day")
        except ValueError as e:
            console.print(f"[red]Fehler beim Parsen des Startdatums: {e}[/red]")
            raise typer.Exit(1)

    return now.start_of("day")


@app.command()
def slots(
    schedule_id: Annotated[str, typer.Argument(help="ID des Terminplans")],
    config_file: ConfigOption = None,
    start: Annotated[Optional[str], typer.Option("--start", help="Start date (YYYY-MM-DD)")] = None,
    days: Annotated[Optional[int], typer.Option("--days", "-d", help="Anzahl Tage ab Start")] = None,
    this_week: Annotated[bool, typer.Option("--this-week", help="Suche in der aktuellen Woche.")] = False,
    next_week: Annotated[bool, typer.Option("--next-week", help="Suche in der kommenden Woche (Montag–Sonntag).")] = False,
    verbose: VerboseOption = False,
):
    """
    List free, bookable slots of a schedule.

    Examples:

        meetslots slots intro-call
        meetslots slots intro-call --next-week
        meetslots slots intro-call --start 2024-11-25 --days 3
    """
    try:
        config, store = _load(config_file, verbose)
        schedule = _require_schedule(store, schedule_id)
        tz = schedule.time_zone

        period_start = _determine_period_start(
            tz=tz, this_week=this_week, next_week=next_week, start_option=start
        )
        period_days = days if days is not None else (7 if this_week or next_week else config.defaults.period_days)

        service = BookingService(store)
        found = asyncio.run(
            service.list_timeslots(
                schedule_id,
                period_start=int(period_start.timestamp() * 1000),
                period_days=period_days,
                client_now=int(pendulum.now("UTC").timestamp() * 1000),
            )
        )

        console.print()
        if not found:
            console.print(
                "[yellow]⚠ Keine freien Zeitslots gefunden.[/yellow]\n"
                "Versuchen Sie einen längeren Zeitraum."
            )
            return

        console.print(f"[bold green]✓ {len(found)} freie Zeitslot(s) gefunden:[/bold green]\n")
        for day_start, day_slots in group_by_day(found, tz).items():
            day = pendulum.from_timestamp(day_start / 1000, tz=tz)
            weekday = GERMAN_WEEKDAY_NAMES[WEEKDAY_NAMES[day.isoweekday() % 7]]
            console.print(f"[bold]{weekday}, {day.format('DD.MM.YYYY')}[/bold]")
            times = "  ".join(
                pendulum.from_timestamp(s.start / 1000, tz=tz).format("HH:mm") for s in day_slots
            )
            console.print(f"  {times}")
        console.print()

    except (SchedulingError, FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Fehler:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def check(
    schedule_id: Annotated[str, typer.Argument(help="ID des Terminplans")],
    start: Annotated[str, typer.Argument(help="Slot-Beginn (YYYY-MM-DD HH:mm, Zeitzone des Plans)")],
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """
    Check whether a single slot is still free.
    """
    try:
        _, store = _load(config_file, verbose)
        schedule = _require_schedule(store, schedule_id)
        slot = _parse_slot(start, schedule)

        busy = asyncio.run(BookingService(store).check_slot(schedule_id, slot))
        if busy:
            console.print(f"[red]✗ Belegt:[/red] {slot.format_display(schedule.time_zone)}")
            raise typer.Exit(2)
        console.print(f"[green]✓ Frei:[/green] {slot.format_display(schedule.time_zone)}")

    except (SchedulingError, FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Fehler:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def book(
    schedule_id: Annotated[str, typer.Argument(help="ID des Terminplans")],
    start: Annotated[str, typer.Argument(help="Slot-Beginn (YYYY-MM-DD HH:mm, Zeitzone des Plans)")],
    guest: GuestOption,
    subject: Annotated[str, typer.Option("--subject", "-s", help="Betreff des Termins")] = "",
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """
    Book a meeting in a free slot.
    """
    try:
        _, store = _load(config_file, verbose)
        schedule = _require_schedule(store, schedule_id)
        slot = _parse_slot(start, schedule)

        event = asyncio.run(BookingService(store).book(schedule_id, slot, guest=guest, subject=subject))
        store.save()

        console.print(f"[bold green]✓ Termin gebucht:[/bold green] {slot.format_display(schedule.time_zone)}")
        console.print(f"  Event-ID: [bold]{event.event_id}[/bold]")

    except SlotBusy as e:
        console.print(f"[bold red]Fehler:[/bold red] {e} ({len(e.conflicts)} Konflikt(e))")
        raise typer.Exit(1)

    except (SchedulingError, FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Fehler:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def reschedule(
    schedule_id: Annotated[str, typer.Argument(help="ID des Terminplans")],
    event_id: Annotated[str, typer.Argument(help="ID des zu verschiebenden Termins")],
    start: Annotated[str, typer.Argument(help="Neuer Slot-Beginn (YYYY-MM-DD HH:mm)")],
    guest: GuestOption,
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """
    Move a booked meeting to another slot.
    """
    try:
        _, store = _load(config_file, verbose)
        schedule = _require_schedule(store, schedule_id)
        slot = _parse_slot(start, schedule)

        asyncio.run(BookingService(store).reschedule(schedule_id, event_id, slot, guest=guest))
        store.save()

        console.print(f"[bold green]✓ Termin verschoben:[/bold green] {slot.format_display(schedule.time_zone)}")

    except (SchedulingError, FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Fehler:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def cancel(
    schedule_id: Annotated[str, typer.Argument(help="ID des Terminplans")],
    event_id: Annotated[str, typer.Argument(help="ID des Termins")],
    guest: GuestOption,
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """
    Cancel a booked meeting.
    """
    try:
        _, store = _load(config_file, verbose)
        asyncio.run(BookingService(store).cancel(schedule_id, event_id, guest=guest))
        store.save()

        console.print(f"[green]✓ Termin {event_id} abgesagt.[/green]")

    except (SchedulingError, FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Fehler:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def list_schedules(
    config_file: ConfigOption = None,
):
    """
    List all configured schedules.
    """
    try:
        config_path = config_file or get_default_config_path()
        config = AppConfig.load_from_yaml(config_path)

        if not config.schedules:
            console.print("[yellow]Keine Terminpläne in der Config-Datei definiert.[/yellow]")
            return

        table = Table(
            title="Konfigurierte Terminpläne",
            show_header=True,
            header_style="bold cyan"
        )
        table.add_column("ID", style="bold yellow")
        table.add_column("Titel")
        table.add_column("Zeitzone", style="dim")
        table.add_column("Verfügbarkeit")

        for settings in config.schedules:
            availability = settings.describe_availability()
            described = "\n".join(
                f"{GERMAN_WEEKDAY_NAMES[WEEKDAY_NAMES[day]]}: {windows}"
                for day, windows in sorted(availability.items())
            )
            table.add_row(
                settings.id,
                settings.title,
                settings.timezone or config.timezone,
                described or "-",
            )

        console.print()
        console.print(table)
        console.print()

    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Fehler:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]meetslots[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
