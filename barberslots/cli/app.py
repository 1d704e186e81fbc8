"""
Main CLI application using Typer.
"""

import asyncio
import json
from pathlib import Path
from typing import Annotated, Awaitable, Callable, List, NoReturn, Optional, TypeVar, Union

import pendulum
import typer
from rich.console import Console
from rich.table import Table

from ..adapters.memory_store import MemoryBookingStore
from ..adapters.records import load_seed_file
from ..adapters.sql_store import SqlBookingStore
from ..config import AppConfig, get_default_config_path
from ..domain.exceptions import BookingError
from ..domain.models import Booking, BookingStatus, Caller, Role
from ..logging_setup import configure_logging
from ..services.availability import AvailabilityService
from ..services.bookings import BookingService

app = typer.Typer(
    name="barberslots",
    help="Find free appointment slots and manage bookings for a barbershop",
    add_completion=False
)

console = Console()

# The command line acts with full rights on behalf of shop staff
OPERATOR = Caller(user_id="cli-operator", role=Role.ADMIN)

T = TypeVar("T")
Store = Union[MemoryBookingStore, SqlBookingStore]

ConfigOption = Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")]
DateOption = Annotated[Optional[str], typer.Option("--date", "-d", help="Day (YYYY-MM-DD). Defaults to today in the shop timezone.")]
MockOption = Annotated[bool, typer.Option("--mock", help="Use bundled mock data instead of the database.")]
JsonOption = Annotated[bool, typer.Option("--json", help="Print machine-readable JSON.")]
ServiceOption = Annotated[Optional[List[str]], typer.Option("--service", "-s", help="Service id; repeat for several services.")]


def _load_config(config_file: Optional[Path]) -> AppConfig:
    """Load the config file, falling back to defaults when none exists."""
    config_path = config_file or get_default_config_path()
    if config_file is None and not config_path.exists():
        config = AppConfig()
    else:
        config = AppConfig.load_from_yaml(config_path)
    configure_logging(config.log_level)
    return config


def _build_store(config: AppConfig, mock: bool, announce: bool = True) -> Store:
    if mock:
        if announce:
            console.print("[yellow]⚠  MOCK MODE: using bundled test data, changes are not saved[/yellow]\n")
        return MemoryBookingStore.from_json()
    return SqlBookingStore.from_url(config.database_url)


def _build_services(config: AppConfig, store: Store) -> tuple:
    availability = AvailabilityService(
        store=store,
        slot_calculator=config.scheduling.build_slot_calculator(),
        timezone=config.timezone,
    )
    return availability, BookingService(store=store, availability=availability)


def _resolve_date(config: AppConfig, date: Optional[str]) -> str:
    return date or pendulum.now(config.timezone).format("YYYY-MM-DD")


def _run(store: Store, operation: Callable[[], Awaitable[T]]) -> T:
    """Run one async operation and release the store's connections."""
    async def runner() -> T:
        try:
            return await operation()
        finally:
            if isinstance(store, SqlBookingStore):
                await store.dispose()

    return asyncio.run(runner())


def _fail(error: Exception) -> NoReturn:
    console.print(f"[bold red]Error:[/bold red] {error}")
    raise typer.Exit(1)


@app.command()
def slots(
    barber: Annotated[str, typer.Argument(help="Barber id")],
    date: DateOption = None,
    service: ServiceOption = None,
    config_file: ConfigOption = None,
    mock: MockOption = False,
    as_json: JsonOption = False,
):
    """
    List bookable start times for a barber.

    Examples:

        barberslots slots barber_marco --date 2024-11-25 -s svc_cut -s svc_beard

        barberslots slots barber_marco --mock --json
    """
    try:
        config = _load_config(config_file)
        store = _build_store(config, mock, announce=not as_json)
        availability, _ = _build_services(config, store)
        day = _resolve_date(config, date)

        available = _run(store, lambda: availability.get_available_slots(barber, day, service or []))
    except (BookingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    if as_json:
        typer.echo(json.dumps(available))
        return

    if not available:
        console.print(f"[yellow]⚠ No free slots for {barber} on {day}.[/yellow]")
        return

    console.print(f"[bold green]✓ {len(available)} free slot(s) for {barber} on {day}:[/bold green]\n")
    for slot in available:
        console.print(f"  {slot}")
    console.print()


@app.command()
def booked(
    barber: Annotated[str, typer.Argument(help="Barber id")],
    date: DateOption = None,
    config_file: ConfigOption = None,
    mock: MockOption = False,
    as_json: JsonOption = False,
):
    """
    Show start times already taken by active bookings.
    """
    try:
        config = _load_config(config_file)
        store = _build_store(config, mock, announce=not as_json)
        availability, _ = _build_services(config, store)
        day = _resolve_date(config, date)

        taken = _run(store, lambda: availability.get_booked_slots(barber, day))
    except (BookingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    if as_json:
        typer.echo(json.dumps([slot.to_dict() for slot in taken]))
        return

    if not taken:
        console.print(f"[green]No active bookings for {barber} on {day}.[/green]")
        return

    table = Table(
        title=f"Booked slots - {barber} - {day}",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Start", style="bold yellow")
    table.add_column("Status", style="dim")

    for slot in taken:
        table.add_row(slot.start.format(), slot.status.value)

    console.print()
    console.print(table)
    console.print()


@app.command()
def book(
    barber: Annotated[str, typer.Argument(help="Barber id")],
    start_time: Annotated[str, typer.Argument(help="Start time, e.g. '10:30 AM'")],
    service: ServiceOption = None,
    date: DateOption = None,
    customer: Annotated[Optional[str], typer.Option("--customer", help="Customer id")] = None,
    name: Annotated[Optional[str], typer.Option("--name", help="Customer display name")] = None,
    notes: Annotated[Optional[str], typer.Option("--notes", help="Notes for the barber")] = None,
    pending: Annotated[bool, typer.Option("--pending", help="Create the booking as pending instead of confirmed.")] = False,
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Book an appointment if the whole time range is free.
    """
    try:
        config = _load_config(config_file)
        store = _build_store(config, mock)
        _, bookings = _build_services(config, store)
        day = _resolve_date(config, date)

        created = _run(store, lambda: bookings.create_booking(
            OPERATOR,
            barber_id=barber,
            date=day,
            start_time=start_time,
            service_ids=service or [],
            customer_id=customer,
            status=BookingStatus.PENDING if pending else BookingStatus.CONFIRMED,
            customer_name=name,
            notes=notes,
        ))
    except (BookingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(
        f"[green]✓ Booking {created.id} created:[/green] {created.barber_id}, "
        f"{created.date} at {created.start} ({created.status.value}, {created.total_price:.2f})"
    )


@app.command("set-status")
def set_status(
    booking_id: Annotated[str, typer.Argument(help="Booking id")],
    status: Annotated[str, typer.Argument(help="confirmed, completed or cancelled")],
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Move a booking forward: confirm, complete or cancel it.
    """
    try:
        config = _load_config(config_file)
        store = _build_store(config, mock)
        _, bookings = _build_services(config, store)

        updated = _run(store, lambda: bookings.update_booking_status(OPERATOR, booking_id, status))
    except (BookingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(f"[green]✓ Booking {updated.id} is now {updated.status.value}.[/green]")


@app.command()
def hide(
    barber: Annotated[str, typer.Argument(help="Barber id")],
    times: Annotated[Optional[List[str]], typer.Argument(help="Start times to hide. None clears all hidden hours.")] = None,
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Replace the start times a barber has blocked out (e.g. lunch).
    """
    try:
        config = _load_config(config_file)
        store = _build_store(config, mock)
        _, bookings = _build_services(config, store)

        settings = _run(store, lambda: bookings.set_hidden_hours(OPERATOR, barber, times or []))
    except (BookingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    labels = settings.hidden_labels()
    if labels:
        console.print(f"[green]✓ Hidden for {barber}:[/green] {', '.join(labels)}")
    else:
        console.print(f"[green]✓ No hidden hours for {barber}.[/green]")


def _print_bookings(found: List[Booking], title: str, as_json: bool) -> None:
    if as_json:
        typer.echo(json.dumps([booking.to_dict() for booking in found]))
        return

    if not found:
        console.print(f"[yellow]⚠ No bookings found ({title}).[/yellow]")
        return

    table = Table(
        title=f"Bookings - {title}",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Id", style="dim")
    table.add_column("Date")
    table.add_column("Start", style="bold yellow")
    table.add_column("Barber")
    table.add_column("Customer")
    table.add_column("Services")
    table.add_column("Status")
    table.add_column("Price", justify="right")

    for booking in found:
        table.add_row(
            booking.id,
            booking.date,
            booking.start.format(),
            booking.barber_id,
            booking.customer_name or booking.customer_id,
            ", ".join(booking.service_ids),
            booking.status.value,
            f"{booking.total_price:.2f}",
        )

    console.print()
    console.print(table)
    console.print()


@app.command()
def bookings(
    customer: Annotated[Optional[str], typer.Option("--customer", help="Only this customer's bookings")] = None,
    barber: Annotated[Optional[str], typer.Option("--barber", help="Filter by barber id")] = None,
    status: Annotated[Optional[str], typer.Option("--status", help="Filter by status")] = None,
    date: Annotated[Optional[str], typer.Option("--date", "-d", help="Filter by day (YYYY-MM-DD)")] = None,
    config_file: ConfigOption = None,
    mock: MockOption = False,
    as_json: JsonOption = False,
):
    """
    List bookings, newest first.

    Examples:

        barberslots bookings --status pending

        barberslots bookings --customer cust_anna --mock --json
    """
    try:
        config = _load_config(config_file)
        store = _build_store(config, mock, announce=not as_json)
        _, booking_service = _build_services(config, store)

        if customer:
            found = _run(store, lambda: booking_service.list_customer_bookings(OPERATOR, customer))
            title = f"customer {customer}"
        else:
            found = _run(store, lambda: booking_service.list_bookings(
                OPERATOR, status=status, barber_id=barber, date=date
            ))
            title = "all" if not (status or barber or date) else "filtered"
    except (BookingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    _print_bookings(found, title, as_json)


@app.command()
def schedule(
    barber: Annotated[str, typer.Argument(help="Barber id")],
    date: DateOption = None,
    all_days: Annotated[bool, typer.Option("--all-days", help="Show every day instead of one.")] = False,
    config_file: ConfigOption = None,
    mock: MockOption = False,
    as_json: JsonOption = False,
):
    """
    Show a barber's bookings that are not cancelled, earliest first.
    """
    try:
        config = _load_config(config_file)
        store = _build_store(config, mock, announce=not as_json)
        _, booking_service = _build_services(config, store)
        day = None if all_days else _resolve_date(config, date)

        found = _run(store, lambda: booking_service.list_barber_schedule(OPERATOR, barber, day))
    except (BookingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    _print_bookings(found, f"{barber}, {day or 'all days'}", as_json)


@app.command("init-db")
def init_db(
    seed: Annotated[Optional[Path], typer.Option("--seed", help="JSON file with services, bookings and barber settings")] = None,
    config_file: ConfigOption = None,
):
    """
    Create the database schema, optionally loading seed data.
    """
    try:
        config = _load_config(config_file)
        store = SqlBookingStore.from_url(config.database_url)
        data = load_seed_file(seed) if seed else None

        async def initialise() -> None:
            await store.init_schema()
            if data is not None:
                await store.seed(data)

        _run(store, initialise)
    except (BookingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(f"[green]✓ Database ready:[/green] {config.database_url}")
    if data is not None:
        console.print(
            f"  Seeded {len(data.services)} service(s), {len(data.bookings)} booking(s), "
            f"{len(data.settings)} barber setting(s)."
        )


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]barberslots[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
