"""
Command-line interface for Booking Calendar Sync.
"""

import json
import logging
import sqlite3
import time
from configparser import ConfigParser
from dataclasses import dataclass
from dataclasses import field
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from booking_calendar_sync.db import BookingStore
from booking_calendar_sync.db import query_status_all_users
from booking_calendar_sync.links import generate_calendar_links
from booking_calendar_sync.models import DEFAULT_CALENDAR_ID
from booking_calendar_sync.models import DEFAULT_CONFIG
from booking_calendar_sync.models import DEFAULT_MAX_RESULTS
from booking_calendar_sync.models import DEFAULT_REQUEST_TIMEOUT
from booking_calendar_sync.models import DEFAULT_STATE_DB
from booking_calendar_sync.models import DEFAULT_TIME_ZONE
from booking_calendar_sync.models import Booking
from booking_calendar_sync.models import CalendarSyncError
from booking_calendar_sync.models import SyncConfig
from booking_calendar_sync.models import Token
from booking_calendar_sync.models import Unauthenticated
from booking_calendar_sync.report import render_result
from booking_calendar_sync.sync import BookingCalendarSynchronizer

# ---------------------------------------------------------------------------
# Typer app
# ---------------------------------------------------------------------------

app = typer.Typer(
    no_args_is_help=True,
    rich_markup_mode="rich",
    help="Keep each owner's Google Calendar in step with their stored bookings.",
)
token_app = typer.Typer(no_args_is_help=True, help="Manage stored Google Calendar tokens.")
app.add_typer(token_app, name="token")

console = Console()


# ---------------------------------------------------------------------------
# Global state shared across subcommands
# ---------------------------------------------------------------------------


@dataclass
class _State:
    config_path: Path = field(default_factory=lambda: DEFAULT_CONFIG)
    store: Path = field(default_factory=lambda: DEFAULT_STATE_DB)
    verbose: bool = False


state = _State()


@app.callback()
def _global(
    config: Annotated[
        Path,
        typer.Option("--config", "-c", help=f"Config file path (default: {DEFAULT_CONFIG})"),
    ] = DEFAULT_CONFIG,
    store: Annotated[
        Path,
        typer.Option("--store", help=f"Booking store path (default: {DEFAULT_STATE_DB})"),
    ] = DEFAULT_STATE_DB,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose debug output"),
    ] = False,
) -> None:
    state.config_path = config
    state.store = store
    state.verbose = verbose
    _setup_logging(verbose)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False, console=console)],
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def _load_config_file(config_path: Path) -> dict[str, str]:
    if not config_path.exists():
        return {}
    parser = ConfigParser()
    parser.read(config_path)
    if "booking-calendar-sync" not in parser:
        return {}
    return dict(parser["booking-calendar-sync"])


def _build_config(user_id: str, dry_run: bool = False, yes: bool = False) -> SyncConfig:
    config_file = _load_config_file(state.config_path)
    try:
        max_results = int(config_file.get("max_results", DEFAULT_MAX_RESULTS))
        request_timeout = float(config_file.get("request_timeout", DEFAULT_REQUEST_TIMEOUT))
    except ValueError as e:
        console.print(f"[bold red]Error:[/] Invalid value in {state.config_path}: {e}")
        raise typer.Exit(1) from None

    return SyncConfig(
        user_id=user_id,
        state_db_path=state.store,
        calendar_id=config_file.get("calendar_id", DEFAULT_CALENDAR_ID),
        time_zone=config_file.get("time_zone", DEFAULT_TIME_ZONE),
        max_results=max_results,
        request_timeout=request_timeout,
        client_id=config_file.get("client_id"),
        client_secret=config_file.get("client_secret"),
        dry_run=dry_run,
        verbose=state.verbose,
        yes=yes,
    )


def _run_sync(cfg: SyncConfig, details: bool) -> None:
    """Core sync runner: display panel, confirm, run, show results."""
    from booking_calendar_sync.preflight import run_preflight_checks

    if not run_preflight_checks(cfg, console):
        raise typer.Exit(1)

    # -- Info panel ----------------------------------------------------------
    info = Text()
    info.append("  User:      ", style="bold")
    info.append(f"{cfg.user_id}\n")
    info.append("  Calendar:  ", style="bold")
    info.append(f"{cfg.calendar_id}\n")
    info.append("  Time zone: ", style="bold")
    info.append(cfg.time_zone)
    info.append("\n  Store:     ", style="bold")
    info.append(str(cfg.state_db_path), style="dim")
    if cfg.dry_run:
        info.append("\n  Mode:      ")
        info.append("DRY RUN", style="bold magenta")

    console.print(Panel(info, title="[bold]Booking Calendar Sync[/bold]"))

    # -- Confirmation --------------------------------------------------------
    if not cfg.yes and not cfg.dry_run:
        typer.confirm("Proceed?", abort=True)

    # -- Run -----------------------------------------------------------------
    result = _guarded(cfg, BookingCalendarSynchronizer(cfg).run)
    render_result(result, console, details=details)


def _guarded(cfg: SyncConfig, action):
    """Call ``action`` and turn sync failures into a message and an exit code."""
    try:
        return action()
    except Unauthenticated as e:
        console.print(f"[bold red]Sync failed:[/] {e}")
        console.print(
            f"[yellow]Reconnect Google Calendar and run[/] "
            f"[cyan]booking-calendar-sync token set {cfg.user_id}[/]"
        )
        raise typer.Exit(1) from None
    except CalendarSyncError as e:
        console.print(f"[bold red]Sync failed:[/] {e}")
        raise typer.Exit(1) from None
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted by user[/]")
        raise typer.Exit(130) from None
    except Exception as e:
        console.print_exception()
        console.print(f"[bold red]Unexpected error:[/] {e}")
        raise typer.Exit(1) from e


_DRY_RUN = Annotated[bool, typer.Option("--dry-run", "-n", help="Preview changes without applying")]
_YES = Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt")]
_USER = Annotated[str, typer.Argument(help="Owner of the bookings and the calendar token")]


# ---------------------------------------------------------------------------
# Subcommand: sync
# ---------------------------------------------------------------------------


@app.command()
def sync(
    user_id: _USER,
    dry_run: _DRY_RUN = False,
    yes: _YES = False,
    details: Annotated[
        bool, typer.Option("--details", "-d", help="List every added/updated/deleted booking")
    ] = False,
) -> None:
    """Push a user's bookings to their Google Calendar and remove orphaned events."""
    _run_sync(_build_config(user_id, dry_run=dry_run, yes=yes), details)


# ---------------------------------------------------------------------------
# Subcommand: status
# ---------------------------------------------------------------------------


@app.command()
def status() -> None:
    """Show configuration and a per-user summary of the booking store."""
    from datetime import datetime

    config_exists = state.config_path.exists()
    db_exists = state.store.exists()

    cfg_info = Text()
    cfg_info.append("  Config: ", style="bold")
    cfg_info.append(str(state.config_path) + " ")
    cfg_info.append(
        "✓" if config_exists else "(not found)", style="green" if config_exists else "red"
    )
    cfg_info.append("\n  Store:  ", style="bold")
    cfg_info.append(str(state.store) + " ")
    cfg_info.append("✓" if db_exists else "(not found)", style="green" if db_exists else "yellow")

    config_file = _load_config_file(state.config_path)
    cfg_info.append("\n\n  Calendar:  ", style="bold")
    cfg_info.append(config_file.get("calendar_id", DEFAULT_CALENDAR_ID))
    cfg_info.append("\n  Time zone: ", style="bold")
    cfg_info.append(config_file.get("time_zone", DEFAULT_TIME_ZONE))
    cfg_info.append("\n  Refresh:   ", style="bold")
    if config_file.get("client_id") and config_file.get("client_secret"):
        cfg_info.append("enabled", style="green")
    else:
        cfg_info.append("disabled (no client credentials)", style="yellow")

    console.print(Panel(cfg_info, title="[bold]Booking Calendar Sync — Status[/bold]"))

    rows = query_status_all_users(state.store)
    if not rows:
        if not db_exists:
            console.print(
                "[yellow]No booking store yet — run[/] "
                "[cyan]booking-calendar-sync import-bookings[/] "
                "[yellow]to create it.[/]"
            )
        else:
            console.print("[yellow]Booking store is empty.[/]")
        return

    table = Table(show_header=True, header_style="bold cyan", box=None, padding=(0, 2))
    table.add_column("User")
    table.add_column("Bookings", justify="right")
    table.add_column("Canceled", justify="right")
    table.add_column("Synced", justify="right")
    table.add_column("Token")
    table.add_column("Last sync")
    for row in rows:
        ts = row["last_sync_at"] or 0
        last_sync_str = datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M:%S") if ts else "—"
        token_cell = Text("✓", style="green") if row["has_token"] else Text("missing", style="red")
        table.add_row(
            row["user_id"],
            str(row["total"]),
            str(row["canceled"] or 0),
            str(row["synced"] or 0),
            token_cell,
            last_sync_str,
        )
    console.print(Panel(table, title="[bold]Users[/bold]", expand=False))


# ---------------------------------------------------------------------------
# Subcommands: bookings / import-bookings / link / push
# ---------------------------------------------------------------------------


@app.command()
def bookings(user_id: _USER) -> None:
    """List a user's stored bookings and their sync state."""
    with BookingStore(state.store) as store:
        rows = store.get_all_bookings_for_user(user_id)

    if not rows:
        console.print(f"[yellow]No bookings stored for {user_id}.[/]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("ID", overflow="fold")
    table.add_column("Summary")
    table.add_column("Start")
    table.add_column("Status")
    table.add_column("Sync")
    for b in rows:
        if b.status == "canceled":
            sync_cell = Text("excluded", style="dim")
        elif not b.event_id:
            sync_cell = Text("not pushed", style="yellow")
        elif b.needs_update:
            sync_cell = Text("changed", style="yellow")
        else:
            sync_cell = Text("✓", style="green")
        table.add_row(b.id, b.summary, b.start_date_time, b.status, sync_cell)
    console.print(table)


@app.command("import-bookings")
def import_bookings(
    path: Annotated[Path, typer.Argument(help="JSON file with an array of booking documents")],
) -> None:
    """Load booking documents (camelCase fields) into the store."""
    try:
        documents = json.loads(path.read_text())
    except (OSError, ValueError) as e:
        console.print(f"[bold red]Error:[/] Cannot read {path}: {e}")
        raise typer.Exit(1) from None
    if not isinstance(documents, list):
        console.print("[bold red]Error:[/] Expected a JSON array of bookings.")
        raise typer.Exit(1)

    try:
        parsed = [Booking.from_dict(doc) for doc in documents]
    except (KeyError, TypeError) as e:
        console.print(f"[bold red]Error:[/] Invalid booking document: missing {e}")
        raise typer.Exit(1) from None

    with BookingStore(state.store) as store:
        try:
            for booking in parsed:
                store.upsert_booking(booking)
        except sqlite3.IntegrityError as e:
            store.conn.rollback()
            console.print(f"[bold red]Error:[/] Invalid booking {booking.id!r}: {e}")
            raise typer.Exit(1) from None
        store.commit()

    console.print(f"Imported [bold]{len(parsed)}[/bold] booking(s) into {state.store}")


@app.command()
def link(booking_id: Annotated[str, typer.Argument(help="Booking ID")]) -> None:
    """Print an "add to Google Calendar" link for a booking."""
    with BookingStore(state.store) as store:
        booking = store.get_booking(booking_id)
    if booking is None:
        console.print(f"[bold red]Error:[/] Booking [cyan]{booking_id}[/] not found.")
        raise typer.Exit(1)

    try:
        links = generate_calendar_links(
            booking.summary,
            booking.start_date_time,
            booking.end_date_time,
            description=booking.description,
        )
    except ValueError as e:
        console.print(f"[bold red]Error:[/] {e}")
        raise typer.Exit(1) from None
    console.print(links["google_calendar"], soft_wrap=True)


@app.command()
def push(
    booking_id: Annotated[str, typer.Argument(help="Booking ID")],
    dry_run: _DRY_RUN = False,
) -> None:
    """Add one new booking to its owner's Google Calendar right away."""
    from booking_calendar_sync.preflight import run_preflight_checks

    with BookingStore(state.store) as store:
        booking = store.get_booking(booking_id)
    if booking is None:
        console.print(f"[bold red]Error:[/] Booking [cyan]{booking_id}[/] not found.")
        raise typer.Exit(1)

    cfg = _build_config(booking.user_id, dry_run=dry_run, yes=True)
    if not run_preflight_checks(cfg, console):
        raise typer.Exit(1)

    pushed = _guarded(cfg, lambda: BookingCalendarSynchronizer(cfg).push(booking_id))
    if not pushed:
        console.print(
            f"[yellow]Booking {booking_id} is already on the calendar;[/] "
            f"[cyan]booking-calendar-sync sync {booking.user_id}[/] [yellow]applies changes.[/]"
        )
    elif dry_run:
        console.print(f"[magenta]DRY RUN:[/] would add booking {booking_id}")
    else:
        console.print(f"[green]✓[/] Added booking {booking_id} to Google Calendar")


# ---------------------------------------------------------------------------
# Subcommands: token set / token clear
# ---------------------------------------------------------------------------


@token_app.command("set")
def token_set(
    user_id: _USER,
    access_token: Annotated[str, typer.Option("--access-token", help="OAuth access token")],
    refresh_token: Annotated[
        str | None, typer.Option("--refresh-token", help="OAuth refresh token")
    ] = None,
    expires_in: Annotated[
        int | None, typer.Option("--expires-in", help="Seconds until the access token expires")
    ] = None,
) -> None:
    """Store the Google Calendar credential obtained from the OAuth callback."""
    expiry = int(time.time()) + expires_in if expires_in is not None else None
    with BookingStore(state.store) as store:
        store.save_token(user_id, Token(access_token, refresh_token, expiry))
    console.print(f"[green]Token saved for {user_id}.[/]")


@token_app.command("clear")
def token_clear(user_id: _USER) -> None:
    """Disconnect a user's Google Calendar by removing their token."""
    with BookingStore(state.store) as store:
        removed = store.delete_token(user_id)
    if removed:
        console.print(f"[green]Token removed for {user_id}.[/]")
    else:
        console.print(f"[yellow]No token stored for {user_id}.[/]")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    app()
