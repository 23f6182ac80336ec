"""
Rich rendering of a DetailedSyncResult.
"""

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from booking_calendar_sync.models import Booking
from booking_calendar_sync.models import DetailedSyncResult


def _booking_lines(bookings: list[Booking]) -> Text:
    text = Text()
    for i, b in enumerate(bookings):
        if i:
            text.append("\n")
        text.append(b.summary or "(no title)")
        if b.start_date_time:
            text.append(f"  {b.start_date_time}", style="dim")
    return text


def render_result(result: DetailedSyncResult, console: Console, details: bool = False) -> None:
    """Print the counts table and, with ``details``, the affected bookings."""
    results = Table.grid(padding=(0, 2))
    results.add_column(style="bold")
    results.add_column(justify="right")
    results.add_row("Added", str(len(result.added)))
    results.add_row("Updated", str(len(result.updated)))
    results.add_row("Deleted", str(len(result.deleted)))
    total = Text(str(result.total))
    if result.changed == 0:
        total.append(" ✓ in sync", style="green")
    results.add_row("Bookings", total)

    console.print(Panel(results, title="[bold]Results[/bold]", expand=False))

    if not details or result.changed == 0:
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Change")
    table.add_column("Booking", overflow="fold")
    for label, style, bookings in (
        ("Added", "green", result.added),
        ("Updated", "yellow", result.updated),
        ("Deleted", "red", result.deleted),
    ):
        if bookings:
            table.add_row(Text(label, style=style), _booking_lines(bookings))
    console.print(table)
