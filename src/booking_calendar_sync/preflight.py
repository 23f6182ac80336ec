"""
Preflight checks run before sync to catch common misconfigurations early.
"""

import logging
import sqlite3
import time

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from booking_calendar_sync.auth import can_refresh
from booking_calendar_sync.db import BookingStore
from booking_calendar_sync.models import SyncConfig

logger = logging.getLogger(__name__)


def run_preflight_checks(cfg: SyncConfig, console: Console) -> bool:
    """Return True if sync may proceed; print issues and return False otherwise."""
    issues: list[tuple[str, str, str]] = []  # (label, detail, hint)

    # 1. Store parent dir writable + store readable if it exists
    db_path = cfg.state_db_path
    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error("Cannot create store directory %s: %s", db_path.parent, e)
        issues.append(("Booking store", f"{db_path}: {e}", f"Check permissions on {db_path.parent}"))
        _print_issues(issues, console)
        return False

    if db_path.exists():
        try:
            conn = sqlite3.connect(db_path)
            conn.execute("SELECT 1")
            # BEGIN IMMEDIATE needs a write lock and a journal file next to the DB.
            conn.execute("BEGIN IMMEDIATE")
            conn.execute("ROLLBACK")
            conn.close()
        except sqlite3.Error as e:
            logger.error("Store not readable/writable (%s): %s", db_path, e)
            issues.append(
                (
                    "Booking store",
                    f"{db_path}: {e}",
                    f"Check permissions on {db_path.parent} "
                    f"(journal files must be creatable alongside the DB)",
                )
            )
            _print_issues(issues, console)
            return False

    # 2. Token present and usable
    with BookingStore(db_path) as store:
        token = store.get_token(cfg.user_id)
        if not store.get_all_bookings_for_user(cfg.user_id):
            logger.warning("No bookings stored for user %s", cfg.user_id)

    if token is None:
        issues.append(
            (
                "Google Calendar",
                f"No token stored for user {cfg.user_id}",
                f"Run: booking-calendar-sync token set {cfg.user_id} --access-token ...",
            )
        )
    elif token.is_expired(time.time()) and not can_refresh(token, cfg):
        hint = (
            "Set client_id/client_secret in the config file to allow refresh"
            if token.refresh_token
            else f"Re-authenticate and run: booking-calendar-sync token set {cfg.user_id}"
        )
        issues.append(("Google Calendar", "Token expired and cannot be refreshed", hint))

    if issues:
        _print_issues(issues, console)
        return False

    return True


def _print_issues(issues: list[tuple[str, str, str]], console: Console) -> None:
    body = Text()
    for i, (label, detail, hint) in enumerate(issues):
        if i:
            body.append("\n")
        body.append(f"  ✗  {label}: ", style="bold red")
        body.append(detail, style="bold red")
        body.append(f"\n       → {hint}", style="yellow")

    console.print(Panel(body, title="[bold red]Preflight checks failed[/bold red]"))
