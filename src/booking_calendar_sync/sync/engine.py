"""
Local bookings → Google Calendar reconciliation.
"""

import time
from datetime import datetime
from datetime import timezone
from typing import Callable

from ..db import BookingStore
from ..google_client import GoogleCalendarClient
from ..google_client import is_app_owned
from ..models import STATUS_CANCELED
from ..models import Booking
from ..models import CalendarSyncError
from ..models import DetailedSyncResult
from ..models import NotFound
from ..models import SyncConfig
from ..models import Token
from .backoff import remove_event_with_backoff
from .utils import deleted_booking_from_event
from .utils import lookup_window_start


def _push_new_event(
    config: SyncConfig,
    logger,
    booking: Booking,
    client: GoogleCalendarClient,
    token: Token,
    store: BookingStore,
):
    """Insert a booking as a fresh remote event and write the new ID back."""
    if config.dry_run:
        logger.info(f"[DRY RUN] Would CREATE event for booking {booking.id}")
        return

    created = client.insert_event(token, booking)
    booking.event_id = created["id"]
    booking.last_synced_date = booking.date
    store.record_sync(booking)
    logger.debug(f"Created event {booking.event_id} for booking {booking.id}")


def _process_update(
    config: SyncConfig,
    result: DetailedSyncResult,
    logger,
    booking: Booking,
    client: GoogleCalendarClient,
    token: Token,
    store: BookingStore,
):
    """Replace a changed booking's event; re-create it if it vanished meanwhile."""
    if config.dry_run:
        logger.info(f"[DRY RUN] Would UPDATE event {booking.event_id} (booking {booking.id})")
        result.updated.append(booking)
        return

    try:
        client.update_event(token, booking.event_id, booking)
    except NotFound:
        logger.warning(f"Event {booking.event_id} disappeared before update, re-creating")
        _push_new_event(config, logger, booking, client, token, store)
        result.added.append(booking)
        return

    booking.last_synced_date = booking.date
    store.record_sync(booking)
    result.updated.append(booking)
    logger.debug(f"Updated event {booking.event_id} for booking {booking.id}")


def _process_deletions(
    config: SyncConfig,
    result: DetailedSyncResult,
    logger,
    unclaimed: dict[str, dict],
    client: GoogleCalendarClient,
    token: Token,
    sleep: Callable[[float], None],
):
    """Remove application-owned events no local booking claimed."""
    for event_id, event in unclaimed.items():
        if not is_app_owned(event):
            logger.debug(f"Ignoring personal event: {event.get('summary')!r}")
            continue

        if config.dry_run:
            logger.info(f"[DRY RUN] Would DELETE orphaned event {event_id}")
        else:
            remove_event_with_backoff(client, token, event_id, logger, sleep=sleep)
            logger.debug(f"Deleted orphaned event {event_id}")
        result.deleted.append(deleted_booking_from_event(event, config.user_id))


def push_booking(
    config: SyncConfig,
    logger,
    client: GoogleCalendarClient,
    token: Token,
    store: BookingStore,
    booking: Booking,
) -> bool:
    """
    Add one freshly created booking to the calendar without a full run.

    Returns False when the booking already has an event; changes to pushed
    bookings are left to :func:`reconcile`.
    """
    if booking.status == STATUS_CANCELED:
        raise CalendarSyncError(f"Booking {booking.id} is canceled")
    if booking.event_id:
        logger.info(f"Booking {booking.id} already has event {booking.event_id}")
        return False

    try:
        _push_new_event(config, logger, booking, client, token, store)
    except CalendarSyncError as e:
        logger.error(f"Push failed: {e}")
        raise
    if not config.dry_run:
        logger.info(f"Pushed booking {booking.id} as event {booking.event_id}")
    return True


def reconcile(
    config: SyncConfig,
    logger,
    client: GoogleCalendarClient,
    token: Token,
    store: BookingStore,
    now: datetime | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> DetailedSyncResult:
    """
    Converge one user's Google Calendar with their local bookings.

    Recovered automatically: NotFound on update (re-insert), NotFound and
    RateLimited on delete. Everything else aborts the run.
    """
    result = DetailedSyncResult()
    try:
        logger.info("Fetching bookings...")
        bookings = store.get_bookings_for_user(config.user_id)
        logger.info(f"Found {len(bookings)} bookings")

        now = now or datetime.now(timezone.utc)
        since = lookup_window_start(bookings, now, config.time_zone)
        logger.info("Fetching Google Calendar events...")
        remote = {ev["id"]: ev for ev in client.list_events(token, since) if ev.get("id")}
        logger.info(f"Fetched {len(remote)} events")

        logger.info(f"Processing {len(bookings)} bookings...")
        for booking in bookings:
            if not booking.event_id:
                logger.debug(f"Booking {booking.id} has no event yet, creating")
                _push_new_event(config, logger, booking, client, token, store)
                result.added.append(booking)
            elif remote.pop(booking.event_id, None) is None:
                logger.debug(
                    f"Event {booking.event_id} for booking {booking.id} missing remotely, creating"
                )
                _push_new_event(config, logger, booking, client, token, store)
                result.added.append(booking)
            elif booking.needs_update:
                _process_update(config, result, logger, booking, client, token, store)
            else:
                logger.debug(f"Booking {booking.id} unchanged since last sync")

        logger.info(f"Checking {len(remote)} unclaimed events for orphans...")
        _process_deletions(config, result, logger, remote, client, token, sleep)

        result.total = len(bookings)
        logger.info(
            f"Sync complete: {len(result.added)} added, {len(result.updated)} updated, "
            f"{len(result.deleted)} deleted ({result.total} bookings expected in calendar)"
        )
        return result

    except CalendarSyncError as e:
        logger.error(f"Sync failed: {e}")
        raise
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        raise
