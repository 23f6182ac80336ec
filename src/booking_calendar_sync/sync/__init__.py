"""
BookingCalendarSynchronizer: thin orchestrator around the reconciliation engine.
"""

import logging
from contextlib import contextmanager

from booking_calendar_sync.auth import get_valid_token
from booking_calendar_sync.db import BookingStore
from booking_calendar_sync.google_client import GoogleCalendarClient
from booking_calendar_sync.models import CalendarSyncError
from booking_calendar_sync.models import DetailedSyncResult
from booking_calendar_sync.models import SyncConfig
from booking_calendar_sync.sync.engine import push_booking
from booking_calendar_sync.sync.engine import reconcile


class BookingCalendarSynchronizer:
    """Runs one reconciliation for one user under that user's lock."""

    def __init__(self, config: SyncConfig, client: GoogleCalendarClient | None = None):
        self.config = config
        self.logger = logging.getLogger(__name__)
        self.client = client

    @contextmanager
    def _session(self):
        """Yield (store, client, token) with the user's lock held."""
        with BookingStore(self.config.state_db_path) as store:
            with store.user_lock(self.config.user_id, self.config.lock_stale_after):
                token = get_valid_token(store, self.config)

                if self.client is not None:
                    yield store, self.client, token
                    return

                with GoogleCalendarClient(
                    calendar_id=self.config.calendar_id,
                    time_zone=self.config.time_zone,
                    max_results=self.config.max_results,
                    timeout=self.config.request_timeout,
                ) as client:
                    yield store, client, token

    def run(self) -> DetailedSyncResult:
        """Execute the synchronization process."""
        with self._session() as (store, client, token):
            return reconcile(self.config, self.logger, client, token, store)

    def push(self, booking_id: str) -> bool:
        """Add a single booking of this user to the calendar."""
        with self._session() as (store, client, token):
            booking = store.get_booking(booking_id)
            if booking is None or booking.user_id != self.config.user_id:
                raise CalendarSyncError(
                    f"Booking {booking_id} not found for user {self.config.user_id}"
                )
            return push_booking(self.config, self.logger, client, token, store, booking)


def sync_all_bookings_to_google_calendar(
    config: SyncConfig, client: GoogleCalendarClient | None = None
) -> DetailedSyncResult:
    """Reconcile ``config.user_id``'s bookings with their Google Calendar."""
    return BookingCalendarSynchronizer(config, client).run()


def add_booking_to_google_calendar(
    config: SyncConfig, booking_id: str, client: GoogleCalendarClient | None = None
) -> bool:
    """Push one booking of ``config.user_id`` right after it was created."""
    return BookingCalendarSynchronizer(config, client).push(booking_id)
