"""
Shared pytest fixtures and booking/event helpers.
"""

import logging

import pytest

from booking_calendar_sync.db import BookingStore
from booking_calendar_sync.models import APP_SOURCE_MARKER
from booking_calendar_sync.models import Booking
from booking_calendar_sync.models import SyncConfig
from booking_calendar_sync.models import Token

USER_ID = "user-test"


def make_booking(
    booking_id: str,
    event_id: str | None = None,
    date: str = "2024-03-10",
    last_synced_date: str | None = None,
    status: str = "confirmed",
    start: str = "2099-03-10T10:00:00",
    end: str = "2099-03-10T11:00:00",
    summary: str | None = None,
) -> Booking:
    return Booking(
        id=booking_id,
        summary=summary or f"Photo session {booking_id}",
        description="Studio session",
        start_date_time=start,
        end_date_time=end,
        status=status,
        event_id=event_id,
        user_id=USER_ID,
        date=date,
        last_synced_date=last_synced_date,
    )


def make_event(event_id: str, summary: str = "Event", managed: bool = True) -> dict:
    """Return a Google Calendar event resource, tagged as ours when ``managed``."""
    event = {
        "id": event_id,
        "summary": summary,
        "start": {"dateTime": "2099-03-10T10:00:00", "timeZone": "Europe/Rome"},
        "end": {"dateTime": "2099-03-10T11:00:00", "timeZone": "Europe/Rome"},
    }
    if managed:
        event["extendedProperties"] = {"private": {"source": APP_SOURCE_MARKER}}
    return event


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "test_bookings.db"


@pytest.fixture
def store(db_path):
    with BookingStore(db_path) as db:
        yield db


@pytest.fixture
def token():
    return Token(access_token="test-access-token")


@pytest.fixture
def sync_config(db_path):
    return SyncConfig(
        user_id=USER_ID,
        state_db_path=db_path,
        dry_run=False,
        verbose=False,
    )


@pytest.fixture
def sync_logger():
    return logging.getLogger("test_sync")
