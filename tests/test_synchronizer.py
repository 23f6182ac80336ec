"""
End-to-end runs through sync_all_bookings_to_google_calendar: token lookup,
per-user locking and reconciliation together.
"""

import pytest

from booking_calendar_sync.db import BookingStore
from booking_calendar_sync.models import CalendarSyncError
from booking_calendar_sync.models import SyncInProgressError
from booking_calendar_sync.models import Token
from booking_calendar_sync.models import Unauthenticated
from booking_calendar_sync.sync import add_booking_to_google_calendar
from booking_calendar_sync.sync import sync_all_bookings_to_google_calendar
from tests.conftest import USER_ID
from tests.conftest import make_booking
from tests.conftest import make_event
from tests.fake_client import FakeCalendarClient


@pytest.fixture
def seeded_store(store):
    store.upsert_booking(make_booking("b1"))
    store.commit()
    store.save_token(USER_ID, Token("access"))
    return store


def test_full_run(seeded_store, sync_config):
    client = FakeCalendarClient([make_event("orphan")])
    client.valid_token = "access"

    result = sync_all_bookings_to_google_calendar(sync_config, client)

    assert [b.id for b in result.added] == ["b1"]
    assert [b.id for b in result.deleted] == ["orphan"]
    assert result.total == 1
    assert seeded_store.get_booking("b1").event_id == client.inserts[0]


def test_lock_released_after_run(seeded_store, sync_config):
    sync_all_bookings_to_google_calendar(sync_config, FakeCalendarClient())

    seeded_store.acquire_lock(USER_ID)


def test_concurrent_run_for_same_user_is_refused(seeded_store, sync_config):
    seeded_store.acquire_lock(USER_ID)
    client = FakeCalendarClient()

    with pytest.raises(SyncInProgressError):
        sync_all_bookings_to_google_calendar(sync_config, client)

    assert client.list_since == []


def test_missing_token_aborts_before_remote_calls(store, sync_config, db_path):
    store.upsert_booking(make_booking("b1"))
    store.commit()
    client = FakeCalendarClient()

    with pytest.raises(Unauthenticated):
        sync_all_bookings_to_google_calendar(sync_config, client)

    assert client.list_since == []
    with BookingStore(db_path) as other:
        other.acquire_lock(USER_ID)


def test_push_single_booking(seeded_store, sync_config):
    client = FakeCalendarClient()
    client.valid_token = "access"

    assert add_booking_to_google_calendar(sync_config, "b1", client) is True

    assert seeded_store.get_booking("b1").event_id == client.inserts[0]
    seeded_store.acquire_lock(USER_ID)


def test_push_rejects_other_users_booking(seeded_store, sync_config):
    other = make_booking("b2")
    other.user_id = "someone-else"
    seeded_store.upsert_booking(other)
    seeded_store.commit()
    client = FakeCalendarClient()

    with pytest.raises(CalendarSyncError):
        add_booking_to_google_calendar(sync_config, "b2", client)

    with pytest.raises(CalendarSyncError):
        add_booking_to_google_calendar(sync_config, "missing", client)

    assert client.inserts == []
