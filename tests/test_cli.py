"""
CLI smoke tests for the store-management subcommands.
"""

import json
import sqlite3

from typer.testing import CliRunner

from booking_calendar_sync.cli import app
from booking_calendar_sync.db import BookingStore
from booking_calendar_sync.models import Token
from booking_calendar_sync.sync import sync_all_bookings_to_google_calendar
from tests.conftest import USER_ID
from tests.conftest import make_booking
from tests.fake_client import FakeCalendarClient

runner = CliRunner()


def _invoke(db_path, *args):
    return runner.invoke(app, ["--store", str(db_path), "--config", "/nonexistent.conf", *args])


def test_import_then_list_bookings(tmp_path, db_path):
    docs = [
        {
            "id": "b1",
            "summary": "Family shoot",
            "startDateTime": "2099-03-10T10:00:00",
            "endDateTime": "2099-03-10T11:00:00",
            "status": "confirmed",
            "userId": USER_ID,
            "date": "2024-03-01",
        },
        {
            "id": "b2",
            "summary": "Canceled shoot",
            "startDateTime": "2099-03-11T10:00:00",
            "endDateTime": "2099-03-11T11:00:00",
            "status": "canceled",
            "userId": USER_ID,
            "date": "2024-03-01",
        },
    ]
    source = tmp_path / "bookings.json"
    source.write_text(json.dumps(docs))

    result = _invoke(db_path, "import-bookings", str(source))
    assert result.exit_code == 0, result.output
    assert "Imported" in result.output

    with BookingStore(db_path) as store:
        assert [b.id for b in store.get_bookings_for_user(USER_ID)] == ["b1"]

    result = _invoke(db_path, "bookings", USER_ID)
    assert result.exit_code == 0, result.output
    assert "Family shoot" in result.output


def test_import_rejects_non_array(tmp_path, db_path):
    source = tmp_path / "bookings.json"
    source.write_text(json.dumps({"id": "b1"}))

    result = _invoke(db_path, "import-bookings", str(source))

    assert result.exit_code == 1


def test_token_set_and_clear(db_path):
    result = _invoke(
        db_path, "token", "set", USER_ID, "--access-token", "abc", "--refresh-token", "r"
    )
    assert result.exit_code == 0, result.output
    with BookingStore(db_path) as store:
        token = store.get_token(USER_ID)
    assert token.access_token == "abc"
    assert token.refresh_token == "r"
    assert token.expiry is None

    result = _invoke(db_path, "token", "clear", USER_ID)
    assert result.exit_code == 0, result.output
    with BookingStore(db_path) as store:
        assert store.get_token(USER_ID) is None


def test_sync_without_token_fails_preflight(db_path):
    result = _invoke(db_path, "sync", USER_ID, "--yes")

    assert result.exit_code == 1
    assert "Preflight checks failed" in result.output


def test_link_for_unknown_booking(db_path):
    result = _invoke(db_path, "link", "nope")

    assert result.exit_code == 1


def test_import_reports_document_with_null_fields(tmp_path, db_path):
    source = tmp_path / "bookings.json"
    source.write_text(json.dumps([{"id": None, "userId": USER_ID, "summary": None}]))

    result = _invoke(db_path, "import-bookings", str(source))

    assert result.exit_code == 1
    assert "Error:" in result.output
    assert not isinstance(result.exception, sqlite3.IntegrityError)


def test_import_fills_null_text_fields(tmp_path, db_path):
    doc = {"id": "b1", "userId": USER_ID, "summary": None, "date": None, "status": None}
    source = tmp_path / "bookings.json"
    source.write_text(json.dumps([doc]))

    result = _invoke(db_path, "import-bookings", str(source))

    assert result.exit_code == 0, result.output
    with BookingStore(db_path) as store:
        booking = store.get_booking("b1")
    assert booking.summary == ""
    assert booking.status == "confirmed"


def test_reimport_keeps_sync_state(tmp_path, db_path, sync_config):
    doc = {
        "id": "b1",
        "summary": "Family shoot",
        "startDateTime": "2099-03-10T10:00:00",
        "endDateTime": "2099-03-10T11:00:00",
        "userId": USER_ID,
        "date": "2024-03-01",
    }
    source = tmp_path / "bookings.json"
    source.write_text(json.dumps([doc]))
    with BookingStore(db_path) as store:
        store.save_token(USER_ID, Token("access"))
    client = FakeCalendarClient()

    assert _invoke(db_path, "import-bookings", str(source)).exit_code == 0
    sync_all_bookings_to_google_calendar(sync_config, client)
    client.reset_counters()

    assert _invoke(db_path, "import-bookings", str(source)).exit_code == 0
    result = sync_all_bookings_to_google_calendar(sync_config, client)

    assert result.changed == 0
    assert client.inserts == []
    assert client.deletes == []
    assert client.event_count == 1


def test_push_unknown_booking(db_path):
    result = _invoke(db_path, "push", "nope")

    assert result.exit_code == 1
    assert "not found" in result.output


def test_push_without_token_fails_preflight(tmp_path, db_path):
    with BookingStore(db_path) as store:
        store.upsert_booking(make_booking("b1"))
        store.commit()

    result = _invoke(db_path, "push", "b1")

    assert result.exit_code == 1
    assert "Preflight checks failed" in result.output
