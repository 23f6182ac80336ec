"""
SQLite persistence for bookings, calendar tokens and per-user sync locks.
"""

import logging
import sqlite3
import time
import uuid
from contextlib import contextmanager
from pathlib import Path

from booking_calendar_sync.models import STATUS_CANCELED
from booking_calendar_sync.models import Booking
from booking_calendar_sync.models import SyncInProgressError
from booking_calendar_sync.models import Token

_BOOKING_COLUMNS = (
    "id, user_id, summary, description, start_date_time, end_date_time, "
    "status, event_id, date, last_synced_date"
)


def _row_to_booking(row: sqlite3.Row) -> Booking:
    return Booking(
        id=row["id"],
        user_id=row["user_id"],
        summary=row["summary"],
        description=row["description"] or "",
        start_date_time=row["start_date_time"],
        end_date_time=row["end_date_time"],
        status=row["status"],
        event_id=row["event_id"],
        date=row["date"],
        last_synced_date=row["last_synced_date"],
    )


class BookingStore:
    """Local booking repository and token store."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.conn: sqlite3.Connection | None = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def connect(self):
        """Initialize and connect to the store."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(self.db_path))
        self.conn.row_factory = sqlite3.Row  # Enable column access by name
        self._init_schema()

    def _init_schema(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS bookings (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT NOT NULL UNIQUE,
                user_id TEXT NOT NULL,
                summary TEXT NOT NULL,
                description TEXT,
                start_date_time TEXT NOT NULL,
                end_date_time TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'confirmed',
                event_id TEXT,
                date TEXT NOT NULL,
                last_synced_date TEXT,
                last_sync_at INTEGER
            );
            CREATE INDEX IF NOT EXISTS idx_bookings_user ON bookings(user_id);
            CREATE TABLE IF NOT EXISTS calendar_tokens (
                user_id TEXT PRIMARY KEY,
                access_token TEXT NOT NULL,
                refresh_token TEXT,
                expiry INTEGER,
                updated_at INTEGER NOT NULL
            );
            CREATE TABLE IF NOT EXISTS sync_locks (
                user_id TEXT PRIMARY KEY,
                holder TEXT NOT NULL,
                acquired_at INTEGER NOT NULL
            );
        """)
        self.conn.commit()

    # ------------------------------------------------------------------ #
    # Bookings                                                            #
    # ------------------------------------------------------------------ #

    def get_bookings_for_user(self, user_id: str) -> list[Booking]:
        """Return the user's active bookings in insertion order.

        Canceled bookings are left out, so their managed events end up
        unclaimed and get removed from the calendar.
        """
        cursor = self.conn.execute(
            f"SELECT {_BOOKING_COLUMNS} FROM bookings "
            "WHERE user_id = ? AND status != ? ORDER BY seq",
            (user_id, STATUS_CANCELED),
        )
        return [_row_to_booking(row) for row in cursor.fetchall()]

    def get_all_bookings_for_user(self, user_id: str) -> list[Booking]:
        """Return every booking of the user, canceled ones included."""
        cursor = self.conn.execute(
            f"SELECT {_BOOKING_COLUMNS} FROM bookings WHERE user_id = ? ORDER BY seq",
            (user_id,),
        )
        return [_row_to_booking(row) for row in cursor.fetchall()]

    def get_booking(self, booking_id: str) -> Booking | None:
        cursor = self.conn.execute(
            f"SELECT {_BOOKING_COLUMNS} FROM bookings WHERE id = ? LIMIT 1", (booking_id,)
        )
        row = cursor.fetchone()
        return _row_to_booking(row) if row else None

    def upsert_booking(self, booking: Booking):
        """Insert a booking or overwrite the stored copy, keeping its position.

        A booking without ``event_id`` or ``last_synced_date`` keeps the stored
        sync state, so re-importing documents does not orphan pushed events.
        """
        self.conn.execute(
            "INSERT INTO bookings "
            "(id, user_id, summary, description, start_date_time, end_date_time, "
            " status, event_id, date, last_synced_date) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(id) DO UPDATE SET "
            "user_id = excluded.user_id, summary = excluded.summary, "
            "description = excluded.description, "
            "start_date_time = excluded.start_date_time, "
            "end_date_time = excluded.end_date_time, status = excluded.status, "
            "event_id = COALESCE(excluded.event_id, bookings.event_id), "
            "date = excluded.date, "
            "last_synced_date = COALESCE(excluded.last_synced_date, bookings.last_synced_date)",
            (
                booking.id,
                booking.user_id,
                booking.summary,
                booking.description,
                booking.start_date_time,
                booking.end_date_time,
                booking.status,
                booking.event_id,
                booking.date,
                booking.last_synced_date,
            ),
        )

    def record_sync(self, booking: Booking):
        """Persist the remote event ID and synced change token of a booking.

        Committed immediately: an event pushed to the calendar without its ID
        stored locally would be inserted again on the next run.
        """
        self.conn.execute(
            "UPDATE bookings SET event_id = ?, last_synced_date = ?, last_sync_at = ? "
            "WHERE id = ?",
            (booking.event_id, booking.last_synced_date, int(time.time()), booking.id),
        )
        self.conn.commit()

    # ------------------------------------------------------------------ #
    # Tokens                                                              #
    # ------------------------------------------------------------------ #

    def get_token(self, user_id: str) -> Token | None:
        cursor = self.conn.execute(
            "SELECT access_token, refresh_token, expiry FROM calendar_tokens WHERE user_id = ?",
            (user_id,),
        )
        row = cursor.fetchone()
        if row is None:
            return None
        return Token(
            access_token=row["access_token"],
            refresh_token=row["refresh_token"],
            expiry=row["expiry"],
        )

    def save_token(self, user_id: str, token: Token):
        self.conn.execute(
            "INSERT INTO calendar_tokens (user_id, access_token, refresh_token, expiry, updated_at) "
            "VALUES (?, ?, ?, ?, ?) "
            "ON CONFLICT(user_id) DO UPDATE SET "
            "access_token = excluded.access_token, "
            "refresh_token = COALESCE(excluded.refresh_token, calendar_tokens.refresh_token), "
            "expiry = excluded.expiry, updated_at = excluded.updated_at",
            (user_id, token.access_token, token.refresh_token, token.expiry, int(time.time())),
        )
        self.conn.commit()

    def delete_token(self, user_id: str) -> bool:
        cursor = self.conn.execute("DELETE FROM calendar_tokens WHERE user_id = ?", (user_id,))
        self.conn.commit()
        return cursor.rowcount > 0

    # ------------------------------------------------------------------ #
    # Per-user run lock                                                   #
    # ------------------------------------------------------------------ #

    def acquire_lock(self, user_id: str, stale_after: int = 3600) -> str:
        """Take the reconciliation lock for a user or raise SyncInProgressError.

        Returns the holder ID to pass to :meth:`release_lock`.
        """
        logger = logging.getLogger(__name__)
        now = int(time.time())
        holder = uuid.uuid4().hex
        try:
            self.conn.execute(
                "INSERT INTO sync_locks (user_id, holder, acquired_at) VALUES (?, ?, ?)",
                (user_id, holder, now),
            )
            self.conn.commit()
            return holder
        except sqlite3.IntegrityError:
            self.conn.rollback()

        # Lock rows outliving a crashed run are taken over once stale.
        cursor = self.conn.execute(
            "UPDATE sync_locks SET holder = ?, acquired_at = ? "
            "WHERE user_id = ? AND acquired_at <= ?",
            (holder, now, user_id, now - stale_after),
        )
        self.conn.commit()
        if cursor.rowcount == 0:
            raise SyncInProgressError(f"A sync for user {user_id} is already running")
        logger.warning(f"Took over stale sync lock for user {user_id}")
        return holder

    def release_lock(self, user_id: str, holder: str) -> bool:
        """Drop the lock if ``holder`` still owns it; False if it was taken over."""
        cursor = self.conn.execute(
            "DELETE FROM sync_locks WHERE user_id = ? AND holder = ?", (user_id, holder)
        )
        self.conn.commit()
        if cursor.rowcount == 0:
            logging.getLogger(__name__).warning(
                f"Sync lock for user {user_id} was taken over before release"
            )
            return False
        return True

    @contextmanager
    def user_lock(self, user_id: str, stale_after: int = 3600):
        holder = self.acquire_lock(user_id, stale_after)
        try:
            yield
        finally:
            self.release_lock(user_id, holder)

    def commit(self):
        """Commit pending transactions."""
        if self.conn:
            self.conn.commit()

    def close(self):
        """Close the database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None


def query_status_all_users(db_path: Path) -> list:
    """
    Return aggregate rows for every user recorded in the store.

    Each row exposes: user_id, total, canceled, synced, last_sync_at, has_token.
    Returns an empty list when the store file does not exist yet.
    """
    if not db_path.exists():
        return []
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    try:
        tables = {
            row["name"] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        }
        if "bookings" not in tables:
            return []
        cursor = conn.execute("""
            SELECT
                b.user_id,
                COUNT(*)                                              AS total,
                SUM(CASE WHEN b.status = 'canceled' THEN 1 ELSE 0 END) AS canceled,
                SUM(CASE WHEN b.event_id IS NOT NULL
                          AND b.last_synced_date = b.date THEN 1 ELSE 0 END) AS synced,
                MAX(b.last_sync_at)                                   AS last_sync_at,
                EXISTS(SELECT 1 FROM calendar_tokens t
                       WHERE t.user_id = b.user_id)                   AS has_token
            FROM bookings b
            GROUP BY b.user_id
            ORDER BY b.user_id
        """)
        return cursor.fetchall()
    finally:
        conn.close()
