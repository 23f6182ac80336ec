"""
Pure data models, no HTTP or sqlite imports.
"""

from dataclasses import dataclass
from dataclasses import field
from pathlib import Path

DEFAULT_STATE_DB = Path.home() / ".local/share/booking-calendar-sync.db"
DEFAULT_CONFIG = Path.home() / ".config/booking-calendar-sync.conf"

DEFAULT_TIME_ZONE = "Europe/Rome"
DEFAULT_CALENDAR_ID = "primary"
DEFAULT_MAX_RESULTS = 2500
DEFAULT_REQUEST_TIMEOUT = 30.0

# Value of extendedProperties.private.source on events created by this tool.
APP_SOURCE_MARKER = "booking_app"

STATUS_CONFIRMED = "confirmed"
STATUS_CANCELED = "canceled"


class CalendarSyncError(Exception):
    """Base exception for calendar sync errors."""

    pass


class Unauthenticated(CalendarSyncError):
    """Token missing, expired or rejected by the remote calendar."""

    pass


class NotFound(CalendarSyncError):
    """The referenced remote event no longer exists."""

    pass


class RateLimited(CalendarSyncError):
    """The remote calendar throttled the request."""

    pass


class RemoteCalendarError(CalendarSyncError):
    """Any other transport, parse or server failure."""

    def __init__(self, message: str, status: int | None = None, payload=None):
        super().__init__(message)
        self.status = status
        self.payload = payload


class SyncInProgressError(CalendarSyncError):
    """Another reconciliation run holds the lock for this user."""

    pass


@dataclass
class Booking:
    """A locally stored booking, authoritative for the remote calendar."""

    id: str
    summary: str
    start_date_time: str
    end_date_time: str
    user_id: str
    date: str
    description: str = ""
    status: str = STATUS_CONFIRMED
    event_id: str | None = None
    last_synced_date: str | None = None

    @property
    def needs_update(self) -> bool:
        return self.last_synced_date != self.date

    @classmethod
    def from_dict(cls, data: dict) -> "Booking":
        """Build a Booking from a camelCase booking document."""
        return cls(
            id=data["id"],
            summary=data.get("summary") or "",
            description=data.get("description") or "",
            start_date_time=data.get("startDateTime") or "",
            end_date_time=data.get("endDateTime") or "",
            status=data.get("status") or STATUS_CONFIRMED,
            event_id=data.get("eventId") or None,
            user_id=data["userId"],
            date=data.get("date") or "",
            last_synced_date=data.get("lastSyncedDate"),
        )

    def to_dict(self) -> dict:
        doc = {
            "id": self.id,
            "summary": self.summary,
            "description": self.description,
            "startDateTime": self.start_date_time,
            "endDateTime": self.end_date_time,
            "status": self.status,
            "userId": self.user_id,
            "date": self.date,
        }
        if self.event_id:
            doc["eventId"] = self.event_id
        if self.last_synced_date is not None:
            doc["lastSyncedDate"] = self.last_synced_date
        return doc


@dataclass
class Token:
    """Remote-calendar credential for one user."""

    access_token: str
    refresh_token: str | None = None
    expiry: int | None = None  # POSIX timestamp

    def is_expired(self, now: float, leeway: int = 300) -> bool:
        """True when the token expires within ``leeway`` seconds of ``now``."""
        if self.expiry is None:
            return False
        return self.expiry <= now + leeway


@dataclass
class SyncConfig:
    """Configuration for one reconciliation run."""

    user_id: str
    state_db_path: Path
    calendar_id: str = DEFAULT_CALENDAR_ID
    time_zone: str = DEFAULT_TIME_ZONE
    max_results: int = DEFAULT_MAX_RESULTS
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    client_id: str | None = None
    client_secret: str | None = None
    lock_stale_after: int = 3600
    dry_run: bool = False
    verbose: bool = False
    yes: bool = False  # Auto-confirm without prompting


@dataclass
class DetailedSyncResult:
    """Outcome of one reconciliation run."""

    added: list[Booking] = field(default_factory=list)
    updated: list[Booking] = field(default_factory=list)
    deleted: list[Booking] = field(default_factory=list)
    total: int = 0

    @property
    def changed(self) -> int:
        return len(self.added) + len(self.updated) + len(self.deleted)
