"""
Google Calendar REST wrapper (events resource only).
"""

import logging
from datetime import datetime

import httpx

from .models import APP_SOURCE_MARKER
from .models import DEFAULT_CALENDAR_ID
from .models import DEFAULT_MAX_RESULTS
from .models import DEFAULT_REQUEST_TIMEOUT
from .models import DEFAULT_TIME_ZONE
from .models import Booking
from .models import NotFound
from .models import RateLimited
from .models import RemoteCalendarError
from .models import Token
from .models import Unauthenticated

GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"

# Event types Google generates itself; never created by us, never bookable.
_SKIPPED_EVENT_TYPES = frozenset({"birthday"})

_RATE_LIMIT_REASONS = frozenset({"rateLimitExceeded", "userRateLimitExceeded"})

logger = logging.getLogger(__name__)


def _error_payload(response: httpx.Response):
    try:
        return response.json()
    except ValueError:
        return response.text


def _error_reasons(payload) -> set[str]:
    """Collect the ``reason`` codes from a Google API error body."""
    if not isinstance(payload, dict):
        return set()
    error = payload.get("error")
    if not isinstance(error, dict):
        return set()
    return {e.get("reason") for e in error.get("errors", []) if isinstance(e, dict)}


def is_app_owned(event: dict) -> bool:
    """Check if a remote event was created by this tool."""
    private = (event.get("extendedProperties") or {}).get("private") or {}
    return private.get("source") == APP_SOURCE_MARKER


class GoogleCalendarClient:
    """Authenticated CRUD against one calendar's events collection.

    The access token is passed to every call; the client keeps no credential
    state of its own.
    """

    def __init__(
        self,
        calendar_id: str = DEFAULT_CALENDAR_ID,
        time_zone: str = DEFAULT_TIME_ZONE,
        max_results: int = DEFAULT_MAX_RESULTS,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        http: httpx.Client | None = None,
    ):
        self.calendar_id = calendar_id
        self.time_zone = time_zone
        self.max_results = max_results
        self.http = http or httpx.Client(base_url=GOOGLE_CALENDAR_API, timeout=timeout)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self):
        self.http.close()

    # ------------------------------------------------------------------ #
    # Request plumbing                                                    #
    # ------------------------------------------------------------------ #

    @property
    def _events_path(self) -> str:
        return f"/calendars/{self.calendar_id}/events"

    def _request(self, token: Token | None, method: str, path: str, **kwargs) -> httpx.Response:
        if token is None or not token.access_token:
            raise Unauthenticated("Google Calendar token not found")

        headers = {"Authorization": f"Bearer {token.access_token}"}
        try:
            response = self.http.request(method, path, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            raise RemoteCalendarError(f"{method} {path} timed out: {e}") from e
        except httpx.HTTPError as e:
            raise RemoteCalendarError(f"{method} {path} failed: {e}") from e

        if response.is_success:
            return response

        payload = _error_payload(response)
        status = response.status_code
        if status == 401:
            raise Unauthenticated(f"Google Calendar rejected the token: {payload}")
        if status in (404, 410):
            raise NotFound(f"{method} {path}: event not found")
        if status == 429 or (status == 403 and _error_reasons(payload) & _RATE_LIMIT_REASONS):
            raise RateLimited(f"{method} {path}: rate limit exceeded")
        raise RemoteCalendarError(
            f"{method} {path} returned HTTP {status}: {payload}",
            status=status,
            payload=payload,
        )

    @staticmethod
    def _json(response: httpx.Response) -> dict:
        try:
            return response.json()
        except ValueError as e:
            raise RemoteCalendarError(
                f"Unparsable response from Google Calendar: {response.text[:200]}",
                status=response.status_code,
            ) from e

    def event_body(self, booking: Booking) -> dict:
        """Build the events resource body for a booking, tagged as ours."""
        return {
            "summary": booking.summary,
            "description": booking.description,
            "start": {"dateTime": booking.start_date_time, "timeZone": self.time_zone},
            "end": {"dateTime": booking.end_date_time, "timeZone": self.time_zone},
            "extendedProperties": {
                "private": {"source": APP_SOURCE_MARKER, "bookingId": booking.id},
            },
        }

    # ------------------------------------------------------------------ #
    # Events CRUD                                                         #
    # ------------------------------------------------------------------ #

    def list_events(self, token: Token, since: datetime) -> list[dict]:
        """Fetch every event starting at or after ``since``, recurring ones expanded."""
        params = {
            "timeMin": since.isoformat(),
            "maxResults": self.max_results,
            "singleEvents": "true",
        }
        events: list[dict] = []
        while True:
            data = self._json(self._request(token, "GET", self._events_path, params=params))
            events.extend(data.get("items") or [])
            page_token = data.get("nextPageToken")
            if not page_token:
                break
            params["pageToken"] = page_token

        filtered = [e for e in events if e.get("eventType") not in _SKIPPED_EVENT_TYPES]
        logger.debug(
            f"Fetched {len(filtered)} events ({len(events) - len(filtered)} birthday events skipped)"
        )
        return filtered

    def insert_event(self, token: Token, booking: Booking) -> dict:
        """Create a remote event for a booking; returns the created resource."""
        response = self._request(token, "POST", self._events_path, json=self.event_body(booking))
        return self._json(response)

    def update_event(self, token: Token, event_id: str, booking: Booking) -> dict:
        """Replace an existing event. Raises NotFound when the event is gone."""
        response = self._request(
            token, "PUT", f"{self._events_path}/{event_id}", json=self.event_body(booking)
        )
        return self._json(response)

    def delete_event(self, token: Token, event_id: str) -> None:
        """Remove an event. Raises RateLimited when throttled, NotFound when already gone."""
        self._request(token, "DELETE", f"{self._events_path}/{event_id}")
