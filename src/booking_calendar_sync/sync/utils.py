"""
Stateless booking/event helpers.
"""

import logging
from datetime import datetime
from datetime import timezone
from zoneinfo import ZoneInfo

from booking_calendar_sync.models import STATUS_CANCELED
from booking_calendar_sync.models import Booking

_logger = logging.getLogger(__name__)


def parse_booking_time(value: str, time_zone: str) -> datetime | None:
    """Parse an ISO-8601 booking timestamp; naive values are in the business zone.

    Returns None for empty or malformed values.
    """
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        _logger.debug(f"Unparsable booking timestamp: {value!r}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=ZoneInfo(time_zone))
    return parsed


def lookup_window_start(bookings: list[Booking], now: datetime, time_zone: str) -> datetime:
    """
    Earliest instant the remote lookup must cover.

    Normally ``now``. Bookings already in the past pull the window back to
    their start, so their events are found and not inserted again.
    """
    start = now
    for booking in bookings:
        if not booking.event_id:
            continue
        booking_start = parse_booking_time(booking.start_date_time, time_zone)
        if booking_start is not None and booking_start < start:
            start = booking_start
    return start.astimezone(timezone.utc)


def deleted_booking_from_event(event: dict, user_id: str) -> Booking:
    """Describe a removed orphan event in Booking form for the sync report."""
    start = event.get("start") or {}
    end = event.get("end") or {}
    return Booking(
        id=event["id"],
        summary=event.get("summary") or "",
        description=event.get("description") or "",
        start_date_time=start.get("dateTime") or start.get("date") or "",
        end_date_time=end.get("dateTime") or end.get("date") or "",
        status=STATUS_CANCELED,
        event_id=event["id"],
        user_id=user_id,
        date="",
    )
