"""
Rate-limit aware deletion.
"""

import logging
import time
from typing import Callable

from booking_calendar_sync.google_client import GoogleCalendarClient
from booking_calendar_sync.models import NotFound
from booking_calendar_sync.models import RateLimited
from booking_calendar_sync.models import Token

MAX_DELETE_ATTEMPTS = 5


def backoff_delay(attempt: int) -> int:
    """Seconds to wait before ``attempt`` (1-based): 1, 2, 4, 8 from attempt 2 on."""
    return 2 ** (attempt - 2) if attempt >= 2 else 0


def remove_event_with_backoff(
    client: GoogleCalendarClient,
    token: Token,
    event_id: str,
    logger: logging.Logger | None = None,
    sleep: Callable[[float], None] = time.sleep,
    max_attempts: int = MAX_DELETE_ATTEMPTS,
) -> bool:
    """
    Delete a remote event, retrying only on RateLimited.

    Returns True if the event was deleted, False if it was already gone.
    The last RateLimited error is re-raised once ``max_attempts`` is used up;
    any other failure propagates on the first occurrence.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
    logger = logger or logging.getLogger(__name__)
    for attempt in range(1, max_attempts + 1):
        if attempt > 1:
            sleep(backoff_delay(attempt))
        try:
            client.delete_event(token, event_id)
            return True
        except NotFound:
            logger.debug(f"Event {event_id} already gone")
            return False
        except RateLimited:
            if attempt == max_attempts:
                logger.error(f"Giving up deleting {event_id} after {attempt} rate-limited attempts")
                raise
            logger.warning(
                f"Rate limit exceeded deleting {event_id} (attempt {attempt}), "
                f"retrying in {backoff_delay(attempt + 1)}s"
            )
