"""
"Add to calendar" links for a single booking.
"""

import re
from urllib.parse import quote

GOOGLE_EVENT_EDIT_URL = "https://calendar.google.com/calendar/r/eventedit"


def _compact(value: str) -> str:
    """2024-03-10T10:00:00.000Z -> 20240310T100000Z"""
    return re.sub(r"[-:]", "", value).split(".")[0].rstrip("Z") + "Z"


def generate_calendar_links(
    summary: str,
    start_date_time: str,
    end_date_time: str,
    description: str = "",
    location: str | None = None,
) -> dict[str, str]:
    if not start_date_time or not end_date_time:
        raise ValueError("start_date_time and end_date_time are required")

    dates = f"{_compact(start_date_time)}/{_compact(end_date_time)}"
    url = (
        f"{GOOGLE_EVENT_EDIT_URL}?text={quote(summary, safe='')}"
        f"&dates={dates}&details={quote(description or '', safe='')}"
    )
    if location:
        url += f"&location={quote(location, safe='')}"
    return {"google_calendar": url}
