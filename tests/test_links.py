import pytest

from booking_calendar_sync.links import generate_calendar_links


def test_google_link():
    links = generate_calendar_links(
        "Photo session",
        "2024-03-10T10:00:00.000Z",
        "2024-03-10T11:00:00.000Z",
        description="Bring outfits & props",
    )

    assert links["google_calendar"] == (
        "https://calendar.google.com/calendar/r/eventedit"
        "?text=Photo%20session"
        "&dates=20240310T100000Z/20240310T110000Z"
        "&details=Bring%20outfits%20%26%20props"
    )


def test_location_appended():
    links = generate_calendar_links(
        "Session", "2024-03-10T10:00:00", "2024-03-10T11:00:00", location="Via Roma 1"
    )

    assert links["google_calendar"].endswith("&location=Via%20Roma%201")
    assert "&dates=20240310T100000Z/20240310T110000Z" in links["google_calendar"]


@pytest.mark.parametrize("start,end", [("", "2024-03-10T11:00:00"), ("2024-03-10T10:00:00", "")])
def test_missing_times_rejected(start, end):
    with pytest.raises(ValueError):
        generate_calendar_links("Session", start, end)
