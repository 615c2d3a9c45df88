from datetime import date, time, timedelta
from zoneinfo import ZoneInfo

from avix_api.services import availability

ROME = ZoneInfo("Europe/Rome")
DAY = date(2025, 3, 10)


def _event(start: str, end: str) -> dict:
    return {"id": "evt", "start": {"dateTime": start}, "end": {"dateTime": end}}


def test_generate_day_slots_covers_window_on_30_minute_grid() -> None:
    slots = availability.generate_day_slots(DAY, start=time(9), end=time(18), tz=ROME)

    assert len(slots) == 18
    assert slots[0].hour == 9 and slots[0].minute == 0
    assert slots[-1].hour == 17 and slots[-1].minute == 30
    assert all(b - a == timedelta(minutes=30) for a, b in zip(slots, slots[1:]))
    assert all(slot.tzinfo is ROME for slot in slots)


def test_generate_day_slots_empty_when_window_is_inverted() -> None:
    assert availability.generate_day_slots(DAY, start=time(18), end=time(9), tz=ROME) == []


def test_overlapping_event_blocks_slot_but_touching_one_does_not() -> None:
    events = [_event("2025-03-10T10:00:00+01:00", "2025-03-10T11:00:00+01:00")]
    slots = {slot.strftime("%H:%M") for slot in availability.free_slots(DAY, events, tz=ROME)}

    assert "10:00" not in slots
    assert "10:30" not in slots
    assert "09:30" in slots
    assert "11:00" in slots


def test_event_given_in_utc_blocks_local_slot() -> None:
    events = [_event("2025-03-10T13:00:00Z", "2025-03-10T13:30:00Z")]

    slots = {slot.strftime("%H:%M") for slot in availability.free_slots(DAY, events, tz=ROME)}

    assert "14:00" not in slots
    assert "13:30" in slots


def test_all_day_events_never_block() -> None:
    events = [{"id": "holiday", "start": {"date": "2025-03-10"}, "end": {"date": "2025-03-11"}}]

    assert len(availability.free_slots(DAY, events, tz=ROME)) == 18


def test_parse_clock_falls_back_on_junk() -> None:
    assert availability.parse_clock("08:30", time(9)) == time(8, 30)
    assert availability.parse_clock("19:00:00", time(18)) == time(19)
    assert availability.parse_clock("nope", time(9)) == time(9)
    assert availability.parse_clock(None, time(18)) == time(18)
