"""Free/busy slot computation for a single calendar day."""
from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Any, Iterable
from zoneinfo import ZoneInfo

from ..core.config import settings
from .events import timed_bounds

SLOT_DURATION = timedelta(minutes=settings.slot_duration_minutes)


def local_zone(name: str | None = None) -> ZoneInfo:
    return ZoneInfo(name or settings.calendar_timezone)


def parse_clock(value: str | None, default: time) -> time:
    """Parse an ``HH:MM`` (or ``HH:MM:SS``) office-hours value, falling back on junk."""

    if not value:
        return default
    try:
        hours, minutes = value.strip().split(":")[:2]
        return time(hour=int(hours), minute=int(minutes))
    except ValueError:
        return default


DEFAULT_BUSINESS_START = parse_clock(settings.business_hours_start, time(hour=9, minute=0))
DEFAULT_BUSINESS_END = parse_clock(settings.business_hours_end, time(hour=18, minute=0))


def generate_day_slots(
    day: date,
    *,
    start: time = DEFAULT_BUSINESS_START,
    end: time = DEFAULT_BUSINESS_END,
    tz: ZoneInfo | None = None,
    step: timedelta = SLOT_DURATION,
) -> list[datetime]:
    """Return slot start instants from ``start`` (inclusive) to ``end`` (exclusive)."""

    zone = tz or local_zone()
    current = datetime.combine(day, start, tzinfo=zone)
    window_end = datetime.combine(day, end, tzinfo=zone)

    slots: list[datetime] = []
    while current < window_end:
        slots.append(current)
        current = current + step
    return slots


def is_slot_free(
    slot_start: datetime,
    events: Iterable[dict[str, Any]],
    duration: timedelta = SLOT_DURATION,
) -> bool:
    """Return True when no timed event overlaps ``[slot_start, slot_start + duration)``.

    All-day events never block a slot. Touching boundaries do not overlap.
    """

    slot_end = slot_start + duration
    for event in events:
        bounds = timed_bounds(event)
        if bounds is None:
            continue
        event_start, event_end = bounds
        if slot_start < event_end and slot_end > event_start:
            return False
    return True


def free_slots(
    day: date,
    events: list[dict[str, Any]],
    *,
    start: time = DEFAULT_BUSINESS_START,
    end: time = DEFAULT_BUSINESS_END,
    tz: ZoneInfo | None = None,
) -> list[datetime]:
    return [
        slot
        for slot in generate_day_slots(day, start=start, end=end, tz=tz)
        if is_slot_free(slot, events)
    ]
