"""Derive dashboard attributes from raw Google Calendar events."""
from __future__ import annotations

import re
from datetime import date, datetime, time
from typing import Any, Iterable, Optional, Protocol
from zoneinfo import ZoneInfo

AI_BOOKING_MARKERS: tuple[str, ...] = ("avix", "ai booking", "prenotazione automatica", "bot")
AI_CREATOR_MARKERS: tuple[str, ...] = ("avix", "service")
DEFAULT_ATTENDEE_NAME = "Cliente"

# Italian mobile/landline: optional +39, leading 0 or 3, two digits, then 6-7 digits.
PHONE_PATTERN = re.compile(r"(\+39\s?)?[03]\d{2}[\s.-]?\d{6,7}")
_PHONE_SEPARATORS = re.compile(r"[\s.-]")
_NON_DIGITS = re.compile(r"\D")


class CallLike(Protocol):
    customer_number: Optional[str]
    summary: Optional[str]


def is_ai_booking(event: dict[str, Any]) -> bool:
    """Return True when the event looks like it was booked by the voice agent."""

    description = (event.get("description") or "").lower()
    if any(marker in description for marker in AI_BOOKING_MARKERS):
        return True

    creator_email = (event.get("creator") or {}).get("email") or (event.get("organizer") or {}).get("email") or ""
    creator_email = creator_email.lower()
    return any(marker in creator_email for marker in AI_CREATOR_MARKERS)


def extract_phone(description: str | None) -> str | None:
    """Return the first Italian-looking phone number in the text, separators removed."""

    if not description:
        return None
    match = PHONE_PATTERN.search(description)
    if not match:
        return None
    return _PHONE_SEPARATORS.sub("", match.group(0))


def attendee_name(event: dict[str, Any]) -> str:
    attendees = event.get("attendees") or []
    attendee = next((a for a in attendees if a.get("displayName") or a.get("email")), None)
    if attendee is not None:
        if attendee.get("displayName"):
            return attendee["displayName"]
        return attendee["email"].split("@")[0]
    return event.get("summary") or DEFAULT_ATTENDEE_NAME


def attendee_email(event: dict[str, Any]) -> str | None:
    attendees = event.get("attendees") or []
    attendee = next((a for a in attendees if a.get("email")), None)
    return attendee["email"] if attendee else None


def parse_datetime(value: str) -> datetime:
    """Parse an RFC 3339 timestamp as returned by Google."""

    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def timed_bounds(event: dict[str, Any]) -> tuple[datetime, datetime] | None:
    """Return (start, end) for timed events; None for all-day or malformed ones."""

    start = (event.get("start") or {}).get("dateTime")
    end = (event.get("end") or {}).get("dateTime")
    if not start or not end:
        return None
    return parse_datetime(start), parse_datetime(end)


def boundary_instant(boundary: dict[str, Any] | None, tz: ZoneInfo, now: datetime) -> datetime:
    """Coerce an event boundary to an instant.

    Timed values are used as-is, all-day dates are promoted to local midnight, and a
    missing boundary falls back to ``now``.
    """

    boundary = boundary or {}
    if boundary.get("dateTime"):
        return parse_datetime(boundary["dateTime"])
    if boundary.get("date"):
        return datetime.combine(date.fromisoformat(boundary["date"]), time.min, tzinfo=tz)
    return now


def digits_only(value: str) -> str:
    return _NON_DIGITS.sub("", value)


def match_call(
    calls: Iterable[CallLike],
    *,
    phone: str | None,
    email: str | None,
) -> CallLike | None:
    """Return the first call that plausibly belongs to an event.

    Phone containment is tried in both directions first, then the attendee email is
    looked up inside call summaries. Ties go to store order.
    """

    calls = list(calls)
    if phone:
        for call in calls:
            number = call.customer_number
            if not number:
                continue
            number_digits = digits_only(number)
            if phone in number or (number_digits and number_digits in phone):
                return call

    if email:
        needle = email.lower()
        for call in calls:
            if call.summary and needle in call.summary.lower():
                return call

    return None
