"""Voice-agent calendar tools: book, check availability, cancel.

The voice vendor relays ``result`` verbatim to a caller mid-conversation, so every
public coroutine here returns a ``ToolResult`` and never raises for business or
provider failures.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..models.settings import TenantSettings
from ..repositories import settings as settings_repo
from ..schemas.retell import AvailabilityResult, ToolResult
from . import events as event_helpers
from . import google_calendar
from .availability import (
    DEFAULT_BUSINESS_END,
    DEFAULT_BUSINESS_START,
    SLOT_DURATION,
    free_slots,
    local_zone,
    parse_clock,
)
from .calendar import calendar_id_for, open_tenant_client

logger = logging.getLogger(__name__)

PHONE_KEYS = (
    "phone",
    "customer_phone",
    "phone_number",
    "phoneNumber",
    "customerPhone",
    "telefono",
    "numero",
    "mobile",
    "cell",
)
NAME_KEYS = ("name", "customer_name", "customerName", "nome", "cliente")
EMAIL_KEYS = ("email", "customer_email", "customerEmail", "mail")
CHECK_DATE_KEYS = ("date", "query", "when", "start_date")
DEFAULT_CUSTOMER_NAME = "Cliente"
MIN_PHONE_LENGTH = 6
AI_BOOKING_HEADER = "Prenotazione automatica (AI booking)"

RESULT_NOT_CONNECTED = "Error: Calendar not connected."
RESULT_BOOKING_FAILED = "Error: Si è verificato un errore durante la prenotazione."
RESULT_CHECK_FAILED = "Error checking availability."
RESULT_CANCEL_FAILED = "Error cancelling appointment."
RESULT_NO_APPOINTMENT = "Error: No appointment found for this number."
RESULT_CANCELLED = "Success: Appointment cancelled."

_PHONE_NOISE = re.compile(r"[\s\-()]")
_WHITESPACE = re.compile(r"\s")
_CLOCK = re.compile(r"^(\d{1,2})(?:[:.](\d{2}))?")

Envelope = dict[str, Any]


class BookingRejected(ValueError):
    """A tool-call payload failed validation; ``result`` is read back to the caller."""

    result = "Error: Invalid booking request."


class MissingPhone(BookingRejected):
    result = "Error: Missing phone number."


class MissingDateTime(BookingRejected):
    result = "Error: Missing date or time."


class InvalidDateTime(BookingRejected):
    result = "Error: Invalid date or time."


class CalendarUnavailable(RuntimeError):
    """The tenant has no usable calendar credential."""


# --- envelope unwrapping --------------------------------------------------------------


def _nested(*path: str) -> Callable[[Envelope], Optional[Envelope]]:
    def extractor(payload: Envelope) -> Optional[Envelope]:
        value: Any = payload
        for key in path:
            if not isinstance(value, dict):
                return None
            value = value.get(key)
        return value if isinstance(value, dict) else None

    extractor.__name__ = "from_" + "_".join(path)
    return extractor


ENVELOPE_EXTRACTORS: tuple[Callable[[Envelope], Optional[Envelope]], ...] = (
    _nested("args"),
    _nested("parameters"),
    _nested("call", "args"),
    _nested("argument"),
)


def unwrap_envelope(payload: Envelope) -> Envelope:
    """Return the first nested parameter object found, else the payload itself."""

    for extractor in ENVELOPE_EXTRACTORS:
        unwrapped = extractor(payload)
        if unwrapped is not None:
            return unwrapped
    return payload


# --- field extraction -----------------------------------------------------------------


def _first_value(body: Envelope, keys: tuple[str, ...]) -> str | None:
    for key in keys:
        value = body.get(key)
        if value not in (None, ""):
            return str(value).strip() or None
    return None


def normalize_phone(raw: str | None) -> str | None:
    """Strip spaces, dashes and parentheses; anything shorter than 6 chars is unusable."""

    if not raw:
        return None
    cleaned = _PHONE_NOISE.sub("", str(raw))
    if len(cleaned) < MIN_PHONE_LENGTH:
        return None
    return cleaned


def split_iso_time(raw_date: str | None, raw_time: str | None) -> tuple[str | None, str | None]:
    """Split ``YYYY-MM-DDTHH:MM[:SS][Z]`` given as the time into date and ``HH:MM``."""

    if not raw_time or "T" not in raw_time:
        return raw_date, raw_time
    date_part, _, time_part = raw_time.partition("T")
    if not raw_date:
        raw_date = date_part
    pieces = time_part.split(":")
    if len(pieces) >= 2:
        raw_time = f"{pieces[0]}:{pieces[1][:2]}"
    return raw_date, raw_time


def parse_day(value: str) -> date:
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError as exc:
        raise InvalidDateTime(f"Unparseable date {value!r}") from exc


def parse_time_of_day(value: str) -> time:
    match = _CLOCK.match(value.strip())
    if not match:
        raise InvalidDateTime(f"Unparseable time {value!r}")
    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    try:
        return time(hour=hour, minute=minute)
    except ValueError as exc:
        raise InvalidDateTime(f"Out of range time {value!r}") from exc


@dataclass(slots=True)
class BookingRequest:
    customer_name: str
    phone: str
    day: date
    start_time: time
    email: str | None = None
    note: str | None = None

    @property
    def time_label(self) -> str:
        return self.start_time.strftime("%H:%M")


def parse_booking_request(payload: Envelope) -> BookingRequest:
    """Unwrap and validate a booking payload, raising ``BookingRejected`` subclasses."""

    body = unwrap_envelope(payload)

    phone = normalize_phone(_first_value(body, PHONE_KEYS))
    name = _first_value(body, NAME_KEYS) or DEFAULT_CUSTOMER_NAME
    email = _first_value(body, EMAIL_KEYS)
    note = _first_value(body, ("summary",))
    raw_date, raw_time = split_iso_time(_first_value(body, ("date",)), _first_value(body, ("time",)))

    if phone is None:
        raise MissingPhone("Phone missing or shorter than 6 characters")
    if not raw_date or not raw_time:
        raise MissingDateTime("Date or time missing")

    return BookingRequest(
        customer_name=name,
        phone=phone,
        day=parse_day(raw_date),
        start_time=parse_time_of_day(raw_time),
        email=email,
        note=note,
    )


def schedule(request: BookingRequest, tz_name: str | None = None) -> tuple[datetime, datetime]:
    """Return the booking's local start and end instants."""

    start = datetime.combine(request.day, request.start_time, tzinfo=local_zone(tz_name))
    return start, start + SLOT_DURATION


def booking_description(request: BookingRequest) -> str:
    return "\n".join(
        [
            AI_BOOKING_HEADER,
            f"Cliente: {request.customer_name}",
            f"Telefono: {request.phone}",
            f"Email: {request.email or '-'}",
            f"Note: {request.note or '-'}",
        ]
    )


def booking_event_body(request: BookingRequest, start: datetime, end: datetime) -> dict[str, Any]:
    """Build the Google event for a booking, using wall-clock times plus a zone name."""

    tz_name = settings.calendar_timezone
    return {
        "summary": f"{request.customer_name} (AI)",
        "description": booking_description(request),
        "start": {"dateTime": start.replace(tzinfo=None).isoformat(timespec="seconds"), "timeZone": tz_name},
        "end": {"dateTime": end.replace(tzinfo=None).isoformat(timespec="seconds"), "timeZone": tz_name},
    }


# --- tool operations ------------------------------------------------------------------


async def _connected_settings(session: AsyncSession, tenant_id: str) -> TenantSettings:
    row = await settings_repo.get_by_tenant(session, tenant_id)
    if row is None or not (row.google_refresh_token or "").strip():
        raise CalendarUnavailable(f"Calendar not connected for tenant {tenant_id}")
    return row


async def book_appointment(session: AsyncSession, tenant_id: str, payload: Envelope) -> ToolResult:
    """Create a 30-minute appointment from a voice-agent payload."""

    try:
        request = parse_booking_request(payload)
    except BookingRejected as exc:
        logger.info("Booking rejected for tenant %s: %s", tenant_id, exc)
        return ToolResult(result=exc.result)

    logger.info(
        "Booking for tenant %s: name=%s date=%s time=%s",
        tenant_id,
        request.customer_name,
        request.day.isoformat(),
        request.time_label,
    )

    try:
        row = await _connected_settings(session, tenant_id)
        client = await open_tenant_client(session, row)
        start, end = schedule(request)
        await client.insert_event(calendar_id_for(row), booking_event_body(request, start, end))
    except (CalendarUnavailable, google_calendar.NotConfigured, google_calendar.TokenRevoked) as exc:
        logger.warning("Booking for tenant %s failed, calendar unavailable: %s", tenant_id, exc)
        return ToolResult(result=RESULT_NOT_CONNECTED)
    except Exception:  # noqa: BLE001 - the voice agent must always get a result
        logger.exception("Booking for tenant %s failed", tenant_id)
        return ToolResult(result=RESULT_BOOKING_FAILED)

    return ToolResult(
        result=f"Success: Appuntamento confermato per il {request.day:%d/%m/%Y} alle {request.time_label}.",
        details=f"Appuntamento prenotato per {request.day.isoformat()} alle {request.time_label}.",
    )


async def check_availability(session: AsyncSession, tenant_id: str, payload: Envelope) -> AvailabilityResult:
    """List the free slots of one day within the tenant's office hours."""

    body = unwrap_envelope(payload)
    zone = local_zone()
    raw_date = _first_value(body, CHECK_DATE_KEYS)

    try:
        day = parse_day(raw_date) if raw_date else datetime.now(zone).date()
    except InvalidDateTime:
        logger.info("Availability check for tenant %s with bad date %r", tenant_id, raw_date)
        return AvailabilityResult(result=RESULT_CHECK_FAILED)

    try:
        row = await settings_repo.get_by_tenant(session, tenant_id)
        if row is None:
            return AvailabilityResult(result="Error: User settings not found. Calendar not connected.")
        if not (row.google_refresh_token or "").strip():
            return AvailabilityResult(result=RESULT_NOT_CONNECTED)

        client = await open_tenant_client(session, row)
        day_start = datetime.combine(day, time.min, tzinfo=zone)
        day_end = day_start + timedelta(days=1)
        raw_events = await client.list_events(
            calendar_id_for(row),
            time_min=day_start.isoformat(),
            time_max=day_end.isoformat(),
            time_zone=settings.calendar_timezone,
        )
        slots = free_slots(
            day,
            raw_events,
            start=parse_clock(row.office_hours_start, DEFAULT_BUSINESS_START),
            end=parse_clock(row.office_hours_end, DEFAULT_BUSINESS_END),
            tz=zone,
        )
    except (google_calendar.NotConfigured, google_calendar.TokenRevoked) as exc:
        logger.warning("Availability check for tenant %s failed: %s", tenant_id, exc)
        return AvailabilityResult(result=RESULT_NOT_CONNECTED)
    except Exception:  # noqa: BLE001 - the voice agent must always get a result
        logger.exception("Availability check for tenant %s failed", tenant_id)
        return AvailabilityResult(result=RESULT_CHECK_FAILED)

    labels = [slot.strftime("%H:%M") for slot in slots]
    logger.info("Availability for tenant %s on %s: %d free slots", tenant_id, day.isoformat(), len(labels))
    return AvailabilityResult(
        result=f"Found {len(labels)} available slots: {', '.join(labels)}",
        slots=labels,
        date=day.strftime("%d/%m/%Y"),
    )


def find_event_by_phone(raw_events: list[dict[str, Any]], search_phone: str) -> dict[str, Any] | None:
    """Return the first event mentioning the phone number, in provider order."""

    for event in raw_events:
        if not event.get("id"):
            continue
        extracted = event_helpers.extract_phone(event.get("description"))
        if extracted and search_phone in extracted:
            return event
        text = (event.get("summary") or "") + (event.get("description") or "")
        if search_phone in _WHITESPACE.sub("", text):
            return event
    return None


async def cancel_appointment(session: AsyncSession, tenant_id: str, payload: Envelope) -> ToolResult:
    """Delete the first upcoming appointment that mentions the caller's number."""

    body = unwrap_envelope(payload)
    search_phone = normalize_phone(_first_value(body, PHONE_KEYS))
    if search_phone is None:
        return ToolResult(result=MissingPhone.result)

    try:
        row = await _connected_settings(session, tenant_id)
        client = await open_tenant_client(session, row)
        now = datetime.now(timezone.utc)
        raw_events = await client.list_events(
            calendar_id_for(row),
            time_min=now.isoformat(),
            time_max=(now + timedelta(days=settings.cancel_search_days)).isoformat(),
            time_zone=settings.calendar_timezone,
        )
        match = find_event_by_phone(raw_events, search_phone)
        if match is None:
            return ToolResult(result=RESULT_NO_APPOINTMENT)
        await client.delete_event(calendar_id_for(row), match["id"])
    except (CalendarUnavailable, google_calendar.NotConfigured, google_calendar.TokenRevoked) as exc:
        logger.warning("Cancellation for tenant %s failed, calendar unavailable: %s", tenant_id, exc)
        return ToolResult(result=RESULT_NOT_CONNECTED)
    except Exception:  # noqa: BLE001 - the voice agent must always get a result
        logger.exception("Cancellation for tenant %s failed", tenant_id)
        return ToolResult(result=RESULT_CANCEL_FAILED)

    logger.info("Cancelled event %s for tenant %s", match["id"], tenant_id)
    return ToolResult(result=RESULT_CANCELLED)
