"""Dashboard calendar: enriched event listing and single-event edits."""
from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..models.call import Call
from ..models.settings import TenantSettings
from ..repositories import calls as calls_repo
from ..repositories import settings as settings_repo
from ..schemas import calendar as schemas
from . import events as event_helpers
from . import google_calendar
from .availability import local_zone

logger = logging.getLogger(__name__)

DEFAULT_EVENT_TITLE = "Evento"

_HTML_TAGS = re.compile(r"<[^>]*>")
_JS_SCHEME = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLERS = re.compile(r"on\w+=", re.IGNORECASE)


def sanitize_text(value: str) -> str:
    """Strip markup and inline script hooks from user-entered text."""

    value = _HTML_TAGS.sub("", value)
    value = _JS_SCHEME.sub("", value)
    value = _EVENT_HANDLERS.sub("", value)
    return value.strip()


def calendar_id_for(row: TenantSettings) -> str:
    return (row.google_calendar_id or google_calendar.PRIMARY_CALENDAR).strip()


async def load_connected_settings(session: AsyncSession, tenant_id: str) -> TenantSettings:
    """Return the tenant's settings, requiring a connected calendar."""

    row = await settings_repo.get_by_tenant(session, tenant_id)
    if row is None:
        raise google_calendar.SettingsNotFound(f"No settings row for tenant {tenant_id}")
    if not row.calendar_connected or not (row.google_refresh_token or "").strip():
        raise google_calendar.NotConfigured(f"Calendar not connected for tenant {tenant_id}")
    return row


async def open_tenant_client(session: AsyncSession, row: TenantSettings) -> google_calendar.CalendarClient:
    """Acquire a fresh client for the tenant and persist the refreshed access token."""

    acquired = await google_calendar.acquire_client(row.google_refresh_token, row.google_access_token)
    if acquired.refreshed_access_token:
        await settings_repo.update_access_token(session, row.id, acquired.refreshed_access_token)
        row.google_access_token = acquired.refreshed_access_token
    return acquired.client


def enrich_event(
    event: dict[str, Any],
    calls: Sequence[Call],
    *,
    now: datetime | None = None,
) -> schemas.EnrichedEvent:
    """Project a Google event for the dashboard and attach its best-matching call."""

    now = now or datetime.now(timezone.utc)
    zone = local_zone()
    phone = event_helpers.extract_phone(event.get("description"))
    email = event_helpers.attendee_email(event)
    call = event_helpers.match_call(calls, phone=phone, email=email)
    event_id = event.get("id") or ""

    return schemas.EnrichedEvent(
        id=event_id,
        google_event_id=event_id,
        title=event.get("summary") or DEFAULT_EVENT_TITLE,
        start=event_helpers.boundary_instant(event.get("start"), zone, now),
        end=event_helpers.boundary_instant(event.get("end"), zone, now),
        attendee_name=event_helpers.attendee_name(event),
        attendee_email=email,
        attendee_phone=phone,
        description=event.get("description") or None,
        is_ai_booking=event_helpers.is_ai_booking(event),
        call_id=getattr(call, "id", None),
        call_summary=getattr(call, "summary", None) or None,
        call_sentiment=getattr(call, "sentiment", None),
        call_recording_url=getattr(call, "recording_url", None) or None,
        call_duration=getattr(call, "duration", None),
        call_transcript=getattr(call, "transcript", None) or None,
        call_transcript_json=getattr(call, "transcript_json", None) or None,
    )


async def fetch_enriched_events(
    session: AsyncSession,
    tenant_id: str,
    time_min: datetime,
    time_max: datetime,
) -> list[schemas.EnrichedEvent]:
    """Return the tenant's events in ``[time_min, time_max)`` annotated with call data.

    Raises a ``google_calendar.CalendarError`` subclass on any failure; callers turn
    those into an empty list plus a banner message.
    """

    row = await load_connected_settings(session, tenant_id)
    client = await open_tenant_client(session, row)

    raw_events = await client.list_events(
        calendar_id_for(row),
        time_min=time_min.isoformat(),
        time_max=time_max.isoformat(),
        time_zone=settings.calendar_timezone,
    )
    calls = await calls_repo.list_for_tenant(session, tenant_id)

    now = datetime.now(timezone.utc)
    return [enrich_event(event, calls, now=now) for event in raw_events]


def _event_time(value: datetime) -> dict[str, str]:
    if value.tzinfo is None:
        value = value.replace(tzinfo=local_zone())
    return {"dateTime": value.isoformat(), "timeZone": settings.calendar_timezone}


async def create_event(
    session: AsyncSession,
    tenant_id: str,
    payload: schemas.EventCreateRequest,
) -> schemas.EnrichedEvent:
    """Create a manual event from the dashboard."""

    row = await load_connected_settings(session, tenant_id)
    client = await open_tenant_client(session, row)

    title = sanitize_text(payload.title)
    description = sanitize_text(payload.description) if payload.description else None
    body: dict[str, Any] = {
        "summary": title,
        "start": _event_time(payload.start),
        "end": _event_time(payload.end),
        "reminders": {"useDefault": False, "overrides": [{"method": "popup", "minutes": 30}]},
    }
    if description:
        body["description"] = description

    created = await client.insert_event(calendar_id_for(row), body)
    if not created.get("id"):
        raise google_calendar.FetchError("Provider returned an event without id")

    logger.info("Created calendar event %s for tenant %s", created["id"], tenant_id)
    return enrich_event(created, [])


async def update_event(
    session: AsyncSession,
    tenant_id: str,
    event_id: str,
    payload: schemas.EventUpdateRequest,
) -> schemas.EnrichedEvent:
    """Patch only the fields supplied by the dashboard."""

    row = await load_connected_settings(session, tenant_id)
    client = await open_tenant_client(session, row)

    body: dict[str, Any] = {}
    if payload.title:
        body["summary"] = sanitize_text(payload.title)
    if payload.description is not None:
        body["description"] = sanitize_text(payload.description)
    if payload.start is not None:
        body["start"] = _event_time(payload.start)
    if payload.end is not None:
        body["end"] = _event_time(payload.end)

    updated = await client.patch_event(calendar_id_for(row), event_id, body)
    return enrich_event(updated, [])


async def delete_event(session: AsyncSession, tenant_id: str, event_id: str) -> None:
    row = await load_connected_settings(session, tenant_id)
    client = await open_tenant_client(session, row)
    await client.delete_event(calendar_id_for(row), event_id)
    logger.info("Deleted calendar event %s for tenant %s", event_id, tenant_id)
