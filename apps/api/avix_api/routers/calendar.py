"""Dashboard calendar endpoints."""
from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.session import get_session
from ..schemas import calendar as schemas
from ..services import calendar as calendar_service
from ..services import google_calendar, rate_limit
from .deps import current_tenant_id, get_calendar_limiter, require_tenant_id

logger = logging.getLogger(__name__)

router = APIRouter()

DEFAULT_WINDOW = timedelta(days=30)
EVENT_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,256}$")


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _validated_event_id(event_id: str) -> str:
    if not EVENT_ID_PATTERN.match(event_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="ID evento non valido")
    return event_id


def _mutation_error(exc: google_calendar.CalendarError, fallback: str) -> HTTPException:
    if isinstance(exc, (google_calendar.NotConfigured, google_calendar.SettingsNotFound)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Calendario non connesso")
    if isinstance(exc, google_calendar.TokenRevoked):
        return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=exc.user_message)
    if isinstance(exc, google_calendar.CalendarNotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Evento non trovato")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=fallback)


@router.get("", response_model=schemas.CalendarEventsResponse)
async def list_events(
    request: Request,
    response: Response,
    time_min: datetime | None = Query(default=None, alias="timeMin"),
    time_max: datetime | None = Query(default=None, alias="timeMax"),
    tenant_id: str | None = Depends(current_tenant_id),
    limiter: rate_limit.RateLimiter = Depends(get_calendar_limiter),
    session: AsyncSession = Depends(get_session),
) -> schemas.CalendarEventsResponse:
    """Return enriched events, or an empty list plus a banner message on failure."""

    decision = rate_limit.enforce(limiter, tenant_id or rate_limit.client_ip(request))
    response.headers.update(decision.headers())

    now = datetime.now(timezone.utc)
    window_start = _as_utc(time_min) if time_min else now
    window_end = _as_utc(time_max) if time_max else now + DEFAULT_WINDOW

    try:
        if tenant_id is None:
            raise google_calendar.Unauthenticated("Request carries no tenant")
        events = await calendar_service.fetch_enriched_events(session, tenant_id, window_start, window_end)
    except google_calendar.CalendarError as exc:
        logger.warning("Calendar fetch for tenant %s failed with %s: %s", tenant_id, exc.code, exc)
        response.status_code = exc.status_code
        return schemas.CalendarEventsResponse(error=exc.user_message, error_code=exc.code)
    except Exception:  # noqa: BLE001 - the dashboard must still render
        logger.exception("Calendar fetch for tenant %s failed", tenant_id)
        response.status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        return schemas.CalendarEventsResponse(
            error=google_calendar.FetchError.user_message, error_code=google_calendar.FetchError.code
        )

    return schemas.CalendarEventsResponse(events=events, count=len(events))


@router.post("/create", response_model=schemas.EventMutationResponse)
async def create_event(
    payload: schemas.EventCreateRequest,
    tenant_id: str = Depends(require_tenant_id),
    limiter: rate_limit.RateLimiter = Depends(get_calendar_limiter),
    session: AsyncSession = Depends(get_session),
) -> schemas.EventMutationResponse:
    """Create a manual event."""

    rate_limit.enforce(limiter, tenant_id)
    try:
        event = await calendar_service.create_event(session, tenant_id, payload)
    except google_calendar.CalendarError as exc:
        logger.warning("Event creation for tenant %s failed: %s", tenant_id, exc)
        raise _mutation_error(exc, "Errore nella creazione dell'evento") from exc
    return schemas.EventMutationResponse(event=event)


@router.patch("/{event_id}", response_model=schemas.EventMutationResponse)
async def update_event(
    event_id: str,
    payload: schemas.EventUpdateRequest,
    tenant_id: str = Depends(require_tenant_id),
    limiter: rate_limit.RateLimiter = Depends(get_calendar_limiter),
    session: AsyncSession = Depends(get_session),
) -> schemas.EventMutationResponse:
    """Patch an event's title, description or times."""

    rate_limit.enforce(limiter, tenant_id)
    event_id = _validated_event_id(event_id)
    try:
        event = await calendar_service.update_event(session, tenant_id, event_id, payload)
    except google_calendar.CalendarError as exc:
        logger.warning("Event update %s for tenant %s failed: %s", event_id, tenant_id, exc)
        raise _mutation_error(exc, "Errore nell'aggiornamento dell'evento") from exc
    return schemas.EventMutationResponse(event=event)


@router.delete("/{event_id}", response_model=schemas.EventMutationResponse)
async def delete_event(
    event_id: str,
    tenant_id: str = Depends(require_tenant_id),
    limiter: rate_limit.RateLimiter = Depends(get_calendar_limiter),
    session: AsyncSession = Depends(get_session),
) -> schemas.EventMutationResponse:
    """Delete an event."""

    rate_limit.enforce(limiter, tenant_id)
    event_id = _validated_event_id(event_id)
    try:
        await calendar_service.delete_event(session, tenant_id, event_id)
    except google_calendar.CalendarError as exc:
        logger.warning("Event delete %s for tenant %s failed: %s", event_id, tenant_id, exc)
        raise _mutation_error(exc, "Errore nella cancellazione dell'evento") from exc
    return schemas.EventMutationResponse()
