"""Google Calendar access: eager OAuth refresh plus a thin async event client."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable

from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from ..core.config import settings

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"
PRIMARY_CALENDAR = "primary"
MAX_EVENTS_PER_CALL = 250


class CalendarError(RuntimeError):
    """Base class for calendar failures surfaced to the dashboard."""

    code = "CALENDAR_FETCH_ERROR"
    status_code = 500
    user_message = "Errore nel recupero degli eventi. Riprova più tardi."


class Unauthenticated(CalendarError):
    code = "UNAUTHORIZED"
    status_code = 401
    user_message = "Sessione non valida. Effettua di nuovo l'accesso."


class SettingsNotFound(CalendarError):
    code = "SETTINGS_NOT_FOUND"
    status_code = 200
    user_message = "Impostazioni non trovate."


class NotConfigured(CalendarError):
    code = "NOT_CONFIGURED"
    status_code = 200
    user_message = "Collega il tuo Google Calendar nelle Impostazioni."


class CredentialMissing(NotConfigured):
    """Raised when a refresh credential is empty."""


class MissingCredentials(CalendarError):
    code = "MISSING_CREDENTIALS"
    status_code = 200
    user_message = "Credenziali Google OAuth non configurate sul server."


class TokenRevoked(CalendarError):
    code = "OAUTH_TOKEN_REVOKED"
    status_code = 401
    user_message = "Token scaduto o revocato. Ricollega il calendario nelle Impostazioni."


class InsufficientPermissions(CalendarError):
    code = "INSUFFICIENT_PERMISSIONS"
    status_code = 403
    user_message = "Permessi insufficienti. Ricollega il calendario con tutti i permessi richiesti."


class CalendarNotFound(CalendarError):
    code = "CALENDAR_NOT_FOUND"
    status_code = 404
    user_message = "Calendario non trovato. Verifica l'ID nelle Impostazioni."


class FetchError(CalendarError):
    pass


def classify_http_error(exc: HttpError) -> CalendarError:
    """Map a Google API error onto the calendar error taxonomy."""

    status = getattr(getattr(exc, "resp", None), "status", None)
    text = str(exc).lower()
    if "invalid_grant" in text or status == 401:
        return TokenRevoked(str(exc))
    if status == 403 or "insufficient" in text:
        return InsufficientPermissions(str(exc))
    if status == 404 or "notfound" in text:
        return CalendarNotFound(str(exc))
    return FetchError(str(exc))


async def _run_blocking(operation: str, func: Callable[[], Any]) -> Any:
    """Run a blocking SDK call in the default executor under the provider timeout."""

    loop = asyncio.get_running_loop()
    try:
        return await asyncio.wait_for(
            loop.run_in_executor(None, func), timeout=settings.provider_timeout_seconds
        )
    except asyncio.TimeoutError as exc:
        raise FetchError(f"{operation} timed out after {settings.provider_timeout_seconds}s") from exc
    except HttpError as exc:
        raise classify_http_error(exc) from exc
    except RefreshError as exc:
        raise TokenRevoked(f"{operation}: refresh rejected") from exc
    except TransportError as exc:
        raise FetchError(f"{operation}: transport failure") from exc


class CalendarClient:
    """Async facade over a ``calendar/v3`` service bound to one tenant's credentials."""

    def __init__(self, service: Any) -> None:
        self._service = service

    async def list_events(
        self,
        calendar_id: str,
        *,
        time_min: str,
        time_max: str,
        time_zone: str | None = None,
    ) -> list[dict[str, Any]]:
        """Return up to 250 expanded event instances ordered by start time."""

        params: dict[str, Any] = {
            "calendarId": calendar_id,
            "timeMin": time_min,
            "timeMax": time_max,
            "singleEvents": True,
            "orderBy": "startTime",
            "maxResults": MAX_EVENTS_PER_CALL,
        }
        if time_zone:
            params["timeZone"] = time_zone

        response = await _run_blocking(
            "events.list", lambda: self._service.events().list(**params).execute()
        )
        return list(response.get("items", []))

    async def insert_event(self, calendar_id: str, body: dict[str, Any]) -> dict[str, Any]:
        return await _run_blocking(
            "events.insert",
            lambda: self._service.events().insert(calendarId=calendar_id, body=body).execute(),
        )

    async def patch_event(self, calendar_id: str, event_id: str, body: dict[str, Any]) -> dict[str, Any]:
        return await _run_blocking(
            "events.patch",
            lambda: self._service.events()
            .patch(calendarId=calendar_id, eventId=event_id, body=body)
            .execute(),
        )

    async def delete_event(self, calendar_id: str, event_id: str) -> None:
        await _run_blocking(
            "events.delete",
            lambda: self._service.events().delete(calendarId=calendar_id, eventId=event_id).execute(),
        )

    async def primary_calendar_id(self) -> str | None:
        """Return the id of the account's primary calendar, if listed."""

        response = await _run_blocking(
            "calendarList.list", lambda: self._service.calendarList().list().execute()
        )
        for item in response.get("items", []):
            if item.get("primary"):
                return item.get("id")
        return None


@dataclass(slots=True)
class AcquiredClient:
    client: CalendarClient
    refreshed_access_token: str | None = None


def _build_credentials(refresh_token: str | None, access_token: str | None) -> Credentials:
    return Credentials(
        token=access_token or None,
        refresh_token=refresh_token,
        token_uri=GOOGLE_TOKEN_URI,
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret,
    )


def client_from_tokens(access_token: str, refresh_token: str | None = None) -> CalendarClient:
    """Build a client around tokens that were just issued (OAuth callback)."""

    credentials = _build_credentials(refresh_token, access_token)
    return CalendarClient(build("calendar", "v3", credentials=credentials, cache_discovery=False))


async def acquire_client(refresh_token: str | None, access_token_hint: str | None = None) -> AcquiredClient:
    """Refresh the tenant's access token and return a client bound to it.

    The hint is never trusted: a refresh-token exchange always happens, so a revoked
    grant is detected here rather than on the first event call. Storage is left to
    the caller, which should persist ``refreshed_access_token``.
    """

    refresh_token = (refresh_token or "").strip()
    if not refresh_token:
        raise CredentialMissing("Refresh credential is empty")
    if not settings.google_client_id or not settings.google_client_secret:
        raise MissingCredentials("GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET are not configured")

    credentials = _build_credentials(refresh_token, access_token_hint)

    def _refresh_and_build() -> Any:
        credentials.refresh(Request())
        return build("calendar", "v3", credentials=credentials, cache_discovery=False)

    try:
        service = await _run_blocking("oauth.refresh", _refresh_and_build)
    except TokenRevoked:
        logger.warning("Google refresh token rejected; tenant must reconnect the calendar")
        raise

    return AcquiredClient(client=CalendarClient(service), refreshed_access_token=credentials.token)
