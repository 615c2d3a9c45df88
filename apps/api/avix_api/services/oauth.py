"""Google Calendar connection lifecycle: consent URL, code exchange, disconnect."""
from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
import time
import urllib.parse
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..models.settings import TenantSettings
from ..repositories import settings as settings_repo
from . import google_calendar

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
STATE_MAX_AGE_MS = 10 * 60 * 1000


class OAuthError(RuntimeError):
    """OAuth callback failure; ``reason`` ends up in the settings page query string."""

    def __init__(self, reason: str, message: str | None = None) -> None:
        super().__init__(message or reason)
        self.reason = reason


def _state_key() -> bytes:
    secret = settings.oauth_state_secret or settings.google_client_secret
    if not secret:
        raise google_calendar.MissingCredentials("OAUTH_STATE_SECRET or GOOGLE_CLIENT_SECRET is not configured")
    return secret.encode("utf-8")


def _sign(body: str) -> str:
    return hmac.new(_state_key(), body.encode("utf-8"), hashlib.sha256).hexdigest()


def encode_state(tenant_id: str, *, now_ms: int | None = None) -> str:
    """Serialize the tenant id and issue time as ``<base64 json>.<hmac-sha256>``."""

    payload = {"user_id": tenant_id, "timestamp": now_ms if now_ms is not None else int(time.time() * 1000)}
    body = base64.urlsafe_b64encode(json.dumps(payload).encode("utf-8")).decode("utf-8")
    return f"{body}.{_sign(body)}"


def decode_state(state: str | None, *, now_ms: int | None = None) -> str:
    """Return the tenant id carried by ``state``, rejecting stale or forged values."""

    if not state:
        raise OAuthError("missing_user")
    body, _, signature = state.rpartition(".")
    if not body or not signature:
        raise OAuthError("invalid_state")
    try:
        expected = _sign(body)
    except google_calendar.MissingCredentials as exc:
        raise OAuthError("invalid_state", str(exc)) from exc
    if not hmac.compare_digest(signature.encode("utf-8"), expected.encode("utf-8")):
        raise OAuthError("invalid_state")

    try:
        data = json.loads(base64.urlsafe_b64decode(body.encode("utf-8")).decode("utf-8"))
    except (ValueError, UnicodeDecodeError) as exc:
        raise OAuthError("invalid_state") from exc
    if not isinstance(data, dict):
        raise OAuthError("invalid_state")

    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    if now_ms - int(data.get("timestamp") or 0) > STATE_MAX_AGE_MS:
        raise OAuthError("state_expired")

    tenant_id = data.get("user_id")
    if not tenant_id:
        raise OAuthError("missing_user")
    return str(tenant_id)


def build_authorization_url(tenant_id: str) -> str:
    if not settings.google_client_id:
        raise google_calendar.MissingCredentials("GOOGLE_CLIENT_ID is not configured")
    params = {
        "client_id": settings.google_client_id,
        "redirect_uri": settings.google_redirect_uri,
        "response_type": "code",
        "scope": " ".join(settings.google_scopes),
        "access_type": "offline",
        "prompt": "consent",
        "state": encode_state(tenant_id),
    }
    return GOOGLE_AUTH_URL + "?" + urllib.parse.urlencode(params)


async def exchange_code(code: str) -> dict[str, Any]:
    """Trade an authorization code for access and refresh tokens."""

    data = {
        "code": code,
        "client_id": settings.google_client_id,
        "client_secret": settings.google_client_secret,
        "redirect_uri": settings.google_redirect_uri,
        "grant_type": "authorization_code",
    }
    async with httpx.AsyncClient(timeout=settings.provider_timeout_seconds) as client:
        response = await client.post(google_calendar.GOOGLE_TOKEN_URI, data=data)
    if response.status_code != 200:
        logger.error("Google token exchange failed with status %s", response.status_code)
        raise OAuthError("callback_error", "Token exchange failed")
    return response.json()


async def fetch_account_email(access_token: str) -> str | None:
    async with httpx.AsyncClient(timeout=settings.provider_timeout_seconds) as client:
        response = await client.get(GOOGLE_USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"})
    if response.status_code != 200:
        logger.warning("Google userinfo lookup failed with status %s", response.status_code)
        return None
    return response.json().get("email")


async def complete_authorization(session: AsyncSession, code: str, state: str | None) -> TenantSettings:
    """Finish the consent flow and store the tenant's calendar credential."""

    tenant_id = decode_state(state)
    tokens = await exchange_code(code)
    access_token = tokens.get("access_token")
    if not access_token:
        raise OAuthError("callback_error", "Google returned no access token")

    email = await fetch_account_email(access_token)
    calendar_id: str | None = None
    try:
        client = google_calendar.client_from_tokens(access_token, tokens.get("refresh_token"))
        calendar_id = await client.primary_calendar_id()
    except google_calendar.CalendarError as exc:
        logger.warning("Could not list calendars for tenant %s: %s", tenant_id, exc)

    row = await settings_repo.store_oauth_tokens(
        session,
        tenant_id=tenant_id,
        refresh_token=tokens.get("refresh_token"),
        access_token=access_token,
        calendar_email=email,
        calendar_id=calendar_id or email,
    )
    if not row.calendar_connected:
        logger.warning("Tenant %s authorized without a refresh token; re-consent required", tenant_id)
    else:
        logger.info("Calendar connected for tenant %s", tenant_id)
    return row


async def disconnect(session: AsyncSession, tenant_id: str) -> None:
    row = await settings_repo.get_by_tenant(session, tenant_id)
    if row is None:
        raise google_calendar.SettingsNotFound(f"No settings row for tenant {tenant_id}")
    await settings_repo.clear_calendar_credentials(session, row.id)
    logger.info("Calendar disconnected for tenant %s", tenant_id)
