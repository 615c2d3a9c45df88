"""Google Calendar connect / disconnect endpoints."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..db.session import get_session
from ..services import google_calendar, oauth
from .deps import require_tenant_id

logger = logging.getLogger(__name__)

router = APIRouter()


def _settings_redirect(query: str) -> RedirectResponse:
    return RedirectResponse(f"{settings.app_url}/dashboard/settings?{query}", status_code=status.HTTP_302_FOUND)


@router.get("/login")
async def login(tenant_id: str = Depends(require_tenant_id)) -> RedirectResponse:
    """Send the user to Google's consent screen."""

    try:
        url = oauth.build_authorization_url(tenant_id)
    except google_calendar.MissingCredentials as exc:
        logger.error("OAuth login unavailable: %s", exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=exc.user_message) from exc
    return RedirectResponse(url, status_code=status.HTTP_302_FOUND)


@router.get("/callback")
async def callback(
    code: str | None = Query(default=None),
    state: str | None = Query(default=None),
    error: str | None = Query(default=None),
    session: AsyncSession = Depends(get_session),
) -> RedirectResponse:
    if error:
        logger.warning("Google consent denied: %s", error)
        return _settings_redirect(f"error={error}")
    if not code:
        return _settings_redirect("error=missing_code")

    try:
        await oauth.complete_authorization(session, code, state)
    except oauth.OAuthError as exc:
        logger.warning("OAuth callback failed: %s", exc)
        return _settings_redirect(f"error={exc.reason}")
    except Exception:  # noqa: BLE001 - always land back on the settings page
        logger.exception("OAuth callback failed")
        return _settings_redirect("error=callback_error")

    return _settings_redirect("success=calendar_connected")


@router.post("/disconnect")
async def disconnect(
    tenant_id: str = Depends(require_tenant_id),
    session: AsyncSession = Depends(get_session),
) -> dict[str, bool]:
    """Forget the tenant's calendar credential."""

    try:
        await oauth.disconnect(session, tenant_id)
    except google_calendar.SettingsNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.user_message) from exc
    return {"success": True}
