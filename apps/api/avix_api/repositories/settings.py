"""Tenant settings persistence helpers."""
from __future__ import annotations

from typing import Any
from uuid import uuid4

from sqlalchemy import Select, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.settings import TenantSettings


async def get_by_tenant(session: AsyncSession, tenant_id: str) -> TenantSettings | None:
    """Return the settings row for a tenant."""

    stmt: Select[tuple[TenantSettings]] = select(TenantSettings).where(TenantSettings.user_id == tenant_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def update_fields(session: AsyncSession, settings_id: str, **values: Any) -> None:
    """Blind update of a few columns on a settings row, committed immediately."""

    if not values:
        return
    stmt = update(TenantSettings).where(TenantSettings.id == settings_id).values(**values)
    await session.execute(stmt)
    await session.commit()


async def update_access_token(session: AsyncSession, settings_id: str, access_token: str) -> None:
    """Persist a freshly refreshed access token; last writer wins."""

    await update_fields(session, settings_id, google_access_token=access_token)


async def clear_calendar_credentials(session: AsyncSession, settings_id: str) -> None:
    """Forget the tenant's calendar credential entirely."""

    await update_fields(
        session,
        settings_id,
        google_refresh_token=None,
        google_access_token=None,
        google_calendar_email=None,
        calendar_connected=False,
    )


async def store_oauth_tokens(
    session: AsyncSession,
    *,
    tenant_id: str,
    refresh_token: str | None,
    access_token: str | None,
    calendar_email: str | None,
    calendar_id: str | None,
) -> TenantSettings:
    """Create or update the tenant's credential after an OAuth handshake.

    Google only returns a refresh token on the first consent, so an existing one is
    kept when the new grant does not carry it.
    """

    row = await get_by_tenant(session, tenant_id)
    if row is None:
        row = TenantSettings(id=str(uuid4()), user_id=tenant_id, company_name="Avix AI", ai_active=True)
        session.add(row)

    refresh_to_store = refresh_token or row.google_refresh_token
    row.google_refresh_token = refresh_to_store
    row.google_access_token = access_token
    row.google_calendar_email = calendar_email
    row.google_calendar_id = calendar_id
    row.calendar_connected = refresh_to_store is not None

    await session.commit()
    return row
