"""Shared request dependencies: tenant identity and the dashboard rate limiter."""
from __future__ import annotations

from fastapi import Header, HTTPException, status

from ..services import rate_limit


async def current_tenant_id(x_tenant_id: str | None = Header(default=None)) -> str | None:
    """Tenant id injected by the authenticating gateway in front of the API."""

    if x_tenant_id is None:
        return None
    return x_tenant_id.strip() or None


async def require_tenant_id(x_tenant_id: str | None = Header(default=None)) -> str:
    tenant_id = await current_tenant_id(x_tenant_id)
    if tenant_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return tenant_id


def get_calendar_limiter() -> rate_limit.RateLimiter:
    return rate_limit.calendar_limiter
