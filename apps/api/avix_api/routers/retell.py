"""Voice-AI endpoints: call webhook and calendar tool calls."""
from __future__ import annotations

import hmac
import logging
from typing import Any, Awaitable, Callable

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..db.session import get_session
from ..schemas.retell import AvailabilityResult, ToolResult, WebhookAck
from ..services import booking, webhook

logger = logging.getLogger(__name__)

router = APIRouter()

SIGNATURE_HEADERS = ("x-retell-signature", "x-retell-secret", "authorization")

ToolHandler = Callable[[AsyncSession, str, dict[str, Any]], Awaitable[ToolResult]]


def _missing_user() -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "Configuration Error", "message": "userId query parameter is required"},
    )


def _bad_json() -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": "Invalid JSON"})


def _signature_ok(request: Request) -> bool:
    secret = settings.retell_secret_key
    if not secret:
        return True
    for header in SIGNATURE_HEADERS:
        value = request.headers.get(header)
        if not value:
            continue
        if value.lower().startswith("bearer "):
            value = value[7:]
        if hmac.compare_digest(value.strip(), secret):
            return True
    return False


async def _read_payload(request: Request) -> dict[str, Any] | None:
    try:
        payload = await request.json()
    except ValueError:
        return None
    return payload if isinstance(payload, dict) else None


@router.post("/webhook", response_model=WebhookAck)
async def call_webhook(
    request: Request,
    user_id: str | None = Query(default=None, alias="userId"),
    session: AsyncSession = Depends(get_session),
):
    """Ingest a finished call. Business failures still answer 200."""

    if not user_id:
        logger.error("Webhook received without userId")
        return _missing_user()

    if not _signature_ok(request):
        logger.warning("Webhook for tenant %s carries an invalid signature", user_id)
        if settings.retell_enforce_signature:
            return JSONResponse(status_code=401, content={"error": "Invalid signature"})

    payload = await _read_payload(request)
    if payload is None:
        logger.warning("Webhook for tenant %s is not a JSON object", user_id)
        return _bad_json()

    return await webhook.ingest_call_webhook(session, user_id, payload)


async def _run_tool(
    request: Request,
    user_id: str | None,
    session: AsyncSession,
    handler: ToolHandler,
):
    if not user_id:
        logger.error("Tool call %s received without userId", request.url.path)
        return _missing_user()

    payload = await _read_payload(request)
    if payload is None:
        return _bad_json()
    return await handler(session, user_id, payload)


@router.post("/calendar/book", response_model=ToolResult)
async def book(
    request: Request,
    user_id: str | None = Query(default=None, alias="userId"),
    session: AsyncSession = Depends(get_session),
):
    """Book a 30-minute appointment for the caller."""

    return await _run_tool(request, user_id, session, booking.book_appointment)


@router.post("/calendar/check", response_model=AvailabilityResult)
async def check(
    request: Request,
    user_id: str | None = Query(default=None, alias="userId"),
    session: AsyncSession = Depends(get_session),
):
    return await _run_tool(request, user_id, session, booking.check_availability)


@router.post("/calendar/cancel", response_model=ToolResult)
async def cancel(
    request: Request,
    user_id: str | None = Query(default=None, alias="userId"),
    session: AsyncSession = Depends(get_session),
):
    return await _run_tool(request, user_id, session, booking.cancel_appointment)
