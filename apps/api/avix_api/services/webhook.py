"""Ingest end-of-call webhooks from the voice-AI vendor."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..models.call import CallSentiment
from ..repositories import calls as calls_repo
from ..schemas.retell import WebhookAck

logger = logging.getLogger(__name__)

PROCESSED_EVENTS = frozenset({"call_analyzed", "call_ended"})
DEFAULT_SUMMARY = "No summary available"


class InvalidCallPayload(ValueError):
    """The webhook carried a final-call event without a usable call object."""


def extract_event(payload: dict[str, Any]) -> tuple[str | None, dict[str, Any] | None]:
    """Return (event name, call object), looking inside a ``data`` wrapper if needed."""

    event = payload.get("event")
    call = payload.get("call")
    data = payload.get("data")
    if not event and isinstance(data, dict) and data.get("event"):
        event = data["event"]
        call = data.get("call") or data
    return event, call if isinstance(call, dict) else None


def map_sentiment(raw: str | None) -> str:
    """Map the vendor's free-form sentiment label onto the stored enum."""

    if not raw:
        return CallSentiment.NEUTRAL.value
    lowered = str(raw).lower()
    if "positive" in lowered:
        return CallSentiment.POSITIVE.value
    if "negative" in lowered:
        return CallSentiment.NEGATIVE.value
    return CallSentiment.NEUTRAL.value


def _from_millis(value: Any) -> datetime | None:
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(float(value) / 1000, tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def _mapping(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _text(value: Any) -> str | None:
    if value is None or isinstance(value, (dict, list)):
        return None
    return str(value) or None


def build_call_record(tenant_id: str, call: dict[str, Any]) -> dict[str, Any]:
    """Translate the vendor call object into ``calls`` column values."""

    call_id = _text(call.get("call_id"))
    if not call_id:
        raise InvalidCallPayload("call.call_id is missing")

    analysis = _mapping(call.get("call_analysis"))
    transcript_object = call.get("transcript_object")
    started_at = _from_millis(call.get("start_timestamp"))
    ended_at = _from_millis(call.get("end_timestamp"))
    duration = 0
    if started_at and ended_at:
        duration = max(0, round((ended_at - started_at).total_seconds()))

    return {
        "user_id": tenant_id,
        "external_call_id": call_id,
        "customer_number": _text(call.get("from_number")),
        "status": "completed",
        "duration": duration,
        "summary": _text(analysis.get("call_summary")) or DEFAULT_SUMMARY,
        "sentiment": map_sentiment(_text(analysis.get("user_sentiment"))),
        "recording_url": _text(call.get("recording_url")),
        "transcript": _text(call.get("transcript")),
        "transcript_json": transcript_object if isinstance(transcript_object, list) and transcript_object else None,
        "custom_analysis_data": _mapping(analysis.get("custom_analysis_data")),
        "created_at": started_at or datetime.now(timezone.utc),
    }


async def relay_payload(payload: dict[str, Any], tenant_id: str) -> None:
    """Forward the original payload plus ``user_id`` downstream; failures are only logged."""

    url = settings.relay_webhook_url
    if not url:
        return
    try:
        async with httpx.AsyncClient(timeout=settings.provider_timeout_seconds) as client:
            response = await client.post(url, json={**payload, "user_id": tenant_id})
            response.raise_for_status()
        logger.info("Relayed webhook for tenant %s", tenant_id)
    except httpx.HTTPError as exc:
        logger.warning("Webhook relay for tenant %s failed (ignored): %s", tenant_id, exc)


async def ingest_call_webhook(session: AsyncSession, tenant_id: str, payload: dict[str, Any]) -> WebhookAck:
    """Store a finished call and acknowledge, whatever happened internally."""

    event, call = extract_event(payload)
    if not isinstance(event, str) or event not in PROCESSED_EVENTS:
        logger.info("Ignoring webhook event %s for tenant %s", event, tenant_id)
        return WebhookAck(status="ignored_event")

    try:
        record = build_call_record(tenant_id, call or {})
    except (InvalidCallPayload, TypeError, ValueError) as exc:
        logger.warning("Malformed %s webhook for tenant %s: %s", event, tenant_id, exc)
        return WebhookAck(status="invalid_payload")

    try:
        await calls_repo.upsert_call(session, record)
    except SQLAlchemyError:
        logger.exception("Upsert of call %s for tenant %s failed", record["external_call_id"], tenant_id)
        await session.rollback()
        return WebhookAck(status="store_failed")

    logger.info("Stored call %s for tenant %s", record["external_call_id"], tenant_id)
    await relay_payload(payload, tenant_id)
    return WebhookAck()
