"""Forward dashboard support requests to the team's Telegram chat."""
from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from ..core.config import settings

logger = logging.getLogger(__name__)

TELEGRAM_API = "https://api.telegram.org"


class SupportRelayError(RuntimeError):
    """Telegram is not configured or refused the message."""


@dataclass(slots=True)
class SupportRequest:
    title: str
    description: str
    user_email: str
    company_name: str | None = None


@dataclass(slots=True)
class Screenshot:
    filename: str
    content: bytes
    content_type: str


def format_message(request: SupportRequest) -> str:
    return "\n".join(
        [
            "🆘 *Nuova Richiesta di Supporto*",
            "",
            f"👤 *Utente:* {request.user_email}",
            f"🏢 *Azienda:* {request.company_name or 'N/A'}",
            "",
            f"📝 *Oggetto:* {request.title}",
            "",
            "💬 *Descrizione:*",
            request.description,
        ]
    ).strip()


async def send_support_request(request: SupportRequest, screenshot: Screenshot | None = None) -> None:
    """Post the request as a text message, or as a photo caption when a screenshot is attached."""

    token = settings.telegram_bot_token
    chat_id = settings.telegram_chat_id
    if not token or not chat_id:
        raise SupportRelayError("Telegram configuration missing")

    text = format_message(request)
    async with httpx.AsyncClient(timeout=settings.provider_timeout_seconds) as client:
        if screenshot is not None and screenshot.content:
            response = await client.post(
                f"{TELEGRAM_API}/bot{token}/sendPhoto",
                data={"chat_id": chat_id, "caption": text, "parse_mode": "Markdown"},
                files={"photo": (screenshot.filename, screenshot.content, screenshot.content_type)},
            )
        else:
            response = await client.post(
                f"{TELEGRAM_API}/bot{token}/sendMessage",
                json={"chat_id": chat_id, "text": text, "parse_mode": "Markdown"},
            )

    if response.status_code >= 400:
        logger.error("Telegram rejected support message with status %s", response.status_code)
        raise SupportRelayError("Failed to send message to Telegram")
