"""Support request relay."""
from __future__ import annotations

import logging

import httpx
from fastapi import APIRouter, File, Form, HTTPException, UploadFile, status

from ..services import support

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/send")
async def send(
    title: str = Form(...),
    description: str = Form(...),
    user_email: str = Form(..., alias="userEmail"),
    company_name: str | None = Form(default=None, alias="companyName"),
    screenshot: UploadFile | None = File(default=None),
) -> dict[str, bool]:
    """Forward a support request to the team chat."""

    if not title.strip() or not description.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing required fields")

    attachment = None
    if screenshot is not None:
        content = await screenshot.read()
        if content:
            attachment = support.Screenshot(
                filename=screenshot.filename or "screenshot.png",
                content=content,
                content_type=screenshot.content_type or "image/png",
            )

    request = support.SupportRequest(
        title=title.strip(),
        description=description.strip(),
        user_email=user_email,
        company_name=company_name,
    )
    try:
        await support.send_support_request(request, attachment)
    except support.SupportRelayError as exc:
        logger.error("Support relay failed for %s: %s", user_email, exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    except httpx.HTTPError as exc:
        logger.exception("Support relay to Telegram failed for %s", user_email)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Telegram unreachable") from exc

    return {"success": True}
