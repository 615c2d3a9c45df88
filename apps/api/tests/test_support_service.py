from unittest.mock import AsyncMock

import pytest

from avix_api.services import support


def _request() -> support.SupportRequest:
    return support.SupportRequest(
        title="Calendario non sincronizza",
        description="Gli eventi di oggi non compaiono",
        user_email="anna@example.com",
    )


def test_format_message_includes_fields() -> None:
    text = support.format_message(_request())

    assert "anna@example.com" in text
    assert "Azienda:* N/A" in text
    assert "Calendario non sincronizza" in text
    assert text.endswith("Gli eventi di oggi non compaiono")


@pytest.mark.asyncio
async def test_missing_telegram_configuration(monkeypatch) -> None:
    monkeypatch.setattr(support.settings, "telegram_bot_token", "")

    with pytest.raises(support.SupportRelayError):
        await support.send_support_request(_request())


@pytest.mark.asyncio
async def test_text_message_is_posted(monkeypatch) -> None:
    monkeypatch.setattr(support.settings, "telegram_bot_token", "token")
    monkeypatch.setattr(support.settings, "telegram_chat_id", "chat")
    post = AsyncMock(return_value=support.httpx.Response(200, json={"ok": True}))
    monkeypatch.setattr(support.httpx.AsyncClient, "post", post)

    await support.send_support_request(_request())

    url = post.await_args.args[0]
    assert url.endswith("/bottoken/sendMessage")
    assert post.await_args.kwargs["json"]["chat_id"] == "chat"


@pytest.mark.asyncio
async def test_screenshot_uses_send_photo_and_rejection_raises(monkeypatch) -> None:
    monkeypatch.setattr(support.settings, "telegram_bot_token", "token")
    monkeypatch.setattr(support.settings, "telegram_chat_id", "chat")
    post = AsyncMock(return_value=support.httpx.Response(400, json={"ok": False}))
    monkeypatch.setattr(support.httpx.AsyncClient, "post", post)
    shot = support.Screenshot(filename="s.png", content=b"png", content_type="image/png")

    with pytest.raises(support.SupportRelayError):
        await support.send_support_request(_request(), shot)

    assert post.await_args.args[0].endswith("/sendPhoto")
