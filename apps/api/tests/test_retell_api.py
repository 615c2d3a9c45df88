"""Endpoint tests for the voice-AI webhook and tool routes."""
from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from avix_api.db.session import get_session
from avix_api.main import app
from avix_api.routers import retell
from avix_api.schemas.retell import ToolResult, WebhookAck
from avix_api.services import booking, webhook


@pytest.fixture
def api():
    session = AsyncMock()

    async def _session():
        yield session

    app.dependency_overrides[get_session] = _session
    yield session
    app.dependency_overrides.clear()


def _client() -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver")


@pytest.mark.asyncio
async def test_webhook_without_user_id_is_configuration_error(api) -> None:
    async with _client() as client:
        response = await client.post("/api/retell/webhook", json={"event": "call_ended"})

    assert response.status_code == 400
    assert response.json()["error"] == "Configuration Error"


@pytest.mark.asyncio
async def test_webhook_with_malformed_json(api) -> None:
    async with _client() as client:
        response = await client.post(
            "/api/retell/webhook",
            params={"userId": "tenant-1"},
            content=b"{not json",
            headers={"content-type": "application/json"},
        )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_webhook_acknowledges(api, monkeypatch) -> None:
    ingest = AsyncMock(return_value=WebhookAck(status="ignored_event"))
    monkeypatch.setattr(webhook, "ingest_call_webhook", ingest)

    async with _client() as client:
        response = await client.post(
            "/api/retell/webhook", params={"userId": "tenant-1"}, json={"event": "call_started"}
        )

    assert response.status_code == 200
    assert response.json() == {"received": True, "status": "ignored_event"}
    ingest.assert_awaited_once_with(api, "tenant-1", {"event": "call_started"})


@pytest.mark.asyncio
async def test_enforced_signature_rejects_unsigned_webhook(api, monkeypatch) -> None:
    monkeypatch.setattr(retell.settings, "retell_secret_key", "s3cret")
    monkeypatch.setattr(retell.settings, "retell_enforce_signature", True)
    ingest = AsyncMock(return_value=WebhookAck())
    monkeypatch.setattr(webhook, "ingest_call_webhook", ingest)

    async with _client() as client:
        rejected = await client.post("/api/retell/webhook", params={"userId": "tenant-1"}, json={})
        accepted = await client.post(
            "/api/retell/webhook",
            params={"userId": "tenant-1"},
            json={},
            headers={"x-retell-secret": "s3cret"},
        )

    assert rejected.status_code == 401
    assert accepted.status_code == 200
    ingest.assert_awaited_once()


@pytest.mark.asyncio
async def test_book_tool_relays_result(api, monkeypatch) -> None:
    book = AsyncMock(return_value=ToolResult(result="Success: ok"))
    monkeypatch.setattr(booking, "book_appointment", book)

    async with _client() as client:
        response = await client.post(
            "/api/retell/calendar/book", params={"userId": "tenant-1"}, json={"args": {"phone": "3331234567"}}
        )

    assert response.status_code == 200
    assert response.json()["result"] == "Success: ok"
    book.assert_awaited_once_with(api, "tenant-1", {"args": {"phone": "3331234567"}})


@pytest.mark.asyncio
async def test_tool_without_user_id(api) -> None:
    async with _client() as client:
        response = await client.post("/api/retell/calendar/check", json={})

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_bursts_of_tool_calls_are_never_throttled(api, monkeypatch) -> None:
    monkeypatch.setattr(booking, "book_appointment", AsyncMock(return_value=ToolResult(result="Success: ok")))
    monkeypatch.setattr(webhook, "ingest_call_webhook", AsyncMock(return_value=WebhookAck()))

    tool_statuses: set[int] = set()
    webhook_statuses: set[int] = set()
    async with _client() as client:
        for _ in range(40):
            response = await client.post("/api/retell/calendar/book", params={"userId": "tenant-1"}, json={})
            tool_statuses.add(response.status_code)
        for _ in range(60):
            response = await client.post(
                "/api/retell/webhook", params={"userId": "tenant-1"}, json={"event": "call_ended"}
            )
            webhook_statuses.add(response.status_code)

    assert tool_statuses == {200}
    assert webhook_statuses == {200}
