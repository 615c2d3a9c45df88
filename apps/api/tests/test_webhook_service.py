"""Call webhook ingestion tests with an in-memory call store."""
from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from avix_api.repositories import calls as calls_repo
from avix_api.services import webhook


class FakeCallStore:
    """Mimics the upsert keyed on ``external_call_id``."""

    def __init__(self) -> None:
        self.rows: dict[str, dict] = {}

    async def upsert_call(self, session, values: dict) -> None:
        self.rows[values["external_call_id"]] = dict(values)


def _payload(event: str = "call_analyzed", **call_overrides) -> dict:
    call = {
        "call_id": "call_abc",
        "from_number": "+393331234567",
        "start_timestamp": 1741615200000,
        "end_timestamp": 1741615290000,
        "transcript": "Agent: Buongiorno",
        "transcript_object": [{"role": "agent", "content": "Buongiorno"}],
        "recording_url": "https://example.com/rec.wav",
        "call_analysis": {"call_summary": "Prenotazione", "user_sentiment": "Positive"},
    }
    call.update(call_overrides)
    return {"event": event, "call": call}


@pytest.fixture
def store(monkeypatch) -> FakeCallStore:
    fake = FakeCallStore()
    monkeypatch.setattr(calls_repo, "upsert_call", fake.upsert_call)
    monkeypatch.setattr(webhook, "relay_payload", AsyncMock())
    return fake


@pytest.mark.asyncio
async def test_redelivery_keeps_one_record_and_second_wins(store) -> None:
    first = await webhook.ingest_call_webhook(AsyncMock(), "tenant-1", _payload())
    second = await webhook.ingest_call_webhook(
        AsyncMock(),
        "tenant-1",
        _payload(call_analysis={"call_summary": "Aggiornato", "user_sentiment": "Negative"}),
    )

    assert first.received and first.status is None
    assert second.received and second.status is None
    assert list(store.rows) == ["call_abc"]
    assert store.rows["call_abc"]["summary"] == "Aggiornato"
    assert store.rows["call_abc"]["sentiment"] == "negative"


@pytest.mark.asyncio
async def test_record_fields_are_derived_from_call(store) -> None:
    await webhook.ingest_call_webhook(AsyncMock(), "tenant-1", _payload())

    row = store.rows["call_abc"]
    assert row["user_id"] == "tenant-1"
    assert row["duration"] == 90
    assert row["customer_number"] == "+393331234567"
    assert row["sentiment"] == "positive"
    assert row["transcript_json"] == [{"role": "agent", "content": "Buongiorno"}]
    webhook.relay_payload.assert_awaited_once()


@pytest.mark.asyncio
async def test_other_events_are_acknowledged_and_ignored(store) -> None:
    ack = await webhook.ingest_call_webhook(AsyncMock(), "tenant-1", _payload(event="call_started"))

    assert ack.received is True
    assert ack.status == "ignored_event"
    assert store.rows == {}


@pytest.mark.asyncio
async def test_event_inside_data_wrapper(store) -> None:
    payload = {"data": _payload(event="call_ended")}

    ack = await webhook.ingest_call_webhook(AsyncMock(), "tenant-1", payload)

    assert ack.status is None
    assert "call_abc" in store.rows


@pytest.mark.asyncio
async def test_missing_call_id_is_acknowledged(store) -> None:
    ack = await webhook.ingest_call_webhook(AsyncMock(), "tenant-1", _payload(call_id=None))

    assert ack.received is True
    assert ack.status == "invalid_payload"


@pytest.mark.asyncio
async def test_store_failure_still_acknowledges(monkeypatch) -> None:
    monkeypatch.setattr(
        calls_repo, "upsert_call", AsyncMock(side_effect=OperationalError("insert", {}, Exception("down")))
    )
    session = AsyncMock()

    ack = await webhook.ingest_call_webhook(session, "tenant-1", _payload())

    assert ack.received is True
    assert ack.status == "store_failed"
    session.rollback.assert_awaited_once()


def test_map_sentiment() -> None:
    assert webhook.map_sentiment("Positive") == "positive"
    assert webhook.map_sentiment("very negative") == "negative"
    assert webhook.map_sentiment("Unknown") == "neutral"
    assert webhook.map_sentiment(None) == "neutral"


@pytest.mark.asyncio
@pytest.mark.parametrize("analysis", ["oops", ["positive"], 42])
async def test_non_object_analysis_is_stored_with_defaults(store, analysis) -> None:
    ack = await webhook.ingest_call_webhook(
        AsyncMock(), "tenant-1", {"event": "call_ended", "call": {"call_id": "c1", "call_analysis": analysis}}
    )

    assert ack.received is True
    assert ack.status is None
    row = store.rows["c1"]
    assert row["summary"] == "No summary available"
    assert row["sentiment"] == "neutral"
    assert row["custom_analysis_data"] == {}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"event": ["call_ended"], "call": {"call_id": "c1"}},
        {"event": "call_ended", "call": {"call_id": {"nested": True}}},
        {"event": "call_ended", "call": "c1"},
    ],
)
async def test_oddly_typed_payloads_are_acknowledged(store, payload) -> None:
    ack = await webhook.ingest_call_webhook(AsyncMock(), "tenant-1", payload)

    assert ack.received is True
    assert ack.status in {"ignored_event", "invalid_payload"}
    assert store.rows == {}


def test_scalar_fields_are_coerced_to_text() -> None:
    record = webhook.build_call_record(
        "tenant-1",
        {
            "call_id": 12345,
            "from_number": 393331234567,
            "transcript_object": "not a list",
            "call_analysis": {"call_summary": {"text": "x"}, "custom_analysis_data": ["a"]},
        },
    )

    assert record["external_call_id"] == "12345"
    assert record["customer_number"] == "393331234567"
    assert record["transcript_json"] is None
    assert record["summary"] == "No summary available"
    assert record["custom_analysis_data"] == {}
