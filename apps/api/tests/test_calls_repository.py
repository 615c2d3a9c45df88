"""Call upsert statement tests, compiled against the postgres dialect."""
from __future__ import annotations

import re
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.dialects import postgresql

from avix_api.repositories import calls as calls_repo
from avix_api.services import webhook


def _redelivery_values() -> dict:
    return webhook.build_call_record(
        "tenant-1",
        {
            "call_id": "call_abc",
            "from_number": "+393331234567",
            "start_timestamp": 1741615200000,
            "end_timestamp": 1741615290000,
            "transcript": "Agent: Buongiorno",
            "transcript_object": [{"role": "agent", "content": "Buongiorno"}],
            "call_analysis": {"call_summary": "Prenotazione", "user_sentiment": "Positive"},
        },
    )


def _compile(values: dict) -> str:
    return str(calls_repo.build_upsert_statement(values).compile(dialect=postgresql.dialect()))


def _set_columns(sql: str) -> list[str]:
    _, _, set_clause = sql.partition("DO UPDATE SET")
    return re.findall(r"(\w+) = excluded\.\w+", set_clause)


def test_upsert_conflicts_on_external_call_id() -> None:
    sql = _compile(_redelivery_values())

    assert sql.startswith("INSERT INTO calls")
    assert "ON CONFLICT (external_call_id) DO UPDATE SET" in sql


def test_redelivery_refreshes_payload_columns_but_keeps_identity() -> None:
    values = _redelivery_values()

    columns = _set_columns(_compile(values))

    assert set(columns) == {column for column in calls_repo.UPSERT_COLUMNS if column in values}
    assert "summary" in columns and "sentiment" in columns
    assert "id" not in columns
    assert "external_call_id" not in columns


def test_only_supplied_columns_are_overwritten() -> None:
    columns = _set_columns(_compile({"user_id": "tenant-1", "external_call_id": "call_abc", "summary": "x"}))

    assert columns == ["user_id", "summary"]


@pytest.mark.asyncio
async def test_upsert_call_executes_and_commits() -> None:
    session = AsyncMock()

    await calls_repo.upsert_call(session, _redelivery_values())

    session.execute.assert_awaited_once()
    session.commit.assert_awaited_once()
    statement = session.execute.await_args.args[0]
    assert "ON CONFLICT (external_call_id)" in str(statement.compile(dialect=postgresql.dialect()))
