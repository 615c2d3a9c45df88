"""Call repository helpers."""
from __future__ import annotations

from typing import Any
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import Insert, insert
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.call import Call

UPSERT_COLUMNS = (
    "user_id",
    "customer_number",
    "status",
    "duration",
    "summary",
    "sentiment",
    "transcript",
    "transcript_json",
    "recording_url",
    "custom_analysis_data",
    "created_at",
)


def build_upsert_statement(values: dict[str, Any]) -> Insert:
    """Insert a call, or overwrite the row sharing its ``external_call_id``.

    Only the columns present in ``values`` are refreshed on conflict; the
    surrogate ``id`` of the first delivery is kept.
    """

    row = {"id": str(uuid4()), **values}
    stmt = insert(Call).values(**row)
    return stmt.on_conflict_do_update(
        index_elements=[Call.external_call_id],
        set_={column: stmt.excluded[column] for column in UPSERT_COLUMNS if column in values},
    )


async def upsert_call(session: AsyncSession, values: dict[str, Any]) -> None:
    await session.execute(build_upsert_statement(values))
    await session.commit()


async def list_for_tenant(session: AsyncSession, tenant_id: str) -> list[Call]:
    """Return every call stored for a tenant, in store order."""

    stmt = select(Call).where(Call.user_id == tenant_id)
    result = await session.execute(stmt)
    return list(result.scalars().all())
