"""Tenant settings model, including the calendar credential."""
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TenantSettings(Base):
    """Per-tenant settings row.

    The Google columns form the tenant's calendar credential. ``calendar_connected``
    is true exactly when ``google_refresh_token`` is set; the repository helpers
    keep the two in step.
    """

    __tablename__ = "settings"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
    company_name: Mapped[str] = mapped_column(String, default="Avix AI", nullable=False)
    office_hours_start: Mapped[str] = mapped_column(String, default="09:00", nullable=False)
    office_hours_end: Mapped[str] = mapped_column(String, default="18:00", nullable=False)
    notification_email: Mapped[str | None] = mapped_column(String)
    ai_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    google_calendar_id: Mapped[str | None] = mapped_column(String)
    google_refresh_token: Mapped[str | None] = mapped_column(String)
    google_access_token: Mapped[str | None] = mapped_column(String)
    google_calendar_email: Mapped[str | None] = mapped_column(String)
    calendar_connected: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    business_type: Mapped[str | None] = mapped_column(String)
    features_config: Mapped[dict | None] = mapped_column(JSONB)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )
