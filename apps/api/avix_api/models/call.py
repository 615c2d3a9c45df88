"""Call model."""
from __future__ import annotations

from datetime import datetime
import enum

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class CallSentiment(str, enum.Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class Call(Base):
    """Completed voice-AI call, keyed for upsert by the vendor's call id."""

    __tablename__ = "calls"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str] = mapped_column(String, index=True, nullable=False)
    external_call_id: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    customer_number: Mapped[str | None] = mapped_column(String)
    status: Mapped[str] = mapped_column(String, default="completed", nullable=False)
    duration: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    summary: Mapped[str | None] = mapped_column(Text)
    sentiment: Mapped[str] = mapped_column(String, default=CallSentiment.NEUTRAL.value, nullable=False)
    transcript: Mapped[str | None] = mapped_column(Text)
    transcript_json: Mapped[list | None] = mapped_column(JSONB)
    recording_url: Mapped[str | None] = mapped_column(String)
    custom_analysis_data: Mapped[dict] = mapped_column(JSONB, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
