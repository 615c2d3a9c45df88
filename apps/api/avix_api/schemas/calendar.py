"""Schemas for the dashboard calendar API."""
from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class TranscriptItem(BaseModel):
    role: str
    content: str


class EnrichedEvent(BaseModel):
    id: str
    google_event_id: str
    title: str
    start: datetime
    end: datetime
    attendee_name: str
    attendee_email: str | None = None
    attendee_phone: str | None = None
    description: str | None = None
    is_ai_booking: bool = False
    call_id: str | None = None
    call_summary: str | None = None
    call_sentiment: str | None = None
    call_recording_url: str | None = None
    call_duration: int | None = None
    call_transcript: str | None = None
    call_transcript_json: list[dict[str, Any]] | None = None


class CalendarEventsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    events: list[EnrichedEvent] = Field(default_factory=list)
    count: int = 0
    error: str | None = None
    error_code: str | None = Field(default=None, alias="errorCode")


class EventCreateRequest(BaseModel):
    title: str = Field(min_length=1)
    start: datetime
    end: datetime
    description: str | None = None


class EventUpdateRequest(BaseModel):
    title: str | None = None
    start: datetime | None = None
    end: datetime | None = None
    description: str | None = None


class EventMutationResponse(BaseModel):
    success: bool = True
    event: EnrichedEvent | None = None
