"""Response schemas for the voice-AI webhook and tool calls."""
from __future__ import annotations

from pydantic import BaseModel, Field


class ToolResult(BaseModel):
    """Natural-language outcome the voice agent can read back to the caller."""

    result: str
    details: str | None = None


class AvailabilityResult(ToolResult):
    slots: list[str] = Field(default_factory=list)
    date: str | None = None


class WebhookAck(BaseModel):
    received: bool = True
    status: str | None = None
