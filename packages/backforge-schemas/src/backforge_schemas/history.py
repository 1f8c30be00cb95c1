"""Append-only history records."""

from __future__ import annotations

from pydantic import Field

from backforge_schemas.base import FrozenSchema
from backforge_schemas.conversation import TokenUsage
from backforge_schemas.primitives import (
    HistoryEntryType,
    HistoryId,
    JsonValue,
    PhaseName,
    Timestamp,
)


class HistoryEntry(FrozenSchema):
    """Immutable record of one pipeline event."""

    id: HistoryId = Field(..., description="Entry identifier (uuid7)")
    type: HistoryEntryType = Field(..., description="Entry type")
    created_at: Timestamp = Field(..., description="When the event started")
    completed_at: Timestamp = Field(..., description="When the event completed")
    token_usage: TokenUsage = Field(
        default_factory=TokenUsage, description="Usage attributed to the event"
    )
    phase: PhaseName | None = Field(None, description="Phase of the event")
    revision: int | None = Field(None, ge=1, description="Phase revision, if any")
    summary: str = Field("", description="Human-readable summary")
    data: dict[str, JsonValue] | None = Field(None, description="Structured payload")
