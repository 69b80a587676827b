# app/models/api/triage_response.py
"""
Triage API response models.
Used by routes for output formatting.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from app.features.triage.domain import TriageQueueEntry, TriageSyncResult


class TriageSyncResponse(BaseModel):
    """Outcome of one triage run."""

    added: int = Field(..., description="Entries inserted or refreshed in the queue")
    skipped: int = Field(..., description="Candidates not admitted to the queue this run")
    errors: list[str] = Field(default_factory=list, description="Per-source failures")
    partial: bool = Field(..., description="True when at least one source failed")

    @classmethod
    def from_result(cls, result: TriageSyncResult) -> "TriageSyncResponse":
        return cls(
            added=result.added,
            skipped=result.skipped,
            errors=list(result.errors),
            partial=result.partial,
        )


class TriageScheduledResponse(BaseModel):
    """Acknowledgement for a background run."""

    scheduled: bool = Field(default=True, description="Whether the run was scheduled")
    user_id: str = Field(..., description="User the run belongs to")


class TriageEntryResponse(BaseModel):
    """A pending triage queue entry."""

    id: str = Field(..., description="Entry ID")
    source: str = Field(..., description="Source the item came from")
    source_id: str = Field(..., description="Provider-native item ID")
    title: str = Field(..., description="Item title")
    snippet: str = Field(default="", description="Short preview")
    score: int = Field(..., ge=0, le=100, description="Urgency score")
    reasoning: str = Field(default="", description="Why the item scored as it did")
    source_metadata: dict[str, Any] = Field(default_factory=dict, description="Source payload")
    status: str = Field(..., description="Review status")
    created_at: datetime = Field(..., description="When the entry was first queued")

    @classmethod
    def from_entry(cls, entry: TriageQueueEntry) -> "TriageEntryResponse":
        return cls(
            id=entry.id,
            source=entry.source.value,
            source_id=entry.source_id,
            title=entry.title,
            snippet=entry.snippet,
            score=entry.score,
            reasoning=entry.reasoning,
            source_metadata=entry.source_metadata,
            status=entry.status.value,
            created_at=entry.created_at,
        )


class TriageListResponse(BaseModel):
    entries: list[TriageEntryResponse] = Field(default_factory=list)
    count: int = Field(..., description="Number of entries returned")


class TriageCountResponse(BaseModel):
    pending: int = Field(..., description="Pending entries awaiting review")


class ReviewActionResponse(BaseModel):
    id: str = Field(..., description="Entry ID")
    status: str = Field(..., description="New review status")


class TriageCronResponse(BaseModel):
    """Metrics from a cron-triggered job run."""

    skipped: bool = Field(default=False, description="True if a run was already in progress")
    metrics: dict[str, Any] = Field(default_factory=dict, description="Job metrics")
