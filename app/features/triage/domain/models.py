"""
Domain models for the triage pipeline.

Candidate items are transient and immutable; queue entries and cursors are
the persisted shapes. Per-source metadata is a tagged union: each payload
class names the source it belongs to, so a CandidateItem can never pair an
email with task-manager metadata.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import StrEnum
from typing import Any, ClassVar


class TriageSource(StrEnum):
    EMAIL = "email"
    TASK_MANAGER = "task_manager"
    CALENDAR = "calendar"
    SECONDARY_TASK_LIST = "secondary_task_list"

    @property
    def label(self) -> str:
        """Provider name used to qualify error messages."""
        return _SOURCE_LABELS[self]


_SOURCE_LABELS = {
    TriageSource.EMAIL: "Gmail",
    TriageSource.TASK_MANAGER: "Todoist",
    TriageSource.CALENDAR: "Calendar",
    TriageSource.SECONDARY_TASK_LIST: "Google Tasks",
}


class QueueStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    DISMISSED = "dismissed"
    PUSHED_TO_CONTEXT = "pushed_to_context"

    @property
    def is_reviewed(self) -> bool:
        return self is not QueueStatus.PENDING


# ---------------------------------------------------------------------------
# Source metadata payloads
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class EmailMetadata:
    source: ClassVar[TriageSource] = TriageSource.EMAIL

    thread_id: str | None
    sender: str
    date: str
    is_starred: bool = False

    def to_json(self) -> dict[str, Any]:
        return {
            "thread_id": self.thread_id,
            "from": self.sender,
            "date": self.date,
            "is_starred": self.is_starred,
        }


@dataclass(frozen=True, slots=True)
class TaskManagerMetadata:
    source: ClassVar[TriageSource] = TriageSource.TASK_MANAGER

    priority: int
    due_date: date | None

    def to_json(self) -> dict[str, Any]:
        return {
            "priority": self.priority,
            "due_date": self.due_date.isoformat() if self.due_date else None,
        }


@dataclass(frozen=True, slots=True)
class CalendarMetadata:
    source: ClassVar[TriageSource] = TriageSource.CALENDAR

    start_at: datetime
    all_day: bool = False
    location: str | None = None

    def to_json(self) -> dict[str, Any]:
        return {
            "start_at": self.start_at.isoformat(),
            "all_day": self.all_day,
            "location": self.location,
        }


@dataclass(frozen=True, slots=True)
class SecondaryTaskMetadata:
    source: ClassVar[TriageSource] = TriageSource.SECONDARY_TASK_LIST

    due: date | None
    notes: str = ""
    status: str = "needsAction"

    def to_json(self) -> dict[str, Any]:
        return {
            "due": self.due.isoformat() if self.due else None,
            "status": self.status,
            "has_notes": bool(self.notes.strip()),
        }


SourceMetadata = EmailMetadata | TaskManagerMetadata | CalendarMetadata | SecondaryTaskMetadata


# ---------------------------------------------------------------------------
# Pipeline values
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CandidateItem:
    """One normalized unit of data from an external source, prior to scoring."""

    source_id: str
    title: str
    snippet: str
    metadata: SourceMetadata

    @property
    def source(self) -> TriageSource:
        return self.metadata.source


@dataclass(frozen=True, slots=True)
class TriageScore:
    value: int
    reasoning: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", clamp_score(self.value))


def clamp_score(value: float) -> int:
    """
    Floor and clamp any numeric score into [0, 100].

    Flooring keeps a fractional model score below the threshold on the same
    side of it, so 59.5 is not admitted at 60.
    """
    return max(0, min(100, math.floor(value)))


@dataclass(slots=True)
class TriageQueueEntry:
    """Represents a triage_queue row."""

    id: str
    user_id: str
    source: TriageSource
    source_id: str
    title: str
    snippet: str
    score: int
    reasoning: str
    source_metadata: dict[str, Any]
    status: QueueStatus
    reviewed_at: datetime | None
    created_at: datetime

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> TriageQueueEntry:
        return cls(
            id=str(row["id"]),
            user_id=row["user_id"],
            source=TriageSource(row["source"]),
            source_id=row["source_id"],
            title=row["title"],
            snippet=row.get("snippet") or "",
            score=row["score"],
            reasoning=row.get("reasoning") or "",
            source_metadata=row.get("source_metadata") or {},
            status=QueueStatus(row["status"]),
            reviewed_at=row.get("reviewed_at"),
            created_at=row["created_at"],
        )


@dataclass(frozen=True, slots=True)
class SyncCursor:
    user_id: str
    source: TriageSource
    position: str


@dataclass(slots=True)
class TriageSyncResult:
    added: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.errors)

    def to_dict(self) -> dict[str, Any]:
        return {"added": self.added, "skipped": self.skipped, "errors": list(self.errors)}
