"""
Deterministic scoring for items that already carry structured metadata.

No I/O and no randomness: the only inputs are the metadata and the
reference date/time, which callers may pin for reproducibility. Due dates
are compared at calendar-day granularity.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, date, datetime, timedelta

from app.features.triage.domain import (
    CalendarMetadata,
    CandidateItem,
    SecondaryTaskMetadata,
    TaskManagerMetadata,
    TriageScore,
)
from app.infrastructure.observability.logging import get_logger

from .report import ScoringReport

logger = get_logger(__name__)

# Todoist priority: 1=normal .. 4=urgent
TASK_PRIORITY_BASE = {4: 40, 3: 30, 2: 25, 1: 20}
TASK_PRIORITY_LABELS = {4: "urgent", 3: "high", 2: "medium", 1: "normal"}
LOWEST_PRIORITY = 1

# Google Tasks has no priority field; notes are the only signal of effort.
SECONDARY_BASE_WITH_NOTES = 30
SECONDARY_BASE_WITHOUT_NOTES = 25

# (bonus, cap) applied to the base score per due-date bucket
OVERDUE_RULE = (55, 95)
DUE_TODAY_RULE = (45, 85)
DUE_SOON_RULE = (35, 75)  # within 2 days
DUE_THIS_WEEK_RULE = (20, 60)  # within 7 days


def _apply(base: int, rule: tuple[int, int]) -> int:
    bonus, cap = rule
    return min(cap, base + bonus)


def utc_today() -> date:
    """Calendar day in UTC, the same boundary the calendar scorer uses."""
    return datetime.now(UTC).date()


def _due_date_score(base: int, due: date, today: date) -> tuple[int, str]:
    """Shared due-date proximity rules. Returns (score, bucket description)."""
    days_until = (due - today).days

    if days_until < 0:
        return _apply(base, OVERDUE_RULE), "overdue"
    if days_until == 0:
        return _apply(base, DUE_TODAY_RULE), "due today"
    if days_until <= 2:
        return _apply(base, DUE_SOON_RULE), f"due in {days_until} day(s)"
    if days_until <= 7:
        return _apply(base, DUE_THIS_WEEK_RULE), f"due in {days_until} days"
    return base, f"due in {days_until} days"


def score_task_manager_item(
    metadata: TaskManagerMetadata, today: date | None = None
) -> TriageScore:
    priority = metadata.priority if metadata.priority in TASK_PRIORITY_BASE else LOWEST_PRIORITY
    base = TASK_PRIORITY_BASE[priority]
    label = TASK_PRIORITY_LABELS[priority]

    if metadata.due_date is None:
        return TriageScore(base, f"{label} priority, no due date")

    score, bucket = _due_date_score(base, metadata.due_date, today or utc_today())
    return TriageScore(score, f"{label} priority, {bucket}")


def score_calendar_event(metadata: CalendarMetadata, now: datetime | None = None) -> TriageScore:
    now = now or datetime.now(UTC)
    until = metadata.start_at - now

    if until < timedelta(0):
        return TriageScore(0, "Event already passed")
    if until <= timedelta(hours=4):
        return TriageScore(80, f"Event in {round(until.total_seconds() / 60)} min")
    if until <= timedelta(hours=24):
        return TriageScore(65, "Event within 24 hours")
    if until <= timedelta(hours=48):
        return TriageScore(50, "Event within 48 hours")
    if until <= timedelta(days=7):
        return TriageScore(35, "Event this week")
    return TriageScore(20, "Event more than a week away")


def score_secondary_task(
    metadata: SecondaryTaskMetadata, today: date | None = None
) -> TriageScore:
    if metadata.notes.strip():
        base, label = SECONDARY_BASE_WITH_NOTES, "task with notes"
    else:
        base, label = SECONDARY_BASE_WITHOUT_NOTES, "task"

    if metadata.due is None:
        return TriageScore(base, f"{label}, no due date")

    score, bucket = _due_date_score(base, metadata.due, today or utc_today())
    return TriageScore(score, f"{label}, {bucket}")


class StructuredScorer:
    """Dispatches each candidate to the rule set for its metadata type."""

    def __init__(self, today: date | None = None, now: datetime | None = None):
        self._today = today
        self._now = now

    def score(self, item: CandidateItem) -> TriageScore:
        metadata = item.metadata
        if isinstance(metadata, TaskManagerMetadata):
            return score_task_manager_item(metadata, self._today)
        if isinstance(metadata, CalendarMetadata):
            return score_calendar_event(metadata, self._now)
        if isinstance(metadata, SecondaryTaskMetadata):
            return score_secondary_task(metadata, self._today)
        raise TypeError(f"No structured scoring rules for {type(metadata).__name__}")

    async def score_items(self, items: Iterable[CandidateItem]) -> ScoringReport:
        report = ScoringReport()
        for item in items:
            report.scored.append((item, self.score(item)))
        logger.debug("Structured scoring complete", scored=len(report.scored))
        return report
