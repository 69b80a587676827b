"""
Result container shared by both scoring strategies.
"""

from dataclasses import dataclass, field

from app.features.triage.domain import CandidateItem, TriageScore


@dataclass(slots=True)
class ScoringReport:
    scored: list[tuple[CandidateItem, TriageScore]] = field(default_factory=list)
    # Items whose scoring call failed; they are skipped for this run.
    failed: int = 0
    errors: list[str] = field(default_factory=list)
