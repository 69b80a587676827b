"""
Admission gate between scoring and the review queue.
"""

from app.config import settings
from app.features.triage.domain import TriageScore


def admit(score: TriageScore, threshold: int | None = None) -> bool:
    """Whether a scored candidate enters the review queue."""
    if threshold is None:
        threshold = settings.TRIAGE_ADMISSION_THRESHOLD
    return score.value >= threshold
