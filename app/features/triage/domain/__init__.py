"""
Domain subpackage for the triage feature.
"""

from .errors import (
    CursorExpiredError,
    InsufficientScopeError,
    NotConnectedError,
    RateLimitedError,
    ScoringParseError,
    SourceError,
    SourceErrorKind,
    TransientProviderError,
    TriageSourceError,
)
from .models import (
    CalendarMetadata,
    CandidateItem,
    EmailMetadata,
    QueueStatus,
    SecondaryTaskMetadata,
    SourceMetadata,
    SyncCursor,
    TaskManagerMetadata,
    TriageQueueEntry,
    TriageScore,
    TriageSource,
    TriageSyncResult,
    clamp_score,
)

__all__ = [
    "CalendarMetadata",
    "CandidateItem",
    "CursorExpiredError",
    "EmailMetadata",
    "InsufficientScopeError",
    "NotConnectedError",
    "QueueStatus",
    "RateLimitedError",
    "ScoringParseError",
    "SecondaryTaskMetadata",
    "SourceError",
    "SourceErrorKind",
    "SourceMetadata",
    "SyncCursor",
    "TaskManagerMetadata",
    "TransientProviderError",
    "TriageQueueEntry",
    "TriageScore",
    "TriageSource",
    "TriageSyncResult",
    "clamp_score",
]
