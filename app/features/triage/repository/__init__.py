from .credential_repository import GOOGLE_PROVIDER, TODOIST_PROVIDER, OAuthCredentialRepository
from .cursor_repository import SyncCursorRepository
from .email_repository import EmailMirrorRepository
from .queue_repository import TransitionOutcome, TriageQueueRepository

__all__ = [
    "GOOGLE_PROVIDER",
    "TODOIST_PROVIDER",
    "EmailMirrorRepository",
    "OAuthCredentialRepository",
    "SyncCursorRepository",
    "TransitionOutcome",
    "TriageQueueRepository",
]
