"""
Service layer for the triage feature.
"""

from .background import BackgroundSyncRunner, background_sync_runner
from .orchestrator import ALREADY_RUNNING_ERROR, TriageSyncService, triage_sync_service
from .run_lock import TriageRunLock

__all__ = [
    "ALREADY_RUNNING_ERROR",
    "BackgroundSyncRunner",
    "TriageRunLock",
    "TriageSyncService",
    "background_sync_runner",
    "triage_sync_service",
]
