"""
Job runners for the triage feature.
"""

from .triage_sync_job import (
    TriageSyncJob,
    TriageSyncJobError,
    run_triage_sync_job,
    start_triage_sync_scheduler,
    triage_sync_job,
)

__all__ = [
    "TriageSyncJob",
    "TriageSyncJobError",
    "run_triage_sync_job",
    "start_triage_sync_scheduler",
    "triage_sync_job",
]
