"""
Triage routes.

On-demand and background scans, the pending review queue, review actions,
and the cron entry point used by the external scheduler.
"""

import hmac
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status

from app.auth.verify import current_user_id
from app.config import settings
from app.db.helpers import DatabaseError
from app.features.triage.jobs.triage_sync_job import TriageSyncJobError, triage_sync_job
from app.features.triage.repository import TransitionOutcome, TriageQueueRepository
from app.features.triage.services import background_sync_runner, triage_sync_service
from app.infrastructure.observability.logging import get_logger
from app.models.api.triage_request import ReviewActionRequest
from app.models.api.triage_response import (
    ReviewActionResponse,
    TriageCountResponse,
    TriageCronResponse,
    TriageEntryResponse,
    TriageListResponse,
    TriageScheduledResponse,
    TriageSyncResponse,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/triage", tags=["triage"])


def verify_cron_secret(authorization: str | None = Header(default=None)) -> None:
    expected = settings.CRON_SECRET
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Cron trigger not configured"
        )
    if not authorization or not hmac.compare_digest(authorization, f"Bearer {expected}"):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


@router.post("/scan", response_model=TriageSyncResponse)
async def scan_now(user_id: str = Depends(current_user_id)):
    """Run a triage sync for the authenticated user and return its outcome."""
    result = await triage_sync_service.run_triage_sync(user_id)
    return TriageSyncResponse.from_result(result)


@router.post(
    "/scan/background",
    response_model=TriageScheduledResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def scan_in_background(user_id: str = Depends(current_user_id)):
    """Schedule a detached triage sync."""
    background_sync_runner.spawn(user_id)
    return TriageScheduledResponse(user_id=user_id)


@router.get("", response_model=TriageListResponse)
async def list_pending_entries(
    user_id: str = Depends(current_user_id),
    limit: int = Query(default=50, ge=1, le=200, description="Maximum entries to return"),
):
    try:
        entries = await TriageQueueRepository.list_pending(user_id, limit)
    except DatabaseError as e:
        logger.error("Error listing triage entries", user_id=user_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load triage queue",
        ) from e

    return TriageListResponse(
        entries=[TriageEntryResponse.from_entry(entry) for entry in entries],
        count=len(entries),
    )


@router.get("/count", response_model=TriageCountResponse)
async def count_pending_entries(user_id: str = Depends(current_user_id)):
    try:
        pending = await TriageQueueRepository.count_pending(user_id)
    except DatabaseError as e:
        logger.error("Error counting triage entries", user_id=user_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to count triage queue",
        ) from e
    return TriageCountResponse(pending=pending)


@router.post(
    "/cron", response_model=TriageCronResponse, dependencies=[Depends(verify_cron_secret)]
)
async def run_cron():
    """Run the periodic triage job once for every connected user."""
    try:
        metrics = await triage_sync_job.run_once()
    except TriageSyncJobError as e:
        logger.error("Cron-triggered triage job failed", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Triage job failed",
        ) from e

    if metrics.get("skipped"):
        return TriageCronResponse(skipped=True)
    return TriageCronResponse(metrics=metrics)


@router.post("/{entry_id}", response_model=ReviewActionResponse)
async def review_entry(
    entry_id: UUID,
    request: ReviewActionRequest,
    user_id: str = Depends(current_user_id),
):
    """Apply a review decision to a pending entry."""
    entry_key = str(entry_id)
    new_status = request.action.target_status

    try:
        outcome = await TriageQueueRepository.transition_status(user_id, entry_key, new_status)
    except DatabaseError as e:
        logger.error(
            "Error reviewing triage entry", user_id=user_id, entry_id=entry_key, error=str(e)
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update triage entry",
        ) from e

    if outcome is TransitionOutcome.NOT_FOUND:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Triage entry not found")
    if outcome is TransitionOutcome.ALREADY_REVIEWED:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Triage entry already reviewed"
        )

    return ReviewActionResponse(id=entry_key, status=new_status.value)
