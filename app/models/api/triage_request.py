# app/models/api/triage_request.py
"""
Triage API request models.
Used by routes for input validation.
"""

from enum import StrEnum

from pydantic import BaseModel, Field

from app.features.triage.domain import QueueStatus


class ReviewAction(StrEnum):
    APPROVE = "approve"
    DISMISS = "dismiss"
    PUSH_TO_CONTEXT = "push_to_context"

    @property
    def target_status(self) -> QueueStatus:
        return {
            ReviewAction.APPROVE: QueueStatus.APPROVED,
            ReviewAction.DISMISS: QueueStatus.DISMISSED,
            ReviewAction.PUSH_TO_CONTEXT: QueueStatus.PUSHED_TO_CONTEXT,
        }[self]


class ReviewActionRequest(BaseModel):
    """Request for reviewing a pending triage entry."""

    action: ReviewAction = Field(..., description="Review decision for the entry")
