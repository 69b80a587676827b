from collections.abc import Callable

from app.features.triage.clients import GoogleTask, GoogleTasksClient
from app.features.triage.domain import CandidateItem, SecondaryTaskMetadata, TriageSource
from app.features.triage.repository import GOOGLE_PROVIDER

from .base import FetchResult, SourceAdapter

SNIPPET_LIMIT = 200


def task_to_candidate(task: GoogleTask) -> CandidateItem:
    return CandidateItem(
        source_id=task.id,
        title=task.title,
        snippet=task.notes[:SNIPPET_LIMIT],
        metadata=SecondaryTaskMetadata(due=task.due, notes=task.notes, status=task.status),
    )


class SecondaryTaskAdapter(SourceAdapter):
    source = TriageSource.SECONDARY_TASK_LIST
    provider = GOOGLE_PROVIDER

    def __init__(
        self, credentials=None, client_factory: Callable[[str], GoogleTasksClient] | None = None
    ):
        super().__init__(credentials)
        self._client_factory = client_factory or GoogleTasksClient

    async def _fetch(self, user_id: str) -> FetchResult:
        token = await self._require_token(user_id)
        async with self._client_factory(token) as client:
            tasks = await client.list_incomplete()
            failed = list(client.failed_task_lists)

        warnings = []
        if failed:
            warnings.append(f"{len(failed)} task list(s) failed ({failed[0]})")
        return FetchResult(items=[task_to_candidate(task) for task in tasks], warnings=warnings)
