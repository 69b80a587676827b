from collections.abc import Callable

from app.features.triage.clients import TodoistClient, TodoistTask
from app.features.triage.domain import CandidateItem, TaskManagerMetadata, TriageSource
from app.features.triage.repository import TODOIST_PROVIDER

from .base import FetchResult, SourceAdapter

SNIPPET_LIMIT = 200


def task_to_candidate(task: TodoistTask) -> CandidateItem:
    return CandidateItem(
        source_id=task.id,
        title=task.content,
        snippet=task.description[:SNIPPET_LIMIT],
        metadata=TaskManagerMetadata(priority=task.priority, due_date=task.due_date),
    )


class TaskManagerAdapter(SourceAdapter):
    source = TriageSource.TASK_MANAGER
    provider = TODOIST_PROVIDER

    def __init__(
        self, credentials=None, client_factory: Callable[[str], TodoistClient] | None = None
    ):
        super().__init__(credentials)
        self._client_factory = client_factory or TodoistClient

    async def _fetch(self, user_id: str) -> FetchResult:
        token = await self._require_token(user_id)
        async with self._client_factory(token) as client:
            tasks = await client.list_active_tasks()
        return FetchResult(items=[task_to_candidate(task) for task in tasks])
