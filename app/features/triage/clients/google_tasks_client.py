"""
Google Tasks API client for the secondary task-list triage source.
"""

from dataclasses import dataclass
from datetime import date

import httpx

from app.features.triage.domain import InsufficientScopeError, TriageSourceError
from app.infrastructure.observability.logging import get_logger

from .base import ProviderClient

logger = get_logger(__name__)

TASKS_API_BASE_URL = "https://tasks.googleapis.com/tasks/v1"
MAX_TASK_LISTS = 10
MAX_TASKS_PER_LIST = 50


@dataclass(frozen=True, slots=True)
class GoogleTask:
    id: str
    title: str
    notes: str
    due: date | None
    status: str


class GoogleTasksClient(ProviderClient):
    provider_name = "Google Tasks"
    base_url = TASKS_API_BASE_URL

    def __init__(self, access_token: str, http_client: httpx.AsyncClient | None = None):
        super().__init__(access_token, http_client)
        self.failed_task_lists: list[TriageSourceError] = []

    async def list_incomplete(self) -> list[GoogleTask]:
        """
        Incomplete tasks across the user's first task lists.

        A list that fails is skipped and recorded in `failed_task_lists`. When
        every list fails, the first error is raised instead.
        """
        data = await self._get_json(
            "/users/@me/lists", "list_tasklists", params={"maxResults": MAX_TASK_LISTS}
        )

        self.failed_task_lists = []
        tasks: list[GoogleTask] = []
        attempted = 0
        for task_list in data.get("items", []):
            list_id = task_list.get("id")
            if not list_id:
                continue
            attempted += 1
            try:
                tasks.extend(await self._list_tasks(list_id))
            except InsufficientScopeError:
                raise
            except TriageSourceError as e:
                logger.warning("Skipping Google task list", task_list_id=list_id, error=str(e))
                self.failed_task_lists.append(e)

        if self.failed_task_lists and len(self.failed_task_lists) == attempted:
            raise self.failed_task_lists[0]
        return tasks

    async def _list_tasks(self, list_id: str) -> list[GoogleTask]:
        data = await self._get_json(
            f"/lists/{list_id}/tasks",
            "list_tasks",
            params={"showCompleted": "false", "maxResults": MAX_TASKS_PER_LIST},
        )
        return [task for task in map(parse_task, data.get("items", [])) if task]


def parse_task(data: dict) -> GoogleTask | None:
    if not data.get("id") or not data.get("title"):
        return None

    due = None
    if data.get("due"):
        # RFC 3339 timestamp; only the date part is meaningful for Google Tasks
        try:
            due = date.fromisoformat(data["due"][:10])
        except ValueError:
            logger.debug("Ignoring malformed Google task due date", task_id=data["id"])

    return GoogleTask(
        id=data["id"],
        title=data["title"],
        notes=data.get("notes") or "",
        due=due,
        status=data.get("status") or "needsAction",
    )
