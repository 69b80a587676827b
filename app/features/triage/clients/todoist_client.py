"""
Todoist API client for the task-manager triage source.
"""

from dataclasses import dataclass
from datetime import date

from app.infrastructure.observability.logging import get_logger

from .base import ProviderClient

logger = get_logger(__name__)

TODOIST_API_BASE_URL = "https://api.todoist.com/api/v1"
MAX_PAGES = 20


@dataclass(frozen=True, slots=True)
class TodoistTask:
    id: str
    content: str
    description: str
    priority: int
    due_date: date | None


class TodoistClient(ProviderClient):
    provider_name = "Todoist"
    base_url = TODOIST_API_BASE_URL

    async def list_active_tasks(self) -> list[TodoistTask]:
        tasks: list[TodoistTask] = []
        cursor: str | None = None

        for _ in range(MAX_PAGES):
            params = {"cursor": cursor} if cursor else None
            data = await self._get_json("/tasks", "list_tasks", params=params)

            # Older API versions answer with a bare list
            if isinstance(data, list):
                results, cursor = data, None
            else:
                results, cursor = data.get("results", []), data.get("next_cursor")

            tasks.extend(task for task in map(parse_task, results) if task is not None)
            if not cursor:
                break

        logger.debug("Todoist tasks listed", task_count=len(tasks))
        return tasks


def parse_task(data: dict) -> TodoistTask | None:
    if not data.get("id") or not data.get("content"):
        return None

    due = data.get("due") or {}
    due_date = None
    if due.get("date"):
        try:
            due_date = date.fromisoformat(due["date"][:10])
        except ValueError:
            logger.debug("Ignoring malformed Todoist due date", task_id=data["id"])

    try:
        priority = int(data.get("priority") or 1)
    except (TypeError, ValueError):
        priority = 1

    return TodoistTask(
        id=str(data["id"]),
        content=data["content"],
        description=data.get("description") or "",
        priority=priority,
        due_date=due_date,
    )
