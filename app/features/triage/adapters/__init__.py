"""
Source adapters: fetch and normalize candidate items per provider.
"""

from .base import FetchResult, SourceAdapter
from .calendar_adapter import CalendarAdapter
from .email_adapter import EmailAdapter
from .secondary_task_adapter import SecondaryTaskAdapter
from .task_manager_adapter import TaskManagerAdapter

__all__ = [
    "CalendarAdapter",
    "EmailAdapter",
    "FetchResult",
    "SecondaryTaskAdapter",
    "SourceAdapter",
    "TaskManagerAdapter",
]
