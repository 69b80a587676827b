"""
Thin provider clients used by the triage source adapters.
"""

from .calendar_client import CalendarEvent, GoogleCalendarClient
from .gmail_client import GmailClient, GmailHistoryPage, GmailMessageHeader
from .google_tasks_client import GoogleTask, GoogleTasksClient
from .openai_urgency_client import OpenAIServiceError, OpenAIUrgencyClient
from .todoist_client import TodoistClient, TodoistTask

__all__ = [
    "CalendarEvent",
    "GmailClient",
    "GmailHistoryPage",
    "GmailMessageHeader",
    "GoogleCalendarClient",
    "GoogleTask",
    "GoogleTasksClient",
    "OpenAIServiceError",
    "OpenAIUrgencyClient",
    "TodoistClient",
    "TodoistTask",
]
