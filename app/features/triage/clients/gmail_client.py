"""
Gmail API client for the email triage source.

Only header metadata (Subject, From, Date) and the provider snippet are
fetched; message bodies are never requested.
"""

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field

import httpx

from app.config import settings
from app.features.triage.domain import CursorExpiredError, TransientProviderError
from app.infrastructure.observability.logging import get_logger

from .base import ProviderClient

logger = get_logger(__name__)

GMAIL_API_BASE_URL = "https://gmail.googleapis.com/gmail/v1/users/me"
INBOX_QUERY = "in:inbox -category:promotions -category:social -category:updates"
STARRED_QUERY = "is:starred"
METADATA_HEADERS = ["Subject", "From", "Date"]
SNIPPET_LIMIT = 300


@dataclass(frozen=True, slots=True)
class GmailMessageHeader:
    id: str
    thread_id: str | None
    subject: str
    sender: str
    snippet: str
    date: str


@dataclass(slots=True)
class GmailHistoryPage:
    messages: list[GmailMessageHeader] = field(default_factory=list)
    new_cursor: str | None = None
    expired: bool = False


class GmailClient(ProviderClient):
    provider_name = "Gmail"
    base_url = GMAIL_API_BASE_URL

    def __init__(
        self,
        access_token: str,
        http_client: httpx.AsyncClient | None = None,
        chunk_size: int | None = None,
    ):
        super().__init__(access_token, http_client)
        self._chunk_size = max(1, chunk_size or settings.TRIAGE_GMAIL_HEADER_CHUNK_SIZE)
        # Messages whose headers could not be fetched; they are absent from results
        self.dropped_message_ids: list[str] = []

    async def list_recent(self, n: int) -> list[GmailMessageHeader]:
        """Most recent inbox messages, excluding promotional categories."""
        return await self._list_by_query(INBOX_QUERY, n, "list_recent")

    async def list_starred(self, n: int) -> list[GmailMessageHeader]:
        return await self._list_by_query(STARRED_QUERY, n, "list_starred")

    async def list_since(self, cursor: str) -> GmailHistoryPage:
        """
        Inbox arrivals recorded after `cursor` (a Gmail historyId).

        An unknown or too-old historyId comes back as `expired=True` rather
        than an exception so the caller can fall back to a full resync.
        """
        params = {
            "startHistoryId": cursor,
            "historyTypes": "messageAdded",
            "labelId": "INBOX",
        }
        message_ids: list[str] = []
        new_cursor: str | None = None
        page_token: str | None = None

        try:
            while True:
                if page_token:
                    params["pageToken"] = page_token
                data = await self._get_history(params)
                new_cursor = data.get("historyId") or new_cursor
                for record in data.get("history", []):
                    for added in record.get("messagesAdded", []):
                        message_id = (added.get("message") or {}).get("id")
                        if message_id and message_id not in message_ids:
                            message_ids.append(message_id)
                page_token = data.get("nextPageToken")
                if not page_token:
                    break
        except CursorExpiredError:
            logger.info("Gmail history cursor expired", cursor=cursor)
            return GmailHistoryPage(expired=True)

        messages = await self._get_headers(message_ids)
        return GmailHistoryPage(messages=messages, new_cursor=new_cursor)

    async def current_cursor(self) -> str:
        data = await self._get_json("/profile", "get_profile")
        history_id = data.get("historyId")
        if not history_id:
            raise TransientProviderError("Gmail profile did not include a historyId")
        return str(history_id)

    async def _get_history(self, params: dict) -> dict:
        response = await self._request_with_retry(
            "GET", f"{self.base_url}/history", params=params
        )
        # 404 is Gmail's answer for a startHistoryId outside its retention window
        if response.status_code in (404, 410):
            raise CursorExpiredError(
                "History cursor no longer valid", status_code=response.status_code
            )
        if response.status_code == 400 and "startHistoryId" in response.text:
            raise CursorExpiredError("History cursor rejected", status_code=400)
        return self._handle_api_response(response, "list_history")

    async def _list_by_query(self, query: str, n: int, operation: str) -> list[GmailMessageHeader]:
        data = await self._get_json(
            "/messages", operation, params={"q": query, "maxResults": min(n, 500)}
        )
        ids = [msg["id"] for msg in data.get("messages", []) if msg.get("id")]
        return await self._get_headers(ids)

    async def _get_headers(self, message_ids: Iterable[str]) -> list[GmailMessageHeader]:
        """Fetch metadata in bounded concurrent chunks; a failed message is dropped and noted."""
        ids = list(message_ids)
        messages: list[GmailMessageHeader] = []

        for start in range(0, len(ids), self._chunk_size):
            chunk = ids[start : start + self._chunk_size]
            results = await asyncio.gather(
                *(self._get_header(message_id) for message_id in chunk), return_exceptions=True
            )
            for message_id, result in zip(chunk, results, strict=True):
                if isinstance(result, Exception):
                    logger.warning(
                        "Failed to fetch Gmail message headers",
                        message_id=message_id,
                        error=str(result),
                    )
                    self.dropped_message_ids.append(message_id)
                    continue
                messages.append(result)

        return messages

    async def _get_header(self, message_id: str) -> GmailMessageHeader:
        data = await self._get_json(
            f"/messages/{message_id}",
            "get_message",
            params=[("format", "metadata")] + [("metadataHeaders", h) for h in METADATA_HEADERS],
        )
        return parse_message_header(data)


def parse_message_header(data: dict) -> GmailMessageHeader:
    headers = {
        h.get("name", "").lower(): h.get("value", "")
        for h in (data.get("payload") or {}).get("headers", [])
    }
    return GmailMessageHeader(
        id=data["id"],
        thread_id=data.get("threadId"),
        subject=headers.get("subject") or "(no subject)",
        sender=headers.get("from", ""),
        snippet=(data.get("snippet") or "")[:SNIPPET_LIMIT],
        date=headers.get("date", ""),
    )
