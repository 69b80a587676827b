import httpx
import pytest

from app.features.triage.clients import GmailClient, base
from app.features.triage.clients.gmail_client import parse_message_header
from app.features.triage.domain import InsufficientScopeError, TransientProviderError

PREFIX = "/gmail/v1/users/me"


def _metadata(message_id, subject="Quarterly report"):
    return {
        "id": message_id,
        "threadId": f"thread-{message_id}",
        "snippet": "Numbers attached",
        "payload": {
            "headers": [
                {"name": "Subject", "value": subject},
                {"name": "From", "value": "Dana <dana@example.com>"},
                {"name": "Date", "value": "Mon, 19 Oct 2026 09:00:00 +0000"},
            ]
        },
    }


def _client(handler, chunk_size=10):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GmailClient("token", http_client=http_client, chunk_size=chunk_size)


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    monkeypatch.setattr(base, "BACKOFF_FACTOR", 0)


def test_parse_message_header_defaults():
    header = parse_message_header({"id": "m1", "snippet": "x" * 400})

    assert header.subject == "(no subject)"
    assert header.sender == ""
    assert len(header.snippet) == 300


@pytest.mark.asyncio
async def test_list_since_follows_pages_and_filters_added_messages():
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == f"{PREFIX}/history":
            assert request.headers["Authorization"] == "Bearer token"
            assert request.url.params["labelId"] == "INBOX"
            if request.url.params.get("pageToken") == "p2":
                return httpx.Response(
                    200,
                    json={
                        "historyId": "120",
                        "history": [{"messagesAdded": [{"message": {"id": "m2"}}]}],
                    },
                )
            return httpx.Response(
                200,
                json={
                    "historyId": "110",
                    "nextPageToken": "p2",
                    "history": [
                        {"messagesAdded": [{"message": {"id": "m1"}}]},
                        {"labelsAdded": [{"message": {"id": "m9"}}]},
                    ],
                },
            )
        message_id = path.rsplit("/", 1)[-1]
        return httpx.Response(200, json=_metadata(message_id))

    page = await _client(handler).list_since("100")

    assert page.expired is False
    assert page.new_cursor == "120"
    assert [message.id for message in page.messages] == ["m1", "m2"]
    assert page.messages[0].subject == "Quarterly report"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status", "body"),
    [
        (404, {"error": {"message": "Requested entity was not found."}}),
        (410, {"error": {"message": "Gone"}}),
        (400, {"error": {"message": "Invalid startHistoryId"}}),
    ],
)
async def test_list_since_reports_expired_cursor(status, body):
    def handler(request):
        return httpx.Response(status, json=body)

    page = await _client(handler).list_since("1")

    assert page.expired is True
    assert page.messages == []


@pytest.mark.asyncio
async def test_list_recent_fetches_headers_in_chunks_and_drops_failures():
    fetched: list[str] = []

    def handler(request):
        path = request.url.path
        if path == f"{PREFIX}/messages":
            assert "in:inbox" in request.url.params["q"]
            return httpx.Response(200, json={"messages": [{"id": f"m{i}"} for i in range(5)]})
        message_id = path.rsplit("/", 1)[-1]
        fetched.append(message_id)
        if message_id == "m3":
            return httpx.Response(404, json={"error": {"message": "Not Found"}})
        return httpx.Response(200, json=_metadata(message_id))

    client = _client(handler, chunk_size=2)
    messages = await client.list_recent(5)

    assert [message.id for message in messages] == ["m0", "m1", "m2", "m4"]
    assert sorted(fetched) == ["m0", "m1", "m2", "m3", "m4"]
    assert client.dropped_message_ids == ["m3"]


@pytest.mark.asyncio
async def test_scope_error_is_typed():
    def handler(request):
        return httpx.Response(
            403,
            json={
                "error": {
                    "message": "Request had insufficient authentication scopes.",
                    "status": "PERMISSION_DENIED",
                    "details": [{"reason": "ACCESS_TOKEN_SCOPE_INSUFFICIENT"}],
                }
            },
        )

    with pytest.raises(InsufficientScopeError):
        await _client(handler).list_starred(25)


@pytest.mark.asyncio
async def test_server_errors_are_retried():
    attempts = {"count": 0}

    def handler(request):
        attempts["count"] += 1
        if attempts["count"] < 3:
            return httpx.Response(503, text="unavailable")
        return httpx.Response(200, json={"historyId": "777"})

    cursor = await _client(handler).current_cursor()

    assert cursor == "777"
    assert attempts["count"] == 3


@pytest.mark.asyncio
async def test_persistent_failure_becomes_transient_error():
    def handler(request):
        return httpx.Response(500, json={"error": {"message": "Backend Error"}})

    with pytest.raises(TransientProviderError, match="HTTP 500"):
        await _client(handler).current_cursor()


@pytest.mark.asyncio
async def test_network_error_becomes_transient_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransientProviderError):
        await _client(handler).list_recent(5)
