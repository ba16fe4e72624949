"""Tests for the Graph request executor.

Verifies:
- Every request carries the bearer token; an empty token is rejected.
- Non-2xx responses map to the typed error taxonomy, once, without retries.
- Transport failures become RemoteError.
- Create falls back to a minimal chat when the follow-up read fails.
- nextLink must point at the configured Graph base URL.
"""

from datetime import datetime, timezone

import httpx
import pytest

from teams_chat_mcp.graph.client import GraphClient
from teams_chat_mcp.graph.exceptions import (
    AuthenticationError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    RemoteError,
    ToolValidationError,
)
from teams_chat_mcp.graph.normalize import parse_timestamp

from conftest import GRAPH, make_chat

pytestmark = pytest.mark.asyncio

CHAT_ID = "19:abc@thread.v2"


@pytest.fixture
def client(graph_http):
    return GraphClient("secret-token", http_client=graph_http)


class TestRequest:

    async def test_bearer_header(self, client, fake_graph):
        fake_graph.add("GET", "/me/chats", {"value": []})

        await client.list_chats("$top=50")

        request = fake_graph.requests[0]
        assert request.headers["authorization"] == "Bearer secret-token"
        assert request.url.params["$top"] == "50"

    async def test_missing_token_rejected(self):
        with pytest.raises(AuthenticationError):
            GraphClient("  ")

    async def test_no_content_returns_empty_dict(self, client, fake_graph):
        fake_graph.add("POST", f"/chats/{CHAT_ID}/messages", status=204)
        assert await client.send_message(CHAT_ID, {"body": {"content": "hi"}}) == {}

    async def test_base_url_override(self, graph_http, fake_graph):
        fake_graph.add("GET", "/me/chats", {"value": []})
        client = GraphClient("t", base_url=GRAPH + "/", http_client=graph_http)
        assert client.base_url == GRAPH
        await client.list_chats()
        assert str(fake_graph.requests[0].url) == GRAPH + "/me/chats"


class TestErrorMapping:

    async def test_401(self, client, fake_graph):
        fake_graph.error("GET", "/me/chats", 401, code="InvalidAuthenticationToken", message="expired")

        with pytest.raises(AuthenticationError) as exc_info:
            await client.list_chats()

        assert exc_info.value.status_code == 401
        assert exc_info.value.code == "InvalidAuthenticationToken"
        assert len(fake_graph.requests) == 1

    async def test_403_hint_names_scope(self, client, fake_graph):
        fake_graph.error("GET", f"/chats/{CHAT_ID}/messages", 403, code="Forbidden")

        with pytest.raises(PermissionDeniedError) as exc_info:
            await client.list_messages(CHAT_ID)

        assert "Chat.Read" in exc_info.value.hint
        assert exc_info.value.kind == "permission_error"

    async def test_404_is_remote_error(self, client, fake_graph):
        fake_graph.error("GET", f"/chats/{CHAT_ID}", 404, code="NotFound", message="no chat")

        with pytest.raises(NotFoundError) as exc_info:
            await client.get_chat(CHAT_ID)

        assert isinstance(exc_info.value, RemoteError)
        assert exc_info.value.details == {"request-id": "req-1"}

    async def test_429_retry_after_not_retried(self, client, fake_graph):
        fake_graph.error("GET", "/me/chats", 429, code="TooManyRequests", headers={"Retry-After": "7"})

        with pytest.raises(RateLimitError) as exc_info:
            await client.list_chats()

        assert exc_info.value.retry_after == 7.0
        assert exc_info.value.to_dict()["retryAfter"] == 7.0
        assert len(fake_graph.requests) == 1

    async def test_429_without_header(self, client, fake_graph):
        fake_graph.error("GET", "/me/chats", 429)
        with pytest.raises(RateLimitError) as exc_info:
            await client.list_chats()
        assert exc_info.value.retry_after is None

    async def test_500_remote_error(self, client, fake_graph):
        fake_graph.error("GET", "/me/chats", 500, code="InternalServerError", message="boom")

        with pytest.raises(RemoteError) as exc_info:
            await client.list_chats()

        error = exc_info.value
        assert error.status_code == 500
        assert "boom" in error.message
        assert error.to_dict()["kind"] == "remote_error"

    async def test_non_json_error_body(self):
        client = GraphClient(
            "t",
            http_client=httpx.AsyncClient(
                transport=httpx.MockTransport(lambda request: httpx.Response(502, text="Bad gateway"))
            ),
        )
        with pytest.raises(RemoteError) as exc_info:
            await client.list_chats()
        assert "Bad gateway" in exc_info.value.message

    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = GraphClient("t", http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

        with pytest.raises(RemoteError) as exc_info:
            await client.list_chats()

        assert exc_info.value.code == "transport_error"

    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        client = GraphClient("t", http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

        with pytest.raises(RemoteError) as exc_info:
            await client.list_chats()

        assert exc_info.value.code == "timeout"


class TestCreateChat:

    async def test_returns_read_back_chat(self, client, fake_graph):
        fake_graph.add("POST", "/chats", {"id": CHAT_ID}, status=201)
        fake_graph.add("GET", f"/chats/{CHAT_ID}", make_chat(CHAT_ID, topic="Sync"))

        chat = await client.create_chat({"chatType": "group", "topic": "Sync", "members": []})

        assert chat["topic"] == "Sync"
        assert chat["members"][0]["displayName"] == "Ann Lee"
        assert fake_graph.calls("GET", f"/chats/{CHAT_ID}")[0].url.params["$expand"] == "members"

    async def test_falls_back_when_read_back_fails(self, client, fake_graph):
        started = datetime.now(timezone.utc).replace(microsecond=0)
        fake_graph.add("POST", "/chats", {"id": CHAT_ID, "webUrl": "https://teams/x"}, status=201)
        fake_graph.error("GET", f"/chats/{CHAT_ID}", 403, code="Forbidden")

        chat = await client.create_chat({"chatType": "group", "topic": "Sync", "members": []})

        assert chat["id"] == CHAT_ID
        assert chat["topic"] == "Sync"
        assert chat["chatType"] == "group"
        assert chat["webUrl"] == "https://teams/x"
        assert parse_timestamp(chat["createdDateTime"]) >= started

    async def test_create_failure_propagates(self, client, fake_graph):
        fake_graph.error("POST", "/chats", 400, code="BadRequest", message="invalid member")

        with pytest.raises(RemoteError) as exc_info:
            await client.create_chat({"chatType": "group", "members": []})

        assert exc_info.value.status_code == 400
        assert fake_graph.calls("GET", f"/chats/{CHAT_ID}") == []

    async def test_skip_read_back(self, client, fake_graph):
        fake_graph.add("POST", "/chats", {"id": CHAT_ID}, status=201)

        chat = await client.create_chat({"chatType": "group", "members": []}, fetch_details=False)

        assert chat == {"id": CHAT_ID}
        assert len(fake_graph.requests) == 1


class TestNextLink:

    async def test_followed_verbatim(self, client, fake_graph):
        fake_graph.add("GET", "/me/chats", {"value": [make_chat("c3")]})
        link = GRAPH + "/me/chats?$skiptoken=abc%3D%3D"

        data = await client.follow_next_link(link)

        assert data["value"][0]["id"] == "c3"
        assert fake_graph.requests[0].url.params["$skiptoken"] == "abc=="

    async def test_foreign_url_rejected(self, client, fake_graph):
        with pytest.raises(ToolValidationError):
            await client.follow_next_link("https://evil.example.com/v1.0/me/chats")
        assert fake_graph.requests == []
