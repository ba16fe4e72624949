"""Test configuration and fixtures."""

import json
import os
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest

# Set test environment variables BEFORE importing the package
os.environ["ENVIRONMENT"] = "test"
os.environ["AUTH_TOKEN"] = ""
os.environ.pop("GRAPH_BASE_URL", None)

from teams_chat_mcp.config import get_settings
from teams_chat_mcp.service import ChatService, ChatServiceConfig

GRAPH = "https://graph.microsoft.com/v1.0"
API_PREFIX = "/v1.0"


class FakeGraph:
    """Canned Microsoft Graph responses keyed by (method, path).

    Responses queued for a route are served in order; the last one repeats.
    Unrouted requests get a Graph-style 404.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], List[Tuple[int, Any, Optional[Dict[str, str]]]]] = {}
        self.requests: List[httpx.Request] = []

    def add(
        self,
        method: str,
        path: str,
        json_body: Any = None,
        status: int = 200,
        headers: Optional[Dict[str, str]] = None,
    ) -> "FakeGraph":
        self.routes.setdefault((method.upper(), path), []).append((status, json_body, headers))
        return self

    def error(self, method: str, path: str, status: int, code: str = "Error", message: str = "failed",
              headers: Optional[Dict[str, str]] = None) -> "FakeGraph":
        body = {"error": {"code": code, "message": message, "innerError": {"request-id": "req-1"}}}
        return self.add(method, path, body, status=status, headers=headers)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.startswith(API_PREFIX):
            path = path[len(API_PREFIX):]
        queue = self.routes.get((request.method, path))
        if not queue:
            return httpx.Response(404, json={"error": {"code": "NotFound", "message": f"No route {path}"}})
        status, body, headers = queue.pop(0) if len(queue) > 1 else queue[0]
        if body is None:
            return httpx.Response(status, headers=headers)
        return httpx.Response(status, json=body, headers=headers)

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [
            r for r in self.requests
            if r.method == method and r.url.path == API_PREFIX + path
        ]

    def json_of(self, request: httpx.Request) -> Dict[str, Any]:
        return json.loads(request.content)


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def fake_graph():
    return FakeGraph()


@pytest.fixture
def graph_http(fake_graph):
    """AsyncClient whose requests are answered by ``fake_graph``."""
    return httpx.AsyncClient(transport=httpx.MockTransport(fake_graph.handler))


@pytest.fixture
def service_config():
    return ChatServiceConfig()


@pytest.fixture
def service_factory(graph_http, service_config):
    """Build ChatServices that talk to the fake Graph."""
    def factory(token: str) -> ChatService:
        return ChatService(token, service_config, http_client=graph_http)
    return factory


@pytest.fixture
def chat_service(service_factory):
    return service_factory("test-token")


def make_chat(chat_id: str, topic: Optional[str] = "Team sync", chat_type: str = "group", **extra) -> Dict[str, Any]:
    chat = {
        "id": chat_id,
        "topic": topic,
        "chatType": chat_type,
        "createdDateTime": "2024-03-01T09:00:00.000Z",
        "lastUpdatedDateTime": "2024-03-02T09:00:00.000Z",
        "webUrl": f"https://teams.microsoft.com/l/chat/{chat_id}",
        "members": [
            {
                "id": f"m-{chat_id}",
                "userId": "u-ann",
                "displayName": "Ann Lee",
                "email": "ann@example.com",
                "roles": ["owner"],
            },
        ],
    }
    chat.update(extra)
    return chat


def make_message(message_id: str, created: str, is_read: Optional[bool] = None, sender: str = "Ann Lee",
                 content: str = "Hello", **extra) -> Dict[str, Any]:
    message = {
        "id": message_id,
        "createdDateTime": created,
        "messageType": "message",
        "importance": "normal",
        "body": {"contentType": "text", "content": content},
        "from": {"user": {"id": "u-ann", "displayName": sender}},
    }
    if is_read is not None:
        message["isRead"] = is_read
    message.update(extra)
    return message
