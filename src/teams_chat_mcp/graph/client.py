"""Microsoft Graph request executor for Teams chat operations.

One ``GraphClient`` is built per credential. It issues a single HTTP call per
method, never retries, and turns every non-2xx response into a typed
``GraphToolError``.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence
from urllib.parse import quote

import httpx

from ..config import get_settings
from .exceptions import (
    AuthenticationError,
    GraphToolError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    RemoteError,
    ToolValidationError,
)
from .http_client import get_http_client

logger = logging.getLogger(__name__)

GRAPH_API_BASE = "https://graph.microsoft.com/v1.0"

# Minimum delegated scopes per operation, used in permission hints.
SCOPES_LIST_CHATS = ("Chat.ReadBasic",)
SCOPES_READ_CHAT = ("Chat.ReadBasic",)
SCOPES_READ_MESSAGES = ("Chat.Read",)
SCOPES_CREATE_CHAT = ("Chat.Create",)
SCOPES_SEND_MESSAGE = ("ChatMessage.Send",)
SCOPES_READ_USER = ("User.Read",)


def _path_segment(value: str) -> str:
    return quote(str(value), safe=":@")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class GraphClient:
    """Authenticated Microsoft Graph client bound to one bearer token.

    Usage:
        client = GraphClient(access_token)
        chats = await client.list_chats("$top=50")
        await client.send_message(chat_id, {"body": {"content": "Hi"}})
    """

    def __init__(
        self,
        access_token: str,
        *,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        if not access_token or not access_token.strip():
            raise AuthenticationError("Missing Microsoft Graph access token")
        self._access_token = access_token.strip()
        self.base_url = (base_url or get_settings().graph_base_url or GRAPH_API_BASE).rstrip("/")
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        return self._http_client or get_http_client()

    def url_for(self, path: str, query: Optional[str] = None) -> str:
        url = f"{self.base_url}{path}"
        if query:
            url = f"{url}?{query}"
        return url

    async def request(
        self,
        method: str,
        url: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        scopes: Sequence[str] = (),
    ) -> Dict[str, Any]:
        """Make one authenticated request and return the decoded JSON body.

        Args:
            method: HTTP method.
            url: Absolute Graph URL, query string included.
            json: Request body for POST/PATCH.
            scopes: Graph scopes the call needs, quoted in permission hints.

        Raises:
            AuthenticationError: On 401.
            PermissionDeniedError: On 403.
            NotFoundError: On 404.
            RateLimitError: On 429.
            RemoteError: On any other non-2xx status or transport failure.
        """
        headers = {"Authorization": f"Bearer {self._access_token}"}
        if json is not None:
            headers["Content-Type"] = "application/json"

        logger.debug("Graph %s %s", method, url)
        try:
            response = await self.http_client.request(method, url, headers=headers, json=json)
        except httpx.TimeoutException as exc:
            raise RemoteError(
                "Request to Microsoft Graph timed out",
                code="timeout",
                hint="Microsoft Graph did not answer in time; try again shortly.",
            ) from exc
        except httpx.HTTPError as exc:
            raise RemoteError(
                f"Could not reach Microsoft Graph: {type(exc).__name__}",
                code="transport_error",
                hint="Check network connectivity to graph.microsoft.com.",
            ) from exc

        if response.status_code >= 400:
            raise _error_from_response(response, scopes)

        if response.status_code == 204 or not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as exc:
            raise RemoteError(
                "Microsoft Graph returned a non-JSON response",
                status_code=response.status_code,
                code="invalid_response",
            ) from exc
        return data if isinstance(data, dict) else {"value": data}

    # ------------------------------------------------------------------ #
    # Users
    # ------------------------------------------------------------------ #

    async def get_me(self) -> Dict[str, Any]:
        """Get the signed-in user's id, display name and UPN."""
        return await self.request(
            "GET",
            self.url_for("/me", "$select=id,displayName,userPrincipalName,mail"),
            scopes=SCOPES_READ_USER,
        )

    # ------------------------------------------------------------------ #
    # Chats
    # ------------------------------------------------------------------ #

    async def list_chats(self, query: str = "") -> Dict[str, Any]:
        """``GET /me/chats`` with a pre-built OData query string."""
        return await self.request("GET", self.url_for("/me/chats", query), scopes=SCOPES_LIST_CHATS)

    async def get_chat(self, chat_id: str) -> Dict[str, Any]:
        """``GET /chats/{id}`` with members expanded."""
        return await self.request(
            "GET",
            self.url_for(f"/chats/{_path_segment(chat_id)}", "$expand=members"),
            scopes=SCOPES_READ_CHAT,
        )

    async def create_chat(self, payload: Dict[str, Any], *, fetch_details: bool = True) -> Dict[str, Any]:
        """Create a chat, then try to read it back with its members.

        The read-back commonly fails for tokens that may create but not read
        chats. That is not a failure of the create: a minimal chat built from
        the create response and the request payload is returned instead.
        """
        created = await self.request("POST", self.url_for("/chats"), json=payload, scopes=SCOPES_CREATE_CHAT)
        chat_id = created.get("id")
        if not fetch_details or not chat_id:
            return created

        try:
            return await self.get_chat(chat_id)
        except GraphToolError as exc:
            logger.warning(
                "Could not fetch details of created chat %s (%s); returning minimal chat. "
                "Chat.ReadBasic or Chat.Read may be missing.",
                chat_id,
                exc.kind,
            )
            now = utc_now_iso()
            return {
                "id": chat_id,
                "topic": created.get("topic") or payload.get("topic"),
                "chatType": created.get("chatType") or payload.get("chatType"),
                "webUrl": created.get("webUrl"),
                "createdDateTime": now,
                "lastUpdatedDateTime": now,
            }

    # ------------------------------------------------------------------ #
    # Messages
    # ------------------------------------------------------------------ #

    async def list_messages(self, chat_id: str, query: str = "") -> Dict[str, Any]:
        """``GET /chats/{id}/messages`` with a pre-built OData query string."""
        return await self.request(
            "GET",
            self.url_for(f"/chats/{_path_segment(chat_id)}/messages", query),
            scopes=SCOPES_READ_MESSAGES,
        )

    async def send_message(self, chat_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """``POST /chats/{id}/messages``."""
        return await self.request(
            "POST",
            self.url_for(f"/chats/{_path_segment(chat_id)}/messages"),
            json=payload,
            scopes=SCOPES_SEND_MESSAGE,
        )

    async def follow_next_link(self, next_link: str, scopes: Sequence[str] = ()) -> Dict[str, Any]:
        """Fetch a continuation page from an ``@odata.nextLink`` verbatim."""
        if not next_link.startswith(self.base_url + "/"):
            raise ToolValidationError(
                "nextLink must be a Microsoft Graph URL returned by a previous listing",
                details={"nextLink": next_link},
            )
        return await self.request("GET", next_link, scopes=scopes)


def _error_from_response(response: httpx.Response, scopes: Sequence[str] = ()) -> GraphToolError:
    """Map a non-2xx Graph response to a typed error."""
    status = response.status_code
    code, message, details = _parse_error_envelope(response)
    kwargs: Dict[str, Any] = {"status_code": status, "code": code, "details": details}

    logger.warning("Graph error %d %s: %s", status, code or "-", message)

    if status == 401:
        return AuthenticationError(f"Authentication failed: {message}", **kwargs)
    if status == 403:
        if scopes:
            kwargs["hint"] = f"Ensure the token has the {', '.join(scopes)} permission."
        return PermissionDeniedError(f"Permission denied: {message}", **kwargs)
    if status == 404:
        return NotFoundError(f"Not found: {message}", **kwargs)
    if status == 429:
        return RateLimitError(
            f"Rate limited: {message}",
            retry_after=_parse_retry_after(response),
            **kwargs,
        )
    if status == 400:
        kwargs["hint"] = "Microsoft Graph rejected the request; check filter, orderby and ids."
    return RemoteError(f"Graph API error ({status}): {message}", **kwargs)


def _parse_error_envelope(response: httpx.Response):
    """Extract (code, message, details) from ``{"error": {...}}``."""
    try:
        body = response.json()
    except ValueError:
        body = None

    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        details: Dict[str, Any] = {}
        inner = error.get("innerError")
        if isinstance(inner, dict):
            for key in ("request-id", "client-request-id", "date"):
                if inner.get(key):
                    details[key] = inner[key]
        message = error.get("message") or response.reason_phrase or "Unknown error"
        return error.get("code"), message, details

    text = response.text[:500] if response.content else ""
    return None, text or response.reason_phrase or "Unknown error", {}


def _parse_retry_after(response: httpx.Response) -> Optional[float]:
    """Parse Retry-After header (seconds only, not HTTP-date)."""
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except (ValueError, TypeError):
        return None
