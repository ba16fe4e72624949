"""REST routes mirroring the chat tools for non-MCP clients."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query, Request

from ..config import get_settings
from ..graph.exceptions import AuthenticationError, GraphToolError
from ..graph.formatting import chat_page_metadata, message_page_metadata
from ..mcp.schemas import (
    CreateChatInput,
    ListChatsInput,
    ListMessagesInput,
    SendMessageInput,
    parse_arguments,
)
from ..service import ChatService, ChatServiceConfig, NewChatMember

router = APIRouter()

ERROR_STATUS = {
    "validation_error": 400,
    "authentication_error": 401,
    "permission_error": 403,
    "not_found": 404,
    "rate_limit_error": 429,
}


def error_status(error: GraphToolError) -> int:
    """HTTP status for a tool error; unmapped remote failures are 502."""
    return ERROR_STATUS.get(error.kind, 502)


def resolve_token(request: Request) -> str:
    """Bearer header, then ``token`` query parameter, then ``AUTH_TOKEN``."""
    authorization = request.headers.get("authorization", "")
    if authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()
        if token:
            return token

    token = request.query_params.get("token")
    if token:
        return token

    token = get_settings().auth_token
    if token:
        return token

    raise AuthenticationError(
        "Missing required access token",
        hint="Send Authorization: Bearer <token>, pass ?token=, or set AUTH_TOKEN.",
    )


def get_chat_service(token: str = Depends(resolve_token)) -> ChatService:
    return ChatService(token, ChatServiceConfig.from_settings())


def _ok(data: Any) -> Dict[str, Any]:
    return {"success": True, "data": data}


@router.get("/chats")
async def list_chats(
    top: Optional[int] = Query(default=None),
    next_link: Optional[str] = Query(default=None, alias="nextLink"),
    service: ChatService = Depends(get_chat_service),
):
    """List the caller's chats."""
    params = parse_arguments(ListChatsInput, {"top": top, "nextLink": next_link})
    page = await service.list_chats(params.to_options(), next_link=params.next_link)
    return _ok(chat_page_metadata(page))


@router.post("/chats", status_code=201)
async def create_chat(
    body: Dict[str, Any] = Body(...),
    service: ChatService = Depends(get_chat_service),
):
    """Create a chat; members without roles join as guests."""
    params = parse_arguments(CreateChatInput, body)
    chat = await service.create_chat(
        chat_type=params.chat_type,
        topic=params.topic,
        members=[NewChatMember(id=m.id, roles=list(m.roles)) for m in params.members],
        default_role=get_settings().rest_member_role,
    )
    return _ok(chat.to_dict())


@router.get("/messages")
async def list_messages(
    chat_id: Optional[str] = Query(default=None, alias="chatId"),
    top: Optional[int] = Query(default=None),
    is_read: Optional[bool] = Query(default=None, alias="isRead"),
    next_link: Optional[str] = Query(default=None, alias="nextLink"),
    service: ChatService = Depends(get_chat_service),
):
    params = parse_arguments(
        ListMessagesInput,
        {"chatId": chat_id, "top": top, "isRead": is_read, "nextLink": next_link},
    )
    page = await service.list_messages(
        params.chat_id,
        params.to_options(),
        params.to_filter(),
        next_link=params.next_link,
    )
    return _ok(message_page_metadata(page))


@router.post("/messages", status_code=201)
async def send_message(
    body: Dict[str, Any] = Body(...),
    service: ChatService = Depends(get_chat_service),
):
    params = parse_arguments(SendMessageInput, body)
    message = await service.send_message(
        params.chat_id,
        params.content,
        content_type=params.content_type,
        importance=params.importance,
        message_metadata=params.message_metadata,
    )
    return _ok(message.to_dict())
