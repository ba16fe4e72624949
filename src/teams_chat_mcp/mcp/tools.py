"""Microsoft Teams chat tools."""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from mcp import types

from ..graph.exceptions import AuthenticationError, GraphToolError, ToolValidationError
from ..graph.formatting import (
    chat_page_metadata,
    format_chat_detail,
    format_chat_table,
    format_message_table,
    format_sent_message,
    format_warnings,
    message_page_metadata,
)
from ..observability.logging import clear_log_context, redact_arguments, set_log_context
from ..service import ChatService, ChatServiceConfig, NewChatMember
from .schemas import (
    CreateChatInput,
    GetChatInput,
    ListChatsInput,
    ListMessagesInput,
    RecentMessagesInput,
    SendMessageInput,
    parse_arguments,
)

logger = logging.getLogger(__name__)

ServiceFactory = Callable[[str], ChatService]

ACCESS_TOKEN_PROPERTY = {
    "type": "string",
    "description": "Microsoft Graph access token. Overrides the server's configured token."
}

MESSAGE_FILTER_PROPERTIES = {
    "sender": {
        "type": "string",
        "description": "Only messages from this sender (user id GUID or display name)"
    },
    "importance": {
        "type": "string",
        "enum": ["normal", "high", "urgent"],
        "description": "Only messages with this importance"
    },
    "createdAfter": {
        "type": "string",
        "format": "date-time",
        "description": "Only messages created at or after this ISO-8601 time"
    },
    "createdBefore": {
        "type": "string",
        "format": "date-time",
        "description": "Only messages created at or before this ISO-8601 time"
    },
    "contains": {
        "type": "string",
        "description": "Only messages whose body contains this text"
    },
    "isRead": {
        "type": "boolean",
        "description": "Only read (true) or unread (false) messages. Applied after retrieval."
    },
}


@dataclass
class ToolResponse:
    """Tool result: ``{content: [{type: "text", text}], metadata?}``."""

    text: str
    metadata: Optional[Dict[str, Any]] = None
    is_error: bool = False

    @property
    def content(self) -> List[Dict[str, str]]:
        return [{"type": "text", "text": self.text}]

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"content": self.content}
        if self.metadata is not None:
            result["metadata"] = self.metadata
        return result


def error_response(error: GraphToolError, action: str) -> ToolResponse:
    """Render a failure as text naming its kind plus a remediation hint."""
    return ToolResponse(
        text=f"Failed to {action} [{error.kind}]: {error.message}\nHint: {error.hint}",
        metadata={"error": error.to_dict()},
        is_error=True,
    )


def default_service_factory(access_token: str) -> ChatService:
    return ChatService(access_token, ChatServiceConfig.from_settings())


@dataclass
class _RegisteredTool:
    name: str
    action: str
    handler: Callable[[Dict[str, Any], str], Awaitable[ToolResponse]]
    definition: types.Tool = field(repr=False)


class TeamsChatTools:
    """Tool definitions and handlers for Teams chats."""

    def __init__(self, service_factory: Optional[ServiceFactory] = None):
        self.service_factory = service_factory or default_service_factory
        self._tools: Dict[str, _RegisteredTool] = {}
        for entry in self._build_registry():
            self._tools[entry.name] = entry

    @property
    def names(self) -> List[str]:
        return list(self._tools)

    def get_tools(self) -> List[types.Tool]:
        """Get available Microsoft Teams chat tools."""
        return [entry.definition for entry in self._tools.values()]

    def _build_registry(self) -> List[_RegisteredTool]:
        return [
            _RegisteredTool(
                name="list-chats",
                action="list chats",
                handler=self._list_chats,
                definition=types.Tool(
                    name="list-chats",
                    description=(
                        "List Microsoft Teams chats the signed-in user is part of, "
                        "with members and last message preview"
                    ),
                    inputSchema={
                        "type": "object",
                        "properties": {
                            "top": {
                                "type": "integer",
                                "minimum": 1,
                                "default": 50,
                                "description": "Number of chats to return (values above 50 are clamped)"
                            },
                            "skip": {
                                "type": "integer",
                                "minimum": 0,
                                "description": "Offset. Not honored by Graph for chats; prefer nextLink"
                            },
                            "filter": {
                                "type": "string",
                                "description": "OData $filter expression (e.g., \"chatType eq 'group'\")"
                            },
                            "orderby": {
                                "type": "array",
                                "items": {"type": "string"},
                                "description": "OData $orderby clauses"
                            },
                            "select": {
                                "type": "array",
                                "items": {"type": "string"},
                                "description": "Properties to return"
                            },
                            "expand": {
                                "type": "array",
                                "items": {"type": "string"},
                                "description": "Relationships to expand (default: members, lastMessagePreview)"
                            },
                            "nextLink": {
                                "type": "string",
                                "description": "@odata.nextLink from a previous call, to fetch the next page"
                            },
                            "accessToken": ACCESS_TOKEN_PROPERTY,
                        }
                    }
                ),
            ),
            _RegisteredTool(
                name="list-messages",
                action="list messages",
                handler=self._list_messages,
                definition=types.Tool(
                    name="list-messages",
                    description="List messages in a chat, newest first, with optional filters",
                    inputSchema={
                        "type": "object",
                        "properties": {
                            "chatId": {
                                "type": "string",
                                "description": "The ID of the chat"
                            },
                            "top": {
                                "type": "integer",
                                "minimum": 1,
                                "default": 50,
                                "description": "Number of messages to return (values above 1000 are clamped)"
                            },
                            "skip": {
                                "type": "integer",
                                "minimum": 0,
                                "description": "Number of messages to skip"
                            },
                            "filter": {
                                "type": "string",
                                "description": "Raw OData $filter, combined with the structured filters"
                            },
                            "orderby": {
                                "type": "array",
                                "items": {"type": "string"},
                                "description": "OData $orderby clauses (default: createdDateTime desc)"
                            },
                            "select": {
                                "type": "array",
                                "items": {"type": "string"},
                                "description": "Properties to return"
                            },
                            **MESSAGE_FILTER_PROPERTIES,
                            "nextLink": {
                                "type": "string",
                                "description": "@odata.nextLink from a previous call, to fetch the next page"
                            },
                            "accessToken": ACCESS_TOKEN_PROPERTY,
                        },
                        "required": ["chatId"]
                    }
                ),
            ),
            _RegisteredTool(
                name="create-chat",
                action="create chat",
                handler=self._create_chat,
                definition=types.Tool(
                    name="create-chat",
                    description="Create a new chat in Microsoft Teams. The signed-in user is added as owner.",
                    inputSchema={
                        "type": "object",
                        "properties": {
                            "topic": {
                                "type": "string",
                                "minLength": 1,
                                "description": "The chat topic (ignored for oneOnOne chats)"
                            },
                            "chatType": {
                                "type": "string",
                                "enum": ["oneOnOne", "group", "meeting", "unknown"],
                                "default": "group",
                                "description": "The chat type"
                            },
                            "members": {
                                "type": "array",
                                "minItems": 1,
                                "items": {
                                    "type": "object",
                                    "properties": {
                                        "id": {
                                            "type": "string",
                                            "description": "User id or user principal name"
                                        },
                                        "roles": {
                                            "type": "array",
                                            "items": {"type": "string", "enum": ["owner", "guest"]},
                                            "description": "Member roles (default: owner)"
                                        }
                                    },
                                    "required": ["id"]
                                },
                                "description": "Members to add besides the signed-in user"
                            },
                            "accessToken": ACCESS_TOKEN_PROPERTY,
                        },
                        "required": ["topic", "members"]
                    }
                ),
            ),
            _RegisteredTool(
                name="send-message",
                action="send message",
                handler=self._send_message,
                definition=types.Tool(
                    name="send-message",
                    description="Send a message in a chat",
                    inputSchema={
                        "type": "object",
                        "properties": {
                            "chatId": {
                                "type": "string",
                                "description": "The ID of the chat"
                            },
                            "content": {
                                "type": "string",
                                "minLength": 1,
                                "description": "The message content"
                            },
                            "contentType": {
                                "type": "string",
                                "enum": ["text", "html"],
                                "default": "text",
                                "description": "The content type of the message body"
                            },
                            "importance": {
                                "type": "string",
                                "enum": ["normal", "high", "urgent"],
                                "description": "Message importance"
                            },
                            "accessToken": ACCESS_TOKEN_PROPERTY,
                        },
                        "required": ["chatId", "content"]
                    }
                ),
            ),
            _RegisteredTool(
                name="get-chat",
                action="get chat",
                handler=self._get_chat,
                definition=types.Tool(
                    name="get-chat",
                    description="Get a chat with its members",
                    inputSchema={
                        "type": "object",
                        "properties": {
                            "chatId": {
                                "type": "string",
                                "description": "The ID of the chat"
                            },
                            "accessToken": ACCESS_TOKEN_PROPERTY,
                        },
                        "required": ["chatId"]
                    }
                ),
            ),
            _RegisteredTool(
                name="list-recent-messages",
                action="list recent messages",
                handler=self._list_recent_messages,
                definition=types.Tool(
                    name="list-recent-messages",
                    description=(
                        "List the most recent messages across all chats. Chats that cannot be "
                        "read are skipped and reported."
                    ),
                    inputSchema={
                        "type": "object",
                        "properties": {
                            "top": {
                                "type": "integer",
                                "minimum": 1,
                                "default": 50,
                                "description": "Number of messages to return"
                            },
                            "skip": {
                                "type": "integer",
                                "minimum": 0,
                                "default": 0,
                                "description": "Number of messages to skip after sorting"
                            },
                            "perChat": {
                                "type": "integer",
                                "minimum": 1,
                                "maximum": 50,
                                "description": "Messages fetched from each chat"
                            },
                            **MESSAGE_FILTER_PROPERTIES,
                            "accessToken": ACCESS_TOKEN_PROPERTY,
                        }
                    }
                ),
            ),
        ]

    async def execute_tool(
        self,
        tool_name: str,
        arguments: Optional[Dict[str, Any]] = None,
        access_token: Optional[str] = None,
    ) -> ToolResponse:
        """Execute a Teams chat tool.

        Args:
            tool_name: Registered tool name, e.g. ``list-chats``.
            arguments: Tool arguments from the client.
            access_token: Server-side credential, used when the arguments carry
                no ``accessToken``.
        """
        arguments = arguments or {}
        entry = self._tools.get(tool_name)
        if entry is None:
            return error_response(ToolValidationError(f"Unknown tool: {tool_name}"), "run tool")

        set_log_context(tool_name=tool_name, request_id=uuid.uuid4().hex[:12])
        logger.info("Tool call %s with %s", tool_name, redact_arguments(arguments))
        try:
            token = arguments.get("accessToken") or access_token
            response = await entry.handler(arguments, token)
            logger.info("Tool call %s succeeded", tool_name)
            return response
        except GraphToolError as e:
            logger.warning("Tool call %s failed: %s (%s)", tool_name, e.message, e.kind)
            return error_response(e, entry.action)
        except Exception as e:
            logger.exception("Unexpected error in tool %s", tool_name)
            return error_response(
                GraphToolError(
                    f"Unexpected error: {type(e).__name__}",
                    hint="This is a server-side problem; check the server logs.",
                ),
                entry.action,
            )
        finally:
            clear_log_context()

    def _service(self, token: Optional[str]) -> ChatService:
        if not token:
            raise AuthenticationError(
                "Missing required access token",
                hint="Pass accessToken, send Authorization: Bearer <token>, or set AUTH_TOKEN.",
            )
        return self.service_factory(token)

    # ------------------------------------------------------------------ #
    # Tool implementation methods
    # ------------------------------------------------------------------ #

    async def _list_chats(self, arguments: Dict[str, Any], token: Optional[str]) -> ToolResponse:
        params = parse_arguments(ListChatsInput, arguments)
        service = self._service(token)

        page = await service.list_chats(params.to_options(), next_link=params.next_link)

        text = format_chat_table(page.chats)
        if page.next_link:
            text += "\n\nMore chats available; pass nextLink to continue."
        if page.warnings:
            text += "\n\n" + format_warnings(page.warnings)
        return ToolResponse(text=text, metadata=chat_page_metadata(page))

    async def _list_messages(self, arguments: Dict[str, Any], token: Optional[str]) -> ToolResponse:
        params = parse_arguments(ListMessagesInput, arguments)
        service = self._service(token)
        set_log_context(chat_id=params.chat_id)

        page = await service.list_messages(
            params.chat_id,
            params.to_options(),
            params.to_filter(),
            next_link=params.next_link,
        )

        text = format_message_table(page.messages)
        if page.next_link:
            text += "\n\nMore messages available; pass nextLink to continue."
        metadata = message_page_metadata(page)
        metadata["chatId"] = params.chat_id
        return ToolResponse(text=text, metadata=metadata)

    async def _create_chat(self, arguments: Dict[str, Any], token: Optional[str]) -> ToolResponse:
        params = parse_arguments(CreateChatInput, arguments)
        service = self._service(token)

        chat = await service.create_chat(
            chat_type=params.chat_type,
            topic=params.topic,
            members=[NewChatMember(id=m.id, roles=list(m.roles)) for m in params.members],
        )
        return ToolResponse(
            text=format_chat_detail(chat),
            metadata={"chatId": chat.id, "webUrl": chat.web_url, "chat": chat.to_dict()},
        )

    async def _send_message(self, arguments: Dict[str, Any], token: Optional[str]) -> ToolResponse:
        params = parse_arguments(SendMessageInput, arguments)
        service = self._service(token)
        set_log_context(chat_id=params.chat_id)

        message = await service.send_message(
            params.chat_id,
            params.content,
            content_type=params.content_type,
            importance=params.importance,
        )
        return ToolResponse(
            text=format_sent_message(message, params.chat_id),
            metadata={"chatId": params.chat_id, "messageId": message.id, "message": message.to_dict()},
        )

    async def _get_chat(self, arguments: Dict[str, Any], token: Optional[str]) -> ToolResponse:
        params = parse_arguments(GetChatInput, arguments)
        service = self._service(token)
        set_log_context(chat_id=params.chat_id)

        chat = await service.get_chat(params.chat_id)
        return ToolResponse(
            text=format_chat_detail(chat),
            metadata={"chatId": chat.id, "webUrl": chat.web_url, "chat": chat.to_dict()},
        )

    async def _list_recent_messages(self, arguments: Dict[str, Any], token: Optional[str]) -> ToolResponse:
        params = parse_arguments(RecentMessagesInput, arguments)
        service = self._service(token)

        page = await service.list_recent_messages(
            top=params.top,
            skip=params.skip,
            per_chat=params.per_chat,
            message_filter=params.to_filter(),
        )

        text = format_message_table(page.messages)
        if page.warnings:
            text += "\n\n" + format_warnings(page.warnings)
        return ToolResponse(text=text, metadata=message_page_metadata(page))
