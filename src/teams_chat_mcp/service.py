"""Chat operations: translate, execute, normalize.

``ChatService`` is constructed per credential. Each public method performs its
Graph calls sequentially and returns normalized entities; formatting is left to
the caller.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from .config import Settings, get_settings
from .graph.client import SCOPES_LIST_CHATS, SCOPES_READ_MESSAGES, GraphClient
from .graph.exceptions import GraphToolError, RemoteError, ToolValidationError
from .graph.models import (
    Chat,
    ChatMessage,
    ChatPage,
    ChatType,
    ContentType,
    Importance,
    ListOptions,
    MessageFilter,
    MessagePage,
    SkippedChat,
)
from .graph.normalize import (
    normalize_chat_page,
    normalize_message_page,
    parse_chat,
    parse_message,
    parse_timestamp,
)
from .graph.pagination import fetch_odata_items
from .graph.query import build_message_filter, translate_chat_list, translate_message_list
from .security.tokens import describe_token

logger = logging.getLogger(__name__)

CONVERSATION_MEMBER_TYPE = "#microsoft.graph.aadUserConversationMember"


@dataclass(frozen=True)
class ChatServiceConfig:
    """The few behaviors that differ between deployments."""

    chat_page_size: int = 50
    max_chat_page_size: int = 50
    message_page_size: int = 50
    max_message_page_size: int = 1000
    chat_expand: Tuple[str, ...] = ("members", "lastMessagePreview")
    default_member_role: str = "owner"
    fetch_created_chat: bool = True
    recent_messages_per_chat: int = 20
    recent_max_chats: int = 50

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, **overrides: Any) -> "ChatServiceConfig":
        settings = settings or get_settings()
        config = cls(
            chat_page_size=settings.chat_page_size,
            max_chat_page_size=settings.max_chat_page_size,
            message_page_size=settings.message_page_size,
            max_message_page_size=settings.max_message_page_size,
            chat_expand=tuple(settings.get_chat_expand()),
            default_member_role=settings.default_member_role,
            fetch_created_chat=settings.fetch_created_chat,
            recent_messages_per_chat=settings.recent_messages_per_chat,
        )
        return replace(config, **overrides) if overrides else config


@dataclass
class NewChatMember:
    id: str
    roles: List[str] = field(default_factory=list)


def _same_identity(member_id: str, caller: Dict[str, Any]) -> bool:
    candidates = {
        str(caller.get(key)).lower()
        for key in ("id", "userPrincipalName", "mail")
        if caller.get(key)
    }
    return member_id.lower() in candidates


def _user_bind(base_url: str, user_id: str) -> str:
    escaped = user_id.replace("'", "''")
    return f"{base_url}/users('{escaped}')"


def build_create_chat_payload(
    *,
    chat_type: str,
    topic: Optional[str],
    members: Sequence[NewChatMember],
    caller: Dict[str, Any],
    base_url: str,
    default_role: str = "owner",
) -> Dict[str, Any]:
    """Build the ``POST /chats`` body with the caller added as owner.

    Graph requires the creator to be a member. The caller is inserted once, as
    owner, ahead of the requested members; a requested member that is the
    caller (by id, UPN or mail) is not added twice.

    Raises:
        ToolValidationError: If the caller has no id, or a one-on-one chat does
            not name exactly one other member.
    """
    caller_id = caller.get("id")
    if not caller_id:
        raise ToolValidationError("Could not determine the signed-in user's id for chat creation")

    others = [m for m in members if not _same_identity(m.id, caller)]
    if chat_type == ChatType.ONE_ON_ONE.value and len(others) != 1:
        raise ToolValidationError(
            f"A oneOnOne chat needs exactly one other member; got {len(others)}"
        )

    entries = [{
        "@odata.type": CONVERSATION_MEMBER_TYPE,
        "roles": ["owner"],
        "user@odata.bind": _user_bind(base_url, caller_id),
    }]
    for member in others:
        roles = list(member.roles) or [default_role]
        if chat_type == ChatType.ONE_ON_ONE.value:
            # Graph only accepts owners in one-on-one chats.
            roles = ["owner"]
        entries.append({
            "@odata.type": CONVERSATION_MEMBER_TYPE,
            "roles": roles,
            "user@odata.bind": _user_bind(base_url, member.id),
        })

    payload: Dict[str, Any] = {"chatType": chat_type, "members": entries}
    if topic and chat_type != ChatType.ONE_ON_ONE.value:
        payload["topic"] = topic
    return payload


def _sort_key(message: ChatMessage) -> datetime:
    return parse_timestamp(message.created_date_time) or datetime.min.replace(tzinfo=timezone.utc)


class ChatService:
    """Teams chat operations for one bearer token."""

    def __init__(
        self,
        access_token: str,
        config: Optional[ChatServiceConfig] = None,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        client: Optional[GraphClient] = None,
    ):
        self.config = config or ChatServiceConfig.from_settings()
        self.client = client or GraphClient(access_token, http_client=http_client)

        claims = describe_token(access_token)
        if claims:
            logger.debug("Graph token claims: %s", claims)

    async def list_chats(self, options: Optional[ListOptions] = None, next_link: Optional[str] = None) -> ChatPage:
        """List the caller's chats, or continue from a ``nextLink``."""
        warnings: List[str] = []
        if next_link:
            raw = await self.client.follow_next_link(next_link, SCOPES_LIST_CHATS)
        else:
            query, warnings = translate_chat_list(
                options or ListOptions(),
                default_top=self.config.chat_page_size,
                max_top=self.config.max_chat_page_size,
                default_expand=self.config.chat_expand,
            )
            raw = await self.client.list_chats(query)

        page = normalize_chat_page(raw)
        page.warnings.extend(warnings)
        logger.info("Listed %d chats (more=%s)", page.count, bool(page.next_link))
        return page

    async def get_chat(self, chat_id: str) -> Chat:
        if not chat_id:
            raise ToolValidationError("chat_id is required")
        chat = parse_chat(await self.client.get_chat(chat_id))
        if chat is None:
            raise RemoteError("Microsoft Graph returned a chat without an id", code="invalid_response")
        return chat

    async def list_messages(
        self,
        chat_id: str,
        options: Optional[ListOptions] = None,
        message_filter: Optional[MessageFilter] = None,
        next_link: Optional[str] = None,
    ) -> MessagePage:
        """List messages of one chat.

        Structured predicates go to ``$filter``; the read-state predicate is
        applied to the retrieved page and ``count`` reflects the filtered size.
        """
        if not chat_id:
            raise ToolValidationError("chat_id is required")

        if next_link:
            raw = await self.client.follow_next_link(next_link, SCOPES_READ_MESSAGES)
        else:
            query = translate_message_list(
                options or ListOptions(),
                message_filter,
                default_top=self.config.message_page_size,
                max_top=self.config.max_message_page_size,
            )
            raw = await self.client.list_messages(chat_id, query)

        is_read = message_filter.is_read if message_filter else None
        page = normalize_message_page(raw, chat_id=chat_id, is_read=is_read)
        logger.info(
            "Listed %d messages in chat (retrieved=%d, read_filter=%s)",
            page.count,
            page.retrieved,
            is_read,
        )
        return page

    async def create_chat(
        self,
        *,
        chat_type: str = ChatType.GROUP.value,
        topic: Optional[str] = None,
        members: Sequence[NewChatMember] = (),
        default_role: Optional[str] = None,
    ) -> Chat:
        """Create a chat with the caller as owner plus the given members."""
        if not members:
            raise ToolValidationError("At least one member is required")

        caller = await self.client.get_me()
        payload = build_create_chat_payload(
            chat_type=chat_type,
            topic=topic,
            members=members,
            caller=caller,
            base_url=self.client.base_url,
            default_role=default_role or self.config.default_member_role,
        )
        logger.info(
            "Creating %s chat with %d members", chat_type, len(payload["members"])
        )

        raw = await self.client.create_chat(payload, fetch_details=self.config.fetch_created_chat)
        chat = parse_chat(raw)
        if chat is None:
            raise RemoteError("Microsoft Graph did not return the created chat id", code="invalid_response")
        if topic and chat.topic == "No topic" and chat_type != ChatType.ONE_ON_ONE.value:
            chat.topic = topic
        return chat

    async def send_message(
        self,
        chat_id: str,
        content: str,
        content_type: str = ContentType.TEXT.value,
        importance: Optional[str] = None,
        message_metadata: Optional[Dict[str, Any]] = None,
    ) -> ChatMessage:
        """Append a message to a chat.

        ``message_metadata`` is passed through inside the message body as given.
        """
        if not chat_id:
            raise ToolValidationError("chat_id is required")
        if not content:
            raise ToolValidationError("Message content is required")
        if content_type not in {c.value for c in ContentType}:
            raise ToolValidationError(f"contentType must be text or html; got '{content_type}'")

        payload: Dict[str, Any] = {"body": {"contentType": content_type, "content": content}}
        if message_metadata:
            payload["body"]["messageMetadata"] = message_metadata
        if importance:
            if importance not in {i.value for i in Importance}:
                raise ToolValidationError(f"importance must be normal, high or urgent; got '{importance}'")
            payload["importance"] = importance

        raw = await self.client.send_message(chat_id, payload)
        message = parse_message(raw, chat_id)
        if message is None:
            raise RemoteError("Microsoft Graph did not return the sent message id", code="invalid_response")
        logger.info("Sent message %s", message.id)
        return message

    async def list_recent_messages(
        self,
        *,
        top: int = 50,
        skip: int = 0,
        per_chat: Optional[int] = None,
        message_filter: Optional[MessageFilter] = None,
        max_chats: Optional[int] = None,
    ) -> MessagePage:
        """Aggregate recent messages across the caller's chats.

        One message listing per chat, in sequence. A chat whose listing fails
        remotely is logged, recorded in ``skipped`` and left out; the others are
        merged, sorted newest first, and sliced by ``skip``/``top``. Invalid
        input raises before the chats are listed.
        """
        if top < 1:
            raise ToolValidationError(f"top must be a positive integer, got {top}")
        if skip < 0:
            raise ToolValidationError(f"skip must not be negative, got {skip}")
        # Same filter for every chat: reject it before any request goes out.
        build_message_filter(message_filter)

        top = min(top, self.config.max_message_page_size)
        per_chat = per_chat or self.config.recent_messages_per_chat
        chat_query, _ = translate_chat_list(
            ListOptions(top=self.config.max_chat_page_size),
            max_top=self.config.max_chat_page_size,
        )

        async def fetch_chats(url: Optional[str]) -> Dict[str, Any]:
            if url is None:
                return await self.client.list_chats(chat_query)
            return await self.client.follow_next_link(url, SCOPES_LIST_CHATS)

        raw_chats = await fetch_odata_items(
            fetch_chats,
            max_items=max_chats or self.config.recent_max_chats,
        )
        chats = normalize_chat_page({"value": raw_chats}).chats

        collected: List[ChatMessage] = []
        skipped: List[SkippedChat] = []
        for chat in chats:
            try:
                page = await self.list_messages(chat.id, ListOptions(top=per_chat), message_filter)
            except ToolValidationError:
                raise
            except Exception as e:
                reason = e.message if isinstance(e, GraphToolError) else str(e) or type(e).__name__
                logger.warning("Skipping chat %s while aggregating recent messages: %s", chat.id, reason)
                skipped.append(SkippedChat(chat_id=chat.id, reason=reason))
                continue
            collected.extend(page.messages)

        collected.sort(key=_sort_key, reverse=True)
        window = collected[skip: skip + top]

        warnings = []
        if skipped:
            warnings.append(f"{len(skipped)} of {len(chats)} chats could not be read and were skipped")
        return MessagePage(
            messages=window,
            count=len(window),
            retrieved=len(collected),
            warnings=warnings,
            skipped=skipped,
        )
