"""Parse raw Graph JSON into normalized chat entities.

Parsers never raise on a missing or malformed optional field; they fall back
to the defaults declared on the models. Only the id of a chat or message is
required, and entries without one are dropped from collections.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .models import (
    Chat,
    ChatMember,
    ChatMessage,
    ChatPage,
    ChatType,
    ContentType,
    Importance,
    MessageBody,
    MessagePage,
    MessagePreview,
    MessageSender,
)

logger = logging.getLogger(__name__)

NEXT_LINK_KEY = "@odata.nextLink"

_CHAT_TYPES = {t.value for t in ChatType}
_CONTENT_TYPES = {t.value for t in ContentType}
_IMPORTANCE = {i.value for i in Importance}

# Graph emits up to 7 fractional digits; fromisoformat takes at most 6.
_FRACTION_RE = re.compile(r"\.(\d{6})\d+")


def _dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _str(value: Any, default: Optional[str] = None) -> Optional[str]:
    if isinstance(value, str) and value:
        return value
    return default


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a Graph ISO-8601 timestamp into an aware datetime, or None."""
    if not value:
        return None
    text = _FRACTION_RE.sub(r".\1", value.strip()).replace("Z", "+00:00")
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def parse_body(raw: Any) -> MessageBody:
    data = _dict(raw)
    content_type = _str(data.get("contentType"), ContentType.TEXT.value)
    if content_type not in _CONTENT_TYPES:
        content_type = ContentType.TEXT.value
    content = data.get("content")
    return MessageBody(content_type=content_type, content=content if isinstance(content, str) else "")


def parse_sender(raw: Any) -> Optional[MessageSender]:
    """Parse a chatMessage ``from`` identity set.

    Graph sends ``null`` for system events and either a ``user`` or an
    ``application`` identity otherwise.
    """
    data = _dict(raw)
    for kind in ("user", "application", "device"):
        identity = data.get(kind)
        if isinstance(identity, dict):
            return MessageSender(
                id=_str(identity.get("id")),
                display_name=_str(identity.get("displayName"), "Unknown"),
                kind=kind,
            )
    return None


def parse_member(raw: Any) -> ChatMember:
    """Parse a conversationMember. Falls back through userId, email and id."""
    data = _dict(raw)
    member_id = _str(data.get("userId")) or _str(data.get("email")) or _str(data.get("id"), "")
    roles = data.get("roles")
    if not isinstance(roles, list):
        roles = []
    return ChatMember(
        id=member_id,
        display_name=_str(data.get("displayName"), "Unknown"),
        user_principal_name=_str(data.get("email")) or _str(data.get("userPrincipalName"), ""),
        roles=tuple(r for r in roles if isinstance(r, str)),
    )


def parse_preview(raw: Any) -> Optional[MessagePreview]:
    data = _dict(raw)
    if not data:
        return None
    return MessagePreview(
        id=_str(data.get("id")),
        created_date_time=_str(data.get("createdDateTime")),
        is_deleted=bool(data.get("isDeleted", False)),
        message_type=_str(data.get("messageType"), "message"),
        body=parse_body(data.get("body")),
        sender=parse_sender(data.get("from")),
    )


def parse_chat(raw: Any) -> Optional[Chat]:
    """Parse a Graph chat resource. Returns None when there is no id."""
    data = _dict(raw)
    chat_id = _str(data.get("id"))
    if not chat_id:
        logger.debug("Dropping chat entry without id: %r", raw)
        return None

    chat_type = _str(data.get("chatType"), ChatType.UNKNOWN.value)
    if chat_type not in _CHAT_TYPES:
        chat_type = ChatType.UNKNOWN.value

    members = data.get("members")
    return Chat(
        id=chat_id,
        topic=_str(data.get("topic"), "No topic"),
        chat_type=chat_type,
        created_date_time=_str(data.get("createdDateTime")),
        last_updated_date_time=_str(data.get("lastUpdatedDateTime")),
        web_url=_str(data.get("webUrl")),
        members=[parse_member(m) for m in members if isinstance(m, dict)] if isinstance(members, list) else [],
        last_message_preview=parse_preview(data.get("lastMessagePreview")),
    )


def parse_message(raw: Any, chat_id: Optional[str] = None) -> Optional[ChatMessage]:
    """Parse a Graph chatMessage. Returns None when there is no id."""
    data = _dict(raw)
    message_id = _str(data.get("id"))
    if not message_id:
        logger.debug("Dropping message entry without id: %r", raw)
        return None

    importance = _str(data.get("importance"), Importance.NORMAL.value)
    if importance not in _IMPORTANCE:
        importance = Importance.NORMAL.value

    is_read = data.get("isRead")
    return ChatMessage(
        id=message_id,
        created_date_time=_str(data.get("createdDateTime")),
        message_type=_str(data.get("messageType"), "message"),
        body=parse_body(data.get("body")),
        sender=parse_sender(data.get("from")),
        importance=importance,
        is_read=is_read if isinstance(is_read, bool) else False,
        web_url=_str(data.get("webUrl")),
        chat_id=_str(data.get("chatId"), chat_id),
    )


def _values(raw: Any) -> List[Any]:
    values = _dict(raw).get("value")
    return values if isinstance(values, list) else []


def normalize_chat_page(raw: Any) -> ChatPage:
    """Normalize a ``/me/chats`` collection response."""
    chats = [c for c in (parse_chat(item) for item in _values(raw)) if c is not None]
    return ChatPage(chats=chats, next_link=_str(_dict(raw).get(NEXT_LINK_KEY)))


def filter_by_read_state(messages: List[ChatMessage], is_read: Optional[bool]) -> List[ChatMessage]:
    """Apply the read/unread predicate Graph cannot evaluate server-side."""
    if is_read is None:
        return list(messages)
    return [m for m in messages if m.is_read is is_read]


def normalize_message_page(
    raw: Any,
    *,
    chat_id: Optional[str] = None,
    is_read: Optional[bool] = None,
) -> MessagePage:
    """Normalize a ``/chats/{id}/messages`` collection response.

    ``count`` reports the number of messages after the local read-state
    filter; ``retrieved`` keeps the number Graph returned.
    """
    parsed = [m for m in (parse_message(item, chat_id) for item in _values(raw)) if m is not None]
    messages = filter_by_read_state(parsed, is_read)
    return MessagePage(
        messages=messages,
        next_link=_str(_dict(raw).get(NEXT_LINK_KEY)),
        count=len(messages),
        retrieved=len(parsed),
    )
