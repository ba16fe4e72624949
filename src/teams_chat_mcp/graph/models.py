"""Normalized chat entities and request-shaping values."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class ChatType(str, Enum):
    """Teams chat type."""
    ONE_ON_ONE = "oneOnOne"
    GROUP = "group"
    MEETING = "meeting"
    UNKNOWN = "unknown"


class ContentType(str, Enum):
    """Message body content type."""
    TEXT = "text"
    HTML = "html"


class Importance(str, Enum):
    """Message importance."""
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


@dataclass
class MessageBody:
    content_type: str = ContentType.TEXT.value
    content: str = ""


@dataclass
class MessageSender:
    id: Optional[str] = None
    display_name: str = "Unknown"
    kind: str = "user"


@dataclass
class MessagePreview:
    id: Optional[str] = None
    created_date_time: Optional[str] = None
    is_deleted: bool = False
    message_type: str = "message"
    body: MessageBody = field(default_factory=MessageBody)
    sender: Optional[MessageSender] = None


@dataclass
class ChatMember:
    id: str
    display_name: str = "Unknown"
    user_principal_name: str = ""
    roles: Tuple[str, ...] = ()


@dataclass
class Chat:
    id: str
    topic: str = "No topic"
    chat_type: str = ChatType.UNKNOWN.value
    created_date_time: Optional[str] = None
    last_updated_date_time: Optional[str] = None
    web_url: Optional[str] = None
    members: List[ChatMember] = field(default_factory=list)
    last_message_preview: Optional[MessagePreview] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ChatMessage:
    id: str
    created_date_time: Optional[str] = None
    message_type: str = "message"
    body: MessageBody = field(default_factory=MessageBody)
    sender: Optional[MessageSender] = None
    importance: str = Importance.NORMAL.value
    is_read: bool = False
    web_url: Optional[str] = None
    chat_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ListOptions:
    """OData shaping for a listing call. Immutable; the translator copies it."""

    top: Optional[int] = None
    skip: Optional[int] = None
    filter: Optional[str] = None
    orderby: Tuple[str, ...] = ()
    select: Tuple[str, ...] = ()
    expand: Tuple[str, ...] = ()


@dataclass(frozen=True)
class MessageFilter:
    """Structured message predicates.

    Everything except ``is_read`` is translated into ``$filter``; ``is_read``
    is not filterable server-side and is applied after retrieval.
    """

    sender: Optional[str] = None
    importance: Optional[str] = None
    created_after: Optional[datetime] = None
    created_before: Optional[datetime] = None
    contains: Optional[str] = None
    is_read: Optional[bool] = None


@dataclass
class SkippedChat:
    chat_id: str
    reason: str


@dataclass
class ChatPage:
    chats: List[Chat] = field(default_factory=list)
    next_link: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.chats)


@dataclass
class MessagePage:
    messages: List[ChatMessage] = field(default_factory=list)
    next_link: Optional[str] = None
    count: int = 0
    retrieved: int = 0
    warnings: List[str] = field(default_factory=list)
    skipped: List[SkippedChat] = field(default_factory=list)
