"""Render normalized chat entities as fixed-width text and metadata."""

import html
import re
from dataclasses import asdict
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .models import Chat, ChatMessage, ChatPage, MessagePage
from .normalize import parse_timestamp

ELLIPSIS = "..."
COLUMN_GAP = "  "

# (header, width) pairs
CHAT_COLUMNS: Tuple[Tuple[str, int], ...] = (
    ("#", 4),
    ("Topic", 30),
    ("Type", 10),
    ("Members", 7),
    ("Last message", 40),
)
MESSAGE_COLUMNS: Tuple[Tuple[str, int], ...] = (
    ("#", 4),
    ("From", 20),
    ("Message", 50),
    ("Date", 20),
    ("Read", 4),
)

READ_MARKER = "yes"
UNREAD_MARKER = "NEW"

CHAT_TYPE_LABELS = {
    "oneOnOne": "1:1 Chat",
    "group": "Group Chat",
    "meeting": "Meeting Chat",
}

_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")


def truncate(text: Optional[str], width: int) -> str:
    """Cut text longer than width to ``width - 3`` characters plus ``...``."""
    text = text or ""
    if len(text) <= width:
        return text
    if width <= len(ELLIPSIS):
        return text[:width]
    return text[: width - len(ELLIPSIS)] + ELLIPSIS


def cell(text: Optional[str], width: int) -> str:
    """Truncate and pad a value to exactly ``width`` characters."""
    return truncate(text, width).ljust(width)


def row(values: Sequence[Optional[str]], columns: Sequence[Tuple[str, int]]) -> str:
    return COLUMN_GAP.join(cell(v, w) for v, (_, w) in zip(values, columns)).rstrip()


def header(columns: Sequence[Tuple[str, int]]) -> List[str]:
    head = row([name for name, _ in columns], columns)
    rule = COLUMN_GAP.join("-" * w for _, w in columns)
    return [head, rule]


def plain_text(content: Optional[str], content_type: str = "text") -> str:
    """Collapse a message body to a single line of text."""
    content = content or ""
    if content_type == "html":
        content = html.unescape(_TAG_RE.sub(" ", content))
    return _WS_RE.sub(" ", content).strip()


def format_chat_type(chat_type: str) -> str:
    return CHAT_TYPE_LABELS.get(chat_type, chat_type)


def format_timestamp(value: Optional[str]) -> str:
    """Render an ISO-8601 Graph timestamp as ``YYYY-MM-DD HH:MM``."""
    if not value:
        return ""
    parsed = parse_timestamp(value)
    if parsed is None:
        return value
    return parsed.strftime("%Y-%m-%d %H:%M")


def _preview_text(chat: Chat) -> str:
    preview = chat.last_message_preview
    if preview is None:
        return ""
    if preview.is_deleted:
        return "(deleted)"
    text = plain_text(preview.body.content, preview.body.content_type)
    if preview.sender is not None and text:
        return f"{preview.sender.display_name}: {text}"
    return text


def format_chat_table(chats: Sequence[Chat]) -> str:
    """Fixed-width chat table with one sub-row per member."""
    if not chats:
        return "No chats found."

    lines = header(CHAT_COLUMNS)
    for index, chat in enumerate(chats, start=1):
        lines.append(row(
            [str(index), chat.topic, chat.chat_type, str(len(chat.members)), _preview_text(chat)],
            CHAT_COLUMNS,
        ))
        for member in chat.members:
            detail = f"      - {member.display_name}"
            if member.user_principal_name:
                detail += f" <{member.user_principal_name}>"
            if member.roles:
                detail += f" [{', '.join(member.roles)}]"
            lines.append(detail)
    return "\n".join(lines)


def format_message_table(messages: Sequence[ChatMessage]) -> str:
    """Fixed-width message table with a read-status marker column."""
    if not messages:
        return "No messages found."

    lines = header(MESSAGE_COLUMNS)
    for index, message in enumerate(messages, start=1):
        sender = message.sender.display_name if message.sender else "System"
        lines.append(row(
            [
                str(index),
                sender,
                plain_text(message.body.content, message.body.content_type),
                format_timestamp(message.created_date_time),
                READ_MARKER if message.is_read else UNREAD_MARKER,
            ],
            MESSAGE_COLUMNS,
        ))
    return "\n".join(lines)


def format_chat_detail(chat: Chat) -> str:
    """Markdown-ish summary of a single chat (used after create/get)."""
    parts = [f"# {chat.topic or 'Untitled Chat'}", f"**Type:** {format_chat_type(chat.chat_type)}"]
    if chat.created_date_time:
        parts.append(f"**Created:** {format_timestamp(chat.created_date_time)}")
    if chat.members:
        parts.append("\n**Members:**")
        for member in chat.members:
            name = member.display_name if member.display_name != "Unknown" else (member.id or "Unknown user")
            parts.append(f"- {name}")
    if chat.web_url:
        parts.append(f"\n[Open in Teams]({chat.web_url})")
    parts.append(f"\n**Chat ID:** {chat.id}")
    return "\n".join(parts)


def format_sent_message(message: ChatMessage, chat_id: str) -> str:
    preview = truncate(plain_text(message.body.content, message.body.content_type), 80)
    lines = [f"Message sent to chat {chat_id}", f"**Message ID:** {message.id}"]
    if message.created_date_time:
        lines.append(f"**Sent:** {format_timestamp(message.created_date_time)}")
    if preview:
        lines.append(f"**Content:** {preview}")
    return "\n".join(lines)


def chat_page_metadata(page: ChatPage) -> Dict[str, Any]:
    return {
        "chats": [asdict(c) for c in page.chats],
        "count": page.count,
        "nextLink": page.next_link,
        "warnings": list(page.warnings),
    }


def message_page_metadata(page: MessagePage) -> Dict[str, Any]:
    metadata: Dict[str, Any] = {
        "messages": [asdict(m) for m in page.messages],
        "count": page.count,
        "nextLink": page.next_link,
        "warnings": list(page.warnings),
    }
    if page.skipped:
        metadata["skipped"] = [asdict(s) for s in page.skipped]
    return metadata


def format_warnings(warnings: Sequence[str]) -> str:
    return "\n".join(f"Warning: {w}" for w in warnings)
