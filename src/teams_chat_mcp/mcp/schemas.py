"""Input models for the chat tools.

Each tool's arguments are validated here before anything else runs. Argument
names are camelCase on the wire; ``parse_arguments`` turns pydantic failures
into ``ToolValidationError`` so callers only ever see the tool error types.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from ..graph.exceptions import ToolValidationError
from ..graph.models import ListOptions, MessageFilter

ChatTypeName = Literal["oneOnOne", "group", "meeting", "unknown"]
ContentTypeName = Literal["text", "html"]
ImportanceName = Literal["normal", "high", "urgent"]
RoleName = Literal["owner", "guest"]

ModelT = TypeVar("ModelT", bound=BaseModel)


class ToolInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", str_strip_whitespace=True)

    access_token: Optional[str] = Field(default=None, alias="accessToken")


def _as_list(value: Any) -> Any:
    """Accept either a list or a comma-separated string."""
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    return value


def _as_utc(value: datetime) -> datetime:
    # Naive values are UTC, matching how the filter literal is rendered.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ListChatsInput(ToolInput):
    top: Optional[int] = Field(default=None, ge=1)
    skip: Optional[int] = Field(default=None, ge=0)
    filter: Optional[str] = None
    orderby: List[str] = Field(default_factory=list)
    select: List[str] = Field(default_factory=list)
    expand: List[str] = Field(default_factory=list)
    next_link: Optional[str] = Field(default=None, alias="nextLink")

    @field_validator("orderby", "select", "expand", mode="before")
    @classmethod
    def split_lists(cls, v):
        return _as_list(v)

    def to_options(self) -> ListOptions:
        return ListOptions(
            top=self.top,
            skip=self.skip,
            filter=self.filter or None,
            orderby=tuple(self.orderby),
            select=tuple(self.select),
            expand=tuple(self.expand),
        )


class MessageFilterInput(ToolInput):
    sender: Optional[str] = None
    importance: Optional[ImportanceName] = None
    created_after: Optional[datetime] = Field(default=None, alias="createdAfter")
    created_before: Optional[datetime] = Field(default=None, alias="createdBefore")
    contains: Optional[str] = None
    is_read: Optional[bool] = Field(default=None, alias="isRead")

    @model_validator(mode="after")
    def check_date_range(self):
        if self.created_after and self.created_before:
            if _as_utc(self.created_after) > _as_utc(self.created_before):
                raise ValueError("createdAfter must not be later than createdBefore")
        return self

    def to_filter(self) -> MessageFilter:
        return MessageFilter(
            sender=self.sender or None,
            importance=self.importance,
            created_after=self.created_after,
            created_before=self.created_before,
            contains=self.contains or None,
            is_read=self.is_read,
        )


class ListMessagesInput(MessageFilterInput):
    chat_id: str = Field(alias="chatId", min_length=1)
    top: Optional[int] = Field(default=None, ge=1)
    skip: Optional[int] = Field(default=None, ge=0)
    filter: Optional[str] = None
    orderby: List[str] = Field(default_factory=list)
    select: List[str] = Field(default_factory=list)
    next_link: Optional[str] = Field(default=None, alias="nextLink")

    @field_validator("orderby", "select", mode="before")
    @classmethod
    def split_lists(cls, v):
        return _as_list(v)

    def to_options(self) -> ListOptions:
        return ListOptions(
            top=self.top,
            skip=self.skip,
            filter=self.filter or None,
            orderby=tuple(self.orderby),
            select=tuple(self.select),
        )


class RecentMessagesInput(MessageFilterInput):
    top: int = Field(default=50, ge=1)
    skip: int = Field(default=0, ge=0)
    per_chat: Optional[int] = Field(default=None, alias="perChat", ge=1, le=50)


class GetChatInput(ToolInput):
    chat_id: str = Field(alias="chatId", min_length=1)


class MemberInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", str_strip_whitespace=True)

    id: str = Field(min_length=1)
    roles: List[RoleName] = Field(default_factory=list)


class CreateChatInput(ToolInput):
    topic: str = Field(min_length=1)
    chat_type: ChatTypeName = Field(default="group", alias="chatType")
    members: List[MemberInput] = Field(min_length=1)


class SendMessageInput(ToolInput):
    chat_id: str = Field(alias="chatId", min_length=1)
    content: str = Field(min_length=1)
    content_type: ContentTypeName = Field(default="text", alias="contentType")
    importance: Optional[ImportanceName] = None
    message_metadata: Optional[Dict[str, Any]] = Field(default=None, alias="messageMetadata")


def _describe(errors: List[Dict[str, Any]]) -> List[str]:
    issues = []
    for error in errors:
        location = ".".join(str(part) for part in error.get("loc", ())) or "arguments"
        issues.append(f"{location}: {error.get('msg', 'invalid value')}")
    return issues


def parse_arguments(model: Type[ModelT], arguments: Optional[Dict[str, Any]]) -> ModelT:
    """Validate raw tool arguments against ``model``.

    Raises:
        ToolValidationError: With one ``field: message`` issue per failure.
    """
    try:
        return model.model_validate(arguments or {})
    except ValidationError as exc:
        issues = _describe(exc.errors())
        raise ToolValidationError(
            "Invalid arguments: " + "; ".join(issues),
            details={"issues": issues},
        ) from exc
