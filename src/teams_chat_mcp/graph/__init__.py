"""Microsoft Graph access for Teams chats: query building, requests, normalization."""

from .client import GraphClient
from .exceptions import (
    AuthenticationError,
    GraphToolError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    RemoteError,
    ToolValidationError,
)
