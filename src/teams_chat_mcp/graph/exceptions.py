"""Error types raised by the Graph chat layer.

Every failure that reaches a tool handler is a ``GraphToolError``. Validation
errors are raised before any network call; the remote ones are raised once, by
``GraphClient``, from the HTTP status and the Graph error envelope.
"""

from typing import Any, Dict, Optional


class GraphToolError(Exception):
    """Base exception for all chat tool errors."""

    kind = "error"
    default_hint = "Check the request and try again."

    def __init__(
        self,
        message: str,
        *,
        hint: Optional[str] = None,
        status_code: int = 0,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.hint = hint or self.default_hint
        self.status_code = status_code
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Structured payload used by tool metadata and the REST mirror."""
        payload: Dict[str, Any] = {
            "kind": self.kind,
            "message": self.message,
            "hint": self.hint,
        }
        if self.status_code:
            payload["statusCode"] = self.status_code
        if self.code:
            payload["code"] = self.code
        if self.details:
            payload["details"] = self.details
        return payload


class ToolValidationError(GraphToolError):
    """Invalid or missing tool input. Raised before any network call."""

    kind = "validation_error"
    default_hint = "Fix the listed arguments and call the tool again."


class AuthenticationError(GraphToolError):
    """Missing, invalid or expired bearer token (401)."""

    kind = "authentication_error"
    default_hint = (
        "Provide a valid, unexpired Microsoft Graph access token "
        "(Authorization: Bearer <token>)."
    )


class PermissionDeniedError(GraphToolError):
    """The token lacks a Graph scope the operation needs (403)."""

    kind = "permission_error"
    default_hint = "Ensure the token has the Microsoft Graph chat scopes (e.g. Chat.ReadBasic)."


class RateLimitError(GraphToolError):
    """Graph throttled the request (429). Includes retry_after hint if available."""

    kind = "rate_limit_error"
    default_hint = "Microsoft Graph is throttling requests; wait and retry later."

    def __init__(self, message: str, retry_after: Optional[float] = None, **kwargs: Any):
        self.retry_after = retry_after
        if retry_after is not None and "hint" not in kwargs:
            kwargs["hint"] = f"Microsoft Graph is throttling requests; retry after {retry_after:g} seconds."
        super().__init__(message, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        if self.retry_after is not None:
            payload["retryAfter"] = self.retry_after
        return payload


class RemoteError(GraphToolError):
    """Graph returned an error response or could not be reached."""

    kind = "remote_error"
    default_hint = "Microsoft Graph rejected the request; check the details and try again."


class NotFoundError(RemoteError):
    """Chat, message or user not found (404)."""

    kind = "not_found"
    default_hint = "Check that the chat or user id exists and is visible to the signed-in user."
