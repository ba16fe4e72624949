"""Security helpers for Teams Chat MCP."""

from .tokens import describe_token, get_unverified_claims
