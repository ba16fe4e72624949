"""Configuration management for Teams Chat MCP."""

import os
from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env" if os.getenv("ENVIRONMENT") != "test" else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_name: str = "Teams Chat MCP"
    app_version: str = "0.1.0"
    debug: bool = Field(default=False)
    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3001)
    cors_origins: str = Field(
        default="*",
        description="Comma-separated allowed origins for the REST API",
    )

    # Microsoft Graph
    graph_base_url: str = Field(default="https://graph.microsoft.com/v1.0")
    auth_token: Optional[str] = Field(
        default=None,
        description="Fallback bearer token used when a request carries none",
    )
    http_timeout: float = Field(default=30.0)

    # Paging
    chat_page_size: int = Field(default=50, ge=1)
    max_chat_page_size: int = Field(default=50, ge=1)
    message_page_size: int = Field(default=50, ge=1)
    max_message_page_size: int = Field(default=1000, ge=1)
    recent_messages_per_chat: int = Field(default=20, ge=1)

    # Chat shaping
    chat_expand: str = Field(
        default="members,lastMessagePreview",
        description="Comma-separated relationships expanded on chat listings",
    )
    default_member_role: Literal["owner", "guest"] = Field(default="owner")
    rest_member_role: Literal["owner", "guest"] = Field(default="guest")
    fetch_created_chat: bool = Field(default=True)

    @field_validator("graph_base_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v):
        return str(v).rstrip("/")

    @field_validator("auth_token", mode="before")
    @classmethod
    def blank_token_is_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    def get_cors_origins(self) -> List[str]:
        """Parse CORS origins from config."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def get_chat_expand(self) -> List[str]:
        """Parse the default chat expansion list from config."""
        return [e.strip() for e in self.chat_expand.split(",") if e.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
