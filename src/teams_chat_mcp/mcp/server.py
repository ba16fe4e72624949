"""MCP server exposing the Teams chat tools over stdio."""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

from mcp import types
from mcp.server import Server
from mcp.server.stdio import stdio_server

from ..config import get_settings
from ..graph.http_client import close_http_client
from ..observability.logging import configure_logging
from .tools import TeamsChatTools, ToolResponse

logger = logging.getLogger(__name__)

SERVER_NAME = "teams-chat-mcp"


def to_mcp_content(response: ToolResponse) -> List[types.TextContent]:
    """Convert a tool response to MCP content blocks.

    The rendered text comes first; metadata, when present, follows as a JSON
    text block so clients without structured content still receive it.
    """
    content = [types.TextContent(type="text", text=response.text)]
    if response.metadata is not None:
        content.append(types.TextContent(
            type="text",
            text=json.dumps(response.metadata, indent=2, default=str),
        ))
    return content


def to_call_tool_result(response: ToolResponse) -> types.CallToolResult:
    """Wrap a tool response so a failed call reaches the client flagged as an error."""
    return types.CallToolResult(content=to_mcp_content(response), isError=response.is_error)


class TeamsChatMCPServer:
    """Single-user MCP server for Teams chats."""

    def __init__(self, access_token: Optional[str] = None, tools: Optional[TeamsChatTools] = None):
        self.access_token = access_token
        self.tools = tools or TeamsChatTools()
        self.server = Server(SERVER_NAME)
        logger.debug(
            "TeamsChatMCPServer created - tools: %d, has_server_token: %s",
            len(self.tools.names), access_token is not None,
        )
        self._setup_handlers()

    def _setup_handlers(self):
        """Set up MCP protocol handlers."""

        @self.server.list_tools()
        async def handle_list_tools() -> List[types.Tool]:
            return self.tools.get_tools()

        @self.server.call_tool()
        async def handle_call_tool(
            name: str, arguments: Optional[Dict[str, Any]] = None
        ) -> types.CallToolResult:
            response = await self.call_tool(name, arguments)
            return to_call_tool_result(response)

    async def call_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> ToolResponse:
        """Run a tool with the server's credential as fallback."""
        return await self.tools.execute_tool(name, arguments or {}, access_token=self.access_token)

    async def run_stdio(self):
        """Serve MCP over stdin/stdout until the client disconnects."""
        async with stdio_server() as (read_stream, write_stream):
            await self.server.run(
                read_stream,
                write_stream,
                self.server.create_initialization_options(),
            )


async def _serve(access_token: Optional[str]):
    server = TeamsChatMCPServer(access_token=access_token)
    try:
        await server.run_stdio()
    finally:
        await close_http_client()


def main():
    """Console entry point for the stdio MCP server."""
    settings = get_settings()
    # stdout carries the protocol; logs go to stderr.
    configure_logging(
        environment=settings.environment,
        log_level="DEBUG" if settings.debug else settings.log_level,
    )
    if not settings.auth_token:
        logger.warning("AUTH_TOKEN is not set; every tool call must pass accessToken")

    logger.info("%s v%s starting on stdio", settings.app_name, settings.app_version)
    asyncio.run(_serve(settings.auth_token))


if __name__ == "__main__":
    main()
