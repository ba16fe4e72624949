"""MCP tool registry and stdio server."""
