"""Logging for Teams Chat MCP."""
