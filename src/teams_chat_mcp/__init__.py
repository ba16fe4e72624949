"""Microsoft Teams chat tools for MCP clients, backed by Microsoft Graph."""

__version__ = "0.1.0"
