"""External service surfaces (MCP server)."""
