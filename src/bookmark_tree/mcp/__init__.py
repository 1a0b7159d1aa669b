"""MCP server for the bookmark tree."""
