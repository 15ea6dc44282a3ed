"""Document tool server adapters."""

from comment_monitor.adapters.mcp.client import BearerTokenSession, McpToolClient
from comment_monitor.adapters.mcp.comment_source import McpCommentSource, parse_comment_list

__all__ = ["BearerTokenSession", "McpToolClient", "McpCommentSource", "parse_comment_list"]
