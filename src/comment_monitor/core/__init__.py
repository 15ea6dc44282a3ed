"""Core domain layer."""

from comment_monitor.core.diff import diff_snapshots
from comment_monitor.core.entities import (
    AgentError,
    AgentEvent,
    Comment,
    CommentSnapshot,
    EventType,
    Final,
    Message,
    NewReply,
    Raw,
    Reasoning,
    Reply,
    Structured,
    TokenUsage,
    ToolCall,
    ToolPayload,
    ToolResult,
)
from comment_monitor.core.interfaces import (
    AgentRuntime,
    AgentRuntimeError,
    CommentFetchError,
    CommentSource,
    EventSink,
    SessionLifecycle,
    ToolCallError,
    ToolClient,
)
from comment_monitor.core.registry import MonitorJob, MonitorRegistry
from comment_monitor.core.translator import parse_tool_payload, translate_chunk, translate_stream

__all__ = [
    "Reply",
    "Comment",
    "CommentSnapshot",
    "NewReply",
    "AgentEvent",
    "AgentError",
    "EventType",
    "Reasoning",
    "Message",
    "ToolCall",
    "ToolResult",
    "TokenUsage",
    "Final",
    "Structured",
    "Raw",
    "ToolPayload",
    "CommentSource",
    "AgentRuntime",
    "SessionLifecycle",
    "ToolClient",
    "EventSink",
    "CommentFetchError",
    "ToolCallError",
    "AgentRuntimeError",
    "MonitorJob",
    "MonitorRegistry",
    "diff_snapshots",
    "parse_tool_payload",
    "translate_chunk",
    "translate_stream",
]
