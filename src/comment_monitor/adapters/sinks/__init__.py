"""Sinks for translated agent events."""

from comment_monitor.adapters.sinks.console import ConsoleSink
from comment_monitor.adapters.sinks.sse import (
    DONE_FRAME,
    QueueWriter,
    ResponseWriter,
    StreamSink,
    encode_sse_stream,
    format_sse,
)

__all__ = [
    "ConsoleSink",
    "StreamSink",
    "ResponseWriter",
    "QueueWriter",
    "encode_sse_stream",
    "format_sse",
    "DONE_FRAME",
]
