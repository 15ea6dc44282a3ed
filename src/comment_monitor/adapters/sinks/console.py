"""Console reporting of agent runs."""

import json

from comment_monitor.core.entities import (
    AgentError,
    AgentEvent,
    Final,
    Message,
    Reasoning,
    TokenUsage,
    ToolCall,
    ToolResult,
)
from comment_monitor.core.interfaces import EventSink


class ConsoleSink(EventSink):
    """Print agent events as human-readable operator lines."""

    def __init__(self, show_tool_data: bool = True, max_data_chars: int = 2000) -> None:
        """Initialize console sink.

        Args:
            show_tool_data: Print structured tool responses, not only their status.
            max_data_chars: Truncate printed tool data after this many characters.
        """
        self.show_tool_data = show_tool_data
        self.max_data_chars = max_data_chars

    def render(self, event: AgentEvent) -> str:
        """Render a single event as console text."""
        if isinstance(event, TokenUsage):
            return (
                "\n📊 Token usage:\n"
                f"   Input tokens: {event.input_tokens}\n"
                f"   Output tokens: {event.output_tokens}\n"
                f"   Total tokens: {event.total_tokens}"
            )
        if isinstance(event, Message):
            return f"\n🤖 Agent: {event.text}"
        if isinstance(event, Reasoning):
            return f"\n💭 Agent is thinking: {event.text}"
        if isinstance(event, ToolCall):
            return f"\n📞 Agent is calling tool: {event.name}\n   Arguments: {self._format_data(event.arguments)}"
        if isinstance(event, ToolResult):
            if not event.success:
                return f"\n🔧 Tool {event.name}\n   ❌ Error: {event.error}"
            lines = [f"\n🔧 Tool {event.name}", "   ✅ Success"]
            if self.show_tool_data and event.payload is not None:
                lines.append(f"   Data: {self._format_data(event.payload)}")
            return "\n".join(lines)
        if isinstance(event, Final):
            return f"\n📝 Done:\n{event.text}"
        if isinstance(event, AgentError):
            return f"\n❌ Agent failed: {event.message}"
        return f"\n• {event}"

    async def emit(self, event: AgentEvent) -> None:
        print(self.render(event))

    def _format_data(self, data: object) -> str:
        if isinstance(data, str):
            text = data
        else:
            text = json.dumps(data, ensure_ascii=False, indent=2, default=str)
        if len(text) > self.max_data_chars:
            return text[: self.max_data_chars] + "..."
        return text
