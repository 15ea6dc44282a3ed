"""Translation of agent progress chunks into typed events.

The agent runtime streams dict-shaped update chunks keyed by the graph node
that produced them::

    {"agent": {"messages": [...]}}      model turn (text, reasoning, tool calls, usage)
    {"tools": {"messages": [...]}}      tool execution results
    {"__end__": ..., "messages": [...]} end of run

The shapes drift between runtime versions, so decoding is deliberately
tolerant: anything unrecognized produces no events and nothing here raises.
Messages may be plain dicts, serialized ``{"lc": 1, "kwargs": {...}}`` objects,
or objects exposing the same attributes.
"""

import json
import math
from collections.abc import Mapping
from typing import Any, AsyncIterator, Iterable, Optional

from comment_monitor.core.entities import (
    AgentEvent,
    Final,
    Message,
    Raw,
    Reasoning,
    Structured,
    TokenUsage,
    ToolCall,
    ToolPayload,
    ToolResult,
)

TOOL_ID_DELIMITER = ":"
SUCCESS_CODE = 0


def _get(obj: Any, key: str) -> Any:
    """Read ``key`` from a mapping or attribute; ``None`` when missing."""
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        return obj.get(key)
    if isinstance(obj, (str, bytes, int, float, bool, list, tuple)):
        return None
    try:
        return getattr(obj, key, None)
    except Exception:
        return None


def _field(message: Any, key: str) -> Any:
    """Read a message field, looking into serialized ``kwargs`` as well."""
    value = _get(message, key)
    if value is None:
        value = _get(_get(message, "kwargs"), key)
    return value


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0
    if isinstance(value, str) and value.strip().isdecimal():
        return int(value.strip())
    return 0


def content_text(content: Any) -> str:
    """Flatten message content (plain string or content blocks) to text."""
    if isinstance(content, str):
        return content
    parts = []
    for block in _as_list(content):
        if isinstance(block, str):
            parts.append(block)
        elif _get(block, "type") == "text" and isinstance(_get(block, "text"), str):
            parts.append(_get(block, "text"))
    return "".join(parts)


def parse_tool_payload(content: Any) -> ToolPayload:
    """Best-effort parse of a tool response into structured data or raw text."""
    if isinstance(content, (dict, list)) and not _looks_like_blocks(content):
        return Structured(content)

    text = content_text(content) if not isinstance(content, str) else content
    stripped = text.strip()
    if not stripped.startswith(("{", "[")):
        return Raw(text)

    try:
        return Structured(json.loads(stripped))
    except (ValueError, RecursionError):
        return Raw(text)


def _looks_like_blocks(content: Any) -> bool:
    return isinstance(content, list) and bool(content) and all(
        _get(block, "type") == "text" for block in content
    )


def tool_name_from_call_id(call_id: str, fallback: Optional[str] = None) -> str:
    """Recover a tool name from a compound ``<tool>:<n>`` call identifier."""
    if TOOL_ID_DELIMITER in call_id:
        return call_id.split(TOOL_ID_DELIMITER, 1)[0]
    return fallback or call_id


def _last_message(messages: Any) -> Any:
    items = _as_list(messages)
    return items[-1] if items else None


def _token_usage(message: Any) -> Optional[TokenUsage]:
    usage = _field(message, "usage_metadata")
    if isinstance(usage, Mapping) and usage:
        return TokenUsage(
            input_tokens=_as_int(usage.get("input_tokens")),
            output_tokens=_as_int(usage.get("output_tokens")),
            total_tokens=_as_int(usage.get("total_tokens")),
        )

    metadata = _field(message, "response_metadata")
    legacy = _get(metadata, "tokenUsage")
    if isinstance(legacy, Mapping) and legacy:
        return TokenUsage(
            input_tokens=_as_int(legacy.get("promptTokens")),
            output_tokens=_as_int(legacy.get("completionTokens")),
            total_tokens=_as_int(legacy.get("totalTokens")),
        )

    snake = _get(metadata, "token_usage")
    if isinstance(snake, Mapping) and snake:
        return TokenUsage(
            input_tokens=_as_int(snake.get("prompt_tokens")),
            output_tokens=_as_int(snake.get("completion_tokens")),
            total_tokens=_as_int(snake.get("total_tokens")),
        )
    return None


def _parse_arguments(raw: Any) -> Any:
    if not isinstance(raw, str):
        return raw if raw is not None else {}
    try:
        return json.loads(raw)
    except (ValueError, RecursionError):
        return raw


def _tool_calls(message: Any) -> list[ToolCall]:
    raw_calls = _as_list(_get(_field(message, "additional_kwargs"), "tool_calls"))
    if raw_calls:
        calls = []
        for raw in raw_calls:
            function = _get(raw, "function")
            name = _get(function, "name")
            if not isinstance(name, str):
                continue
            calls.append(ToolCall(name=name, arguments=_parse_arguments(_get(function, "arguments"))))
        return calls

    # Already-parsed calls: {"name": ..., "args": {...}}
    calls = []
    for raw in _as_list(_field(message, "tool_calls")):
        name = _get(raw, "name")
        if isinstance(name, str):
            calls.append(ToolCall(name=name, arguments=_parse_arguments(_get(raw, "args"))))
    return calls


def _agent_events(update: Any) -> list[AgentEvent]:
    message = _last_message(_get(update, "messages"))
    if message is None:
        return []

    events: list[AgentEvent] = []

    usage = _token_usage(message)
    if usage is not None:
        events.append(usage)

    text = content_text(_field(message, "content"))
    if text:
        events.append(Message(text))

    reasoning = _field(message, "reasoning_content")
    if reasoning is None:
        reasoning = _get(_field(message, "additional_kwargs"), "reasoning_content")
    if isinstance(reasoning, str) and reasoning:
        events.append(Reasoning(reasoning))

    events.extend(_tool_calls(message))
    return events


def _tool_result(message: Any) -> Optional[ToolResult]:
    call_id = _field(message, "tool_call_id")
    if not isinstance(call_id, str) or not call_id:
        return None

    fallback = _field(message, "name")
    name = tool_name_from_call_id(call_id, fallback if isinstance(fallback, str) else None)
    payload = parse_tool_payload(_field(message, "content"))

    if isinstance(payload, Raw):
        return ToolResult(name=name, success=True, payload=payload.text)

    data = payload.data
    if isinstance(data, Mapping) and "code" in data:
        if data["code"] == SUCCESS_CODE:
            return ToolResult(name=name, success=True, payload=data.get("data", data))
        error = data.get("msg") or data.get("message") or "Unknown error"
        return ToolResult(name=name, success=False, error=str(error))

    return ToolResult(name=name, success=True, payload=data)


def _tool_events(update: Any) -> list[AgentEvent]:
    if isinstance(update, Mapping):
        groups: Iterable[Any] = update.values()
    else:
        groups = [_get(update, "messages")]

    events: list[AgentEvent] = []
    for group in groups:
        for message in _as_list(group):
            result = _tool_result(message)
            if result is not None:
                events.append(result)
    return events


def _final_event(chunk: Mapping) -> Optional[Final]:
    messages = chunk.get("messages")
    if messages is None:
        messages = _get(chunk.get("__end__"), "messages")
    text = content_text(_field(_last_message(messages), "content"))
    return Final(text) if text else None


def translate_chunk(chunk: Any) -> list[AgentEvent]:
    """Map one progress chunk to zero or more events, in arrival order."""
    if not isinstance(chunk, Mapping):
        return []

    events: list[AgentEvent] = []

    if "agent" in chunk:
        events.extend(_agent_events(chunk["agent"]))

    if "tools" in chunk:
        events.extend(_tool_events(chunk["tools"]))

    if "__end__" in chunk:
        final = _final_event(chunk)
        if final is not None:
            events.append(final)

    return events


async def translate_stream(chunks: AsyncIterator[Any]) -> AsyncIterator[AgentEvent]:
    """Translate an agent's chunk stream into an ordered event stream."""
    async for chunk in chunks:
        for event in translate_chunk(chunk):
            yield event
