"""Core domain entities."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union


@dataclass
class Reply:
    """Single reply inside a document comment thread."""

    reply_id: Optional[str]
    author: str
    created_at: Optional[datetime]
    text: str


@dataclass
class Comment:
    """Comment thread with its ordered replies."""

    comment_id: str
    replies: list[Reply] = field(default_factory=list)
    quote: str = ""
    is_solved: bool = False


@dataclass
class CommentSnapshot:
    """All comments of one document observed at one poll tick."""

    comments: list[Comment] = field(default_factory=list)

    def reply_ids(self) -> set[str]:
        """Collect identifiers of every reply that has one."""
        return {
            reply.reply_id
            for comment in self.comments
            for reply in comment.replies
            if reply.reply_id
        }

    def reply_count(self) -> int:
        return sum(len(comment.replies) for comment in self.comments)


@dataclass
class NewReply:
    """Reply detected as new, tagged with its parent comment."""

    document_id: str
    comment: Comment
    reply: Reply


class EventType(str, Enum):
    """Kind of agent event."""

    REASONING = "reasoning"
    MESSAGE = "message"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    TOKEN_USAGE = "token_usage"
    FINAL = "final"
    ERROR = "error"


@dataclass
class AgentEvent(ABC):
    """Base class for events produced from an agent trace."""

    @property
    @abstractmethod
    def type(self) -> EventType:
        pass

    @abstractmethod
    def to_dict(self) -> dict[str, Any]:
        """Serialize to the wire payload."""
        pass


@dataclass
class Reasoning(AgentEvent):
    text: str

    @property
    def type(self) -> EventType:
        return EventType.REASONING

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "content": self.text}


@dataclass
class Message(AgentEvent):
    text: str

    @property
    def type(self) -> EventType:
        return EventType.MESSAGE

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "content": self.text}


@dataclass
class ToolCall(AgentEvent):
    """Tool invocation requested by the agent.

    ``arguments`` holds the parsed arguments, or the raw string when they
    could not be parsed.
    """

    name: str
    arguments: Any

    @property
    def type(self) -> EventType:
        return EventType.TOOL_CALL

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "tool": self.name, "args": self.arguments}


@dataclass
class ToolResult(AgentEvent):
    name: str
    success: bool
    payload: Any = None
    error: Optional[str] = None

    @property
    def type(self) -> EventType:
        return EventType.TOOL_RESULT

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.type.value,
            "tool": self.name,
            "success": self.success,
        }
        if self.success:
            data["data"] = self.payload
        else:
            data["error"] = self.error
        return data


@dataclass
class TokenUsage(AgentEvent):
    input_tokens: int
    output_tokens: int
    total_tokens: int

    @property
    def type(self) -> EventType:
        return EventType.TOKEN_USAGE

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass
class Final(AgentEvent):
    text: str

    @property
    def type(self) -> EventType:
        return EventType.FINAL

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "content": self.text}


@dataclass
class AgentError(AgentEvent):
    """Terminal failure of an agent run, emitted by sinks only."""

    message: str

    @property
    def type(self) -> EventType:
        return EventType.ERROR

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "message": self.message}


@dataclass
class Structured:
    """Tool payload that parsed as JSON."""

    data: Any


@dataclass
class Raw:
    """Tool payload kept as plain text."""

    text: str


ToolPayload = Union[Structured, Raw]
