"""Core interfaces for adapters."""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator

from comment_monitor.core.entities import AgentEvent, CommentSnapshot


class CommentFetchError(Exception):
    """Comment list could not be fetched or decoded."""


class ToolCallError(Exception):
    """Remote tool invocation failed."""


class AgentRuntimeError(Exception):
    """Agent runtime failed to produce a response."""


class CommentSource(ABC):
    """Interface for fetching the current comments of a document."""

    @abstractmethod
    async def fetch(self, document_id: str) -> CommentSnapshot:
        """Fetch all comments of the document.

        Raises:
            CommentFetchError: on transport, authentication or decode failure.
        """
        pass


class AgentRuntime(ABC):
    """Interface for tool-using agents."""

    @abstractmethod
    def invoke(self, instruction: str) -> AsyncIterator[Any]:
        """Run the agent and yield its progress chunks (single pass)."""
        pass


class SessionLifecycle(ABC):
    """Credential/session resource owned by the remote service client."""

    @abstractmethod
    async def cleanup(self) -> None:
        """Release the session. Called once at shutdown."""
        pass


class ToolClient(ABC):
    """Interface for invoking tools on the remote document service."""

    @abstractmethod
    async def list_tools(self) -> list[dict[str, Any]]:
        """List available tools with their input schemas."""
        pass

    @abstractmethod
    async def call_tool(self, name: str, arguments: dict[str, Any]) -> str:
        """Call a tool and return its text output."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the connection."""
        pass


class EventSink(ABC):
    """Consumer of translated agent events."""

    @abstractmethod
    async def emit(self, event: AgentEvent) -> None:
        """Handle a single event."""
        pass
