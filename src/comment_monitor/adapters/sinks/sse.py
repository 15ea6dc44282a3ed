"""Server-Sent-Events framing of agent events."""

import asyncio
import json
import math
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Optional

from comment_monitor.core.entities import AgentError, AgentEvent
from comment_monitor.core.interfaces import EventSink

DONE_FRAME = "data: [DONE]\n\n"


def _finite(value: Any) -> Any:
    """Replace NaN and infinities, which JSON cannot carry, with None."""
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, dict):
        return {key: _finite(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_finite(item) for item in value]
    return value


def format_sse(data: dict[str, Any]) -> str:
    """Serialize one payload as a single ``data:`` frame."""
    body = json.dumps(_finite(data), ensure_ascii=False, allow_nan=False, default=str)
    return f"data: {body}\n\n"


class ResponseWriter(ABC):
    """Open, chunked HTTP response."""

    @abstractmethod
    async def write(self, data: str) -> None:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass


class StreamSink(EventSink):
    """Write agent events to a response as SSE frames."""

    def __init__(self, writer: ResponseWriter) -> None:
        self.writer = writer
        self.closed = False

    async def emit(self, event: AgentEvent) -> None:
        await self.writer.write(format_sse(event.to_dict()))

    async def finish(self) -> None:
        """Write the ``[DONE]`` sentinel and close the response."""
        try:
            await self.writer.write(DONE_FRAME)
        finally:
            await self.close()

    async def fail(self, message: str) -> None:
        """Write one error frame and close the response."""
        try:
            await self.writer.write(format_sse(AgentError(message).to_dict()))
        except Exception as e:
            print(f"⚠️  Could not report stream error to client: {e}")
        finally:
            await self.close()

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        await self.writer.close()

    async def run(self, events: AsyncIterator[AgentEvent]) -> int:
        """Stream all events, then terminate the response.

        Returns:
            Number of event frames written.
        """
        written = 0
        try:
            async for event in events:
                await self.emit(event)
                written += 1
        except Exception as e:
            print(f"❌ Agent stream failed: {e}")
            await self.fail(str(e))
            return written
        await self.finish()
        return written


class QueueWriter(ResponseWriter):
    """Response writer that hands frames to a streaming HTTP body.

    ``None`` on the queue marks the closed response.
    """

    def __init__(self) -> None:
        self.queue: asyncio.Queue[Optional[str]] = asyncio.Queue()

    async def write(self, data: str) -> None:
        await self.queue.put(data)

    async def close(self) -> None:
        await self.queue.put(None)


async def encode_sse_stream(events: AsyncIterator[AgentEvent]) -> AsyncIterator[str]:
    """Frame an event stream for a streaming HTTP response.

    Yields one frame per event and a final ``[DONE]`` frame. If the event
    stream fails, yields a single error frame instead and stops. Closing the
    generator early (client disconnect) cancels the agent run.
    """
    writer = QueueWriter()
    task = asyncio.create_task(StreamSink(writer).run(events))
    try:
        while True:
            frame = await writer.queue.get()
            if frame is None:
                break
            yield frame
        await task
    finally:
        if not task.done():
            task.cancel()
