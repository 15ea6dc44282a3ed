"""Shared test doubles."""

import asyncio
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Optional, Union

import pytest

from comment_monitor.core import (
    AgentRuntime,
    AgentRuntimeError,
    Comment,
    CommentFetchError,
    CommentSnapshot,
    CommentSource,
    Reply,
)


def make_reply(reply_id: Optional[str], text: str = "", author: str = "alice") -> Reply:
    return Reply(
        reply_id=reply_id,
        author=author,
        created_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
        text=text or f"text of {reply_id}",
    )


def make_snapshot(*threads: tuple[str, list[str]]) -> CommentSnapshot:
    """Build a snapshot from ``(comment_id, [reply_id, ...])`` pairs."""
    return CommentSnapshot(
        comments=[
            Comment(comment_id=comment_id, replies=[make_reply(r) for r in reply_ids])
            for comment_id, reply_ids in threads
        ]
    )


class FakeSource(CommentSource):
    """Comment source returning scripted snapshots or errors."""

    def __init__(self, *results: Union[CommentSnapshot, Exception]) -> None:
        self.results = list(results)
        self.calls: list[str] = []
        self.current: Optional[CommentSnapshot] = None

    async def fetch(self, document_id: str) -> CommentSnapshot:
        self.calls.append(document_id)
        if self.results:
            result = self.results.pop(0)
            if isinstance(result, Exception):
                raise result
            self.current = result
        if self.current is None:
            raise CommentFetchError("no data")
        return self.current


class FakeAgent(AgentRuntime):
    """Agent yielding scripted chunks and recording instructions."""

    def __init__(self, chunks: Optional[list[Any]] = None, error: Optional[Exception] = None) -> None:
        self.chunks = chunks if chunks is not None else [
            {"agent": {"messages": [{"content": "Done editing"}]}},
            {"__end__": True, "messages": [{"content": "Done editing"}]},
        ]
        self.error = error
        self.instructions: list[str] = []

    async def invoke(self, instruction: str) -> AsyncIterator[Any]:
        self.instructions.append(instruction)
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error


class ManualClock:
    """Sleep replacement whose waits only end when the test advances it."""

    def __init__(self) -> None:
        self.waiters: list[asyncio.Future] = []

    async def sleep(self, seconds: float) -> None:
        future = asyncio.get_running_loop().create_future()
        self.waiters.append(future)
        await future

    async def advance(self) -> None:
        """Wake every pending sleep and let the woken tasks run."""
        waiters, self.waiters = self.waiters, []
        for future in waiters:
            if not future.done():
                future.set_result(None)
        await settle()


async def settle(rounds: int = 20) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def agent_error() -> AgentRuntimeError:
    return AgentRuntimeError("model unavailable")
