"""Tests for the monitor registry."""

import asyncio

import pytest
from conftest import FakeSource, ManualClock, make_snapshot, settle

from comment_monitor.core import CommentFetchError, CommentSnapshot, MonitorRegistry, NewReply


class Recorder:
    """Reply handler recording what it was given."""

    def __init__(self, fail_on: set[str] = frozenset()) -> None:
        self.replies: list[NewReply] = []
        self.fail_on = fail_on

    async def __call__(self, new_reply: NewReply) -> None:
        self.replies.append(new_reply)
        if new_reply.reply.reply_id in self.fail_on:
            raise RuntimeError("agent crashed")

    @property
    def ids(self) -> list[str]:
        return [r.reply.reply_id for r in self.replies]


BASE = make_snapshot(("c1", ["r1", "r2"]), ("c2", ["r3"]))
WITH_R4 = make_snapshot(("c1", ["r1", "r2"]), ("c2", ["r3", "r4"]))


@pytest.mark.asyncio
async def test_first_poll_establishes_baseline(clock: ManualClock) -> None:
    source = FakeSource(BASE, WITH_R4)
    handler = Recorder()
    registry = MonitorRegistry(source, handler, sleep=clock.sleep)
    registry.start("doc", 1.0)

    assert await registry.poll_once("doc") == []
    new = await registry.poll_once("doc")

    assert [r.reply.reply_id for r in new] == ["r4"]
    assert handler.ids == ["r4"]
    assert handler.replies[0].document_id == "doc"
    await registry.shutdown()


@pytest.mark.asyncio
async def test_restart_clears_baseline(clock: ManualClock) -> None:
    """Test that a restart never reports replies that existed before it."""
    source = FakeSource(BASE, WITH_R4)
    handler = Recorder()
    registry = MonitorRegistry(source, handler, sleep=clock.sleep)

    registry.start("doc", 1.0)
    await registry.poll_once("doc")
    registry.start("doc", 1.0)

    assert await registry.poll_once("doc") == []
    assert handler.replies == []
    assert registry.get("doc").last_snapshot is WITH_R4
    await registry.shutdown()


@pytest.mark.asyncio
async def test_fetch_failure_keeps_snapshot(clock: ManualClock) -> None:
    source = FakeSource(BASE, CommentFetchError("token expired"), WITH_R4)
    handler = Recorder()
    registry = MonitorRegistry(source, handler, sleep=clock.sleep)
    job = registry.start("doc", 1.0)

    await registry.poll_once("doc")
    assert await registry.poll_once("doc") == []
    assert job.last_snapshot is BASE
    assert job.failures == 1

    new = await registry.poll_once("doc")
    assert [r.reply.reply_id for r in new] == ["r4"]
    await registry.shutdown()


@pytest.mark.asyncio
async def test_snapshot_advances_even_when_dispatch_fails(clock: ManualClock) -> None:
    """Test that a failing reply is not re-detected and does not block later ones."""
    more = make_snapshot(("c1", ["r1", "r2", "r5"]), ("c2", ["r3", "r4"]))
    source = FakeSource(BASE, more, more)
    handler = Recorder(fail_on={"r5"})
    registry = MonitorRegistry(source, handler, sleep=clock.sleep)
    job = registry.start("doc", 1.0)

    await registry.poll_once("doc")
    await registry.poll_once("doc")

    assert handler.ids == ["r5", "r4"]
    assert job.last_snapshot is more
    assert await registry.poll_once("doc") == []
    assert handler.ids == ["r5", "r4"]
    await registry.shutdown()


@pytest.mark.asyncio
async def test_stop_unknown_document_reports_not_found() -> None:
    registry = MonitorRegistry(FakeSource(), Recorder())

    assert registry.stop("missing") is False
    assert await registry.poll_once("missing") is None


@pytest.mark.asyncio
async def test_list_stop_and_stop_all(clock: ManualClock) -> None:
    registry = MonitorRegistry(FakeSource(BASE), Recorder(), sleep=clock.sleep)
    registry.start("a", 1.0)
    registry.start("b", 1.0)
    registry.start("c", 1.0)
    registry.start("a", 2.0)

    assert sorted(registry.list_documents()) == ["a", "b", "c"]
    assert registry.get("a").interval == 2.0

    assert registry.stop("b") is True
    assert registry.stop("b") is False
    assert registry.stop_all() == 2
    assert registry.list_documents() == []
    await settle()


@pytest.mark.asyncio
async def test_scheduled_ticks(clock: ManualClock) -> None:
    """Test that the job loop ticks once per elapsed interval."""
    source = FakeSource(BASE, WITH_R4)
    handler = Recorder()
    registry = MonitorRegistry(source, handler, sleep=clock.sleep)
    job = registry.start("doc", 1.0)
    await settle()

    assert source.calls == []

    await clock.advance()
    assert source.calls == ["doc"]
    assert job.last_snapshot is BASE

    await clock.advance()
    assert source.calls == ["doc", "doc"]
    assert handler.ids == ["r4"]

    assert registry.stop("doc") is True
    await settle()
    assert job.task.done()


class SlowSource(FakeSource):
    """Source whose fetches block until released, recording overlap."""

    def __init__(self, *results) -> None:
        super().__init__(*results)
        self.gate = asyncio.Event()
        self.log: list[str] = []

    async def fetch(self, document_id: str) -> CommentSnapshot:
        self.log.append("fetch-start")
        await self.gate.wait()
        snapshot = await super().fetch(document_id)
        self.log.append("fetch-end")
        return snapshot


@pytest.mark.asyncio
async def test_same_document_ticks_never_overlap(clock: ManualClock) -> None:
    """Test a second tick does not begin before the first one's snapshot write."""
    source = SlowSource(BASE, WITH_R4)
    registry = MonitorRegistry(source, Recorder(), sleep=clock.sleep)
    job = registry.start("doc", 1.0)
    await settle()

    await clock.advance()
    manual = asyncio.create_task(registry.poll_once("doc"))
    await settle()
    await clock.advance()

    assert source.log == ["fetch-start"]
    assert job.last_snapshot is None

    source.gate.set()
    new = await manual
    await settle()

    assert source.log == ["fetch-start", "fetch-end", "fetch-start", "fetch-end"]
    assert [r.reply.reply_id for r in new] == ["r4"]
    await registry.shutdown()


@pytest.mark.asyncio
async def test_documents_tick_independently(clock: ManualClock) -> None:
    source = SlowSource(BASE)
    registry = MonitorRegistry(source, Recorder(), sleep=clock.sleep)
    registry.start("a", 1.0)
    registry.start("b", 1.0)
    await settle()

    await clock.advance()

    assert source.log == ["fetch-start", "fetch-start"]
    source.gate.set()
    await registry.shutdown()


@pytest.mark.asyncio
async def test_stop_lets_in_flight_tick_finish(clock: ManualClock) -> None:
    source = SlowSource(BASE)
    registry = MonitorRegistry(source, Recorder(), sleep=clock.sleep)
    job = registry.start("doc", 1.0)
    await settle()
    await clock.advance()

    assert registry.stop("doc") is True
    source.gate.set()
    await settle()

    assert job.last_snapshot is BASE
    assert job.task.done()
    assert not job.task.cancelled()
    assert registry.list_documents() == []


@pytest.mark.asyncio
async def test_restart_during_tick_does_not_resurrect_old_job(clock: ManualClock) -> None:
    source = SlowSource(BASE)
    registry = MonitorRegistry(source, Recorder(), sleep=clock.sleep)
    old = registry.start("doc", 1.0)
    await settle()
    await clock.advance()

    new = registry.start("doc", 1.0)
    source.gate.set()
    await settle()

    assert registry.get("doc") is new
    assert new.last_snapshot is None
    assert old.last_snapshot is BASE
    await registry.shutdown()


@pytest.mark.asyncio
async def test_restart_waits_for_old_tick(clock: ManualClock) -> None:
    """Test the restarted job does not fetch while the old tick is in flight."""
    source = SlowSource(BASE, WITH_R4)
    handler = Recorder()
    registry = MonitorRegistry(source, handler, sleep=clock.sleep)
    old = registry.start("doc", 1.0)
    await settle()
    await clock.advance()

    new = registry.start("doc", 1.0)
    await settle()
    await clock.advance()

    assert source.log == ["fetch-start"]
    assert new.lock is old.lock

    source.gate.set()
    await settle()

    assert source.log == ["fetch-start", "fetch-end", "fetch-start", "fetch-end"]
    assert old.last_snapshot is BASE
    assert new.last_snapshot is WITH_R4
    assert handler.ids == []
    await registry.shutdown()
