"""Registry of per-document comment polling jobs."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from comment_monitor.core.diff import diff_snapshots
from comment_monitor.core.entities import CommentSnapshot, NewReply
from comment_monitor.core.interfaces import CommentSource

ReplyHandler = Callable[[NewReply], Awaitable[None]]
Sleep = Callable[[float], Awaitable[None]]


@dataclass
class MonitorJob:
    """Recurring polling job bound to one document."""

    document_id: str
    interval: float
    last_snapshot: Optional[CommentSnapshot] = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    ticks: int = 0
    failures: int = 0
    stopped: bool = False
    in_tick: bool = False
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)
    task: Optional[asyncio.Task] = field(default=None, repr=False)

    def status(self) -> dict:
        return {
            "document_id": self.document_id,
            "interval": self.interval,
            "started_at": self.started_at.isoformat(),
            "ticks": self.ticks,
            "failures": self.failures,
            "replies_known": self.last_snapshot.reply_count() if self.last_snapshot else 0,
            "status": "stopped" if self.stopped else "running",
        }


class MonitorRegistry:
    """Own one polling job per document and drive fetch, diff and dispatch.

    Ticks of one document never overlap: the job loop awaits each tick before
    sleeping again and every tick holds the job lock. Jobs of different
    documents run as independent tasks.

    Args:
        source: Fetches the current comments of a document.
        on_reply: Called for each new reply, sequentially, in detected order.
        sleep: Awaitable delay between ticks; injectable so tests can drive
            ticks without wall-clock timers.
    """

    def __init__(
        self,
        source: CommentSource,
        on_reply: ReplyHandler,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.source = source
        self.on_reply = on_reply
        self._sleep = sleep
        self._jobs: dict[str, MonitorJob] = {}
        # Shared by successive jobs of a document so a restart waits for the old tick.
        self._locks: dict[str, asyncio.Lock] = {}

    def start(self, document_id: str, interval: float) -> MonitorJob:
        """Start monitoring, replacing any existing job for the document.

        Must be called from a running event loop. The old job's snapshot is
        discarded, so the next poll only re-establishes a baseline.
        """
        previous = self._jobs.pop(document_id, None)
        if previous is not None:
            self._cancel(previous)
            print(f"🔄 Restarting monitor for {document_id}")

        lock = self._locks.setdefault(document_id, asyncio.Lock())
        job = MonitorJob(document_id=document_id, interval=interval, lock=lock)
        self._jobs[document_id] = job
        job.task = asyncio.get_running_loop().create_task(
            self._run(job), name=f"monitor:{document_id}"
        )
        print(f"👀 Monitoring {document_id} every {interval:g}s")
        return job

    def stop(self, document_id: str) -> bool:
        """Stop monitoring a document.

        Returns:
            False if no job exists for the document.
        """
        job = self._jobs.pop(document_id, None)
        if job is None:
            return False
        self._cancel(job)
        print(f"⏹️  Stopped monitor for {document_id}")
        return True

    def stop_all(self) -> int:
        """Stop every job and return how many were stopped."""
        jobs = list(self._jobs.values())
        self._jobs.clear()
        for job in jobs:
            self._cancel(job)
        return len(jobs)

    async def shutdown(self) -> int:
        """Stop all jobs and wait for their tasks to finish."""
        tasks = [job.task for job in self._jobs.values() if job.task is not None]
        stopped = self.stop_all()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        return stopped

    def list_documents(self) -> list[str]:
        return list(self._jobs)

    def jobs(self) -> list[MonitorJob]:
        return list(self._jobs.values())

    def get(self, document_id: str) -> Optional[MonitorJob]:
        return self._jobs.get(document_id)

    async def poll_once(self, document_id: str) -> Optional[list[NewReply]]:
        """Run one tick immediately, serialized with the scheduled ticks.

        Returns:
            New replies detected by the tick, or None if the document is not
            monitored.
        """
        job = self._jobs.get(document_id)
        if job is None:
            return None
        async with job.lock:
            return await self._tick(job)

    def _cancel(self, job: MonitorJob) -> None:
        job.stopped = True
        if not job.lock.locked() and self._jobs.get(job.document_id) is None:
            self._locks.pop(job.document_id, None)
        # A tick in flight finishes; the loop exits once it sees the flag.
        if job.task is not None and not job.in_tick:
            job.task.cancel()

    async def _run(self, job: MonitorJob) -> None:
        while not job.stopped:
            await self._sleep(job.interval)
            if job.stopped:
                break
            async with job.lock:
                job.in_tick = True
                try:
                    await self._tick(job)
                finally:
                    job.in_tick = False

    async def _tick(self, job: MonitorJob) -> list[NewReply]:
        job.ticks += 1

        try:
            snapshot = await self.source.fetch(job.document_id)
        except Exception as e:
            job.failures += 1
            print(f"⚠️  Could not fetch comments for {job.document_id}: {e}")
            return []

        baseline = job.last_snapshot is None
        new_replies = diff_snapshots(job.last_snapshot, snapshot, job.document_id)

        # Advance before dispatching so a failing reply is not re-detected.
        job.last_snapshot = snapshot

        if baseline:
            print(
                f"📋 Baseline for {job.document_id}: "
                f"{len(snapshot.comments)} comments, {snapshot.reply_count()} replies"
            )
            return new_replies

        if not new_replies:
            return new_replies

        print(f"\n🔔 {len(new_replies)} new repl{'y' if len(new_replies) == 1 else 'ies'} in {job.document_id}:")
        for i, new_reply in enumerate(new_replies, 1):
            reply = new_reply.reply
            when = reply.created_at.strftime("%Y-%m-%d %H:%M:%S") if reply.created_at else "unknown time"
            print(f"  {i}. [{reply.author}] {when}: {reply.text}")

            try:
                await self.on_reply(new_reply)
            except Exception as e:
                print(f"❌ Failed to handle reply {reply.reply_id}: {e}")

        print("=" * 70)
        return new_replies
