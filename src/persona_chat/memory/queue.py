"""Background queue for memory summarization.

Turns hand compaction work to this queue and return immediately. A
single worker task drains it, so summarization never delays a reply.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from persona_chat.memory.consolidator import MemoryConsolidator
from persona_chat.utils.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class SummarizationJob:
    """A request to compact one agent/user memory scope."""

    agent_id: int
    user_id: str
    credential: str

    @property
    def scope(self) -> tuple[int, str]:
        return (self.agent_id, self.user_id)


class SummarizationQueue:
    """Bounded work queue consumed by one background worker.

    ``submit`` never blocks: a scope already waiting is not queued twice,
    and a full queue drops the job with a warning. Worker failures are
    logged and never reach the submitter.

    Args:
        consolidator: Performs the summarization.
        maxsize: Maximum number of waiting jobs.
    """

    def __init__(self, consolidator: MemoryConsolidator, maxsize: int = 32) -> None:
        self.consolidator = consolidator
        self._queue: asyncio.Queue[SummarizationJob] = asyncio.Queue(maxsize=maxsize)
        self._pending: set[tuple[int, str]] = set()
        self._worker: asyncio.Task[None] | None = None
        self.completed = 0
        self.failed = 0
        self.dropped = 0

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        """Start the worker task on the running event loop."""
        if self.is_running:
            return
        self._worker = asyncio.create_task(self._run(), name="memory-summarization")
        log.debug("Summarization worker started")

    async def stop(self) -> None:
        """Cancel the worker. Jobs still queued are discarded."""
        if self._worker is None:
            return
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        log.debug("Summarization worker stopped", discarded=self._queue.qsize())

    async def join(self) -> None:
        """Wait until every submitted job has been processed."""
        await self._queue.join()

    def submit(self, agent_id: int, user_id: str, credential: str) -> bool:
        """Queue a scope for summarization without waiting.

        Returns:
            True if queued, False if already pending or dropped.
        """
        job = SummarizationJob(agent_id, user_id, credential)
        if job.scope in self._pending:
            log.debug("Summarization already pending", agent_id=agent_id)
            return False

        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull:
            self.dropped += 1
            log.warning("Summarization queue full", agent_id=agent_id, dropped=self.dropped)
            return False

        self._pending.add(job.scope)
        log.debug("Summarization queued", agent_id=agent_id, pending=self._queue.qsize())
        return True

    async def _run(self) -> None:
        while True:
            job = await self._queue.get()
            self._pending.discard(job.scope)
            try:
                await self.consolidator.summarize(job.agent_id, job.user_id, job.credential)
                self.completed += 1
            except Exception as e:
                self.failed += 1
                log.error(
                    "Summarization failed",
                    agent_id=job.agent_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
            finally:
                self._queue.task_done()
