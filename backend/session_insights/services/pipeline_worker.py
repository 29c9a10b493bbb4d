"""In-process job queue that runs session pipelines outside the request cycle.

Jobs are drained by a fixed number of asyncio tasks, which bounds how many
pipelines talk to the providers at once. Queued audio lives only in memory:
jobs still waiting when the worker stops are lost, and their sessions are
reaped later by the stale-session sweeper.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineJob:
    session_id: str
    audio: bytes


class PipelineWorker:
    def __init__(
        self,
        handler: Callable[[str, bytes], Awaitable[None]],
        concurrency: int = 1,
        name: str = "session-pipeline",
    ) -> None:
        self._handler = handler
        self.concurrency = concurrency
        self.name = name
        self._queue: asyncio.Queue[PipelineJob] = asyncio.Queue()
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def is_running(self) -> bool:
        return bool(self._tasks)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def start(self) -> None:
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._work(i), name=f"{self.name}-{i}")
            for i in range(self.concurrency)
        ]
        logger.info("Started %d %s workers", self.concurrency, self.name)

    def enqueue(self, job: PipelineJob) -> None:
        self._queue.put_nowait(job)

    async def join(self) -> None:
        """Wait until every queued job has been processed."""
        await self._queue.join()

    async def stop(self) -> None:
        if not self._tasks:
            return
        dropped = self._queue.qsize()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        if dropped:
            logger.warning("%s stopped with %d queued jobs dropped", self.name, dropped)
        else:
            logger.info("%s stopped", self.name)

    async def _work(self, index: int) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self._handler(job.session_id, job.audio)
            except Exception:
                logger.exception(
                    "%s-%d: unhandled error for session %s", self.name, index, job.session_id
                )
            finally:
                self._queue.task_done()
