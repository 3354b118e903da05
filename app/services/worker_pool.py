"""
Worker Pool - Bounded concurrency and a bounded queue for edit jobs.

A fixed number of worker tasks drain an asyncio queue. Submission never waits:
when the queue is full the caller gets QueueFullError and can reject the
request. Each running job is its own asyncio.Task so it can be cancelled
without taking its worker down.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from app.services.errors import QueueFullError

logger = logging.getLogger(__name__)


JobHandler = Callable[[str], Awaitable[None]]


class WorkerPool:
    """Supervised pool of asyncio workers running one job handler per job id."""

    def __init__(self, handler: JobHandler, *, max_workers: int = 2, max_queued: int = 20):
        self.handler = handler
        self.max_workers = max(1, int(max_workers))
        self.max_queued = max(1, int(max_queued))
        self._queue: Optional[asyncio.Queue[str]] = None
        self._workers: list[asyncio.Task] = []
        self._running: dict[str, asyncio.Task] = {}
        self._skipped: set[str] = set()

    @property
    def is_running(self) -> bool:
        return bool(self._workers)

    @property
    def active_count(self) -> int:
        return len(self._running)

    @property
    def queued_count(self) -> int:
        if self._queue is None:
            return 0
        return self._queue.qsize()

    def has_capacity(self) -> bool:
        return self.is_running and not self._queue.full()

    async def start(self) -> None:
        if self._workers:
            return
        self._queue = asyncio.Queue(maxsize=self.max_queued)
        for index in range(self.max_workers):
            self._workers.append(asyncio.create_task(self._worker(index)))
        logger.info(
            f"Worker pool started ({self.max_workers} workers, queue size {self.max_queued})"
        )

    async def stop(self) -> None:
        """Cancel running jobs and workers, then wait for them to unwind."""
        for task in list(self._running.values()):
            task.cancel()
        for task in self._workers:
            task.cancel()

        pending = [*self._running.values(), *self._workers]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        self._workers = []
        self._running.clear()
        self._skipped.clear()
        self._queue = None
        logger.info("Worker pool stopped")

    def submit(self, job_id: str) -> None:
        """
        Enqueue a job without waiting.

        Raises:
            QueueFullError: The pool is not running or its queue is full
        """
        if not self.is_running:
            raise QueueFullError("Worker pool is not running")
        try:
            self._queue.put_nowait(job_id)
        except asyncio.QueueFull:
            raise QueueFullError(
                f"Edit queue is full ({self.max_queued} jobs waiting), try again later"
            )
        logger.debug(f"[{job_id}] Enqueued ({self.queued_count} waiting)")

    def cancel(self, job_id: str) -> bool:
        """
        Cancel a running job, or mark a queued one to be skipped.

        Returns:
            True if the job was running and has been signalled
        """
        task = self._running.get(job_id)
        if task is not None and not task.done():
            task.cancel()
            logger.info(f"[{job_id}] Cancellation requested")
            return True
        self._skipped.add(job_id)
        return False

    async def _worker(self, index: int) -> None:
        while True:
            job_id = await self._queue.get()
            try:
                if job_id in self._skipped:
                    self._skipped.discard(job_id)
                    logger.info(f"[{job_id}] Skipping cancelled job")
                    continue

                task = asyncio.create_task(self.handler(job_id))
                self._running[job_id] = task
                try:
                    # wait() does not raise when the job task is cancelled,
                    # only when this worker is.
                    await asyncio.wait({task})
                except asyncio.CancelledError:
                    task.cancel()
                    raise

                if task.cancelled():
                    logger.info(f"[{job_id}] Job task cancelled (worker {index})")
                elif task.exception() is not None:
                    logger.error(
                        f"[{job_id}] Job handler raised: {task.exception()!r}",
                        exc_info=task.exception(),
                    )
            finally:
                self._running.pop(job_id, None)
                self._queue.task_done()
