"""Work queue port and an in-process asyncio implementation.

Delivery is at-least-once: a job whose handler raises is retried with
exponential backoff until max_attempts, after which an optional failure
hook is invoked. Handlers must therefore tolerate redelivery.
"""

import asyncio
import uuid
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from feetracker.config import QueueSettings
from feetracker.logging import get_logger

logger = get_logger(__name__)


@dataclass
class Job:
    """A named unit of queued work."""

    name: str
    payload: dict
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    attempts: int = 0


JobHandler = Callable[[Job], Awaitable[Any]]
FailureHook = Callable[[Job, BaseException], Awaitable[None]]


class JobQueue(ABC):
    """Abstract work queue: producers only need add()."""

    @abstractmethod
    async def add(self, name: str, payload: dict) -> Job:
        """Enqueue a job for later processing."""
        ...


class InMemoryJobQueue(JobQueue):
    """asyncio.Queue-backed work queue with a fixed worker pool and retries.

    Usage:
        queue = InMemoryJobQueue(settings.queue)
        queue.set_handler(consumer.process, on_failed=consumer.on_failed)
        await queue.start()
        await queue.add("process-historical-transactions", {...})
    """

    def __init__(self, settings: QueueSettings) -> None:
        self._settings = settings
        self._queue: asyncio.Queue[Job] = asyncio.Queue()
        self._handler: JobHandler | None = None
        self._on_failed: FailureHook | None = None
        self._workers: list[asyncio.Task] = []  # type: ignore[type-arg]
        self._retries: set[asyncio.Task] = set()  # type: ignore[type-arg]
        # Jobs added and not yet settled (succeeded or failed for good)
        self._in_flight = 0
        self._idle = asyncio.Event()
        self._idle.set()

    def set_handler(self, handler: JobHandler, on_failed: FailureHook | None = None) -> None:
        self._handler = handler
        self._on_failed = on_failed

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def add(self, name: str, payload: dict) -> Job:
        job = Job(name=name, payload=payload)
        self._in_flight += 1
        self._idle.clear()
        await self._queue.put(job)
        logger.debug("job_enqueued", job_id=job.id, job_name=name)
        return job

    async def start(self) -> None:
        """Spawn the worker pool."""
        if self._handler is None:
            raise RuntimeError("No job handler set. Call set_handler() first.")
        if self._workers:
            logger.warning("job_queue_already_running")
            return
        self._workers = [
            asyncio.create_task(self._worker(i))
            for i in range(self._settings.worker_count)
        ]
        logger.info("job_queue_started", workers=self._settings.worker_count)

    async def stop(self) -> None:
        """Cancel all workers and pending retries. Jobs still queued are dropped.

        Nothing is persisted here; unfinished batches are re-enqueued on the
        next start by BatchLifecycleManager.resume_unfinished().
        """
        tasks = [*self._workers, *self._retries]
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        dropped = self._queue.qsize() + len(self._retries)
        self._workers = []
        self._retries.clear()
        logger.info("job_queue_stopped", dropped=dropped)

    async def join(self) -> None:
        """Wait until every queued job (including retries and follow-ups) is done."""
        await self._idle.wait()

    async def _worker(self, index: int) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self._run(job)
            finally:
                self._queue.task_done()

    async def _run(self, job: Job) -> None:
        """Run one delivery of a job, re-enqueueing it on failure."""
        assert self._handler is not None
        job.attempts += 1
        try:
            await self._handler(job)
            self._settle()
            return
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = e

        max_attempts = self._settings.max_attempts
        if job.attempts >= max_attempts:
            logger.error(
                "job_failed_permanently",
                job_id=job.id,
                job_name=job.name,
                attempts=job.attempts,
                error=str(error),
            )
            if self._on_failed is not None:
                try:
                    await self._on_failed(job, error)
                except Exception:
                    logger.error("job_failure_hook_error", job_id=job.id, exc_info=True)
            self._settle()
            return

        delay = self._settings.retry_base_delay * (2 ** (job.attempts - 1))
        logger.warning(
            "job_retry",
            job_id=job.id,
            job_name=job.name,
            attempt=job.attempts,
            max_attempts=max_attempts,
            delay=delay,
            error=str(error),
        )
        # The worker moves on; the job comes back after its backoff
        task = asyncio.create_task(self._requeue_after(job, delay))
        self._retries.add(task)
        task.add_done_callback(self._retries.discard)

    async def _requeue_after(self, job: Job, delay: float) -> None:
        await asyncio.sleep(delay)
        await self._queue.put(job)

    def _settle(self) -> None:
        self._in_flight -= 1
        if self._in_flight == 0:
            self._idle.set()
