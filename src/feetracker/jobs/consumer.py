"""Work-queue consumer for historical transaction page jobs."""

import asyncio
import weakref

from feetracker.data.store import FeeStore
from feetracker.exceptions import InvalidStatusTransition, NotFoundError
from feetracker.historical.pipeline import PageProcessor
from feetracker.jobs.job_queue import Job
from feetracker.logging import get_logger
from feetracker.models import PROCESS_HISTORICAL_TRANSACTIONS, BatchStatus, PageJob

logger = get_logger(__name__)


class TransactionsConsumer:
    """Dispatches queued jobs to the page processor.

    Pages of the same batch never run concurrently: each batch has its own
    lock, so aggregate updates for one batch are applied one page at a time.
    Pages of different batches may run in parallel.
    """

    def __init__(self, page_processor: PageProcessor, store: FeeStore) -> None:
        self._page_processor = page_processor
        self._store = store
        # Entries vanish once no delivery of that batch holds or awaits the lock
        self._batch_locks: weakref.WeakValueDictionary[int, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    async def process(self, job: Job) -> None:
        """Handle one delivery. Errors propagate so the queue can retry."""
        if job.name != PROCESS_HISTORICAL_TRANSACTIONS:
            logger.warning("unknown_job_name", job_id=job.id, job_name=job.name)
            return

        page_job = PageJob.from_payload(job.payload)
        logger.info(
            "processing_page_job",
            job_id=job.id,
            batch_id=page_job.batch_id,
            page=page_job.page,
            attempt=job.attempts,
        )

        async with self._lock_for(page_job.batch_id):
            try:
                await self._page_processor.process_page(page_job)
            except Exception as e:
                logger.error(
                    "page_job_error",
                    job_id=job.id,
                    batch_id=page_job.batch_id,
                    page=page_job.page,
                    error=str(e),
                )
                raise

    async def on_failed(self, job: Job, error: BaseException) -> None:
        """Mark the job's batch FAILED once the queue gives up on it."""
        if job.name != PROCESS_HISTORICAL_TRANSACTIONS:
            return

        page_job = PageJob.from_payload(job.payload)
        try:
            await self._store.set_batch_status(page_job.batch_id, BatchStatus.FAILED)
        except (InvalidStatusTransition, NotFoundError) as e:
            logger.warning(
                "batch_not_marked_failed",
                batch_id=page_job.batch_id,
                reason=str(e),
            )
            return

        logger.error(
            "historical_batch_failed",
            batch_id=page_job.batch_id,
            page=page_job.page,
            error=str(error),
        )

    def _lock_for(self, batch_id: int) -> asyncio.Lock:
        lock = self._batch_locks.get(batch_id)
        if lock is None:
            lock = asyncio.Lock()
            self._batch_locks[batch_id] = lock
        return lock
