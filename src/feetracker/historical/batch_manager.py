"""Historical batch lifecycle: creation, lookup, and the completion-gated listing.

A batch is created PENDING once its date range has been resolved to a block
range, then driven to COMPLETED by page jobs on the work queue. Its
transactions can only be listed once it is COMPLETED.
"""

import asyncio
import math
import time
from collections.abc import Callable

from feetracker.data.store import FeeStore
from feetracker.exceptions import NotFoundError, ValidationError
from feetracker.historical.block_resolver import BlockRangeResolver
from feetracker.jobs.job_queue import JobQueue
from feetracker.logging import get_logger
from feetracker.models import (
    PROCESS_HISTORICAL_TRANSACTIONS,
    BatchStatus,
    BlockDirection,
    HistoricalBatch,
    Page,
    PageJob,
)

logger = get_logger(__name__)

DEFAULT_TAKE = 50
MIN_TAKE = 10
MAX_TAKE = 50


def validate_date_range(date_from_ms: int, date_to_ms: int, now_ms: int) -> None:
    """Require date_from < date_to <= now (all Unix milliseconds)."""
    if date_to_ms > now_ms:
        raise ValidationError("The date range is invalid: dateTo cannot be in the future")
    if date_from_ms >= date_to_ms:
        raise ValidationError(
            "The date range is invalid: dateFrom must be smaller than dateTo"
        )


def validate_page_window(take: int, offset: int) -> None:
    if not MIN_TAKE <= take <= MAX_TAKE:
        raise ValidationError(f"take must be between {MIN_TAKE} and {MAX_TAKE}")
    if offset < 0:
        raise ValidationError("offset must not be negative")


class BatchLifecycleManager:
    """Creates historical batches and serves their read-side queries.

    Args:
        store: Persistence for batches and their transactions.
        resolver: Timestamp to block resolution.
        queue: Work queue receiving the first page job of each batch.
        clock: Returns the current Unix time in seconds (injectable for tests).
    """

    def __init__(
        self,
        store: FeeStore,
        resolver: BlockRangeResolver,
        queue: JobQueue,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._resolver = resolver
        self._queue = queue
        self._clock = clock

    async def create_batch(self, date_from_ms: int, date_to_ms: int) -> HistoricalBatch:
        """Resolve the block range, persist a PENDING batch and enqueue page 1.

        Raises:
            ValidationError: invalid date range, or a range containing no blocks.
            UpstreamError: either block lookup failed (no batch is created).
        """
        validate_date_range(date_from_ms, date_to_ms, int(self._clock() * 1000))

        start_block, end_block = await asyncio.gather(
            self._resolver.resolve(date_from_ms, BlockDirection.AFTER),
            self._resolver.resolve(date_to_ms, BlockDirection.BEFORE),
        )
        if start_block > end_block:
            raise ValidationError(
                f"The date range contains no blocks (start {start_block} > end {end_block})"
            )

        batch = await self._store.create_batch(
            start_block=start_block,
            end_block=end_block,
            date_from=date_from_ms,
            date_to=date_to_ms,
        )

        first_job = PageJob(
            start_block=start_block,
            end_block=end_block,
            batch_id=batch.id,
            page=1,
        )
        await self._queue.add(PROCESS_HISTORICAL_TRANSACTIONS, first_job.to_payload())

        logger.info(
            "historical_batch_created",
            batch_id=batch.id,
            start_block=start_block,
            end_block=end_block,
        )
        return batch

    async def resume_unfinished(self) -> list[PageJob]:
        """Re-enqueue work for batches left PENDING or IN_PROGRESS by a restart.

        A batch with no recorded page gets page 1 again; otherwise the page
        after its last recorded one, if that page reported more rows.
        Redelivery of a page that did get recorded is a no-op downstream.
        """
        resumed: list[PageJob] = []
        for batch in await self._store.list_unfinished_batches():
            last = await self._store.get_last_processed_page(batch.id)
            if last is None:
                page = 1
            else:
                last_page, has_more = last
                if not has_more:
                    continue
                page = last_page + 1

            job = PageJob(
                start_block=batch.start_block,
                end_block=batch.end_block,
                batch_id=batch.id,
                page=page,
            )
            await self._queue.add(PROCESS_HISTORICAL_TRANSACTIONS, job.to_payload())
            resumed.append(job)

        if resumed:
            logger.info(
                "historical_batches_resumed",
                batches=[(job.batch_id, job.page) for job in resumed],
            )
        return resumed

    async def get_batch(self, batch_id: int) -> HistoricalBatch:
        batch = await self._store.get_batch(batch_id)
        if batch is None:
            logger.warning("historical_batch_not_found", batch_id=batch_id)
            raise NotFoundError(f"Failed to find historical transactions batch by {batch_id}")
        return batch

    async def list_batch_transactions(
        self,
        batch_id: int,
        take: int = DEFAULT_TAKE,
        offset: int = 0,
    ) -> Page:
        """List a completed batch's transactions, newest first.

        Raises NotFoundError for an unknown batch and ValidationError while the
        batch is not COMPLETED.
        """
        batch = await self.get_batch(batch_id)
        validate_page_window(take, offset)

        if batch.status != BatchStatus.COMPLETED:
            logger.warning(
                "historical_batch_not_completed",
                batch_id=batch_id,
                status=batch.status.value,
            )
            raise ValidationError(f"The batch with id {batch_id} is not completed yet")

        items = await self._store.list_batch_transactions(batch.id, take, offset)
        return Page(
            items=items,
            total_pages=math.ceil(batch.total_txns / take),
            current_page=offset // take + 1,
        )
