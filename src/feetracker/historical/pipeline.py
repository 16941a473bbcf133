"""Page-processing pipeline for historical batches.

One invocation handles exactly one page of a batch:

1. fetch page_size + 1 rows; a full lookahead row means more pages remain
2. drop repeated hashes within the page (first occurrence wins)
3. fetch the ETH price once for the whole page
4. price every surviving transaction
5-6. persist rows, add the page totals to the batch and advance its status,
     all in one store transaction that also marks the page as processed
7. enqueue the next page if there is one

A redelivered job finds its page already recorded, writes nothing, and only
re-enqueues the follow-up page if that one never got recorded. Cross-page
duplicate hashes are not detected; the same hash on two pages is stored twice.
"""

from dataclasses import dataclass
from decimal import Decimal

from feetracker.chain.client import BlockExplorerClient
from feetracker.data.store import FeeStore
from feetracker.exceptions import UpstreamError
from feetracker.jobs.job_queue import JobQueue
from feetracker.logging import get_logger, page_job_context
from feetracker.models import (
    PROCESS_HISTORICAL_TRANSACTIONS,
    HistoricalBatch,
    PageJob,
    PageTotals,
    PricedTransaction,
    RawTransaction,
)
from feetracker.pricing.fee_calculator import FeeCalculator
from feetracker.pricing.price_service import EthPriceService

logger = get_logger(__name__)


@dataclass
class FetchedPage:
    """One page of explorer rows with the lookahead row already removed."""

    transactions: list[RawTransaction]
    has_more: bool


def parse_raw_transaction(row: dict) -> RawTransaction:
    """Parse an explorer row into a RawTransaction.

    gasUsed is preferred; gas is the fallback when an endpoint omits it.
    Raises UpstreamError on a missing hash or non-integer numeric field.
    """
    tx_hash = row.get("hash")
    if not tx_hash:
        raise UpstreamError(f"Explorer row without hash: {row!r}")

    gas_used_raw = row.get("gasUsed") or row.get("gas")
    try:
        return RawTransaction(
            hash=tx_hash,
            gas_price=int(row["gasPrice"]),
            gas_used=int(gas_used_raw),  # type: ignore[arg-type]
            block_number=int(row.get("blockNumber") or 0),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise UpstreamError(f"Malformed explorer row for {tx_hash}: {e}") from e


class PageFetcher:
    """Retrieves one page of pool transactions for a block range."""

    def __init__(self, explorer: BlockExplorerClient, address: str, page_size: int) -> None:
        self._explorer = explorer
        self._address = address
        self._page_size = page_size

    @property
    def page_size(self) -> int:
        return self._page_size

    async def fetch(self, job: PageJob) -> FetchedPage:
        rows = await self._explorer.fetch_address_transactions(
            address=self._address,
            page=job.page,
            page_size=self._page_size + 1,
            start_block=job.start_block,
            end_block=job.end_block,
        )

        rows = list(rows)
        has_more = len(rows) == self._page_size + 1
        if has_more:
            rows.pop()

        return FetchedPage(
            transactions=[parse_raw_transaction(row) for row in rows],
            has_more=has_more,
        )


def dedupe_page(transactions: list[RawTransaction]) -> list[RawTransaction]:
    """Keep the first occurrence of each hash within a page, preserving order."""
    seen: set[str] = set()
    unique: list[RawTransaction] = []
    for tx in transactions:
        if tx.hash in seen:
            continue
        seen.add(tx.hash)
        unique.append(tx)
    return unique


def accumulate_page(transactions: list[PricedTransaction]) -> PageTotals:
    """Fold a page's priced transactions into the increment for its batch."""
    return PageTotals(
        txns=len(transactions),
        fee_eth=sum((tx.fee_eth for tx in transactions), Decimal("0")),
        fee_usdt=sum((tx.fee_usdt for tx in transactions), Decimal("0")),
    )


class JobContinuation:
    """Schedules the page after the current one when more pages remain."""

    def __init__(self, queue: JobQueue, store: FeeStore) -> None:
        self._queue = queue
        self._store = store

    async def advance(self, job: PageJob, has_more: bool) -> PageJob | None:
        """Enqueue job.page + 1 if has_more. Returns the enqueued job, if any."""
        if not has_more:
            return None
        next_job = job.next_page()
        await self._queue.add(PROCESS_HISTORICAL_TRANSACTIONS, next_job.to_payload())
        logger.debug("next_page_enqueued", batch_id=job.batch_id, page=next_job.page)
        return next_job

    async def resume(self, job: PageJob) -> PageJob | None:
        """Re-enqueue the follow-up of an already recorded page if it was lost.

        Covers a crash between committing a page and enqueueing its successor.
        """
        record = await self._store.get_processed_page(job.batch_id, job.page)
        if record is None or not record["has_more"]:
            return None
        if await self._store.get_processed_page(job.batch_id, job.page + 1) is not None:
            return None
        return await self.advance(job, has_more=True)


class PageProcessor:
    """Runs the page pipeline for one PageJob per work-queue delivery."""

    def __init__(
        self,
        store: FeeStore,
        fetcher: PageFetcher,
        fee_calculator: FeeCalculator,
        price_service: EthPriceService,
        continuation: JobContinuation,
    ) -> None:
        self._store = store
        self._fetcher = fetcher
        self._fee_calculator = fee_calculator
        self._price_service = price_service
        self._continuation = continuation

    async def process_page(self, job: PageJob) -> HistoricalBatch | None:
        """Process one page. Returns the updated batch, or None if nothing was written.

        Raises UpstreamError when the page fetch or the price lookup fails; the
        batch keeps its last committed state and the queue owns the retry.
        """
        with page_job_context(job.batch_id, job.page):
            if await self._store.get_processed_page(job.batch_id, job.page) is not None:
                logger.info("page_already_processed")
                await self._continuation.resume(job)
                return None

            batch = await self._store.get_batch(job.batch_id)
            if batch is None:
                logger.warning("page_job_for_unknown_batch")
                return None
            if batch.status.is_terminal:
                logger.warning("page_job_for_finished_batch", status=batch.status.value)
                return None

            page = await self._fetcher.fetch(job)
            unique = dedupe_page(page.transactions)
            priced = await self._price_transactions(unique)
            totals = accumulate_page(priced)

            updated = await self._store.record_page(job, priced, totals, page.has_more)
            if updated is None:
                logger.info("page_recorded_concurrently")
                await self._continuation.resume(job)
                return None

            await self._continuation.advance(job, page.has_more)

            logger.info(
                "page_processed",
                fetched=len(page.transactions),
                unique=len(unique),
                has_more=page.has_more,
                status=updated.status.value,
                total_txns=updated.total_txns,
            )
            return updated

    async def _price_transactions(
        self, transactions: list[RawTransaction]
    ) -> list[PricedTransaction]:
        if not transactions:
            return []

        # One price per page bounds price lookups
        eth_price = (await self._price_service.get_latest_price()).price

        priced = []
        for tx in transactions:
            fee = await self._fee_calculator.calculate_fee(
                tx.gas_price, tx.gas_used, eth_price
            )
            priced.append(
                PricedTransaction(
                    transaction_hash=tx.hash,
                    fee_eth=fee.fee_eth,
                    fee_usdt=fee.fee_usdt,
                )
            )
        return priced
