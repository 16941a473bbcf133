"""Drives historical batches through the real queue, consumer and page pipeline.

Only the block explorer and the price service are mocked; storage is a real
SQLite file in tmp_path. Each page is a separate queue delivery, so these
tests cover the re-enqueue chain and recovery after a restart.
"""

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from feetracker.config import AppSettings
from feetracker.data.database import FeeDatabase
from feetracker.data.store import FeeStore
from feetracker.historical.batch_manager import BatchLifecycleManager
from feetracker.historical.block_resolver import BlockRangeResolver
from feetracker.historical.pipeline import JobContinuation, PageFetcher, PageProcessor
from feetracker.jobs.consumer import TransactionsConsumer
from feetracker.jobs.job_queue import InMemoryJobQueue
from feetracker.models import BatchStatus, BlockDirection, EthPrice
from feetracker.pricing.fee_calculator import FeeCalculator

DATE_FROM_MS = 1_600_000_000_000
DATE_TO_MS = 1_600_086_400_000


@dataclass
class Stack:
    queue: InMemoryJobQueue
    manager: BatchLifecycleManager
    price_service: AsyncMock


def _explorer(pages: dict[int, list[dict]]) -> AsyncMock:
    explorer = AsyncMock()

    async def _block(timestamp_s: int, direction: BlockDirection) -> str:
        return "100" if direction == BlockDirection.AFTER else "200"

    async def _fetch(**kwargs) -> list[dict]:
        return list(pages.get(kwargs["page"], []))

    explorer.get_block_number_by_timestamp = AsyncMock(side_effect=_block)
    explorer.fetch_address_transactions = AsyncMock(side_effect=_fetch)
    return explorer


def _stack(
    store: FeeStore, explorer: AsyncMock, settings: AppSettings, eth_price: EthPrice
) -> Stack:
    price_service = AsyncMock()
    price_service.get_latest_price = AsyncMock(return_value=eth_price)

    queue = InMemoryJobQueue(settings.queue)
    processor = PageProcessor(
        store=store,
        fetcher=PageFetcher(
            explorer,
            address=settings.live.pool_address,
            page_size=settings.etherscan.page_size,
        ),
        fee_calculator=FeeCalculator(price_service),
        price_service=price_service,
        continuation=JobContinuation(queue, store),
    )
    consumer = TransactionsConsumer(processor, store)
    queue.set_handler(consumer.process, on_failed=consumer.on_failed)

    manager = BatchLifecycleManager(
        store=store, resolver=BlockRangeResolver(explorer), queue=queue
    )
    return Stack(queue=queue, manager=manager, price_service=price_service)


@pytest.fixture
def three_pages(explorer_row) -> dict[int, list[dict]]:
    """4 / 4 / 1 rows: with page_size 3 that is 3 + 3 + 1 kept transactions."""
    return {
        1: [explorer_row(f"0x1{i}") for i in range(4)],
        2: [explorer_row(f"0x2{i}") for i in range(4)],
        3: [explorer_row("0x30")],
    }


async def _assert_completed_with(store: FeeStore, batch_id: int, txns: int) -> None:
    batch = await store.get_batch(batch_id)
    assert batch.status == BatchStatus.COMPLETED
    assert batch.total_txns == txns
    assert await store.count_batch_transactions(batch_id) == txns

    stored = await store.list_batch_transactions(batch_id, 50, 0)
    assert sum(tx.fee_in_eth for tx in stored) == batch.total_fee_in_eth
    assert sum(tx.fee_in_usdt for tx in stored) == batch.total_fee_in_usdt


class TestBatchFlow:
    @pytest.mark.asyncio
    async def test_pages_chain_to_completion(
        self, mock_settings: AppSettings, eth_price: EthPrice, three_pages
    ) -> None:
        async with FeeDatabase(mock_settings.database.path) as database:
            store = FeeStore(database)
            explorer = _explorer(three_pages)
            stack = _stack(store, explorer, mock_settings, eth_price)
            await stack.queue.start()

            batch = await stack.manager.create_batch(DATE_FROM_MS, DATE_TO_MS)
            await asyncio.wait_for(stack.queue.join(), timeout=2.0)
            await stack.queue.stop()

            await _assert_completed_with(store, batch.id, 7)
            assert (await store.get_batch(batch.id)).total_fee_in_eth == Decimal("0.000147")
            requested = [
                call.kwargs["page"]
                for call in explorer.fetch_address_transactions.await_args_list
            ]
            assert requested == [1, 2, 3]
            assert stack.price_service.get_latest_price.await_count == 3

    @pytest.mark.asyncio
    async def test_batch_queued_before_restart_completes_after_it(
        self, mock_settings: AppSettings, eth_price: EthPrice, three_pages
    ) -> None:
        async with FeeDatabase(mock_settings.database.path) as database:
            store = FeeStore(database)

            # Workers never start: the first page job is lost on stop
            before = _stack(store, _explorer(three_pages), mock_settings, eth_price)
            batch = await before.manager.create_batch(DATE_FROM_MS, DATE_TO_MS)
            await before.queue.stop()
            assert (await store.get_batch(batch.id)).status == BatchStatus.PENDING

            after = _stack(store, _explorer(three_pages), mock_settings, eth_price)
            await after.queue.start()
            resumed = await after.manager.resume_unfinished()
            await asyncio.wait_for(after.queue.join(), timeout=2.0)
            await after.queue.stop()

            assert [(job.batch_id, job.page) for job in resumed] == [(batch.id, 1)]
            await _assert_completed_with(store, batch.id, 7)

    @pytest.mark.asyncio
    async def test_restart_mid_batch_continues_from_next_page(
        self, mock_settings: AppSettings, eth_price: EthPrice, three_pages
    ) -> None:
        async with FeeDatabase(mock_settings.database.path) as database:
            store = FeeStore(database)

            # Page 2 hangs until the queue is stopped underneath it
            stalled = _explorer(three_pages)
            never = asyncio.Event()

            async def _stall_on_page_two(**kwargs) -> list[dict]:
                if kwargs["page"] == 2:
                    await never.wait()
                return list(three_pages.get(kwargs["page"], []))

            stalled.fetch_address_transactions.side_effect = _stall_on_page_two
            before = _stack(store, stalled, mock_settings, eth_price)
            await before.queue.start()
            batch = await before.manager.create_batch(DATE_FROM_MS, DATE_TO_MS)

            async def _page_one_recorded() -> None:
                while await store.get_processed_page(batch.id, 1) is None:
                    await asyncio.sleep(0.01)

            await asyncio.wait_for(_page_one_recorded(), timeout=2.0)
            await before.queue.stop()
            assert (await store.get_batch(batch.id)).status == BatchStatus.IN_PROGRESS

            explorer = _explorer(three_pages)
            after = _stack(store, explorer, mock_settings, eth_price)
            await after.queue.start()
            resumed = await after.manager.resume_unfinished()
            await asyncio.wait_for(after.queue.join(), timeout=2.0)
            await after.queue.stop()

            assert [job.page for job in resumed] == [2]
            requested = [
                call.kwargs["page"]
                for call in explorer.fetch_address_transactions.await_args_list
            ]
            assert requested == [2, 3]
            await _assert_completed_with(store, batch.id, 7)
