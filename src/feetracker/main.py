"""Entry point for the pool fee tracker.

Wires all components together and serves the FastAPI app with uvicorn's
programmatic API. The app's lifespan context manager opens the database,
connects the upstream clients, starts the queue workers, re-enqueues
historical batches left unfinished by the previous run, and starts the
background feeds (price poller, swap listener); shutdown reverses that order.

Component wiring order (in _build_components):
1. FeeDatabase + FeeStore (SQLite persistence)
2. EtherscanClient (block explorer) and EthereumRpcClient (JSON-RPC)
3. EthPriceService (ccxt ETH/USDT feed) and FeeCalculator
4. InMemoryJobQueue (work queue)
5. BlockRangeResolver + BatchLifecycleManager (batch creation)
6. PageFetcher, JobContinuation, PageProcessor (page pipeline)
7. TransactionsConsumer (queue handler)
8. RealtimeSummaryUpdater, SwapEventHandler, SwapListener (live feed)
9. CursorPaginator and TransactionLookup (read side)
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI

from feetracker.api.app import create_app
from feetracker.chain.etherscan_client import EtherscanClient
from feetracker.chain.rpc_client import EthereumRpcClient
from feetracker.config import AppSettings
from feetracker.data.database import FeeDatabase
from feetracker.data.store import FeeStore
from feetracker.historical.batch_manager import BatchLifecycleManager
from feetracker.historical.block_resolver import BlockRangeResolver
from feetracker.historical.pipeline import JobContinuation, PageFetcher, PageProcessor
from feetracker.jobs.consumer import TransactionsConsumer
from feetracker.jobs.job_queue import InMemoryJobQueue
from feetracker.live.lookup import TransactionLookup
from feetracker.live.paginator import CursorPaginator
from feetracker.live.summary import RealtimeSummaryUpdater
from feetracker.live.swap_listener import SwapEventHandler, SwapListener
from feetracker.logging import get_logger, setup_logging
from feetracker.pricing.fee_calculator import FeeCalculator
from feetracker.pricing.price_service import EthPriceService


def _build_components(settings: AppSettings) -> dict[str, Any]:
    """Build all components from settings.

    Note: Does NOT open the database or any network session -- that happens
    in the lifespan.

    Args:
        settings: Application-wide settings.

    Returns:
        Dict mapping component names to instances.
    """
    database = FeeDatabase(settings.database.path)
    store = FeeStore(database)

    explorer = EtherscanClient(settings.etherscan)
    rpc = EthereumRpcClient(settings.rpc)

    price_service = EthPriceService(store, settings.price)
    fee_calculator = FeeCalculator(price_service)

    queue = InMemoryJobQueue(settings.queue)

    batch_manager = BatchLifecycleManager(
        store=store,
        resolver=BlockRangeResolver(explorer),
        queue=queue,
    )

    page_processor = PageProcessor(
        store=store,
        fetcher=PageFetcher(
            explorer,
            address=settings.live.pool_address,
            page_size=settings.etherscan.page_size,
        ),
        fee_calculator=fee_calculator,
        price_service=price_service,
        continuation=JobContinuation(queue, store),
    )
    consumer = TransactionsConsumer(page_processor, store)
    queue.set_handler(consumer.process, on_failed=consumer.on_failed)

    summary_updater = RealtimeSummaryUpdater(store)
    swap_listener = SwapListener(
        rpc,
        SwapEventHandler(rpc, fee_calculator, store, summary_updater),
        settings.live,
    )

    return {
        "database": database,
        "store": store,
        "explorer": explorer,
        "rpc": rpc,
        "price_service": price_service,
        "fee_calculator": fee_calculator,
        "queue": queue,
        "batch_manager": batch_manager,
        "consumer": consumer,
        "summary_updater": summary_updater,
        "swap_listener": swap_listener,
        "paginator": CursorPaginator(store),
        "transaction_lookup": TransactionLookup(rpc, fee_calculator),
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage component lifecycle within the FastAPI application.

    On startup: stores services on app.state, opens the database and
    upstream sessions, starts queue workers and the enabled background feeds.

    On shutdown: stops the feeds and workers, then closes sessions and the
    database.
    """
    logger = get_logger("feetracker.main")
    settings: AppSettings = app.state.settings
    components = app.state.components

    # Store services on app.state for route handler access
    app.state.batch_manager = components["batch_manager"]
    app.state.paginator = components["paginator"]
    app.state.summary_updater = components["summary_updater"]
    app.state.transaction_lookup = components["transaction_lookup"]
    app.state.price_service = components["price_service"]

    await components["database"].connect()
    await components["explorer"].connect()
    await components["rpc"].connect()

    await components["queue"].start()
    # Queued jobs do not survive a restart; rebuild them from processed_pages
    await components["batch_manager"].resume_unfinished()
    if settings.price.enabled:
        await components["price_service"].start()
    if settings.live.enabled:
        await components["swap_listener"].start()

    logger.info(
        "lifespan_started",
        pool=settings.live.pool_address,
        live_feed=settings.live.enabled,
        price_feed=settings.price.enabled,
    )

    yield

    await components["swap_listener"].stop()
    await components["price_service"].stop()
    await components["queue"].stop()

    await components["price_service"].close()
    await components["rpc"].close()
    await components["explorer"].close()
    await components["database"].close()

    logger.info("fee_tracker_stopped")


async def run() -> None:
    """Run the fee tracker HTTP service and its background workers."""
    # 1. Load settings
    settings = AppSettings()

    # 2. Setup logging
    setup_logging(settings.log_level)
    logger = get_logger("feetracker.main")

    if not settings.etherscan.api_key.get_secret_value():
        logger.warning(
            "no_etherscan_api_key",
            note="Historical batches will fail until ETHERSCAN_API_KEY is set",
        )

    components = _build_components(settings)

    app = create_app(lifespan=lifespan, prefix=settings.api.prefix)
    app.state.settings = settings
    app.state.components = components

    logger.info("starting_api", host=settings.api.host, port=settings.api.port)

    config = uvicorn.Config(
        app,
        host=settings.api.host,
        port=settings.api.port,
        log_level="warning",  # Suppress uvicorn access logs
    )
    server = uvicorn.Server(config)
    await server.serve()


def main() -> None:
    """Synchronous entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
