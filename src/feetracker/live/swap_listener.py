"""Live swap feed -- polls the pool's Swap logs over JSON-RPC.

Each poll scans from the block after the last processed one up to the chain
head, capped at max_blocks_per_poll blocks. The first poll starts at the
head, so only swaps that happen after startup are tracked. A failed range
is retried on the next poll; the insert is unique on (hash, log_index), so
re-scanning a range never double-counts.
"""

import asyncio

from feetracker.chain.rpc_client import EthereumRpcClient, hex_to_int
from feetracker.config import LiveFeedSettings
from feetracker.data.store import FeeStore
from feetracker.exceptions import UpstreamError
from feetracker.live.summary import RealtimeSummaryUpdater
from feetracker.logging import get_logger
from feetracker.models import LiveTransaction
from feetracker.pricing.fee_calculator import FeeCalculator

logger = get_logger(__name__)

# keccak256("Swap(address,address,int256,int256,uint160,uint128,int24)")
SWAP_TOPIC = "0xc42079f94a6350d7e6235f29174924f928cc2ac818eb64fed8004e115fbcca67"


def topic_to_address(topic: str) -> str:
    """Indexed address topics are left-padded to 32 bytes; keep the last 20."""
    return "0x" + topic[-40:].lower()


class SwapEventHandler:
    """Prices one Swap log and records it as a live transaction."""

    def __init__(
        self,
        rpc: EthereumRpcClient,
        fee_calculator: FeeCalculator,
        store: FeeStore,
        summary_updater: RealtimeSummaryUpdater,
    ) -> None:
        self._rpc = rpc
        self._fee_calculator = fee_calculator
        self._store = store
        self._summary_updater = summary_updater

    async def handle(self, log: dict) -> LiveTransaction | None:
        """Returns the stored row, or None if this log was already recorded."""
        tx_hash = log.get("transactionHash")
        topics = log.get("topics") or []
        if not tx_hash or len(topics) < 3:
            raise UpstreamError(f"Malformed Swap log: {log!r}")

        log_index = hex_to_int(log.get("logIndex"))
        block_number = hex_to_int(log.get("blockNumber"))

        tx, receipt, block = await asyncio.gather(
            self._rpc.get_transaction(tx_hash),
            self._rpc.get_transaction_receipt(tx_hash),
            self._rpc.get_block(block_number),
        )
        if not tx or not receipt or not block:
            raise UpstreamError(f"Incomplete chain data for swap {tx_hash}")

        fee = await self._fee_calculator.calculate_fee(
            hex_to_int(tx.get("gasPrice")),
            hex_to_int(receipt.get("gasUsed")),
        )

        stored = await self._store.insert_live_transaction(
            transaction_hash=tx_hash,
            log_index=log_index,
            block_number=block_number,
            timestamp=hex_to_int(block.get("timestamp")) * 1000,
            sender=topic_to_address(topics[1]),
            recipient=topic_to_address(topics[2]),
            fee_in_eth=fee.fee_eth,
            fee_in_usdt=fee.fee_usdt,
        )
        if stored is None:
            logger.debug("swap_already_recorded", tx_hash=tx_hash, log_index=log_index)
            return None

        await self._summary_updater.update_summary(fee.fee_eth, fee.fee_usdt)
        logger.info(
            "swap_processed",
            tx_hash=tx_hash,
            fee_eth=str(fee.fee_eth),
            fee_usdt=str(fee.fee_usdt),
        )
        return stored


class SwapListener:
    """Background poller feeding pool Swap logs to a SwapEventHandler."""

    def __init__(
        self,
        rpc: EthereumRpcClient,
        handler: SwapEventHandler,
        settings: LiveFeedSettings,
    ) -> None:
        self._rpc = rpc
        self._handler = handler
        self._settings = settings
        self._last_block: int | None = None
        self._running = False
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]

    @property
    def last_block(self) -> int | None:
        return self._last_block

    async def start(self) -> None:
        """Begin polling swap logs in the background."""
        if self._running:
            logger.warning("swap_listener_already_running")
            return
        self._running = True
        self._task = asyncio.create_task(self._poll_loop())
        logger.info(
            "swap_listener_started",
            pool=self._settings.pool_address,
            poll_interval=self._settings.poll_interval,
        )

    async def stop(self) -> None:
        """Stop the listener gracefully."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("swap_listener_stopped")

    async def _poll_loop(self) -> None:
        while self._running:
            try:
                await self._poll_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.warning("swap_listener_poll_error", exc_info=True)
            if self._running:
                await asyncio.sleep(self._settings.poll_interval)

    async def _poll_once(self) -> int:
        """Scan the next block range. Returns the number of logs handled."""
        head = await self._rpc.block_number()
        if self._last_block is None:
            from_block = head
        else:
            from_block = self._last_block + 1
        if from_block > head:
            return 0
        to_block = min(head, from_block + self._settings.max_blocks_per_poll - 1)

        logs = await self._rpc.get_logs(
            address=self._settings.pool_address,
            topics=[SWAP_TOPIC],
            from_block=from_block,
            to_block=to_block,
        )
        for log in logs:
            if log.get("removed"):
                continue
            await self._handler.handle(log)

        # Only advance once the whole range went through
        self._last_block = to_block
        if logs:
            logger.debug(
                "swap_logs_scanned",
                from_block=from_block,
                to_block=to_block,
                logs=len(logs),
            )
        return len(logs)
