"""Running totals over live swap transactions."""

import asyncio
from decimal import Decimal

from feetracker.data.store import FeeStore
from feetracker.logging import get_logger
from feetracker.models import Summary

logger = get_logger(__name__)


class RealtimeSummaryUpdater:
    """Folds each live transaction fee into the singleton Summary row.

    A single lock serializes updates so two concurrent first events cannot
    both try to create the row.
    """

    def __init__(self, store: FeeStore) -> None:
        self._store = store
        self._lock = asyncio.Lock()

    async def update_summary(self, fee_eth: Decimal, fee_usdt: Decimal) -> Summary:
        async with self._lock:
            summary = await self._store.get_summary()
            if summary is None:
                updated = await self._store.create_summary(1, fee_eth, fee_usdt)
            else:
                updated = await self._store.increment_summary(
                    summary.id, 1, fee_eth, fee_usdt
                )

        logger.info(
            "summary_updated",
            total_txns=updated.total_txns,
            total_fee_eth=str(updated.total_fee_eth),
            total_fee_usdt=str(updated.total_fee_usdt),
        )
        return updated

    async def get_summary(self) -> Summary | None:
        return await self._store.get_summary()
