"""Typed SQLite read/write abstraction for the fee tracker.

Provides FeeStore with typed methods for batches, historical and live
transactions, the live summary row, and ETH price snapshots. All SQL is
isolated behind this interface.

CRITICAL: All ETH/USDT amounts stored as TEXT in SQLite, restored as Decimal on read.
Every multi-statement write runs inside one transaction under a single write
lock, so aggregate increments are never lost to interleaved coroutines.
"""

import asyncio
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from decimal import Decimal

import aiosqlite

from feetracker.data.database import FeeDatabase
from feetracker.exceptions import InvalidStatusTransition, NotFoundError
from feetracker.logging import get_logger
from feetracker.models import (
    BatchStatus,
    EthPrice,
    HistoricalBatch,
    HistoricalTransaction,
    LiveTransaction,
    PageJob,
    PageTotals,
    PricedTransaction,
    Summary,
)

logger = get_logger(__name__)

SUMMARY_ROW_ID = 1

_BATCH_COLUMNS = (
    "id, start_block, end_block, date_from, date_to, status, total_txns, "
    "total_fee_in_eth, total_fee_in_usdt, created_at, updated_at"
)
_LIVE_COLUMNS = (
    "id, transaction_hash, log_index, block_number, timestamp, sender, recipient, "
    "fee_in_eth, fee_in_usdt, created_at"
)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _row_to_batch(row: tuple) -> HistoricalBatch:
    return HistoricalBatch(
        id=row[0],
        start_block=row[1],
        end_block=row[2],
        date_from=row[3],
        date_to=row[4],
        status=BatchStatus(row[5]),
        total_txns=row[6],
        total_fee_in_eth=Decimal(row[7]),
        total_fee_in_usdt=Decimal(row[8]),
        created_at=row[9],
        updated_at=row[10],
    )


def _row_to_live(row: tuple) -> LiveTransaction:
    return LiveTransaction(
        id=row[0],
        transaction_hash=row[1],
        log_index=row[2],
        block_number=row[3],
        timestamp=row[4],
        sender=row[5],
        recipient=row[6],
        fee_in_eth=Decimal(row[7]),
        fee_in_usdt=Decimal(row[8]),
        created_at=row[9],
    )


def _row_to_summary(row: tuple) -> Summary:
    return Summary(
        id=row[0],
        total_txns=row[1],
        total_fee_eth=Decimal(row[2]),
        total_fee_usdt=Decimal(row[3]),
        updated_at=row[4],
    )


class FeeStore:
    """Async SQLite store for batches, transactions, summary and prices.

    Wraps FeeDatabase with typed read/write methods. All SQL access
    goes through self._database.db (the aiosqlite Connection).

    Usage:
        async with FeeDatabase("data/fees.db") as database:
            store = FeeStore(database)
            batch = await store.create_batch(100, 200, date_from, date_to)
    """

    def __init__(self, database: FeeDatabase) -> None:
        self._database = database
        self._write_lock = asyncio.Lock()

    @asynccontextmanager
    async def _write(self) -> AsyncIterator[aiosqlite.Connection]:
        """Serialize a write transaction: commit on success, roll back on error."""
        async with self._write_lock:
            db = self._database.db
            try:
                yield db
            except BaseException:
                await db.rollback()
                raise
            else:
                await db.commit()

    # ──────────────────────────────────────────────
    # Historical batches
    # ──────────────────────────────────────────────

    async def create_batch(
        self,
        start_block: int,
        end_block: int,
        date_from: int,
        date_to: int,
    ) -> HistoricalBatch:
        """Insert a PENDING batch with zero aggregates and return it."""
        now_ms = _now_ms()
        async with self._write() as db:
            cursor = await db.execute(
                "INSERT INTO historical_batches "
                "(start_block, end_block, date_from, date_to, status, total_txns, "
                "total_fee_in_eth, total_fee_in_usdt, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, 0, '0', '0', ?, ?)",
                (
                    start_block,
                    end_block,
                    date_from,
                    date_to,
                    BatchStatus.PENDING.value,
                    now_ms,
                    now_ms,
                ),
            )
            batch_id = cursor.lastrowid

        logger.debug("batch_created", batch_id=batch_id)
        return HistoricalBatch(
            id=batch_id,
            start_block=start_block,
            end_block=end_block,
            date_from=date_from,
            date_to=date_to,
            created_at=now_ms,
            updated_at=now_ms,
        )

    async def get_batch(self, batch_id: int) -> HistoricalBatch | None:
        cursor = await self._database.db.execute(
            f"SELECT {_BATCH_COLUMNS} FROM historical_batches WHERE id = ?",
            (batch_id,),
        )
        row = await cursor.fetchone()
        return _row_to_batch(row) if row is not None else None

    async def set_batch_status(self, batch_id: int, status: BatchStatus) -> HistoricalBatch:
        """Move a batch to a new status, refusing transitions that go backwards."""
        async with self._write() as db:
            batch = await self._require_batch(db, batch_id)
            if not batch.status.can_transition_to(status):
                raise InvalidStatusTransition(
                    f"Batch {batch_id} cannot move from {batch.status.value} to {status.value}"
                )
            now_ms = _now_ms()
            await db.execute(
                "UPDATE historical_batches SET status = ?, updated_at = ? WHERE id = ?",
                (status.value, now_ms, batch_id),
            )
        batch.status = status
        batch.updated_at = now_ms
        return batch

    async def record_page(
        self,
        job: PageJob,
        transactions: list[PricedTransaction],
        totals: PageTotals,
        has_more: bool,
    ) -> HistoricalBatch | None:
        """Persist one processed page atomically.

        In a single transaction: inserts the transaction rows in order, adds
        totals to the batch aggregates, advances the batch status, and marks
        (batch_id, page) as processed. Returns None without writing anything
        if the page was already recorded by an earlier delivery.
        """
        async with self._write() as db:
            cursor = await db.execute(
                "SELECT 1 FROM processed_pages WHERE batch_id = ? AND page = ?",
                (job.batch_id, job.page),
            )
            if await cursor.fetchone() is not None:
                return None

            batch = await self._require_batch(db, job.batch_id)
            updated = totals.apply_to(batch, has_more)
            now_ms = _now_ms()
            updated.updated_at = now_ms

            if transactions:
                await db.executemany(
                    "INSERT INTO historical_transactions "
                    "(batch_id, transaction_hash, fee_in_eth, fee_in_usdt, created_at) "
                    "VALUES (?, ?, ?, ?, ?)",
                    [
                        (
                            job.batch_id,
                            tx.transaction_hash,
                            str(tx.fee_eth),
                            str(tx.fee_usdt),
                            now_ms,
                        )
                        for tx in transactions
                    ],
                )

            await db.execute(
                "UPDATE historical_batches SET status = ?, total_txns = ?, "
                "total_fee_in_eth = ?, total_fee_in_usdt = ?, updated_at = ? "
                "WHERE id = ?",
                (
                    updated.status.value,
                    updated.total_txns,
                    str(updated.total_fee_in_eth),
                    str(updated.total_fee_in_usdt),
                    now_ms,
                    job.batch_id,
                ),
            )
            await db.execute(
                "INSERT INTO processed_pages (batch_id, page, has_more, txns, processed_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (job.batch_id, job.page, 1 if has_more else 0, totals.txns, now_ms),
            )

        logger.debug(
            "page_recorded",
            batch_id=job.batch_id,
            page=job.page,
            inserted=len(transactions),
            status=updated.status.value,
        )
        return updated

    async def get_processed_page(self, batch_id: int, page: int) -> dict | None:
        """Return the processed-page record or None if the page has not been recorded."""
        cursor = await self._database.db.execute(
            "SELECT has_more, txns, processed_at FROM processed_pages "
            "WHERE batch_id = ? AND page = ?",
            (batch_id, page),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return {"has_more": bool(row[0]), "txns": row[1], "processed_at": row[2]}

    async def get_last_processed_page(self, batch_id: int) -> tuple[int, bool] | None:
        """Return (page, has_more) for the highest recorded page of a batch."""
        cursor = await self._database.db.execute(
            "SELECT page, has_more FROM processed_pages WHERE batch_id = ? "
            "ORDER BY page DESC LIMIT 1",
            (batch_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return row[0], bool(row[1])

    async def list_unfinished_batches(self) -> list[HistoricalBatch]:
        """Return PENDING and IN_PROGRESS batches, oldest first."""
        cursor = await self._database.db.execute(
            f"SELECT {_BATCH_COLUMNS} FROM historical_batches "
            "WHERE status IN (?, ?) ORDER BY id ASC",
            (BatchStatus.PENDING.value, BatchStatus.IN_PROGRESS.value),
        )
        rows = await cursor.fetchall()
        return [_row_to_batch(row) for row in rows]

    async def list_batch_transactions(
        self, batch_id: int, take: int, offset: int
    ) -> list[HistoricalTransaction]:
        """Return a batch's transactions ordered by id descending."""
        cursor = await self._database.db.execute(
            "SELECT id, batch_id, transaction_hash, fee_in_eth, fee_in_usdt, created_at "
            "FROM historical_transactions WHERE batch_id = ? "
            "ORDER BY id DESC LIMIT ? OFFSET ?",
            (batch_id, take, offset),
        )
        rows = await cursor.fetchall()
        return [
            HistoricalTransaction(
                id=row[0],
                batch_id=row[1],
                transaction_hash=row[2],
                fee_in_eth=Decimal(row[3]),
                fee_in_usdt=Decimal(row[4]),
                created_at=row[5],
            )
            for row in rows
        ]

    async def count_batch_transactions(self, batch_id: int) -> int:
        cursor = await self._database.db.execute(
            "SELECT COUNT(*) FROM historical_transactions WHERE batch_id = ?",
            (batch_id,),
        )
        return (await cursor.fetchone())[0]

    async def _require_batch(
        self, db: aiosqlite.Connection, batch_id: int
    ) -> HistoricalBatch:
        cursor = await db.execute(
            f"SELECT {_BATCH_COLUMNS} FROM historical_batches WHERE id = ?",
            (batch_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            raise NotFoundError(f"Historical transactions batch {batch_id} not found")
        return _row_to_batch(row)

    # ──────────────────────────────────────────────
    # Live transactions
    # ──────────────────────────────────────────────

    async def insert_live_transaction(
        self,
        transaction_hash: str,
        log_index: int,
        block_number: int,
        timestamp: int,
        sender: str,
        recipient: str,
        fee_in_eth: Decimal,
        fee_in_usdt: Decimal,
    ) -> LiveTransaction | None:
        """Insert a live swap transaction, ignoring an already-seen (hash, log_index).

        Returns the stored row, or None if it was a duplicate.
        """
        now_ms = _now_ms()
        async with self._write() as db:
            cursor = await db.execute(
                "INSERT OR IGNORE INTO live_transactions "
                "(transaction_hash, log_index, block_number, timestamp, sender, "
                "recipient, fee_in_eth, fee_in_usdt, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    transaction_hash,
                    log_index,
                    block_number,
                    timestamp,
                    sender,
                    recipient,
                    str(fee_in_eth),
                    str(fee_in_usdt),
                    now_ms,
                ),
            )
            if cursor.rowcount == 0:
                return None
            row_id = cursor.lastrowid

        return LiveTransaction(
            id=row_id,
            transaction_hash=transaction_hash,
            log_index=log_index,
            block_number=block_number,
            timestamp=timestamp,
            sender=sender,
            recipient=recipient,
            fee_in_eth=fee_in_eth,
            fee_in_usdt=fee_in_usdt,
            created_at=now_ms,
        )

    async def list_live_transactions(
        self,
        take: int,
        offset: int,
        max_id: int | None = None,
    ) -> list[LiveTransaction]:
        """Return live transactions ordered by id descending, optionally capped at max_id."""
        query = f"SELECT {_LIVE_COLUMNS} FROM live_transactions"
        params: list = []
        if max_id is not None:
            query += " WHERE id <= ?"
            params.append(max_id)
        query += " ORDER BY id DESC LIMIT ? OFFSET ?"
        params.extend([take, offset])

        cursor = await self._database.db.execute(query, params)
        rows = await cursor.fetchall()
        return [_row_to_live(row) for row in rows]

    async def count_live_transactions(self, max_id: int | None = None) -> int:
        query = "SELECT COUNT(*) FROM live_transactions"
        params: list = []
        if max_id is not None:
            query += " WHERE id <= ?"
            params.append(max_id)
        cursor = await self._database.db.execute(query, params)
        return (await cursor.fetchone())[0]

    # ──────────────────────────────────────────────
    # Summary
    # ──────────────────────────────────────────────

    async def get_summary(self) -> Summary | None:
        cursor = await self._database.db.execute(
            "SELECT id, total_txns, total_fee_eth, total_fee_usdt, updated_at "
            "FROM summary ORDER BY id LIMIT 1"
        )
        row = await cursor.fetchone()
        return _row_to_summary(row) if row is not None else None

    async def create_summary(
        self, total_txns: int, total_fee_eth: Decimal, total_fee_usdt: Decimal
    ) -> Summary:
        """Create the singleton summary row."""
        now_ms = _now_ms()
        async with self._write() as db:
            await db.execute(
                "INSERT INTO summary (id, total_txns, total_fee_eth, total_fee_usdt, updated_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (SUMMARY_ROW_ID, total_txns, str(total_fee_eth), str(total_fee_usdt), now_ms),
            )
        return Summary(
            id=SUMMARY_ROW_ID,
            total_txns=total_txns,
            total_fee_eth=total_fee_eth,
            total_fee_usdt=total_fee_usdt,
            updated_at=now_ms,
        )

    async def increment_summary(
        self,
        summary_id: int,
        txns: int,
        fee_eth: Decimal,
        fee_usdt: Decimal,
    ) -> Summary:
        """Atomically add to the summary totals and return the new row."""
        async with self._write() as db:
            cursor = await db.execute(
                "SELECT id, total_txns, total_fee_eth, total_fee_usdt, updated_at "
                "FROM summary WHERE id = ?",
                (summary_id,),
            )
            row = await cursor.fetchone()
            if row is None:
                raise NotFoundError(f"Summary {summary_id} not found")

            current = _row_to_summary(row)
            updated = Summary(
                id=summary_id,
                total_txns=current.total_txns + txns,
                total_fee_eth=current.total_fee_eth + fee_eth,
                total_fee_usdt=current.total_fee_usdt + fee_usdt,
                updated_at=_now_ms(),
            )
            await db.execute(
                "UPDATE summary SET total_txns = ?, total_fee_eth = ?, "
                "total_fee_usdt = ?, updated_at = ? WHERE id = ?",
                (
                    updated.total_txns,
                    str(updated.total_fee_eth),
                    str(updated.total_fee_usdt),
                    updated.updated_at,
                    summary_id,
                ),
            )
        return updated

    # ──────────────────────────────────────────────
    # ETH prices
    # ──────────────────────────────────────────────

    async def insert_eth_price(self, price: Decimal, timestamp: int) -> EthPrice:
        async with self._write() as db:
            cursor = await db.execute(
                "INSERT INTO eth_prices (price, timestamp) VALUES (?, ?)",
                (str(price), timestamp),
            )
            row_id = cursor.lastrowid
        return EthPrice(id=row_id, price=price, timestamp=timestamp)

    async def get_latest_eth_price(self) -> EthPrice | None:
        cursor = await self._database.db.execute(
            "SELECT id, price, timestamp FROM eth_prices "
            "ORDER BY timestamp DESC, id DESC LIMIT 1"
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return EthPrice(id=row[0], price=Decimal(row[1]), timestamp=row[2])
