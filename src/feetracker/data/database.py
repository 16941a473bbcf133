"""Async SQLite database manager for fee tracker persistence.

Uses aiosqlite for non-blocking database operations with WAL mode
for concurrent read/write performance.
"""

import os
from typing import Self

import aiosqlite

from feetracker.logging import get_logger

logger = get_logger(__name__)

SCHEMA_VERSION = 1

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS historical_batches (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    start_block INTEGER NOT NULL,
    end_block INTEGER NOT NULL,
    date_from INTEGER NOT NULL,
    date_to INTEGER NOT NULL,
    status TEXT NOT NULL DEFAULT 'PENDING',
    total_txns INTEGER NOT NULL DEFAULT 0,
    total_fee_in_eth TEXT NOT NULL DEFAULT '0',
    total_fee_in_usdt TEXT NOT NULL DEFAULT '0',
    created_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS historical_transactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    batch_id INTEGER NOT NULL REFERENCES historical_batches(id),
    transaction_hash TEXT NOT NULL,
    fee_in_eth TEXT NOT NULL,
    fee_in_usdt TEXT NOT NULL,
    created_at INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS processed_pages (
    batch_id INTEGER NOT NULL REFERENCES historical_batches(id),
    page INTEGER NOT NULL,
    has_more INTEGER NOT NULL,
    txns INTEGER NOT NULL,
    processed_at INTEGER NOT NULL,
    PRIMARY KEY (batch_id, page)
);

CREATE TABLE IF NOT EXISTS live_transactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    transaction_hash TEXT NOT NULL,
    log_index INTEGER NOT NULL,
    block_number INTEGER NOT NULL,
    timestamp INTEGER NOT NULL,
    sender TEXT NOT NULL,
    recipient TEXT NOT NULL,
    fee_in_eth TEXT NOT NULL,
    fee_in_usdt TEXT NOT NULL,
    created_at INTEGER NOT NULL,
    UNIQUE (transaction_hash, log_index)
);

CREATE TABLE IF NOT EXISTS summary (
    id INTEGER PRIMARY KEY,
    total_txns INTEGER NOT NULL,
    total_fee_eth TEXT NOT NULL,
    total_fee_usdt TEXT NOT NULL,
    updated_at INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS eth_prices (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    price TEXT NOT NULL,
    timestamp INTEGER NOT NULL
);
"""

_CREATE_INDEXES_SQL = """
CREATE INDEX IF NOT EXISTS idx_historical_tx_batch
    ON historical_transactions(batch_id, id);

CREATE INDEX IF NOT EXISTS idx_eth_prices_ts
    ON eth_prices(timestamp);
"""


class FeeDatabase:
    """Async SQLite connection manager for the fee tracker.

    Manages database lifecycle including schema creation, WAL mode
    configuration, and clean resource cleanup.

    Usage:
        async with FeeDatabase("data/fees.db") as database:
            store = FeeStore(database)
    """

    def __init__(self, db_path: str = "data/fees.db") -> None:
        self._db_path = db_path
        self._connection: aiosqlite.Connection | None = None

    @property
    def db(self) -> aiosqlite.Connection:
        """Access the raw aiosqlite connection.

        Raises RuntimeError if not connected.
        """
        if self._connection is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._connection

    async def connect(self) -> None:
        """Open database connection, configure pragmas, and create schema."""
        db_dir = os.path.dirname(self._db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

        self._connection = await aiosqlite.connect(self._db_path)

        await self._connection.execute("PRAGMA journal_mode=WAL")
        await self._connection.execute("PRAGMA synchronous=NORMAL")
        await self._connection.execute("PRAGMA foreign_keys=ON")

        await self._create_tables()
        await self._ensure_schema_version()

        logger.info("fee_db_connected", db_path=self._db_path)

    async def close(self) -> None:
        """Close the database connection if open."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.info("fee_db_closed", db_path=self._db_path)

    async def _create_tables(self) -> None:
        assert self._connection is not None
        await self._connection.executescript(_CREATE_TABLES_SQL)
        await self._connection.executescript(_CREATE_INDEXES_SQL)
        await self._connection.commit()

    async def _ensure_schema_version(self) -> None:
        assert self._connection is not None
        cursor = await self._connection.execute(
            "SELECT version FROM schema_version LIMIT 1"
        )
        row = await cursor.fetchone()
        if row is None:
            await self._connection.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            await self._connection.commit()
            logger.info("schema_version_set", version=SCHEMA_VERSION)

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.close()
