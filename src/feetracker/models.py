"""Shared data models for the pool fee tracker.

CRITICAL: ETH and USDT amounts use Decimal. Wei-scale integers stay Python
ints (arbitrary precision) until they are scaled into ETH.
"""

from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum

from feetracker.exceptions import InvalidStatusTransition

PROCESS_HISTORICAL_TRANSACTIONS = "process-historical-transactions"


class BatchStatus(str, Enum):
    """Lifecycle of a historical ingestion batch."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (BatchStatus.COMPLETED, BatchStatus.FAILED)

    def can_transition_to(self, target: "BatchStatus") -> bool:
        """Return True if moving from this status to target keeps the lifecycle monotonic."""
        return target in _ALLOWED_TRANSITIONS[self]


_ALLOWED_TRANSITIONS: dict[BatchStatus, frozenset[BatchStatus]] = {
    BatchStatus.PENDING: frozenset(
        {BatchStatus.IN_PROGRESS, BatchStatus.COMPLETED, BatchStatus.FAILED}
    ),
    BatchStatus.IN_PROGRESS: frozenset(
        {BatchStatus.IN_PROGRESS, BatchStatus.COMPLETED, BatchStatus.FAILED}
    ),
    BatchStatus.COMPLETED: frozenset(),
    BatchStatus.FAILED: frozenset(),
}


class BlockDirection(str, Enum):
    """Which side of a timestamp the nearest block must be on."""

    BEFORE = "before"
    AFTER = "after"


@dataclass
class HistoricalBatch:
    """One historical ingestion job covering a date range."""

    id: int
    start_block: int
    end_block: int
    date_from: int  # Unix milliseconds
    date_to: int  # Unix milliseconds
    status: BatchStatus = BatchStatus.PENDING
    total_txns: int = 0
    total_fee_in_eth: Decimal = Decimal("0")
    total_fee_in_usdt: Decimal = Decimal("0")
    created_at: int = 0  # Unix milliseconds
    updated_at: int = 0  # Unix milliseconds


@dataclass
class HistoricalTransaction:
    """A priced transaction persisted under a batch."""

    id: int
    batch_id: int
    transaction_hash: str
    fee_in_eth: Decimal
    fee_in_usdt: Decimal
    created_at: int  # Unix milliseconds


@dataclass
class LiveTransaction:
    """A swap transaction captured from the live pool feed."""

    id: int
    transaction_hash: str
    log_index: int
    block_number: int
    timestamp: int  # block time, Unix milliseconds
    sender: str
    recipient: str
    fee_in_eth: Decimal
    fee_in_usdt: Decimal
    created_at: int  # Unix milliseconds


@dataclass
class Summary:
    """Singleton running aggregate over all live swap transactions."""

    id: int
    total_txns: int
    total_fee_eth: Decimal
    total_fee_usdt: Decimal
    updated_at: int  # Unix milliseconds


@dataclass
class EthPrice:
    """ETH price snapshot in USDT."""

    price: Decimal
    timestamp: int  # Unix milliseconds
    id: int | None = None


@dataclass(frozen=True)
class PageJob:
    """One queued unit of work: a single page of a batch's block range."""

    start_block: int
    end_block: int
    batch_id: int
    page: int

    def next_page(self) -> "PageJob":
        return replace(self, page=self.page + 1)

    def to_payload(self) -> dict:
        return {
            "startBlock": self.start_block,
            "endBlock": self.end_block,
            "batchId": self.batch_id,
            "page": self.page,
        }

    @classmethod
    def from_payload(cls, payload: dict) -> "PageJob":
        return cls(
            start_block=int(payload["startBlock"]),
            end_block=int(payload["endBlock"]),
            batch_id=int(payload["batchId"]),
            page=int(payload["page"]),
        )


@dataclass
class RawTransaction:
    """A transaction row as returned by the block explorer, numerics parsed."""

    hash: str
    gas_price: int  # wei
    gas_used: int
    block_number: int = 0


@dataclass
class FeeBreakdown:
    """Fee of one transaction.

    fee_eth is exact. fee_usdt comes from a float multiplication by the
    ETH price and is an approximate value.
    """

    fee_eth: Decimal
    fee_usdt: Decimal


@dataclass
class PricedTransaction:
    """A deduplicated page row with its fee, ready to be persisted."""

    transaction_hash: str
    fee_eth: Decimal
    fee_usdt: Decimal


@dataclass
class PageTotals:
    """Sums over one processed page, applied to a batch as an increment."""

    txns: int = 0
    fee_eth: Decimal = Decimal("0")
    fee_usdt: Decimal = Decimal("0")

    def apply_to(self, batch: HistoricalBatch, has_more: bool) -> HistoricalBatch:
        """Return batch with these totals added and its next lifecycle status.

        Raises InvalidStatusTransition if the batch is already terminal.
        """
        target = BatchStatus.IN_PROGRESS if has_more else BatchStatus.COMPLETED
        if not batch.status.can_transition_to(target):
            raise InvalidStatusTransition(
                f"Batch {batch.id} cannot move from {batch.status.value} to {target.value}"
            )
        return replace(
            batch,
            status=target,
            total_txns=batch.total_txns + self.txns,
            total_fee_in_eth=batch.total_fee_in_eth + self.fee_eth,
            total_fee_in_usdt=batch.total_fee_in_usdt + self.fee_usdt,
        )


@dataclass
class QueriedTransaction:
    """A transaction priced on demand by hash (not persisted)."""

    transaction_hash: str
    fee_in_eth: Decimal
    fee_in_usdt: Decimal


@dataclass
class Page:
    """A paged listing returned to API callers."""

    items: list = field(default_factory=list)
    total_pages: int = 0
    current_page: int = 1
