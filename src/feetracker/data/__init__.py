"""Persistence layer.

Provides SQLite database management and a typed read/write store for
batches, historical and live transactions, the live summary, and ETH prices.
"""

from feetracker.data.database import FeeDatabase
from feetracker.data.store import FeeStore

__all__ = [
    "FeeDatabase",
    "FeeStore",
]
