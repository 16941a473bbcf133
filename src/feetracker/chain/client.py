"""Abstract block explorer client interface.

Defines the contract for block explorer implementations. The historical
pipeline depends only on this interface, keeping Etherscan-specific
details isolated in the concrete implementation.
"""

from abc import ABC, abstractmethod

from feetracker.models import BlockDirection


class BlockExplorerClient(ABC):
    """Abstract base class for block explorer API clients."""

    @abstractmethod
    async def connect(self) -> None:
        """Open the underlying HTTP session."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying HTTP session."""
        ...

    @abstractmethod
    async def get_block_number_by_timestamp(
        self, timestamp_s: int, direction: BlockDirection
    ) -> str:
        """Return the raw nearest-block result for a Unix timestamp in seconds.

        Parsing is left to the caller; the raw value may be non-numeric.
        """
        ...

    @abstractmethod
    async def fetch_address_transactions(
        self,
        address: str,
        page: int,
        page_size: int,
        start_block: int,
        end_block: int,
    ) -> list[dict]:
        """Fetch one page of transfers involving address within a block range.

        Returns raw explorer rows (string-valued fields: hash, gasPrice,
        gas, gasUsed, blockNumber, ...), newest first.

        Pagination is NOT handled here -- callers are responsible for
        iterating pages.
        """
        ...
