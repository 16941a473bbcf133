"""Timestamp to block number resolution via the block explorer."""

from feetracker.chain.client import BlockExplorerClient
from feetracker.exceptions import UpstreamError
from feetracker.logging import get_logger
from feetracker.models import BlockDirection

logger = get_logger(__name__)


class BlockRangeResolver:
    """Maps a millisecond timestamp to the nearest block before or after it.

    The lower bound of a date range is resolved with AFTER and the upper bound
    with BEFORE, so both endpoints stay inside the requested interval.
    """

    def __init__(self, explorer: BlockExplorerClient) -> None:
        self._explorer = explorer

    async def resolve(self, timestamp_ms: int, direction: BlockDirection) -> int:
        """Return the nearest block number for timestamp_ms in the given direction.

        Raises UpstreamError if the explorer call fails or its result is not
        an integer.
        """
        timestamp_s = int(timestamp_ms) // 1000
        raw = await self._explorer.get_block_number_by_timestamp(timestamp_s, direction)
        try:
            block_number = int(str(raw).strip())
        except ValueError as e:
            raise UpstreamError(f"Unparseable block number: {raw!r}") from e

        logger.debug(
            "block_resolved",
            timestamp_s=timestamp_s,
            direction=direction.value,
            block_number=block_number,
        )
        return block_number
