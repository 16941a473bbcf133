"""Live path -- swap feed, running summary, cursor pagination and hash lookup."""

from feetracker.live.lookup import TransactionLookup
from feetracker.live.paginator import CursorPaginator
from feetracker.live.summary import RealtimeSummaryUpdater
from feetracker.live.swap_listener import SWAP_TOPIC, SwapEventHandler, SwapListener

__all__ = [
    "SWAP_TOPIC",
    "CursorPaginator",
    "RealtimeSummaryUpdater",
    "SwapEventHandler",
    "SwapListener",
    "TransactionLookup",
]
