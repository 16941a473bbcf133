"""Historical batch ingestion -- block range resolution, batch lifecycle, page pipeline."""

from feetracker.historical.batch_manager import BatchLifecycleManager
from feetracker.historical.block_resolver import BlockRangeResolver
from feetracker.historical.pipeline import (
    FetchedPage,
    JobContinuation,
    PageFetcher,
    PageProcessor,
    accumulate_page,
    dedupe_page,
)

__all__ = [
    "BatchLifecycleManager",
    "BlockRangeResolver",
    "FetchedPage",
    "JobContinuation",
    "PageFetcher",
    "PageProcessor",
    "accumulate_page",
    "dedupe_page",
]
