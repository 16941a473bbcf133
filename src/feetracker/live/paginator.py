"""Frozen-cursor pagination over live transactions.

A client reads page 1 without a cursor, takes the id of its first item as
the cursor, and resends that cursor for every later page. Rows inserted
after page 1 get larger ids and stay out of the session, so pages never
shift under the reader.
"""

import math

from feetracker.data.store import FeeStore
from feetracker.exceptions import ValidationError
from feetracker.historical.batch_manager import DEFAULT_TAKE, validate_page_window
from feetracker.models import Page


def parse_cursor(cursor: str | int | None) -> int | None:
    if cursor is None or cursor == "":
        return None
    try:
        return int(cursor)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"cursor must be an integer id, got {cursor!r}") from e


class CursorPaginator:
    """Serves id-descending pages of live transactions bounded by an optional cursor."""

    def __init__(self, store: FeeStore) -> None:
        self._store = store

    async def list(
        self,
        cursor: str | int | None = None,
        offset: int = 0,
        take: int = DEFAULT_TAKE,
    ) -> Page:
        validate_page_window(take, offset)
        max_id = parse_cursor(cursor)

        total = await self._store.count_live_transactions(max_id=max_id)
        items = await self._store.list_live_transactions(take, offset, max_id=max_id)

        return Page(
            items=items,
            total_pages=math.ceil(total / take),
            current_page=offset // take + 1,
        )
