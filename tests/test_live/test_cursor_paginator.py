"""Tests for CursorPaginator's frozen-cursor paging over live transactions."""

from decimal import Decimal

import pytest

from feetracker.data.database import FeeDatabase
from feetracker.data.store import FeeStore
from feetracker.exceptions import ValidationError
from feetracker.live.paginator import CursorPaginator, parse_cursor


async def _insert(store: FeeStore, count: int, start: int = 0) -> None:
    for i in range(start, start + count):
        await store.insert_live_transaction(
            transaction_hash=f"0x{i:04x}",
            log_index=0,
            block_number=i,
            timestamp=i * 12_000,
            sender="0xsender",
            recipient="0xrecipient",
            fee_in_eth=Decimal("0.001"),
            fee_in_usdt=Decimal("2"),
        )


class TestParseCursor:
    def test_absent(self) -> None:
        assert parse_cursor(None) is None
        assert parse_cursor("") is None

    def test_numeric_string(self) -> None:
        assert parse_cursor("100") == 100

    def test_garbage_rejected(self) -> None:
        with pytest.raises(ValidationError):
            parse_cursor("abc")


class TestList:
    @pytest.mark.asyncio
    async def test_without_cursor_newest_first(self, tmp_path) -> None:
        async with FeeDatabase(str(tmp_path / "fees.db")) as database:
            store = FeeStore(database)
            await _insert(store, 25)

            page = await CursorPaginator(store).list(take=10)

            assert [tx.id for tx in page.items] == list(range(25, 15, -1))
            assert page.total_pages == 3
            assert page.current_page == 1

    @pytest.mark.asyncio
    async def test_cursor_restricts_to_lower_ids(self, tmp_path) -> None:
        async with FeeDatabase(str(tmp_path / "fees.db")) as database:
            store = FeeStore(database)
            await _insert(store, 120)

            page = await CursorPaginator(store).list(cursor="100", offset=0, take=10)

            assert [tx.id for tx in page.items] == list(range(100, 90, -1))
            assert page.total_pages == 10

    @pytest.mark.asyncio
    async def test_frozen_cursor_ignores_later_inserts(self, tmp_path) -> None:
        async with FeeDatabase(str(tmp_path / "fees.db")) as database:
            store = FeeStore(database)
            paginator = CursorPaginator(store)
            await _insert(store, 30)

            first = await paginator.list(take=10)
            cursor = str(first.items[0].id)
            before = await paginator.list(cursor=cursor, offset=10, take=10)

            await _insert(store, 5, start=30)
            after = await paginator.list(cursor=cursor, offset=10, take=10)

            assert [tx.id for tx in after.items] == [tx.id for tx in before.items]
            assert after.total_pages == before.total_pages == 3
            assert after.current_page == 2

    @pytest.mark.asyncio
    async def test_empty_table(self, tmp_path) -> None:
        async with FeeDatabase(str(tmp_path / "fees.db")) as database:
            page = await CursorPaginator(FeeStore(database)).list()

            assert page.items == []
            assert page.total_pages == 0
            assert page.current_page == 1

    @pytest.mark.asyncio
    async def test_invalid_cursor_rejected(self, tmp_path) -> None:
        async with FeeDatabase(str(tmp_path / "fees.db")) as database:
            with pytest.raises(ValidationError):
                await CursorPaginator(FeeStore(database)).list(cursor="latest")
