"""Tests for the JSON API: serialization, routing order and error mapping.

Services on app.state are mocks; requests go through FastAPI's TestClient.
"""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from feetracker.api.app import create_app
from feetracker.exceptions import NotFoundError, UpstreamError, ValidationError
from feetracker.models import (
    BatchStatus,
    EthPrice,
    HistoricalBatch,
    HistoricalTransaction,
    LiveTransaction,
    Page,
    QueriedTransaction,
    Summary,
)
from feetracker.pricing.fee_calculator import wei_to_eth

BATCH = HistoricalBatch(
    id=5,
    start_block=100,
    end_block=200,
    date_from=1_000,
    date_to=2_000,
    status=BatchStatus.COMPLETED,
    total_txns=2,
    total_fee_in_eth=Decimal("0.000042"),
    total_fee_in_usdt=Decimal("0.084"),
    created_at=3_000,
    updated_at=4_000,
)


@pytest.fixture
def services() -> dict[str, AsyncMock]:
    return {
        "batch_manager": AsyncMock(),
        "paginator": AsyncMock(),
        "summary_updater": AsyncMock(),
        "transaction_lookup": AsyncMock(),
        "price_service": AsyncMock(),
    }


@pytest.fixture
def client(services: dict[str, AsyncMock]) -> TestClient:
    app = create_app()
    for name, service in services.items():
        setattr(app.state, name, service)
    return TestClient(app)


class TestHistoricalRoutes:
    def test_create_batch(self, client: TestClient, services: dict) -> None:
        services["batch_manager"].create_batch.return_value = BATCH

        resp = client.get("/api/v1/transactions/history?dateFrom=1000&dateTo=2000")

        assert resp.status_code == 200
        body = resp.json()
        assert body["id"] == 5
        assert body["status"] == "COMPLETED"
        assert body["startBlock"] == 100
        assert body["totalFeeInEth"] == "0.000042"
        services["batch_manager"].create_batch.assert_awaited_once_with(1000, 2000)

    def test_create_batch_requires_dates(self, client: TestClient) -> None:
        resp = client.get("/api/v1/transactions/history?dateFrom=1000")
        assert resp.status_code == 400

    def test_invalid_range_is_400(self, client: TestClient, services: dict) -> None:
        services["batch_manager"].create_batch.side_effect = ValidationError(
            "The date range is invalid: dateFrom must be smaller than dateTo"
        )

        resp = client.get("/api/v1/transactions/history?dateFrom=2000&dateTo=1000")

        assert resp.status_code == 400
        assert "dateFrom must be smaller" in resp.json()["detail"]

    def test_explorer_failure_is_502(self, client: TestClient, services: dict) -> None:
        services["batch_manager"].create_batch.side_effect = UpstreamError("HTTP 503")

        resp = client.get("/api/v1/transactions/history?dateFrom=1000&dateTo=2000")

        assert resp.status_code == 502

    def test_batch_info(self, client: TestClient, services: dict) -> None:
        services["batch_manager"].get_batch.return_value = BATCH

        resp = client.get("/api/v1/transactions/history/5/info")

        assert resp.status_code == 200
        assert resp.json()["totalTxns"] == 2
        services["batch_manager"].get_batch.assert_awaited_once_with(5)

    def test_unknown_batch_is_404(self, client: TestClient, services: dict) -> None:
        services["batch_manager"].get_batch.side_effect = NotFoundError(
            "Failed to find historical transactions batch by 9"
        )

        resp = client.get("/api/v1/transactions/history/9/info")

        assert resp.status_code == 404
        assert resp.json() == {"detail": "Failed to find historical transactions batch by 9"}

    def test_batch_transactions(self, client: TestClient, services: dict) -> None:
        tx = HistoricalTransaction(
            id=1,
            batch_id=5,
            transaction_hash="0xaa",
            fee_in_eth=Decimal("0.000021"),
            fee_in_usdt=Decimal("0.042"),
            created_at=3_000,
        )
        services["batch_manager"].list_batch_transactions.return_value = Page(
            items=[tx], total_pages=1, current_page=1
        )

        resp = client.get("/api/v1/transactions/history/5?take=10&offset=0")

        assert resp.status_code == 200
        body = resp.json()
        assert body["totalPages"] == 1
        assert body["currentPage"] == 1
        assert body["transactions"][0]["transactionHash"] == "0xaa"
        assert body["transactions"][0]["feeInUsdt"] == "0.042"
        services["batch_manager"].list_batch_transactions.assert_awaited_once_with(
            5, take=10, offset=0
        )

    def test_take_out_of_range_is_400(self, client: TestClient) -> None:
        resp = client.get("/api/v1/transactions/history/5?take=100")
        assert resp.status_code == 400


class TestLiveRoutes:
    def test_list_with_cursor(self, client: TestClient, services: dict) -> None:
        tx = LiveTransaction(
            id=100,
            transaction_hash="0xbb",
            log_index=1,
            block_number=19_000_000,
            timestamp=1_700_000_000_000,
            sender="0x01",
            recipient="0x02",
            fee_in_eth=Decimal("0.01"),
            fee_in_usdt=Decimal("20"),
            created_at=1,
        )
        services["paginator"].list.return_value = Page(
            items=[tx], total_pages=10, current_page=1
        )

        resp = client.get("/api/v1/transactions?cursor=100&offset=0&take=10")

        assert resp.status_code == 200
        body = resp.json()
        assert body["transactions"][0]["id"] == 100
        assert body["transactions"][0]["feeInEth"] == "0.01"
        assert body["totalPages"] == 10
        services["paginator"].list.assert_awaited_once_with(cursor="100", offset=0, take=10)

    def test_summary(self, client: TestClient, services: dict) -> None:
        services["summary_updater"].get_summary.return_value = Summary(
            id=1,
            total_txns=3,
            total_fee_eth=Decimal("0.03"),
            total_fee_usdt=Decimal("60"),
            updated_at=1,
        )

        resp = client.get("/api/v1/transactions/summary")

        assert resp.status_code == 200
        assert resp.json()["totalTxns"] == 3
        assert resp.json()["totalFeeETH"] == "0.03"
        services["transaction_lookup"].find_transaction.assert_not_awaited()

    def test_summary_absent_is_null(self, client: TestClient, services: dict) -> None:
        services["summary_updater"].get_summary.return_value = None

        resp = client.get("/api/v1/transactions/summary")

        assert resp.status_code == 200
        assert resp.json() is None

    def test_lookup_by_hash(self, client: TestClient, services: dict) -> None:
        services["transaction_lookup"].find_transaction.return_value = QueriedTransaction(
            transaction_hash="0xcc",
            fee_in_eth=Decimal("0.0001"),
            fee_in_usdt=Decimal("0.2"),
        )

        resp = client.get("/api/v1/transactions/0xcc")

        assert resp.status_code == 200
        assert resp.json() == {
            "transactionHash": "0xcc",
            "feeInEth": "0.0001",
            "feeInUsdt": "0.2",
        }

    def test_amounts_never_use_exponent_notation(
        self, client: TestClient, services: dict
    ) -> None:
        services["transaction_lookup"].find_transaction.return_value = QueriedTransaction(
            transaction_hash="0xcc",
            fee_in_eth=wei_to_eth(0),
            fee_in_usdt=Decimal(repr(1e-07)),
        )

        resp = client.get("/api/v1/transactions/0xcc")

        body = resp.json()
        assert body["feeInEth"] == "0.000000000000000000"
        assert body["feeInUsdt"] == "0.0000001"

    def test_lookup_unknown_hash_is_404(self, client: TestClient, services: dict) -> None:
        services["transaction_lookup"].find_transaction.side_effect = NotFoundError(
            "The transaction with the given hash was not found"
        )

        resp = client.get("/api/v1/transactions/0xdead")

        assert resp.status_code == 404


class TestEthPriceRoute:
    def test_latest_price(self, client: TestClient, services: dict) -> None:
        services["price_service"].get_latest_price.return_value = EthPrice(
            price=Decimal("2500.5"), timestamp=1_700_000_000_000, id=3
        )

        resp = client.get("/api/v1/eth-price")

        assert resp.status_code == 200
        assert resp.json() == {"id": 3, "price": "2500.5", "timestamp": 1_700_000_000_000}

    def test_no_price_is_404(self, client: TestClient, services: dict) -> None:
        services["price_service"].get_latest_price.side_effect = NotFoundError(
            "No ETH price data available"
        )

        resp = client.get("/api/v1/eth-price")

        assert resp.status_code == 404
