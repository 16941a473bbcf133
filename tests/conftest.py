"""Shared test fixtures for the pool fee tracker."""

from decimal import Decimal

import pytest

from feetracker.config import (
    AppSettings,
    DatabaseSettings,
    EtherscanSettings,
    LiveFeedSettings,
    PriceSettings,
    QueueSettings,
)
from feetracker.models import EthPrice


@pytest.fixture
def mock_settings(tmp_path) -> AppSettings:
    """Return AppSettings with test defaults (small pages, fast retries, temp DB)."""
    return AppSettings(
        log_level="DEBUG",
        etherscan=EtherscanSettings(
            api_key="test-api-key",  # type: ignore[arg-type]
            page_size=3,
        ),
        live=LiveFeedSettings(enabled=False, max_blocks_per_poll=10),
        price=PriceSettings(enabled=False),
        queue=QueueSettings(max_attempts=3, retry_base_delay=0.0),
        database=DatabaseSettings(path=str(tmp_path / "fees.db")),
    )


@pytest.fixture
def eth_price() -> EthPrice:
    """ETH at 2000 USDT."""
    return EthPrice(price=Decimal("2000"), timestamp=1_700_000_000_000, id=1)


@pytest.fixture
def explorer_row():
    """Factory for Etherscan tokentx rows as returned by the API (numbers as strings)."""

    def _make(
        tx_hash: str,
        gas_price: int = 1_000_000_000,
        gas_used: int = 21_000,
        block_number: int = 100,
    ) -> dict:
        return {
            "hash": tx_hash,
            "blockNumber": str(block_number),
            "gasPrice": str(gas_price),
            "gasUsed": str(gas_used),
            "gas": str(gas_used * 2),
        }

    return _make
