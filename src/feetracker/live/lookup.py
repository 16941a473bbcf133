"""Fee lookup for an arbitrary transaction hash (nothing is persisted)."""

from feetracker.chain.rpc_client import EthereumRpcClient, hex_to_int
from feetracker.exceptions import NotFoundError
from feetracker.logging import get_logger
from feetracker.models import QueriedTransaction
from feetracker.pricing.fee_calculator import FeeCalculator

logger = get_logger(__name__)


class TransactionLookup:
    """Prices a mined transaction by hash using its receipt's gasUsed."""

    def __init__(self, rpc: EthereumRpcClient, fee_calculator: FeeCalculator) -> None:
        self._rpc = rpc
        self._fee_calculator = fee_calculator

    async def find_transaction(self, tx_hash: str) -> QueriedTransaction:
        """Raises NotFoundError if the transaction or its gas fields are missing."""
        tx = await self._rpc.get_transaction(tx_hash)
        if not tx or not tx.get("hash") or not tx.get("gasPrice"):
            raise NotFoundError("The transaction with the given hash was not found")

        receipt = await self._rpc.get_transaction_receipt(tx_hash)
        gas_used_raw = (receipt or {}).get("gasUsed") or tx.get("gas")
        if not gas_used_raw:
            raise NotFoundError("The transaction with the given hash was not found")

        fee = await self._fee_calculator.calculate_fee(
            hex_to_int(tx["gasPrice"]), hex_to_int(gas_used_raw)
        )
        logger.debug("transaction_looked_up", tx_hash=tx["hash"], fee_eth=str(fee.fee_eth))
        return QueriedTransaction(
            transaction_hash=tx["hash"],
            fee_in_eth=fee.fee_eth,
            fee_in_usdt=fee.fee_usdt,
        )
