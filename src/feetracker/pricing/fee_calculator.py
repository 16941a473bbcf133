"""Transaction fee computation in ETH and USDT.

Wei amounts are multiplied as Python ints and scaled into ETH through the
Decimal string constructor, which is exact regardless of the active
context precision. The USDT value is a float product of the ETH fee and
the ETH price, so it is approximate; ETH amounts are never approximated.
"""

from decimal import Decimal

from feetracker.models import FeeBreakdown
from feetracker.pricing.price_service import EthPriceService

WEI_DECIMALS = 18


def wei_to_eth(wei: int) -> Decimal:
    """Convert an integer wei amount to an exact ETH Decimal."""
    return Decimal(f"{int(wei)}E-{WEI_DECIMALS}")


class FeeCalculator:
    """Prices transactions using gas price, gas used and the ETH/USDT price.

    Args:
        price_service: Source of the latest ETH price when a caller does not
            supply one.
    """

    def __init__(self, price_service: EthPriceService) -> None:
        self._price_service = price_service

    async def calculate_fee(
        self,
        gas_price_wei: int,
        gas_used: int,
        eth_price_usdt: Decimal | None = None,
    ) -> FeeBreakdown:
        """Calculate the fee of one transaction.

        Args:
            gas_price_wei: Gas price in wei (may exceed 2**53).
            gas_used: Gas units consumed.
            eth_price_usdt: ETH price to use; fetched from the price service
                when omitted.

        Returns:
            FeeBreakdown with the exact ETH fee and approximate USDT fee.
        """
        if eth_price_usdt is None:
            eth_price_usdt = (await self._price_service.get_latest_price()).price

        fee_eth = wei_to_eth(int(gas_price_wei) * int(gas_used))
        return FeeBreakdown(fee_eth=fee_eth, fee_usdt=to_usdt(fee_eth, eth_price_usdt))


def to_usdt(fee_eth: Decimal, eth_price_usdt: Decimal) -> Decimal:
    """Approximate USDT value of an ETH amount (float multiplication)."""
    return Decimal(repr(float(fee_eth) * float(eth_price_usdt)))
