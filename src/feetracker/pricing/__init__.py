"""Pricing layer -- ETH/USDT price feed and transaction fee calculation."""

from feetracker.pricing.fee_calculator import FeeCalculator, to_usdt, wei_to_eth
from feetracker.pricing.price_service import EthPriceService

__all__ = ["EthPriceService", "FeeCalculator", "to_usdt", "wei_to_eth"]
