"""Chain access layer -- Etherscan explorer and Ethereum JSON-RPC via aiohttp."""

from feetracker.chain.client import BlockExplorerClient
from feetracker.chain.etherscan_client import EtherscanClient
from feetracker.chain.rpc_client import EthereumRpcClient, hex_to_int

__all__ = ["BlockExplorerClient", "EtherscanClient", "EthereumRpcClient", "hex_to_int"]
