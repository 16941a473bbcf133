"""Ethereum JSON-RPC client via aiohttp.

Used by the live swap feed and the by-hash transaction lookup. Hex
quantities are left as returned; callers parse what they need.
"""

import itertools
from typing import Any

import aiohttp

from feetracker.config import RpcSettings
from feetracker.exceptions import UpstreamError
from feetracker.logging import get_logger

logger = get_logger(__name__)


def hex_to_int(value: str | int | None) -> int:
    """Parse a JSON-RPC hex quantity ("0x1a") into an int.

    Raises UpstreamError on a missing or malformed value.
    """
    if isinstance(value, int):
        return value
    if not value:
        raise UpstreamError("Missing hex quantity in RPC response")
    try:
        return int(value, 16)
    except ValueError as e:
        raise UpstreamError(f"Malformed hex quantity: {value!r}") from e


class EthereumRpcClient:
    """Minimal async Ethereum JSON-RPC client."""

    def __init__(
        self,
        settings: RpcSettings,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._settings = settings
        self._session = session
        self._owns_session = session is None
        self._ids = itertools.count(1)

    async def connect(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._settings.timeout_seconds)
            )

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    async def block_number(self) -> int:
        return hex_to_int(await self._rpc("eth_blockNumber", []))

    async def get_logs(
        self,
        address: str,
        topics: list[str],
        from_block: int,
        to_block: int,
    ) -> list[dict]:
        result = await self._rpc(
            "eth_getLogs",
            [
                {
                    "address": address,
                    "topics": topics,
                    "fromBlock": hex(from_block),
                    "toBlock": hex(to_block),
                }
            ],
        )
        return result or []

    async def get_transaction(self, tx_hash: str) -> dict | None:
        return await self._rpc("eth_getTransactionByHash", [tx_hash])

    async def get_transaction_receipt(self, tx_hash: str) -> dict | None:
        return await self._rpc("eth_getTransactionReceipt", [tx_hash])

    async def get_block(self, block_number: int) -> dict | None:
        return await self._rpc("eth_getBlockByNumber", [hex(block_number), False])

    async def _rpc(self, method: str, params: list[Any]) -> Any:
        if self._session is None:
            raise RuntimeError("EthereumRpcClient not connected. Call connect() first.")

        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        try:
            async with self._session.post(self._settings.rpc_url, json=payload) as resp:
                if resp.status != 200:
                    raise UpstreamError(f"RPC HTTP {resp.status} for {method}")
                data = await resp.json(content_type=None)
        except UpstreamError:
            raise
        except (aiohttp.ClientError, TimeoutError, ValueError) as e:
            logger.warning("rpc_request_failed", method=method, error=str(e))
            raise UpstreamError(f"RPC {method} failed: {e}") from e

        if "error" in data:
            raise UpstreamError(f"RPC error for {method}: {data['error']}")
        return data.get("result")
