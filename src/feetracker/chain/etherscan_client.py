"""Etherscan block explorer client implementation via aiohttp.

Wraps the Etherscan HTTP API with a shared aiohttp session, per-request
timeout, and translation of every transport or API-level failure into
UpstreamError.
"""

import aiohttp

from feetracker.chain.client import BlockExplorerClient
from feetracker.config import EtherscanSettings
from feetracker.exceptions import UpstreamError
from feetracker.logging import get_logger
from feetracker.models import BlockDirection

logger = get_logger(__name__)

# Etherscan answers an empty account query with status "0" and this message
_NO_TRANSACTIONS_MESSAGE = "No transactions found"


class EtherscanClient(BlockExplorerClient):
    """Concrete block explorer client for the Etherscan API."""

    def __init__(
        self,
        settings: EtherscanSettings,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._settings = settings
        self._session = session
        self._owns_session = session is None

    async def connect(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._settings.timeout_seconds)
            )
        logger.info("etherscan_client_ready", base_url=self._settings.base_url)

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    async def get_block_number_by_timestamp(
        self, timestamp_s: int, direction: BlockDirection
    ) -> str:
        data = await self._get(
            {
                "module": "block",
                "action": "getblocknobytime",
                "timestamp": str(timestamp_s),
                "closest": direction.value,
            }
        )
        result = data.get("result")
        if data.get("status") != "1" or not isinstance(result, str):
            raise UpstreamError(
                f"Etherscan getblocknobytime failed: {data.get('message')} ({result})"
            )
        return result

    async def fetch_address_transactions(
        self,
        address: str,
        page: int,
        page_size: int,
        start_block: int,
        end_block: int,
    ) -> list[dict]:
        data = await self._get(
            {
                "module": "account",
                "action": "tokentx",
                "address": address,
                "page": str(page),
                "offset": str(page_size),
                "startblock": str(start_block),
                "endblock": str(end_block),
                "sort": "desc",
            }
        )
        result = data.get("result")
        if data.get("status") == "1" and isinstance(result, list):
            return result
        if isinstance(result, list) and data.get("message") == _NO_TRANSACTIONS_MESSAGE:
            return []
        raise UpstreamError(
            f"Etherscan tokentx failed: {data.get('message')} ({result})"
        )

    async def _get(self, params: dict[str, str]) -> dict:
        """Issue a GET against the API, returning the decoded JSON body."""
        if self._session is None:
            raise RuntimeError("EtherscanClient not connected. Call connect() first.")

        query = {
            "chainid": str(self._settings.chain_id),
            **params,
            "apikey": self._settings.api_key.get_secret_value(),
        }
        try:
            async with self._session.get(self._settings.base_url, params=query) as resp:
                if resp.status != 200:
                    raise UpstreamError(
                        f"Etherscan HTTP {resp.status} for {params.get('action')}"
                    )
                data = await resp.json(content_type=None)
        except UpstreamError:
            raise
        except (aiohttp.ClientError, TimeoutError, ValueError) as e:
            logger.warning(
                "etherscan_request_failed",
                action=params.get("action"),
                error=str(e),
            )
            raise UpstreamError(f"Etherscan request failed: {e}") from e

        if not isinstance(data, dict):
            raise UpstreamError("Etherscan returned a non-object response")
        return data
