"""ETH/USDT price feed -- polls an exchange ticker via ccxt and caches the latest price.

Each poll persists an EthPrice snapshot and refreshes a short-TTL in-memory
cache. Readers go cache -> latest stored snapshot -> NotFoundError. Poll
failures are logged and the loop keeps running.
"""

import asyncio
import time
from decimal import Decimal

import ccxt.async_support as ccxt_async

from feetracker.config import PriceSettings
from feetracker.data.store import FeeStore
from feetracker.exceptions import NotFoundError, UpstreamError
from feetracker.logging import get_logger
from feetracker.models import EthPrice

logger = get_logger(__name__)


class EthPriceService:
    """Polls, persists and serves the latest ETH price in USDT.

    Uses asyncio.Lock for safe concurrent cache reads/writes from the poll
    loop and from fee calculations.
    """

    def __init__(
        self,
        store: FeeStore,
        settings: PriceSettings,
        exchange: ccxt_async.Exchange | None = None,
    ) -> None:
        self._store = store
        self._settings = settings
        if exchange is None:
            exchange_cls = getattr(ccxt_async, settings.exchange_id)
            exchange = exchange_cls(
                {"enableRateLimit": True, "timeout": settings.timeout_ms}
            )
        self._exchange = exchange
        self._cached: EthPrice | None = None
        self._cached_at: float = 0.0
        self._lock = asyncio.Lock()
        self._running = False
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]

    async def start(self) -> None:
        """Begin polling the price in the background."""
        if self._running:
            logger.warning("price_poller_already_running")
            return
        self._running = True
        self._task = asyncio.create_task(self._poll_loop())
        logger.info(
            "price_poller_started",
            exchange=self._settings.exchange_id,
            symbol=self._settings.symbol,
            poll_interval=self._settings.poll_interval,
        )

    async def stop(self) -> None:
        """Stop the poller gracefully."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("price_poller_stopped")

    async def close(self) -> None:
        """Release the ccxt exchange session (CRITICAL for ccxt async)."""
        await self._exchange.close()

    async def _poll_loop(self) -> None:
        while self._running:
            try:
                await self.fetch_and_save()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.warning("price_poll_error", exc_info=True)
            if self._running:
                await asyncio.sleep(self._settings.poll_interval)

    async def fetch_and_save(self) -> EthPrice:
        """Fetch the current ticker, persist a snapshot and refresh the cache."""
        try:
            ticker = await self._exchange.fetch_ticker(self._settings.symbol)
        except ccxt_async.BaseError as e:
            raise UpstreamError(f"Price fetch failed: {e}") from e

        last = ticker.get("last")
        if last is None:
            raise UpstreamError(f"Ticker for {self._settings.symbol} has no last price")

        price = Decimal(str(last))
        timestamp = ticker.get("timestamp") or int(time.time() * 1000)
        snapshot = await self._store.insert_eth_price(price, int(timestamp))

        async with self._lock:
            self._cached = snapshot
            self._cached_at = time.monotonic()

        logger.debug("eth_price_saved", price=str(price))
        return snapshot

    async def get_latest_price(self) -> EthPrice:
        """Return the latest known ETH price.

        Raises NotFoundError if no price has ever been recorded.
        """
        async with self._lock:
            if (
                self._cached is not None
                and time.monotonic() - self._cached_at < self._settings.cache_ttl_seconds
            ):
                return self._cached

        latest = await self._store.get_latest_eth_price()
        if latest is None:
            raise NotFoundError("No ETH price data available")

        async with self._lock:
            self._cached = latest
            self._cached_at = time.monotonic()
        return latest
