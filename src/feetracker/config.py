"""Configuration system using pydantic-settings with environment variable loading."""

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

USDC_ETH_POOL_ADDRESS = "0x88e6a0c2ddd26feeb64f039a2c41296fcb3f5640"


class EtherscanSettings(BaseSettings):
    """Block explorer (Etherscan) connection settings."""

    model_config = SettingsConfigDict(env_prefix="ETHERSCAN_")

    api_key: SecretStr = SecretStr("")
    base_url: str = "https://api.etherscan.io/v2/api"
    chain_id: int = 1
    timeout_seconds: float = 10.0
    page_size: int = 100  # rows per historical page (one lookahead row is added)


class RpcSettings(BaseSettings):
    """Ethereum JSON-RPC endpoint settings."""

    model_config = SettingsConfigDict(env_prefix="ETHEREUM_")

    rpc_url: str = "http://localhost:8545"
    timeout_seconds: float = 10.0


class LiveFeedSettings(BaseSettings):
    """Live swap-event feed for the tracked pool."""

    model_config = SettingsConfigDict(env_prefix="LIVE_")

    enabled: bool = True
    pool_address: str = USDC_ETH_POOL_ADDRESS
    poll_interval: float = 12.0  # roughly one block
    max_blocks_per_poll: int = 50


class PriceSettings(BaseSettings):
    """ETH/USDT price feed settings."""

    model_config = SettingsConfigDict(env_prefix="PRICE_")

    enabled: bool = True
    exchange_id: str = "binance"
    symbol: str = "ETH/USDT"
    poll_interval: float = 1.0
    cache_ttl_seconds: float = 1.0
    timeout_ms: int = 10_000


class QueueSettings(BaseSettings):
    """In-process work queue settings.

    A single worker keeps pages of one batch strictly sequential; more workers
    are safe because the consumer serializes per batch.
    """

    model_config = SettingsConfigDict(env_prefix="QUEUE_")

    worker_count: int = 1
    max_attempts: int = 5
    retry_base_delay: float = 1.0


class DatabaseSettings(BaseSettings):
    """SQLite storage location."""

    model_config = SettingsConfigDict(env_prefix="DATABASE_")

    path: str = "data/fees.db"


class ApiSettings(BaseSettings):
    """HTTP server configuration."""

    model_config = SettingsConfigDict(env_prefix="API_")

    host: str = "0.0.0.0"
    port: int = 8000
    prefix: str = "/api/v1"


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    etherscan: EtherscanSettings = EtherscanSettings()
    rpc: RpcSettings = RpcSettings()
    live: LiveFeedSettings = LiveFeedSettings()
    price: PriceSettings = PriceSettings()
    queue: QueueSettings = QueueSettings()
    database: DatabaseSettings = DatabaseSettings()
    api: ApiSettings = ApiSettings()
