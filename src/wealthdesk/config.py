"""Configuration system using pydantic-settings with environment variable loading."""

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class MarketDataSettings(BaseSettings):
    """Provider, cache and fallback-chain parameters."""

    model_config = SettingsConfigDict(env_prefix="MARKET_")

    request_timeout_seconds: float = 10.0

    # Cache TTLs per data class
    quote_ttl_seconds: float = 60.0  # live quotes
    history_ttl_seconds: float = 900.0  # 15 minutes
    metadata_ttl_seconds: float = 21_600.0  # 6 hours
    fx_ttl_seconds: float = 3_600.0
    news_ttl_seconds: float = 300.0

    display_currency: str = "EUR"
    benchmark_symbol: str = "URTH"  # MSCI World ETF

    yahoo_primary_host: str = "https://query1.finance.yahoo.com"
    yahoo_secondary_host: str = "https://query2.finance.yahoo.com"
    coingecko_base_url: str = "https://api.coingecko.com/api/v3"
    coingecko_api_key: SecretStr = SecretStr("")
    cryptocompare_base_url: str = "https://min-api.cryptocompare.com/data"
    exchange_rate_base_url: str = "https://open.er-api.com/v6"

    # Tried top to bottom on every call; a trailing "=" or "?" means the
    # target URL is appended URL-encoded.
    cors_proxies: list[str] = [
        "https://api.allorigins.win/raw?url=",
        "https://cors.isomorphic-git.org/",
        "https://thingproxy.freeboard.io/fetch/",
        "https://corsproxy.io/?",
    ]
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0 Safari/537.36"
    )


class StorageSettings(BaseSettings):
    """Local store location and remote push limits."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_")

    db_path: str = "data/wealthdesk.db"
    batch_size: int = 450  # remote transactional writes cap at 500 operations
    document_size_limit: int = 800_000  # characters of base64 payload


class CloudSettings(BaseSettings):
    """Default remote document store; a config saved at runtime takes precedence."""

    model_config = SettingsConfigDict(env_prefix="CLOUD_")

    project_id: str = ""
    api_key: SecretStr = SecretStr("")
    database_id: str = "(default)"
    base_url: str = "https://firestore.googleapis.com/v1"


class GatewaySettings(BaseSettings):
    """Local HTTP gateway configuration."""

    model_config = SettingsConfigDict(env_prefix="GATEWAY_")

    host: str = "127.0.0.1"
    port: int = 8080


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    log_format: str = "console"  # or "json"
    market_data: MarketDataSettings = MarketDataSettings()
    storage: StorageSettings = StorageSettings()
    cloud: CloudSettings = CloudSettings()
    gateway: GatewaySettings = GatewaySettings()
