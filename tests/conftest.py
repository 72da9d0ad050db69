"""Shared test fixtures for wealthdesk."""

import pytest

from wealthdesk.config import AppSettings, CloudSettings, MarketDataSettings, StorageSettings


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def market_settings() -> MarketDataSettings:
    """MarketDataSettings with fixed hosts and a single test proxy."""
    return MarketDataSettings(
        request_timeout_seconds=1.0,
        yahoo_primary_host="https://query1.test",
        yahoo_secondary_host="https://query2.test",
        coingecko_base_url="https://coingecko.test/api/v3",
        cryptocompare_base_url="https://cryptocompare.test/data",
        exchange_rate_base_url="https://fx.test/v6",
        cors_proxies=["https://proxy.test/raw?url="],
    )


@pytest.fixture
def mock_settings(market_settings: MarketDataSettings) -> AppSettings:
    """Return AppSettings with test defaults (in-memory db, no cloud)."""
    return AppSettings(
        log_level="DEBUG",
        market_data=market_settings,
        storage=StorageSettings(db_path=":memory:", batch_size=2, document_size_limit=100),
        cloud=CloudSettings(project_id="", api_key=""),  # type: ignore[arg-type]
    )
