"""Provider adapters -- one per upstream source, each returning ProviderResult."""

from wealthdesk.market_data.providers.base import (
    MarketDataAdapter,
    ProviderAdapter,
    ProviderFailure,
    ProviderResult,
)
from wealthdesk.market_data.providers.binance import BinanceAdapter
from wealthdesk.market_data.providers.coingecko import CoinGeckoAdapter
from wealthdesk.market_data.providers.cryptocompare import CryptoCompareAdapter
from wealthdesk.market_data.providers.fx import ExchangeRateApiAdapter
from wealthdesk.market_data.providers.yahoo import YahooFinanceAdapter, YahooMetadataAdapter

__all__ = [
    "BinanceAdapter",
    "CoinGeckoAdapter",
    "CryptoCompareAdapter",
    "ExchangeRateApiAdapter",
    "MarketDataAdapter",
    "ProviderAdapter",
    "ProviderFailure",
    "ProviderResult",
    "YahooFinanceAdapter",
    "YahooMetadataAdapter",
]
