"""Market data facade: symbol routing, fallback chains and request caches.

Callers only ever see normalized records or AllStrategiesExhausted.

Usage:
    service = MarketDataService.build(settings.market_data)
    series = await service.fetch_historical_prices("AAPL", "1mo")
    await service.close()
"""

import asyncio
import dataclasses
import time
from collections.abc import Awaitable, Callable
from decimal import Decimal

import httpx

from wealthdesk.config import MarketDataSettings
from wealthdesk.exceptions import AllStrategiesExhausted
from wealthdesk.logging import get_logger
from wealthdesk.market_data.cache import RequestCache
from wealthdesk.market_data.fallback import FallbackChain, Strategy
from wealthdesk.market_data.http import HttpJsonFetcher, ProxyRotatingFetcher
from wealthdesk.market_data.news import NewsItem, YahooNewsClient
from wealthdesk.market_data.providers.base import MarketDataAdapter, ProviderResult
from wealthdesk.market_data.providers.binance import BinanceAdapter
from wealthdesk.market_data.providers.coingecko import CoinGeckoAdapter
from wealthdesk.market_data.providers.cryptocompare import CryptoCompareAdapter
from wealthdesk.market_data.providers.fx import ExchangeRateApiAdapter
from wealthdesk.market_data.providers.yahoo import YahooFinanceAdapter, YahooMetadataAdapter
from wealthdesk.market_data.symbols import is_crypto, normalize_symbol, yahoo_crypto_symbol
from wealthdesk.models import (
    AssetClass,
    FxRate,
    HistoricalSeries,
    Operation,
    Quote,
    StockMetadata,
    TimeRange,
)

logger = get_logger(__name__)


# ──────────────────────────────────────────────
# Strategy builders
# ──────────────────────────────────────────────


def _retag(result: ProviderResult, symbol: str) -> ProviderResult:
    """Report the caller's symbol even when a provider was asked for an alias."""
    if result.ok and getattr(result.value, "symbol", symbol) != symbol:
        result.value = dataclasses.replace(result.value, symbol=symbol)
    return result


def quote_strategy(
    adapter: MarketDataAdapter, alias: Callable[[str], str] | None = None
) -> Strategy:
    async def call(symbol: str) -> ProviderResult[Quote]:
        return _retag(await adapter.fetch_quote(alias(symbol) if alias else symbol), symbol)

    return Strategy(adapter.name, call)


def history_strategy(
    adapter: MarketDataAdapter, alias: Callable[[str], str] | None = None
) -> Strategy:
    async def call(symbol: str, *, time_range: TimeRange) -> ProviderResult[HistoricalSeries]:
        result = await adapter.fetch_history(alias(symbol) if alias else symbol, time_range)
        return _retag(result, symbol)

    return Strategy(adapter.name, call)


def metadata_strategy(adapter: YahooMetadataAdapter) -> Strategy:
    async def call(symbol: str) -> ProviderResult[StockMetadata]:
        return await adapter.fetch_metadata(symbol)

    return Strategy(adapter.name, call)


def fx_strategy(name: str, fetch: Callable[[str, str], Awaitable[ProviderResult[FxRate]]]) -> Strategy:
    async def call(symbol: str, *, base: str, quote: str) -> ProviderResult[FxRate]:
        return await fetch(base, quote)

    return Strategy(name, call)


# ──────────────────────────────────────────────
# Service
# ──────────────────────────────────────────────


class MarketDataService:
    """Routes requests to the right chain behind a per-data-class cache.

    Args:
        chains: One FallbackChain per asset class.
        settings: TTLs are read from here.
        news: Headline search client; fetch_news() is unavailable without one.
        clock: Monotonic clock shared by all caches.
        closers: Async callables run by close() (HTTP client, ccxt session).
    """

    def __init__(
        self,
        chains: dict[AssetClass, FallbackChain],
        settings: MarketDataSettings | None = None,
        *,
        news: YahooNewsClient | None = None,
        clock: Callable[[], float] = time.monotonic,
        closers: list[Callable[[], Awaitable[None]]] | None = None,
    ) -> None:
        self._settings = settings or MarketDataSettings()
        self._chains = chains
        self._news = news
        self._closers = list(closers or [])

        self.quotes: RequestCache[Quote] = RequestCache("quotes", self._settings.quote_ttl_seconds, clock)
        self.history: RequestCache[HistoricalSeries] = RequestCache(
            "history", self._settings.history_ttl_seconds, clock
        )
        self.metadata: RequestCache[StockMetadata] = RequestCache(
            "metadata", self._settings.metadata_ttl_seconds, clock
        )
        self.fx: RequestCache[FxRate] = RequestCache("fx", self._settings.fx_ttl_seconds, clock)
        self.news: RequestCache[list[NewsItem]] = RequestCache("news", self._settings.news_ttl_seconds, clock)

    @classmethod
    def build(
        cls,
        settings: MarketDataSettings,
        *,
        client: httpx.AsyncClient | None = None,
        binance: BinanceAdapter | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> "MarketDataService":
        """Wire the production adapters into the three chains.

        A client or Binance adapter passed in stays owned by the caller;
        ones created here are closed by close().
        """
        closers: list[Callable[[], Awaitable[None]]] = []
        if client is None:
            client = httpx.AsyncClient(follow_redirects=True)
            closers.append(client.aclose)
        if binance is None:
            binance = BinanceAdapter.create(
                display_currency=settings.display_currency,
                timeout=settings.request_timeout_seconds,
            )
            closers.append(binance.close)

        headers = {"User-Agent": settings.user_agent}
        timeout = settings.request_timeout_seconds
        direct = HttpJsonFetcher(client, timeout=timeout, headers=headers)
        proxied = ProxyRotatingFetcher(client, settings.cors_proxies, timeout=timeout, headers=headers)

        yahoo_primary = YahooFinanceAdapter(direct, host=settings.yahoo_primary_host, name="Yahoo Finance")
        yahoo_secondary = YahooFinanceAdapter(
            direct, host=settings.yahoo_secondary_host, name="Yahoo Finance (query2)"
        )
        yahoo_proxied = YahooFinanceAdapter(
            proxied, host=settings.yahoo_primary_host, name="Yahoo Finance (proxy)", enrich_quotes=False
        )
        metadata_adapters = [
            YahooMetadataAdapter(direct, host=settings.yahoo_secondary_host, name="Yahoo Finance (query2)"),
            YahooMetadataAdapter(direct, host=settings.yahoo_primary_host, name="Yahoo Finance"),
            YahooMetadataAdapter(proxied, host=settings.yahoo_secondary_host, name="Yahoo Finance (proxy)"),
        ]
        coingecko = CoinGeckoAdapter(
            direct,
            base_url=settings.coingecko_base_url,
            display_currency=settings.display_currency,
            api_key=settings.coingecko_api_key.get_secret_value(),
        )
        cryptocompare = CryptoCompareAdapter(
            direct,
            base_url=settings.cryptocompare_base_url,
            display_currency=settings.display_currency,
        )
        exchange_rates = ExchangeRateApiAdapter(direct, base_url=settings.exchange_rate_base_url)

        equities = [yahoo_primary, yahoo_secondary, yahoo_proxied]
        chains = {
            AssetClass.EQUITY: FallbackChain(
                AssetClass.EQUITY,
                {
                    Operation.QUOTE: [quote_strategy(a) for a in equities],
                    Operation.HISTORY: [history_strategy(a) for a in equities],
                    Operation.METADATA: [metadata_strategy(a) for a in metadata_adapters],
                },
            ),
            AssetClass.CRYPTO: FallbackChain(
                AssetClass.CRYPTO,
                {
                    Operation.QUOTE: [
                        quote_strategy(binance),
                        quote_strategy(coingecko),
                        quote_strategy(cryptocompare),
                        quote_strategy(yahoo_primary, alias=yahoo_crypto_symbol),
                    ],
                    Operation.HISTORY: [
                        history_strategy(binance),
                        history_strategy(cryptocompare),
                        history_strategy(coingecko),
                        history_strategy(yahoo_primary, alias=yahoo_crypto_symbol),
                    ],
                },
            ),
            AssetClass.FX: FallbackChain(
                AssetClass.FX,
                {
                    Operation.FX_RATE: [
                        fx_strategy(exchange_rates.name, exchange_rates.fetch_rate),
                        fx_strategy(yahoo_primary.name, yahoo_primary.fetch_fx_rate),
                    ],
                },
            ),
        }
        news = YahooNewsClient(direct, host=settings.yahoo_secondary_host)
        return cls(chains, settings, news=news, clock=clock, closers=closers)

    # ──────────────────────────────────────────────
    # Routing
    # ──────────────────────────────────────────────

    @staticmethod
    def classify(symbol: str) -> AssetClass:
        """Crypto when the symbol is in the static crypto map, equity otherwise."""
        return AssetClass.CRYPTO if is_crypto(symbol) else AssetClass.EQUITY

    @staticmethod
    def _require_symbol(symbol: str | None) -> str:
        normalized = normalize_symbol(symbol or "")
        if not normalized:
            raise ValueError("Ticker symbol is required.")
        return normalized

    def _asset_class(self, symbol: str, asset_class: AssetClass | None) -> AssetClass:
        asset_class = asset_class or self.classify(symbol)
        if asset_class is AssetClass.FX:
            raise ValueError("FX pairs are served by fetch_exchange_rate.")
        return asset_class

    # ──────────────────────────────────────────────
    # Operations
    # ──────────────────────────────────────────────

    async def fetch_quote(self, symbol: str, asset_class: AssetClass | None = None) -> Quote:
        symbol = self._require_symbol(symbol)
        asset_class = self._asset_class(symbol, asset_class)
        chain = self._chains[asset_class]

        async def produce() -> Quote:
            return (await chain.resolve(symbol, Operation.QUOTE)).value

        # Keyed by chain so a symbol forced onto another chain is fetched separately
        return await self.quotes.get_or_fetch(f"quote:{asset_class.value}:{symbol}", produce)

    async def fetch_quotes(self, symbols: list[str]) -> dict[str, Quote | Exception]:
        """Fetch many quotes concurrently; each symbol maps to its quote or its error."""
        normalized = list(dict.fromkeys(normalize_symbol(s) for s in symbols if str(s).strip()))
        results = await asyncio.gather(
            *(self.fetch_quote(s) for s in normalized), return_exceptions=True
        )
        out: dict[str, Quote | Exception] = {}
        for symbol, result in zip(normalized, results):
            if isinstance(result, BaseException) and not isinstance(result, (AllStrategiesExhausted, ValueError)):
                raise result
            out[symbol] = result
        return out

    async def fetch_historical_prices(
        self,
        symbol: str,
        time_range: TimeRange | str,
        asset_class: AssetClass | None = None,
    ) -> HistoricalSeries:
        symbol = self._require_symbol(symbol)
        time_range = TimeRange.parse(time_range)
        asset_class = self._asset_class(symbol, asset_class)
        chain = self._chains[asset_class]

        async def produce() -> HistoricalSeries:
            result = await chain.resolve(symbol, Operation.HISTORY, time_range=time_range)
            return result.value

        return await self.history.get_or_fetch(
            f"history:{asset_class.value}:{symbol}:{time_range.value}", produce
        )

    async def fetch_metadata(self, symbol: str) -> StockMetadata:
        symbol = self._require_symbol(symbol)
        chain = self._chains[AssetClass.EQUITY]

        async def produce() -> StockMetadata:
            return (await chain.resolve(symbol, Operation.METADATA)).value

        return await self.metadata.get_or_fetch(f"metadata:{symbol}", produce)

    async def fetch_exchange_rate(self, base: str, quote: str) -> FxRate:
        base = self._require_symbol(base)
        quote = self._require_symbol(quote)
        if base == quote:
            return FxRate(base=base, quote=quote, rate=Decimal("1"), source="identity")
        chain = self._chains[AssetClass.FX]

        async def produce() -> FxRate:
            result = await chain.resolve(f"{base}/{quote}", Operation.FX_RATE, base=base, quote=quote)
            return result.value

        return await self.fx.get_or_fetch(f"fx:{base}:{quote}", produce)

    async def fetch_news(self, symbols: list[str]) -> list[NewsItem]:
        """Recent headlines for up to five symbols; market ETFs when none are given."""
        if self._news is None:
            raise RuntimeError("No news client configured.")
        news = self._news
        wanted = list(dict.fromkeys(normalize_symbol(s) for s in symbols if str(s).strip()))

        async def produce() -> list[NewsItem]:
            return await news.fetch_news(wanted)

        return await self.news.get_or_fetch(f"news:{','.join(wanted)}", produce)

    def cache_stats(self) -> dict[str, dict[str, int]]:
        return {
            cache.name: {**cache.stats.to_dict(), "entries": len(cache), "inflight": cache.inflight_count}
            for cache in (self.quotes, self.history, self.metadata, self.fx, self.news)
        }

    async def close(self) -> None:
        """Release HTTP and ccxt sessions created by build()."""
        for closer in self._closers:
            await closer()
        self._closers.clear()
        logger.info("market_data_service_closed")
