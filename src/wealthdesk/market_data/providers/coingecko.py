"""CoinGecko public API: simple/price and coins/{id}/market_chart."""

import time
from decimal import Decimal

from wealthdesk.exceptions import ProviderEmptyResult, ProviderNotFound
from wealthdesk.market_data.http import JsonFetcher
from wealthdesk.market_data.providers.base import MarketDataAdapter, build_series, dig, require_decimal, to_decimal
from wealthdesk.market_data.ranges import COINGECKO_DAYS
from wealthdesk.market_data.symbols import base_asset, coingecko_id
from wealthdesk.models import HistoricalSeries, PricePoint, Quote, TimeRange


class CoinGeckoAdapter(MarketDataAdapter):
    """Crypto quotes and history priced directly in the display currency."""

    name = "CoinGecko"

    def __init__(
        self,
        fetcher: JsonFetcher,
        *,
        base_url: str = "https://api.coingecko.com/api/v3",
        display_currency: str = "EUR",
        api_key: str | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._base_url = base_url.rstrip("/")
        self._currency = display_currency.lower()
        self._api_key = api_key or None

    def _params(self, **params: str) -> dict[str, str]:
        if self._api_key:
            params["x_cg_demo_api_key"] = self._api_key
        return params

    def _coin(self, symbol: str) -> str:
        coin = coingecko_id(symbol)
        if coin is None:
            raise ProviderNotFound(f"no CoinGecko id for {symbol}")
        return coin

    async def _quote(self, symbol: str) -> Quote:
        coin = self._coin(symbol)
        payload = await self._fetcher.get_json(
            f"{self._base_url}/simple/price",
            params=self._params(
                ids=coin, vs_currencies=self._currency, include_24hr_change="true"
            ),
        )
        entry = dig(payload, coin)
        if not isinstance(entry, dict) or not entry:
            raise ProviderEmptyResult(f"CoinGecko returned no price for {coin}")

        return Quote(
            symbol=symbol,
            price=require_decimal(entry.get(self._currency), "price"),
            currency=self._currency.upper(),
            change_percent=to_decimal(entry.get(f"{self._currency}_24h_change")) or Decimal("0"),
            exchange="CoinGecko",
            source=self.name,
            timestamp=int(time.time() * 1000),
            name=base_asset(symbol),
        )

    async def _history(self, symbol: str, time_range: TimeRange) -> HistoricalSeries:
        coin = self._coin(symbol)
        payload = await self._fetcher.get_json(
            f"{self._base_url}/coins/{coin}/market_chart",
            params=self._params(vs_currency=self._currency, days=COINGECKO_DAYS[time_range]),
        )
        prices = dig(payload, "prices")
        if not prices:
            raise ProviderEmptyResult(f"CoinGecko returned no chart for {coin}")

        # [timestamp_ms, price]
        points = [
            PricePoint(timestamp=int(row[0]) // 1000, close=to_decimal(row[1]))
            for row in prices
        ]
        return build_series(
            symbol,
            points,
            source=self.name,
            currency=self._currency.upper(),
            time_range=time_range,
        )
