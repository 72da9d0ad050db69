"""CryptoCompare min-api: pricemultifull and histominute/histohour/histoday."""

import time
from decimal import Decimal

from wealthdesk.exceptions import ProviderEmptyResult, ProviderNotFound
from wealthdesk.market_data.http import JsonFetcher
from wealthdesk.market_data.providers.base import MarketDataAdapter, build_series, dig, require_decimal, to_decimal
from wealthdesk.market_data.ranges import CRYPTOCOMPARE_RANGES
from wealthdesk.market_data.symbols import base_asset
from wealthdesk.models import HistoricalSeries, PricePoint, Quote, TimeRange


def _raise_on_error(payload) -> None:
    if isinstance(payload, dict) and payload.get("Response") == "Error":
        raise ProviderNotFound(str(payload.get("Message") or "CryptoCompare returned an error"))


class CryptoCompareAdapter(MarketDataAdapter):
    name = "CryptoCompare"

    def __init__(
        self,
        fetcher: JsonFetcher,
        *,
        base_url: str = "https://min-api.cryptocompare.com/data",
        display_currency: str = "EUR",
    ) -> None:
        self._fetcher = fetcher
        self._base_url = base_url.rstrip("/")
        self._currency = display_currency.upper()

    async def _quote(self, symbol: str) -> Quote:
        base = base_asset(symbol)
        payload = await self._fetcher.get_json(
            f"{self._base_url}/pricemultifull",
            params={"fsyms": base, "tsyms": self._currency},
        )
        _raise_on_error(payload)
        raw = dig(payload, "RAW", base, self._currency)
        if not isinstance(raw, dict):
            raise ProviderEmptyResult(f"CryptoCompare returned no price for {base}")

        return Quote(
            symbol=symbol,
            price=require_decimal(raw.get("PRICE"), "PRICE"),
            currency=self._currency,
            change_percent=to_decimal(raw.get("CHANGEPCT24HOUR")) or Decimal("0"),
            exchange=str(raw.get("LASTMARKET") or "CryptoCompare"),
            source=self.name,
            timestamp=int(time.time() * 1000),
            name=base,
        )

    async def _history(self, symbol: str, time_range: TimeRange) -> HistoricalSeries:
        base = base_asset(symbol)
        config = CRYPTOCOMPARE_RANGES[time_range]
        payload = await self._fetcher.get_json(
            f"{self._base_url}/v2/{config.timeframe}",
            params={
                "fsym": base,
                "tsym": self._currency,
                "limit": str(config.limit),
                "aggregate": str(config.aggregate),
            },
        )
        _raise_on_error(payload)
        rows = dig(payload, "Data", "Data")
        if not rows:
            raise ProviderEmptyResult(f"CryptoCompare returned no candles for {base}")

        points = []
        for row in rows:
            close = to_decimal(row.get("close"))
            # Bars before the listing date are zero-filled
            if not close:
                continue
            points.append(
                PricePoint(
                    timestamp=int(row["time"]),
                    close=close,
                    open=to_decimal(row.get("open")),
                    high=to_decimal(row.get("high")),
                    low=to_decimal(row.get("low")),
                    volume=to_decimal(row.get("volumefrom")),
                )
            )
        if not points:
            raise ProviderEmptyResult(f"CryptoCompare returned only empty candles for {base}")

        return build_series(
            symbol, points, source=self.name, currency=self._currency, time_range=time_range
        )
