"""Yahoo Finance adapters: chart/quote and quoteSummary metadata.

Field paths this module depends on (external fragility, not ours to fix):
- chart.result[0].meta.{regularMarketPrice, chartPreviousClose, currency, exchangeName}
- chart.result[0].timestamp / chart.result[0].indicators.quote[0].{open,high,low,close,volume}
- quoteResponse.result[0].{longName, shortName, regularMarketChangePercent}
- quoteSummary.result[0].{assetProfile, fundProfile, summaryProfile}

One adapter instance is bound to one host and one JsonFetcher, so the same
class serves the primary, the mirror host and the proxy-rotation strategy
under distinct source labels.
"""

import time
from decimal import Decimal
from typing import Any
from urllib.parse import quote

from wealthdesk.exceptions import ProviderEmptyResult, ProviderError, ProviderNotFound
from wealthdesk.logging import get_logger
from wealthdesk.market_data.http import JsonFetcher
from wealthdesk.market_data.providers.base import (
    MarketDataAdapter,
    ProviderAdapter,
    ProviderResult,
    build_series,
    dig,
    to_decimal,
)
from wealthdesk.market_data.ranges import YAHOO_RANGES
from wealthdesk.models import FxRate, HistoricalSeries, PricePoint, Quote, StockMetadata, TimeRange, utc_iso

logger = get_logger(__name__)


def _chart_error(payload: Any, root: str) -> str | None:
    error = dig(payload, root, "error")
    if not error:
        return None
    if isinstance(error, dict):
        return str(error.get("description") or error.get("code") or "Yahoo Finance returned an error response.")
    return str(error)


class YahooFinanceAdapter(MarketDataAdapter):
    """Equity quotes and history from the v8 chart endpoint.

    Args:
        fetcher: Transport (direct or proxy-rotating).
        host: Base URL, e.g. https://query1.finance.yahoo.com.
        name: Source label attached to every record.
        enrich_quotes: Call /v7/finance/quote for name and change percent.
            Enrichment failures never fail the quote.
    """

    def __init__(
        self,
        fetcher: JsonFetcher,
        *,
        host: str,
        name: str = "Yahoo Finance",
        enrich_quotes: bool = True,
    ) -> None:
        self._fetcher = fetcher
        self._host = host.rstrip("/")
        self.name = name
        self._enrich_quotes = enrich_quotes

    async def _chart(self, symbol: str, range_: str, interval: str, **extra: str) -> dict:
        url = f"{self._host}/v8/finance/chart/{quote(symbol, safe='')}"
        payload = await self._fetcher.get_json(url, params={"range": range_, "interval": interval, **extra})

        error = _chart_error(payload, "chart")
        if error:
            raise ProviderNotFound(error)

        result = dig(payload, "chart", "result", 0)
        if not isinstance(result, dict):
            raise ProviderEmptyResult("Yahoo Finance returned no chart data.")
        return result

    async def _snapshot(self, symbol: str) -> dict | None:
        try:
            payload = await self._fetcher.get_json(
                f"{self._host}/v7/finance/quote", params={"symbols": symbol}
            )
        except ProviderError as exc:
            logger.debug("yahoo_snapshot_unavailable", symbol=symbol, error=str(exc))
            return None
        snapshot = dig(payload, "quoteResponse", "result", 0)
        return snapshot if isinstance(snapshot, dict) else None

    async def _quote(self, symbol: str) -> Quote:
        result = await self._chart(symbol, "1d", "1d")
        meta = result.get("meta") or {}
        closes = [c for c in (dig(result, "indicators", "quote", 0, "close") or []) if to_decimal(c) is not None]

        price = to_decimal(meta.get("regularMarketPrice"))
        if price is None and closes:
            price = to_decimal(closes[-1])
        if price is None:
            raise ProviderEmptyResult(f"Yahoo Finance returned no price for {symbol}.")

        prev_close = to_decimal(meta.get("chartPreviousClose"))
        if prev_close is None:
            prev_close = to_decimal(meta.get("previousClose"))
        if prev_close is None and len(closes) >= 2:
            prev_close = to_decimal(closes[-2])

        change_percent = Decimal("0")
        if prev_close:
            change_percent = (price - prev_close) / prev_close * 100

        name = meta.get("longName") or meta.get("shortName") or symbol
        exchange = meta.get("exchangeName") or ""

        if self._enrich_quotes:
            snapshot = await self._snapshot(symbol)
            if snapshot:
                name = snapshot.get("longName") or snapshot.get("shortName") or name
                exchange = snapshot.get("fullExchangeName") or exchange
                snapshot_change = to_decimal(snapshot.get("regularMarketChangePercent"))
                if snapshot_change is not None:
                    change_percent = snapshot_change

        return Quote(
            symbol=symbol,
            price=price,
            currency=str(meta.get("currency") or "USD").upper(),
            change_percent=change_percent,
            exchange=exchange or self.name,
            source=self.name,
            timestamp=int(time.time() * 1000),
            name=name,
        )

    async def _history(self, symbol: str, time_range: TimeRange) -> HistoricalSeries:
        config = YAHOO_RANGES[time_range]
        result = await self._chart(
            symbol,
            config.range,
            config.interval,
            includePrePost="false",
            events="div,splits",
        )

        timestamps = result.get("timestamp") or []
        bars = dig(result, "indicators", "quote", 0) or {}
        closes = bars.get("close") or []
        if not timestamps or not closes:
            raise ProviderEmptyResult("Yahoo Finance returned an empty price series.")

        def column(field: str, idx: int) -> Decimal | None:
            values = bars.get(field) or []
            return to_decimal(values[idx]) if idx < len(values) else None

        points: list[PricePoint] = []
        for idx, ts in enumerate(timestamps):
            close = column("close", idx)
            if close is None:
                continue
            points.append(
                PricePoint(
                    timestamp=int(ts),
                    close=close,
                    open=column("open", idx),
                    high=column("high", idx),
                    low=column("low", idx),
                    volume=column("volume", idx),
                )
            )

        if not points:
            raise ProviderEmptyResult("Yahoo Finance returned no usable price points.")

        meta = result.get("meta") or {}
        last_ts = meta.get("regularMarketTime") or timestamps[-1]
        return build_series(
            symbol,
            points,
            source=self.name,
            currency=str(meta.get("currency") or "USD").upper(),
            time_range=time_range,
            last_updated=utc_iso(int(last_ts)),
        )

    async def fetch_fx_rate(self, base: str, quote_ccy: str) -> ProviderResult[FxRate]:
        """Read an FX cross from the "{BASE}{QUOTE}=X" chart."""

        async def _rate() -> FxRate:
            result = await self._quote(f"{base}{quote_ccy}=X")
            return FxRate(base=base, quote=quote_ccy, rate=result.price, source=self.name)

        return await self._guard(_rate())


class YahooMetadataAdapter(ProviderAdapter):
    """Sector / industry / country / fund category from quoteSummary."""

    def __init__(self, fetcher: JsonFetcher, *, host: str, name: str = "Yahoo Finance") -> None:
        self._fetcher = fetcher
        self._host = host.rstrip("/")
        self.name = name

    async def fetch_metadata(self, symbol: str) -> ProviderResult[StockMetadata]:
        return await self._guard(self._metadata(symbol))

    async def _metadata(self, symbol: str) -> StockMetadata:
        payload = await self._fetcher.get_json(
            f"{self._host}/v10/finance/quoteSummary/{quote(symbol, safe='')}",
            params={"modules": "assetProfile,fundProfile,summaryProfile"},
        )
        error = _chart_error(payload, "quoteSummary")
        if error:
            raise ProviderNotFound(error)

        summary = dig(payload, "quoteSummary", "result", 0)
        if not isinstance(summary, dict):
            raise ProviderEmptyResult(f"Yahoo Finance returned no profile for {symbol}.")

        asset = summary.get("assetProfile") or {}
        fund = summary.get("fundProfile") or {}
        profile = summary.get("summaryProfile") or {}

        return StockMetadata(
            symbol=symbol,
            sector=asset.get("sector") or profile.get("sector"),
            industry=asset.get("industry") or profile.get("industry"),
            country=asset.get("country") or profile.get("country"),
            category=fund.get("categoryName") or fund.get("investmentStyle"),
        )
