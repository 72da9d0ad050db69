"""Binance spot ticker and klines via ccxt async.

Binance quotes crypto against USDT. Prices are normalised into the display
currency by dividing by the "{DISPLAY}/USDT" reference ticker; when that
secondary call fails the native USDT value is returned tagged "USDT".
"""

import asyncio
import time
from decimal import Decimal

import ccxt.async_support as ccxt_async

from wealthdesk.exceptions import (
    ProviderEmptyResult,
    ProviderError,
    ProviderHTTPError,
    ProviderNotFound,
    ProviderTimeout,
)
from wealthdesk.logging import get_logger
from wealthdesk.market_data.providers.base import MarketDataAdapter, build_series, require_decimal, to_decimal
from wealthdesk.market_data.ranges import BINANCE_RANGES
from wealthdesk.market_data.symbols import base_asset
from wealthdesk.models import HistoricalSeries, PricePoint, Quote, TimeRange

logger = get_logger(__name__)

_SETTLEMENT = "USDT"


class BinanceAdapter(MarketDataAdapter):
    """Crypto quotes and candles from Binance spot markets.

    Args:
        exchange: A ccxt async exchange (ccxt.async_support.binance in production).
        display_currency: Currency quotes are converted into.
        timeout: Upper bound for each ccxt call, in seconds.
    """

    name = "Binance"

    def __init__(
        self,
        exchange: ccxt_async.Exchange,
        *,
        display_currency: str = "EUR",
        timeout: float = 10.0,
    ) -> None:
        self._exchange = exchange
        self._display_currency = display_currency.upper()
        self._timeout = timeout

    @classmethod
    def create(cls, *, display_currency: str = "EUR", timeout: float = 10.0) -> "BinanceAdapter":
        """Build an adapter over a public (keyless) ccxt Binance client."""
        exchange = ccxt_async.binance(
            {
                "enableRateLimit": True,
                "timeout": int(timeout * 1000),
                "options": {"defaultType": "spot"},
            }
        )
        return cls(exchange, display_currency=display_currency, timeout=timeout)

    async def close(self) -> None:
        """Release the ccxt session. CRITICAL: must be called to avoid resource leaks."""
        await self._exchange.close()
        logger.info("binance_connection_closed")

    async def _call(self, method: str, *args, **kwargs):
        try:
            return await asyncio.wait_for(
                getattr(self._exchange, method)(*args, **kwargs), self._timeout
            )
        except (asyncio.TimeoutError, ccxt_async.RequestTimeout) as exc:
            raise ProviderTimeout(f"binance {method} timed out after {self._timeout}s") from exc
        except ccxt_async.BadSymbol as exc:
            raise ProviderNotFound(f"binance does not list {args[0] if args else '?'}") from exc
        except ccxt_async.NetworkError as exc:
            raise ProviderError(f"binance network error: {exc}") from exc
        except ccxt_async.ExchangeError as exc:
            raise ProviderHTTPError(f"binance rejected {method}: {exc}") from exc

    async def _conversion_rate(self) -> Decimal | None:
        """Return DISPLAY/USDT, or None to keep native USDT values."""
        if self._display_currency in (_SETTLEMENT, "USD"):
            return None
        try:
            ticker = await self._call("fetch_ticker", f"{self._display_currency}/{_SETTLEMENT}")
            rate = require_decimal(ticker.get("last"), "reference price")
        except ProviderError as exc:
            logger.warning(
                "binance_conversion_unavailable",
                currency=self._display_currency,
                error=str(exc),
            )
            return None
        return rate or None

    def _pair(self, symbol: str) -> str:
        return f"{base_asset(symbol)}/{_SETTLEMENT}"

    async def _quote(self, symbol: str) -> Quote:
        ticker = await self._call("fetch_ticker", self._pair(symbol))
        price = require_decimal(ticker.get("last"), "last price")
        change_percent = to_decimal(ticker.get("percentage")) or Decimal("0")

        currency = _SETTLEMENT
        rate = await self._conversion_rate()
        if rate is not None:
            price = price / rate
            currency = self._display_currency

        return Quote(
            symbol=symbol,
            price=price,
            currency=currency,
            change_percent=change_percent,
            exchange="Binance",
            source=self.name,
            timestamp=int(ticker.get("timestamp") or time.time() * 1000),
            name=base_asset(symbol),
        )

    async def _history(self, symbol: str, time_range: TimeRange) -> HistoricalSeries:
        config = BINANCE_RANGES[time_range]
        candles = await self._call(
            "fetch_ohlcv", self._pair(symbol), timeframe=config.timeframe, limit=config.limit
        )
        if not candles:
            raise ProviderEmptyResult(f"binance returned no candles for {symbol}")

        currency = _SETTLEMENT
        rate = await self._conversion_rate()
        divisor = Decimal("1")
        if rate is not None:
            divisor = rate
            currency = self._display_currency

        def scaled(value) -> Decimal | None:
            parsed = to_decimal(value)
            return parsed / divisor if parsed is not None else None

        # ccxt candle: [timestamp_ms, open, high, low, close, volume]
        points = [
            PricePoint(
                timestamp=int(candle[0]) // 1000,
                close=scaled(candle[4]),
                open=scaled(candle[1]),
                high=scaled(candle[2]),
                low=scaled(candle[3]),
                volume=to_decimal(candle[5]),
            )
            for candle in candles
        ]
        return build_series(
            symbol, points, source=self.name, currency=currency, time_range=time_range
        )
