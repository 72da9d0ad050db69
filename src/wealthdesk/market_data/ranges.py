"""Per-provider request parameters for each dashboard time range."""

import time
from dataclasses import dataclass
from datetime import datetime

from wealthdesk.models import TimeRange


@dataclass(frozen=True)
class YahooRange:
    range: str
    interval: str

    @property
    def is_intraday(self) -> bool:
        return self.interval.endswith(("m", "h"))


@dataclass(frozen=True)
class CandleRange:
    """Endpoint granularity and bar count for candle-based crypto APIs."""

    timeframe: str
    limit: int
    aggregate: int = 1


YAHOO_RANGES: dict[TimeRange, YahooRange] = {
    TimeRange.DAY: YahooRange("1d", "5m"),
    TimeRange.WEEK: YahooRange("5d", "15m"),
    TimeRange.MONTH: YahooRange("1mo", "1d"),
    TimeRange.SIX_MONTHS: YahooRange("6mo", "1d"),
    TimeRange.YEAR: YahooRange("1y", "1d"),
    TimeRange.ALL: YahooRange("5y", "1wk"),
}

# ccxt timeframes for Binance klines
BINANCE_RANGES: dict[TimeRange, CandleRange] = {
    TimeRange.DAY: CandleRange("5m", 288),
    TimeRange.WEEK: CandleRange("30m", 336),
    TimeRange.MONTH: CandleRange("1d", 30),
    TimeRange.SIX_MONTHS: CandleRange("1d", 180),
    TimeRange.YEAR: CandleRange("1d", 365),
    TimeRange.ALL: CandleRange("1w", 260),
}

# CryptoCompare endpoint names are histominute / histohour / histoday
CRYPTOCOMPARE_RANGES: dict[TimeRange, CandleRange] = {
    TimeRange.DAY: CandleRange("histominute", 288, aggregate=5),
    TimeRange.WEEK: CandleRange("histohour", 168),
    TimeRange.MONTH: CandleRange("histoday", 30),
    TimeRange.SIX_MONTHS: CandleRange("histoday", 180),
    TimeRange.YEAR: CandleRange("histoday", 365),
    TimeRange.ALL: CandleRange("histoday", 1825),
}

COINGECKO_DAYS: dict[TimeRange, str] = {
    TimeRange.DAY: "1",
    TimeRange.WEEK: "7",
    TimeRange.MONTH: "30",
    TimeRange.SIX_MONTHS: "180",
    TimeRange.YEAR: "365",
    TimeRange.ALL: "max",
}

_RANGE_SECONDS: dict[TimeRange, int] = {
    TimeRange.WEEK: 7 * 86_400,
    TimeRange.MONTH: 30 * 86_400,
    TimeRange.SIX_MONTHS: 182 * 86_400,
    TimeRange.YEAR: 365 * 86_400,
}


def range_start_timestamp(time_range: TimeRange, now: float | None = None) -> int | None:
    """Return the first Unix second a chart for this range should show.

    DAY starts at local midnight; ALL has no lower bound (None).
    """
    ref = time.time() if now is None else now
    if time_range is TimeRange.ALL:
        return None
    if time_range is TimeRange.DAY:
        midnight = datetime.fromtimestamp(ref).replace(hour=0, minute=0, second=0, microsecond=0)
        return int(midnight.timestamp())
    return int(ref) - _RANGE_SECONDS[time_range]
