"""Normalized market data records shared by adapters, caches and aggregation.

CRITICAL: All prices, rates and volumes use Decimal. Never use float.
Provider payloads never travel past the adapter boundary; only these
records do.
"""

import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum


class AssetClass(str, Enum):
    """Which provider chain serves a symbol."""

    EQUITY = "equity"
    CRYPTO = "crypto"
    FX = "fx"


class Operation(str, Enum):
    """Operations a fallback chain can resolve."""

    QUOTE = "quote"
    HISTORY = "history"
    METADATA = "metadata"
    FX_RATE = "fx_rate"


class TimeRange(str, Enum):
    """Chart ranges offered to the dashboard."""

    DAY = "1D"
    WEEK = "1W"
    MONTH = "1M"
    SIX_MONTHS = "6M"
    YEAR = "1Y"
    ALL = "ALL"

    @classmethod
    def parse(cls, value: "str | TimeRange") -> "TimeRange":
        """Accept dashboard values ("1M") and provider-style aliases ("1mo")."""
        if isinstance(value, TimeRange):
            return value
        raw = str(value).strip()
        for member in cls:
            if member.value.lower() == raw.lower():
                return member
        alias = _RANGE_ALIASES.get(raw.lower())
        if alias is None:
            raise ValueError(f"Unsupported time range: {value!r}")
        return alias


_RANGE_ALIASES: dict[str, TimeRange] = {
    "1d": TimeRange.DAY,
    "5d": TimeRange.WEEK,
    "1w": TimeRange.WEEK,
    "1mo": TimeRange.MONTH,
    "6mo": TimeRange.SIX_MONTHS,
    "1y": TimeRange.YEAR,
    "5y": TimeRange.ALL,
    "max": TimeRange.ALL,
}


@dataclass
class Quote:
    """Point-in-time price observation. Ephemeral; lives only as long as its cache entry."""

    symbol: str
    price: Decimal
    currency: str
    change_percent: Decimal
    exchange: str
    source: str
    timestamp: int  # Unix milliseconds
    name: str = ""


@dataclass
class PricePoint:
    """A single bar of a historical series. Close is always present."""

    timestamp: int  # Unix seconds
    close: Decimal
    open: Decimal | None = None
    high: Decimal | None = None
    low: Decimal | None = None
    volume: Decimal | None = None


@dataclass
class HistoricalSeries:
    """Ordered price bars for one symbol over one range/granularity pair.

    Timestamps are strictly increasing. Build through from_points() so the
    invariant holds regardless of the provider's ordering.
    """

    symbol: str
    points: list[PricePoint]
    source: str
    last_updated: str  # ISO-8601 UTC
    currency: str
    time_range: TimeRange

    @classmethod
    def from_points(
        cls,
        symbol: str,
        points: Iterable[PricePoint],
        *,
        source: str,
        currency: str,
        time_range: TimeRange,
        last_updated: str | None = None,
    ) -> "HistoricalSeries":
        """Sort by timestamp, keeping the last point seen for duplicated timestamps."""
        by_ts: dict[int, PricePoint] = {}
        for point in points:
            if point.close is None:
                continue
            by_ts[int(point.timestamp)] = point
        ordered = [by_ts[ts] for ts in sorted(by_ts)]
        if last_updated is None:
            last_updated = utc_iso(ordered[-1].timestamp if ordered else time.time())
        return cls(
            symbol=symbol,
            points=ordered,
            source=source,
            last_updated=last_updated,
            currency=currency,
            time_range=time_range,
        )


@dataclass
class StockMetadata:
    """Slow-changing classification data for an instrument."""

    symbol: str
    sector: str | None = None
    industry: str | None = None
    country: str | None = None
    category: str | None = None


@dataclass
class FxRate:
    """Conversion rate: 1 unit of base = rate units of quote."""

    base: str
    quote: str
    rate: Decimal
    source: str
    timestamp: float = field(default_factory=time.time)


def utc_iso(epoch_seconds: float) -> str:
    """Format a Unix timestamp as an ISO-8601 UTC string."""
    return datetime.fromtimestamp(epoch_seconds, tz=timezone.utc).isoformat()
