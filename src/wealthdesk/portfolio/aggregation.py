"""Portfolio history: merge per-symbol price series into one chartable series.

The merge is a single pass over the sorted union of timestamps, carrying the
last seen price per symbol. Prices are forward-filled, never interpolated and
never back-filled: a symbol contributes nothing until its first observation.

Performance is value-weighted: each holding's return against its baseline
(first observed price in the range) is weighted by its baseline market
value, so a large position moves the aggregate more than a small one with
the same percentage swing.
"""

import asyncio
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from decimal import Decimal

from wealthdesk.exceptions import AllStrategiesExhausted
from wealthdesk.logging import get_logger
from wealthdesk.market_data.ranges import range_start_timestamp
from wealthdesk.market_data.service import MarketDataService
from wealthdesk.market_data.symbols import normalize_symbol
from wealthdesk.models import AssetClass, HistoricalSeries, PricePoint, Quote, TimeRange
from wealthdesk.storage.entities import AssetType, StockHolding

logger = get_logger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")


@dataclass
class PortfolioHistoryPoint:
    """One chart point: valuations and performance at a timestamp."""

    timestamp: int  # Unix seconds
    total_value: Decimal
    total_performance: Decimal  # percent vs baseline
    values_by_owner: dict[str, Decimal] = field(default_factory=dict)
    performance_by_owner: dict[str, Decimal] = field(default_factory=dict)
    prices: dict[str, Decimal] = field(default_factory=dict)  # forward-filled, per symbol
    benchmark_price: Decimal | None = None
    benchmark_performance: Decimal | None = None


def _points_in_range(series: HistoricalSeries | None, range_start: int | None) -> list[PricePoint]:
    if series is None:
        return []
    if range_start is None:
        return list(series.points)
    return [p for p in series.points if p.timestamp >= range_start]


def build_portfolio_history(
    holdings: Sequence[StockHolding],
    histories: dict[str, HistoricalSeries],
    benchmark_symbol: str | None = None,
    range_start: int | None = None,
) -> list[PortfolioHistoryPoint]:
    """Merge price histories into a portfolio series.

    Args:
        holdings: Positions (symbol, shares, owner). Several holdings may
            share a symbol.
        histories: Series per symbol; a missing symbol counts as absent.
        benchmark_symbol: Overlay symbol, tracked but never valued.
        range_start: Drop observations before this Unix second.

    Returns:
        Points in ascending timestamp order. Points whose total valuation
        is zero are omitted.
    """
    observed = {
        symbol: _points_in_range(histories.get(symbol), range_start)
        for symbol in dict.fromkeys(h.symbol for h in holdings)
    }
    benchmark = _points_in_range(histories.get(benchmark_symbol), range_start) if benchmark_symbol else []

    baselines = {symbol: points[0].close for symbol, points in observed.items() if points}
    benchmark_baseline = benchmark[0].close if benchmark else None

    owners = list(dict.fromkeys(h.owner for h in holdings))
    owner_weights = {owner: ZERO for owner in owners}
    for holding in holdings:
        baseline = baselines.get(holding.symbol)
        if baseline:
            owner_weights[holding.owner] += holding.shares * baseline
    total_weight = sum(owner_weights.values(), ZERO)

    prices_at: dict[int, dict[str, Decimal]] = {}
    for symbol, points in observed.items():
        for point in points:
            prices_at.setdefault(point.timestamp, {})[symbol] = point.close
    benchmark_at = {point.timestamp: point.close for point in benchmark}

    last_price: dict[str, Decimal] = {}
    last_benchmark: Decimal | None = None
    history: list[PortfolioHistoryPoint] = []

    for timestamp in sorted(prices_at.keys() | benchmark_at.keys()):
        last_price.update(prices_at.get(timestamp, {}))
        if timestamp in benchmark_at:
            last_benchmark = benchmark_at[timestamp]

        values = {owner: ZERO for owner in owners}
        weighted_returns = {owner: ZERO for owner in owners}
        for holding in holdings:
            price = last_price.get(holding.symbol)
            if price is None:
                continue
            values[holding.owner] += holding.shares * price
            baseline = baselines[holding.symbol]
            if baseline:
                weight = holding.shares * baseline
                weighted_returns[holding.owner] += (price - baseline) / baseline * weight

        total_value = sum(values.values(), ZERO)
        if total_value == 0:
            continue

        total_return = sum(weighted_returns.values(), ZERO)
        benchmark_performance = None
        if last_benchmark is not None and benchmark_baseline:
            benchmark_performance = (last_benchmark - benchmark_baseline) / benchmark_baseline * HUNDRED

        history.append(
            PortfolioHistoryPoint(
                timestamp=timestamp,
                total_value=total_value,
                total_performance=total_return / total_weight * HUNDRED if total_weight else ZERO,
                values_by_owner=values,
                performance_by_owner={
                    owner: (weighted_returns[owner] / owner_weights[owner] * HUNDRED if owner_weights[owner] else ZERO)
                    for owner in owners
                },
                prices={symbol: last_price[symbol] for symbol in observed if symbol in last_price},
                benchmark_price=last_benchmark,
                benchmark_performance=benchmark_performance,
            )
        )

    return history


class PortfolioHistoryService:
    """Fetches every needed series in parallel and runs the merge."""

    def __init__(
        self,
        market_data: MarketDataService,
        *,
        benchmark_symbol: str = "URTH",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._market_data = market_data
        self._benchmark_symbol = benchmark_symbol
        self._clock = clock

    async def _fetch(
        self, symbol: str, time_range: TimeRange, asset_class: AssetClass | None
    ) -> HistoricalSeries | None:
        try:
            return await self._market_data.fetch_historical_prices(symbol, time_range, asset_class)
        except (AllStrategiesExhausted, ValueError) as exc:
            logger.warning("portfolio_symbol_unavailable", symbol=symbol, error=str(exc))
            return None

    async def load(
        self, holdings: Sequence[StockHolding], time_range: TimeRange | str
    ) -> list[PortfolioHistoryPoint]:
        time_range = TimeRange.parse(time_range)
        holdings = [
            h.model_copy(update={"symbol": normalize_symbol(h.symbol)})
            for h in holdings
            if h.type is not AssetType.CASH and h.symbol.strip()
        ]
        if not holdings:
            return []

        asset_classes: dict[str, AssetClass | None] = {}
        for holding in holdings:
            asset_classes.setdefault(
                holding.symbol, AssetClass.CRYPTO if holding.type is AssetType.CRYPTO else None
            )
        asset_classes.setdefault(self._benchmark_symbol, None)

        symbols = list(asset_classes)
        results = await asyncio.gather(
            *(self._fetch(s, time_range, asset_classes[s]) for s in symbols)
        )
        histories = {s: series for s, series in zip(symbols, results) if series is not None}

        return build_portfolio_history(
            holdings,
            histories,
            self._benchmark_symbol,
            range_start_timestamp(time_range, now=self._clock()),
        )


async def refresh_holding_prices(
    market_data: MarketDataService, holdings: Sequence[StockHolding]
) -> list[StockHolding]:
    """Return copies of holdings with fresh prices; failed quotes keep the last price."""
    priced = [h for h in holdings if h.type is not AssetType.CASH and h.symbol.strip()]
    quotes = await market_data.fetch_quotes([h.symbol for h in priced])

    refreshed = []
    for holding in holdings:
        quote = quotes.get(normalize_symbol(holding.symbol))
        if isinstance(quote, Quote):
            holding = holding.model_copy(
                update={"current_price": quote.price, "day_change_percent": quote.change_percent}
            )
        refreshed.append(holding)
    return refreshed
