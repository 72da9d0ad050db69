"""Tests for portfolio history merging and holding price refresh."""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from wealthdesk.exceptions import AllStrategiesExhausted
from wealthdesk.models import AssetClass, HistoricalSeries, PricePoint, Quote, TimeRange
from wealthdesk.portfolio.aggregation import (
    PortfolioHistoryService,
    build_portfolio_history,
    refresh_holding_prices,
)
from wealthdesk.storage.entities import AssetType, StockHolding

T1, T2, T3, T4 = 1_000, 2_000, 3_000, 4_000


def _series(symbol: str, *points: tuple[int, str]) -> HistoricalSeries:
    return HistoricalSeries.from_points(
        symbol,
        [PricePoint(timestamp=ts, close=Decimal(close)) for ts, close in points],
        source="test",
        currency="USD",
        time_range=TimeRange.MONTH,
    )


def _holding(symbol: str, shares: str, owner: str = "Me", **extra) -> StockHolding:
    return StockHolding(id=f"{owner}-{symbol}", symbol=symbol, shares=Decimal(shares), owner=owner, **extra)


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


class TestBuildPortfolioHistory:
    def test_forward_fill_without_back_fill(self) -> None:
        holdings = [_holding("AAA", "2"), _holding("BBB", "1")]
        histories = {
            "AAA": _series("AAA", (T1, "10"), (T3, "12")),
            "BBB": _series("BBB", (T2, "50")),
        }

        points = build_portfolio_history(holdings, histories)

        assert [p.timestamp for p in points] == [T1, T2, T3]
        # BBB contributes nothing before its first observation
        assert points[0].total_value == Decimal("20")
        assert points[0].prices == {"AAA": Decimal("10")}
        # AAA carried forward into T2
        assert points[1].total_value == Decimal("70")
        assert points[1].prices == {"AAA": Decimal("10"), "BBB": Decimal("50")}
        assert points[2].total_value == Decimal("74")

    def test_repeated_merge_is_identical(self) -> None:
        holdings = [_holding("AAA", "2"), _holding("BBB", "1", owner="Partner")]
        histories = {
            "AAA": _series("AAA", (T1, "10"), (T3, "12")),
            "BBB": _series("BBB", (T2, "50"), (T4, "40")),
        }

        assert build_portfolio_history(holdings, histories) == build_portfolio_history(holdings, histories)

    def test_performance_is_value_weighted(self) -> None:
        holdings = [_holding("BIG", "10"), _holding("SMALL", "1")]
        histories = {
            "BIG": _series("BIG", (T1, "100"), (T2, "110")),
            "SMALL": _series("SMALL", (T1, "100"), (T2, "200")),
        }

        points = build_portfolio_history(holdings, histories)

        assert points[0].total_performance == Decimal("0")
        # (10% * 1000 + 100% * 100) / 1100
        assert round(points[1].total_performance, 4) == Decimal("18.1818")

    def test_owner_breakdown(self) -> None:
        holdings = [
            _holding("AAA", "1", owner="Me"),
            _holding("AAA", "3", owner="Partner"),
            _holding("BBB", "1", owner="Joint"),
        ]
        histories = {
            "AAA": _series("AAA", (T1, "10"), (T2, "20")),
            "BBB": _series("BBB", (T1, "100"), (T2, "100")),
        }

        last = build_portfolio_history(holdings, histories)[-1]

        assert last.values_by_owner == {"Me": Decimal("20"), "Partner": Decimal("60"), "Joint": Decimal("100")}
        assert last.performance_by_owner["Partner"] == Decimal("100")
        assert last.performance_by_owner["Joint"] == Decimal("0")
        assert last.total_value == Decimal("180")

    def test_zero_total_points_are_dropped(self) -> None:
        holdings = [_holding("AAA", "1")]
        histories = {
            "AAA": _series("AAA", (T2, "10")),
            "URTH": _series("URTH", (T1, "100"), (T2, "101")),
        }

        points = build_portfolio_history(holdings, histories, benchmark_symbol="URTH")

        assert [p.timestamp for p in points] == [T2]

    def test_benchmark_overlay_is_never_back_filled(self) -> None:
        holdings = [_holding("AAA", "1")]
        histories = {
            "AAA": _series("AAA", (T1, "10"), (T2, "11"), (T3, "12")),
            "URTH": _series("URTH", (T2, "100"), (T3, "110")),
        }

        points = build_portfolio_history(holdings, histories, benchmark_symbol="URTH")

        assert points[0].benchmark_price is None
        assert points[0].benchmark_performance is None
        assert points[1].benchmark_performance == Decimal("0")
        assert points[2].benchmark_performance == Decimal("10")
        # Benchmark is tracked, not valued
        assert points[2].total_value == Decimal("12")

    def test_range_start_moves_baseline(self) -> None:
        holdings = [_holding("AAA", "1")]
        histories = {"AAA": _series("AAA", (T1, "50"), (T2, "100"), (T3, "150"))}

        points = build_portfolio_history(holdings, histories, range_start=T2)

        assert [p.timestamp for p in points] == [T2, T3]
        assert points[-1].total_performance == Decimal("50")

    def test_missing_history_contributes_nothing(self) -> None:
        holdings = [_holding("AAA", "1"), _holding("GONE", "100")]
        histories = {"AAA": _series("AAA", (T1, "10"))}

        points = build_portfolio_history(holdings, histories)

        assert points[0].total_value == Decimal("10")
        assert points[0].total_performance == Decimal("0")

    def test_no_holdings(self) -> None:
        assert build_portfolio_history([], {}) == []


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


def _exhausted(symbol: str) -> AllStrategiesExhausted:
    return AllStrategiesExhausted(symbol, "history", [])


class TestPortfolioHistoryService:
    @pytest.mark.asyncio
    async def test_load_fetches_holdings_and_benchmark(self) -> None:
        series = {
            "AAPL": _series("AAPL", (T1, "100"), (T2, "110")),
            "BTC": _series("BTC", (T1, "50000"), (T2, "55000")),
            "URTH": _series("URTH", (T1, "120"), (T2, "121")),
        }

        async def fetch(symbol, time_range, asset_class=None):
            if symbol not in series:
                raise _exhausted(symbol)
            return series[symbol]

        market_data = AsyncMock()
        market_data.fetch_historical_prices = AsyncMock(side_effect=fetch)
        service = PortfolioHistoryService(market_data, benchmark_symbol="URTH")
        holdings = [
            _holding(" aapl", "1"),
            _holding("BTC", "0.1", type=AssetType.CRYPTO),
            _holding("DELISTED", "5"),
            StockHolding(id="cash", symbol="EUR", shares=Decimal("1000"), type=AssetType.CASH),
        ]

        points = await service.load(holdings, "ALL")

        calls = {c.args[0]: c.args for c in market_data.fetch_historical_prices.await_args_list}
        assert set(calls) == {"AAPL", "BTC", "DELISTED", "URTH"}
        assert calls["BTC"] == ("BTC", TimeRange.ALL, AssetClass.CRYPTO)
        assert calls["AAPL"] == ("AAPL", TimeRange.ALL, None)
        assert points[-1].total_value == Decimal("110") + Decimal("5500.0")
        assert points[-1].benchmark_price == Decimal("121")

    @pytest.mark.asyncio
    async def test_range_start_comes_from_clock(self) -> None:
        now = 100 * 86_400
        market_data = AsyncMock()
        market_data.fetch_historical_prices = AsyncMock(
            return_value=_series("AAPL", (now - 40 * 86_400, "1"), (now - 10 * 86_400, "2"))
        )
        service = PortfolioHistoryService(market_data, benchmark_symbol="URTH", clock=lambda: now)

        points = await service.load([_holding("AAPL", "1")], TimeRange.MONTH)

        assert [p.timestamp for p in points] == [now - 10 * 86_400]

    @pytest.mark.asyncio
    async def test_only_cash_holdings(self) -> None:
        market_data = AsyncMock()
        service = PortfolioHistoryService(market_data)

        cash = StockHolding(id="c", symbol="EUR", shares=Decimal("1"), type=AssetType.CASH)

        assert await service.load([cash], "1M") == []
        market_data.fetch_historical_prices.assert_not_awaited()


class TestRefreshHoldingPrices:
    @pytest.mark.asyncio
    async def test_failed_quotes_keep_last_price(self) -> None:
        quote = Quote(
            symbol="AAPL",
            price=Decimal("190.5"),
            currency="USD",
            change_percent=Decimal("1.2"),
            exchange="NMS",
            source="Yahoo Finance",
            timestamp=0,
        )
        market_data = AsyncMock()
        market_data.fetch_quotes = AsyncMock(return_value={"AAPL": quote, "MSFT": _exhausted("MSFT")})
        holdings = [
            _holding("aapl", "1", current_price=Decimal("150")),
            _holding("MSFT", "1", current_price=Decimal("400")),
        ]

        refreshed = await refresh_holding_prices(market_data, holdings)

        assert refreshed[0].current_price == Decimal("190.5")
        assert refreshed[0].day_change_percent == Decimal("1.2")
        assert refreshed[1].current_price == Decimal("400")
        assert holdings[0].current_price == Decimal("150")
        market_data.fetch_quotes.assert_awaited_once_with(["aapl", "MSFT"])
