"""Market data JSON endpoints consumed by the dashboard UI."""

from __future__ import annotations

import dataclasses
import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from wealthdesk.exceptions import AllStrategiesExhausted
from wealthdesk.logging import get_logger
from wealthdesk.market_data.news import NewsItem, relative_time
from wealthdesk.market_data.ranges import YAHOO_RANGES
from wealthdesk.models import AssetClass, HistoricalSeries, Quote, TimeRange

log = get_logger(__name__)

router = APIRouter()


def _decimal_to_str(obj: Any) -> Any:
    """Recursively convert Decimal values to strings for JSON serialization."""
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, dict):
        return {k: _decimal_to_str(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_decimal_to_str(item) for item in obj]
    return obj


def _error(message: str, status_code: int, details: str | None = None) -> JSONResponse:
    content = {"error": message}
    if details:
        content["details"] = details
    return JSONResponse(content=content, status_code=status_code)


def _exhausted(exc: AllStrategiesExhausted) -> JSONResponse:
    """404 when every provider agreed there is no data, 502 when they were unreachable."""
    status_code = 404 if exc.reason == "not_found" else 502
    return _error(exc.user_message, status_code, exc.details)


def _quote_payload(quote: Quote) -> dict[str, Any]:
    return _decimal_to_str(
        {
            "symbol": quote.symbol,
            "price": quote.price,
            "currency": quote.currency,
            "timestamp": quote.timestamp,
            "changePercent": quote.change_percent,
            "name": quote.name,
            "exchange": quote.exchange,
            "source": quote.source,
        }
    )


def _history_payload(series: HistoricalSeries) -> dict[str, Any]:
    intraday = YAHOO_RANGES[series.time_range].is_intraday
    fmt = "%Y-%m-%d %H:%M" if intraday else "%Y-%m-%d"
    data = [
        {
            "date": datetime.fromtimestamp(p.timestamp, tz=timezone.utc).strftime(fmt),
            "timestamp": p.timestamp,
            "close": p.close,
            "open": p.open,
            "high": p.high,
            "low": p.low,
            "volume": p.volume,
        }
        for p in series.points
    ]
    return _decimal_to_str(
        {
            "symbol": series.symbol,
            "currency": series.currency,
            "range": series.time_range.value,
            "source": series.source,
            "lastUpdated": series.last_updated,
            "data": data,
        }
    )


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get("/health")
async def get_health(request: Request) -> JSONResponse:
    market_data = request.app.state.market_data
    return JSONResponse(
        content={
            "status": "ok",
            "timestamp": int(time.time() * 1000),
            "cache": market_data.cache_stats(),
        }
    )


# ---------------------------------------------------------------------------
# Quotes
# ---------------------------------------------------------------------------


async def _quote(request: Request, symbol: str, asset_class: AssetClass) -> JSONResponse:
    if not symbol.strip():
        return _error("Symbol required", 400)
    try:
        quote = await request.app.state.market_data.fetch_quote(symbol, asset_class)
    except AllStrategiesExhausted as exc:
        return _exhausted(exc)
    except ValueError as exc:
        return _error(str(exc), 400)
    return JSONResponse(content=_quote_payload(quote))


@router.get("/stock-price")
async def get_stock_price(request: Request, symbol: str = "") -> JSONResponse:
    return await _quote(request, symbol, AssetClass.EQUITY)


@router.get("/crypto-price")
async def get_crypto_price(request: Request, symbol: str = "") -> JSONResponse:
    return await _quote(request, symbol, AssetClass.CRYPTO)


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


async def _history(request: Request, symbol: str, range_: str, asset_class: AssetClass) -> JSONResponse:
    if not symbol.strip():
        return _error("Symbol required", 400)
    try:
        time_range = TimeRange.parse(range_)
    except ValueError as exc:
        return _error(str(exc), 400)
    try:
        series = await request.app.state.market_data.fetch_historical_prices(
            symbol, time_range, asset_class
        )
    except AllStrategiesExhausted as exc:
        return _exhausted(exc)
    return JSONResponse(content=_history_payload(series))


@router.get("/stock-history")
async def get_stock_history(request: Request, symbol: str = "", range: str = "1mo") -> JSONResponse:
    """Query params: symbol, range (1D/1W/1M/6M/1Y/ALL or 1d/5d/1mo/6mo/1y/5y/max)."""
    return await _history(request, symbol, range, AssetClass.EQUITY)


@router.get("/crypto-history")
async def get_crypto_history(request: Request, symbol: str = "", range: str = "1mo") -> JSONResponse:
    return await _history(request, symbol, range, AssetClass.CRYPTO)


# ---------------------------------------------------------------------------
# Metadata and FX
# ---------------------------------------------------------------------------


@router.get("/stock-metadata")
async def get_stock_metadata(request: Request, symbol: str = "") -> JSONResponse:
    if not symbol.strip():
        return _error("Symbol required", 400)
    try:
        metadata = await request.app.state.market_data.fetch_metadata(symbol)
    except AllStrategiesExhausted as exc:
        return _exhausted(exc)
    return JSONResponse(content=dataclasses.asdict(metadata))


@router.get("/exchange-rate")
async def get_exchange_rate(request: Request) -> JSONResponse:
    """Query params: from (default USD), to (default EUR)."""
    base = request.query_params.get("from", "USD").strip().upper() or "USD"
    quote = request.query_params.get("to", "EUR").strip().upper() or "EUR"
    try:
        rate = await request.app.state.market_data.fetch_exchange_rate(base, quote)
    except AllStrategiesExhausted as exc:
        return _exhausted(exc)
    return JSONResponse(
        content=_decimal_to_str(
            {"from": rate.base, "to": rate.quote, "rate": rate.rate, "source": rate.source}
        )
    )


# ---------------------------------------------------------------------------
# News
# ---------------------------------------------------------------------------


def _news_payload(item: NewsItem, now: float) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": item.id,
        "title": item.title,
        "source": item.source,
        "time": relative_time(item.published_at, now),
        "publishedAt": item.published_at,
        "url": item.url,
        "relatedTickers": item.related_tickers,
        "sentiment": item.sentiment.value,
    }
    if item.image_url:
        payload["imageUrl"] = item.image_url
    return payload


@router.get("/stock-news")
async def get_stock_news(request: Request, symbols: str = "") -> JSONResponse:
    """Query param: symbols, comma separated; market ETFs when omitted."""
    symbol_list = [s.strip().upper() for s in symbols.split(",") if s.strip()]
    news = await request.app.state.market_data.fetch_news(symbol_list)
    now = time.time()
    return JSONResponse(
        content={
            "news": [_news_payload(item, now) for item in news],
            "symbols": symbol_list,
            "timestamp": int(now * 1000),
        }
    )


# ---------------------------------------------------------------------------
# Portfolio history
# ---------------------------------------------------------------------------


@router.get("/portfolio-history")
async def get_portfolio_history(request: Request, range: str = "1M") -> JSONResponse:
    """Forward-filled valuation and performance series for the stored portfolio."""
    try:
        time_range = TimeRange.parse(range)
    except ValueError as exc:
        return _error(str(exc), 400)

    holdings = await request.app.state.storage.get_collection("portfolio")
    points = await request.app.state.portfolio_history.load(holdings, time_range)
    log.debug("portfolio_history_served", range=time_range.value, points=len(points))
    return JSONResponse(
        content=_decimal_to_str(
            [
                {
                    "timestamp": p.timestamp,
                    "totalValue": p.total_value,
                    "totalPerformance": p.total_performance,
                    "valuesByOwner": p.values_by_owner,
                    "performanceByOwner": p.performance_by_owner,
                    "prices": p.prices,
                    "benchmarkPrice": p.benchmark_price,
                    "benchmarkPerformance": p.benchmark_performance,
                }
                for p in points
            ]
        )
    )
