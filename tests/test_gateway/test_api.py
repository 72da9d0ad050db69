"""Tests for the HTTP gateway routes with stubbed services on app.state."""

import json
import time
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from wealthdesk.exceptions import AllStrategiesExhausted, DataImportError, FailureKind, UnknownCollectionError
from wealthdesk.gateway.app import create_gateway_app
from wealthdesk.market_data.news import NewsItem, Sentiment
from wealthdesk.market_data.providers.base import ProviderFailure
from wealthdesk.models import AssetClass, FxRate, HistoricalSeries, PricePoint, Quote, StockMetadata, TimeRange
from wealthdesk.portfolio.aggregation import PortfolioHistoryPoint
from wealthdesk.storage.entities import CashHolding, StockHolding
from wealthdesk.storage.sync import OversizedPayloadSkipped


def _quote(symbol: str = "AAPL") -> Quote:
    return Quote(
        symbol=symbol,
        price=Decimal("189.25"),
        currency="USD",
        change_percent=Decimal("-0.42"),
        exchange="NasdaqGS",
        source="Yahoo Finance",
        timestamp=1_700_000_000_000,
        name="Apple Inc.",
    )


def _exhausted(kind: FailureKind) -> AllStrategiesExhausted:
    return AllStrategiesExhausted(
        "ZZZZ",
        "quote",
        [ProviderFailure(kind, "HTTP 404" if kind is FailureKind.NOT_FOUND else "HTTP 500", "Yahoo Finance")],
    )


@pytest.fixture
def market_data() -> MagicMock:
    service = MagicMock()
    service.fetch_quote = AsyncMock(return_value=_quote())
    service.fetch_historical_prices = AsyncMock()
    service.fetch_metadata = AsyncMock()
    service.fetch_exchange_rate = AsyncMock()
    service.cache_stats = MagicMock(return_value={"quotes": {"hits": 0}})
    return service


@pytest.fixture
def storage() -> MagicMock:
    storage = MagicMock()
    storage.get_collection = AsyncMock(return_value=[])
    storage.save_collection = AsyncMock(return_value=[])
    storage.delete_item = AsyncMock(return_value=True)
    storage.export_all = AsyncMock(return_value='{"cash": []}')
    storage.import_data = AsyncMock(return_value={"cash": 1})
    return storage


@pytest.fixture
def portfolio_history() -> MagicMock:
    service = MagicMock()
    service.load = AsyncMock(return_value=[])
    return service


@pytest.fixture
def client(market_data, storage, portfolio_history) -> TestClient:
    app = create_gateway_app()
    app.state.market_data = market_data
    app.state.storage = storage
    app.state.portfolio_history = portfolio_history
    return TestClient(app)


# ---------------------------------------------------------------------------
# Market data
# ---------------------------------------------------------------------------


class TestQuotes:
    def test_stock_price(self, client, market_data) -> None:
        response = client.get("/api/stock-price", params={"symbol": "AAPL"})

        assert response.status_code == 200
        body = response.json()
        assert body["price"] == "189.25"
        assert body["changePercent"] == "-0.42"
        assert body["source"] == "Yahoo Finance"
        market_data.fetch_quote.assert_awaited_once_with("AAPL", AssetClass.EQUITY)

    def test_crypto_price_uses_crypto_chain(self, client, market_data) -> None:
        client.get("/api/crypto-price", params={"symbol": "BTC"})

        market_data.fetch_quote.assert_awaited_once_with("BTC", AssetClass.CRYPTO)

    @pytest.mark.parametrize("path", ["/api/stock-price", "/api/crypto-price", "/api/stock-history", "/api/stock-metadata"])
    def test_missing_symbol_is_400(self, client, market_data, path: str) -> None:
        response = client.get(path)

        assert response.status_code == 400
        assert response.json() == {"error": "Symbol required"}
        market_data.fetch_quote.assert_not_awaited()

    def test_not_found_is_404(self, client, market_data) -> None:
        market_data.fetch_quote.side_effect = _exhausted(FailureKind.NOT_FOUND)

        response = client.get("/api/stock-price", params={"symbol": "ZZZZ"})

        assert response.status_code == 404
        assert response.json()["error"] == "No data available for ZZZZ."
        assert response.json()["details"] == "Yahoo Finance: HTTP 404"

    def test_unreachable_is_502(self, client, market_data) -> None:
        market_data.fetch_quote.side_effect = _exhausted(FailureKind.HTTP_ERROR)

        response = client.get("/api/stock-price", params={"symbol": "ZZZZ"})

        assert response.status_code == 502


class TestHistory:
    def test_stock_history_payload(self, client, market_data) -> None:
        market_data.fetch_historical_prices.return_value = HistoricalSeries.from_points(
            "AAPL",
            [PricePoint(timestamp=1_704_067_200, close=Decimal("185.64"), volume=Decimal("1000"))],
            source="Yahoo Finance (query2)",
            currency="USD",
            time_range=TimeRange.MONTH,
        )

        response = client.get("/api/stock-history", params={"symbol": "AAPL", "range": "1mo"})

        assert response.status_code == 200
        body = response.json()
        assert body["source"] == "Yahoo Finance (query2)"
        assert body["range"] == "1M"
        assert body["data"] == [
            {
                "date": "2024-01-01",
                "timestamp": 1_704_067_200,
                "close": "185.64",
                "open": None,
                "high": None,
                "low": None,
                "volume": "1000",
            }
        ]
        market_data.fetch_historical_prices.assert_awaited_once_with("AAPL", TimeRange.MONTH, AssetClass.EQUITY)

    def test_intraday_dates_include_time(self, client, market_data) -> None:
        market_data.fetch_historical_prices.return_value = HistoricalSeries.from_points(
            "BTC",
            [PricePoint(timestamp=1_704_067_200 + 5 * 60, close=Decimal("1"))],
            source="Binance",
            currency="EUR",
            time_range=TimeRange.DAY,
        )

        body = client.get("/api/crypto-history", params={"symbol": "BTC", "range": "1D"}).json()

        assert body["data"][0]["date"] == "2024-01-01 00:05"

    def test_bad_range_is_400(self, client, market_data) -> None:
        response = client.get("/api/stock-history", params={"symbol": "AAPL", "range": "3wk"})

        assert response.status_code == 400
        market_data.fetch_historical_prices.assert_not_awaited()


class TestMetadataAndFx:
    def test_metadata(self, client, market_data) -> None:
        market_data.fetch_metadata.return_value = StockMetadata(symbol="AAPL", sector="Technology")

        body = client.get("/api/stock-metadata", params={"symbol": "AAPL"}).json()

        assert body == {"symbol": "AAPL", "sector": "Technology", "industry": None, "country": None, "category": None}

    def test_exchange_rate_defaults(self, client, market_data) -> None:
        market_data.fetch_exchange_rate.return_value = FxRate(
            base="USD", quote="EUR", rate=Decimal("0.92"), source="open.er-api"
        )

        body = client.get("/api/exchange-rate").json()

        assert body == {"from": "USD", "to": "EUR", "rate": "0.92", "source": "open.er-api"}
        market_data.fetch_exchange_rate.assert_awaited_once_with("USD", "EUR")

    def test_stock_news(self, client, market_data) -> None:
        market_data.fetch_news = AsyncMock(
            return_value=[
                NewsItem(
                    id="n1",
                    title="Apple shares surge",
                    source="Reuters",
                    published_at=int(time.time()) - 120,
                    url="https://news.test/n1",
                    sentiment=Sentiment.POSITIVE,
                    related_tickers=["AAPL"],
                )
            ]
        )

        body = client.get("/api/stock-news?symbols=aapl, msft,").json()

        market_data.fetch_news.assert_awaited_once_with(["AAPL", "MSFT"])
        assert body["symbols"] == ["AAPL", "MSFT"]
        item = body["news"][0]
        assert item["sentiment"] == "POSITIVE"
        assert item["time"] == "2m ago"
        assert item["relatedTickers"] == ["AAPL"]
        assert "imageUrl" not in item

    def test_health_reports_cache(self, client) -> None:
        body = client.get("/api/health").json()

        assert body["status"] == "ok"
        assert body["cache"] == {"quotes": {"hits": 0}}


class TestPortfolioHistory:
    def test_points_serialized(self, client, storage, portfolio_history) -> None:
        holdings = [StockHolding(id="h1", symbol="AAPL", shares=Decimal("2"))]
        storage.get_collection.return_value = holdings
        portfolio_history.load.return_value = [
            PortfolioHistoryPoint(
                timestamp=1_000,
                total_value=Decimal("20"),
                total_performance=Decimal("0"),
                values_by_owner={"Me": Decimal("20")},
                performance_by_owner={"Me": Decimal("0")},
                prices={"AAPL": Decimal("10")},
            )
        ]

        body = client.get("/api/portfolio-history", params={"range": "1Y"}).json()

        assert body[0]["totalValue"] == "20"
        assert body[0]["valuesByOwner"] == {"Me": "20"}
        assert body[0]["benchmarkPrice"] is None
        storage.get_collection.assert_awaited_once_with("portfolio")
        portfolio_history.load.assert_awaited_once_with(holdings, TimeRange.YEAR)


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


class TestCollections:
    def test_get_collection_camel_case(self, client, storage) -> None:
        storage.get_collection.return_value = [CashHolding(id="c1", name="Checking", amount=Decimal("10.50"))]

        response = client.get("/api/collections/cash")

        assert response.json() == [
            {"id": "c1", "name": "Checking", "amount": "10.50", "currency": "EUR", "owner": "Me"}
        ]

    def test_unknown_collection_is_404(self, client, storage) -> None:
        assert client.get("/api/collections/yachts").status_code == 404
        assert client.put("/api/collections/yachts", json=[]).status_code == 404
        storage.get_collection.assert_not_awaited()

    def test_put_reports_local_only_records(self, client, storage) -> None:
        storage.save_collection.return_value = [OversizedPayloadSkipped("documents", "d1", 900_000, 800_000)]
        records = [{"id": "d1", "name": "scan.pdf", "data": "..."}]

        response = client.put("/api/collections/documents", json=records)

        assert response.json() == {
            "saved": 1,
            "localOnly": [{"collection": "documents", "record_id": "d1", "size": 900_000, "limit": 800_000}],
        }
        storage.save_collection.assert_awaited_once_with("documents", records)

    def test_put_invalid_json_is_400(self, client) -> None:
        response = client.put(
            "/api/collections/cash", content=b"{nope", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 400

    def test_put_invalid_records_is_400(self, client, storage) -> None:
        storage.save_collection.side_effect = ValueError("invalid cash record: amount")

        response = client.put("/api/collections/cash", json=[{"id": "c1"}])

        assert response.status_code == 400
        assert "invalid cash record" in response.json()["error"]

    def test_delete(self, client, storage) -> None:
        assert client.delete("/api/collections/cash/c1").json() == {"deleted": True}

        storage.delete_item.side_effect = UnknownCollectionError("Unknown collection: yachts")
        assert client.delete("/api/collections/yachts/y1").status_code == 404


class TestDataTransfer:
    def test_export(self, client) -> None:
        response = client.get("/api/export")

        assert response.headers["content-type"].startswith("application/json")
        assert response.json() == {"cash": []}

    def test_import(self, client, storage) -> None:
        payload = json.dumps({"cash": [{"id": "c1", "amount": "1"}]})

        response = client.post("/api/import", content=payload)

        assert response.json() == {"imported": {"cash": 1}}
        storage.import_data.assert_awaited_once_with(payload)

    def test_import_failure_is_400(self, client, storage) -> None:
        storage.import_data.side_effect = DataImportError("Import payload is not valid JSON")

        response = client.post("/api/import", content="garbage")

        assert response.status_code == 400
        assert response.json() == {"error": "Import failed", "details": "Import payload is not valid JSON"}


class TestCors:
    def test_plain_options_is_ok(self, client) -> None:
        response = client.options("/api/stock-price")

        assert response.status_code == 200
        assert response.json() == {"ok": True}

    def test_preflight_allows_any_origin(self, client) -> None:
        response = client.options(
            "/api/collections/cash",
            headers={"Origin": "http://localhost:5173", "Access-Control-Request-Method": "PUT"},
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"

    def test_simple_request_carries_cors_header(self, client) -> None:
        response = client.get("/api/health", headers={"Origin": "http://localhost:5173"})

        assert response.headers["access-control-allow-origin"] == "*"
