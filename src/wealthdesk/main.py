"""Entry point for the wealthdesk gateway.

Wires all components together and serves the gateway with uvicorn's
programmatic API. The local database is opened and closed by FastAPI's
lifespan context manager, which also drains pending remote pushes and
releases the HTTP and ccxt sessions on shutdown.

Wiring order:
1. AppSettings and logging (run)
2. Shared httpx.AsyncClient
3. MarketDataService (adapters, fallback chains, request caches)
4. LocalDatabase + LocalStore
5. CloudLink (remote store resolution)
6. HybridStorage (sync engine)
7. PortfolioHistoryService (aggregation)
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any

import httpx
import uvicorn
from fastapi import FastAPI

from wealthdesk.config import AppSettings
from wealthdesk.gateway.app import create_gateway_app
from wealthdesk.logging import get_logger, setup_logging
from wealthdesk.market_data.service import MarketDataService
from wealthdesk.portfolio.aggregation import PortfolioHistoryService
from wealthdesk.storage.cloud import CloudLink
from wealthdesk.storage.database import LocalDatabase
from wealthdesk.storage.local_store import LocalStore
from wealthdesk.storage.sync import HybridStorage


def _build_components(settings: AppSettings) -> dict[str, Any]:
    """Instantiate every component without opening any connection.

    Returns a dict of named components for use by the lifespan.
    """
    client = httpx.AsyncClient(follow_redirects=True)

    market_data = MarketDataService.build(settings.market_data, client=client)

    database = LocalDatabase(settings.storage.db_path)
    local_store = LocalStore(database)
    cloud = CloudLink(
        local_store,
        settings.cloud,
        client,
        timeout=settings.market_data.request_timeout_seconds,
    )
    storage = HybridStorage(
        local_store,
        cloud,
        batch_size=settings.storage.batch_size,
        document_size_limit=settings.storage.document_size_limit,
    )
    portfolio_history = PortfolioHistoryService(
        market_data, benchmark_symbol=settings.market_data.benchmark_symbol
    )

    return {
        "http_client": client,
        "market_data": market_data,
        "database": database,
        "storage": storage,
        "portfolio_history": portfolio_history,
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the local database on startup; flush and release everything on shutdown."""
    logger = get_logger("wealthdesk.main")
    components = app.state.components

    app.state.market_data = components["market_data"]
    app.state.storage = components["storage"]
    app.state.portfolio_history = components["portfolio_history"]

    await components["database"].connect()
    logger.info("lifespan_started")

    yield

    await components["storage"].drain()
    await components["market_data"].close()
    await components["http_client"].aclose()
    await components["database"].close()

    logger.info("wealthdesk_stopped")


async def run() -> None:
    """Main async entry point."""
    settings = AppSettings()

    setup_logging(settings.log_level, settings.log_format)
    logger = get_logger("wealthdesk.main")

    app = create_gateway_app(lifespan=lifespan)
    app.state.settings = settings
    app.state.components = _build_components(settings)

    logger.info(
        "starting_gateway",
        host=settings.gateway.host,
        port=settings.gateway.port,
        db_path=settings.storage.db_path,
    )

    config = uvicorn.Config(
        app,
        host=settings.gateway.host,
        port=settings.gateway.port,
        log_level="warning",  # Suppress uvicorn access logs
    )
    server = uvicorn.Server(config)
    await server.serve()


def main() -> None:
    """Synchronous entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
