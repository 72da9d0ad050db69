"""FastAPI gateway application factory."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from wealthdesk.gateway.routes import market, storage


def create_gateway_app(lifespan: Any = None) -> FastAPI:
    """Create and configure the FastAPI gateway application.

    Args:
        lifespan: Optional async context manager for application lifespan events.
                  Used by main.py to inject startup/shutdown logic.

    Returns:
        Configured FastAPI application. Route handlers read the
        market_data, storage and portfolio_history services from app.state.
    """
    app = FastAPI(title="wealthdesk gateway", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "PUT", "POST", "DELETE", "OPTIONS"],
        allow_headers=["X-Requested-With", "Content-Type", "Accept"],
    )

    # Wired by main.py lifespan
    app.state.market_data = None
    app.state.storage = None
    app.state.portfolio_history = None

    app.include_router(market.router, prefix="/api")
    app.include_router(storage.router, prefix="/api")

    @app.options("/{path:path}")
    async def preflight(path: str) -> JSONResponse:
        return JSONResponse(content={"ok": True})

    return app
