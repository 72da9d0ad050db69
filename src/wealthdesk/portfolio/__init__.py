"""Portfolio aggregation -- forward-filled valuation and performance series."""

from wealthdesk.portfolio.aggregation import (
    PortfolioHistoryPoint,
    PortfolioHistoryService,
    build_portfolio_history,
    refresh_holding_prices,
)

__all__ = [
    "PortfolioHistoryPoint",
    "PortfolioHistoryService",
    "build_portfolio_history",
    "refresh_holding_prices",
]
