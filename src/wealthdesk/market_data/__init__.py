"""Market data layer -- provider adapters, fallback chains and request caching."""

from wealthdesk.market_data.cache import MISS, RequestCache
from wealthdesk.market_data.fallback import FallbackChain, Strategy
from wealthdesk.market_data.service import MarketDataService

__all__ = ["MISS", "FallbackChain", "MarketDataService", "RequestCache", "Strategy"]
