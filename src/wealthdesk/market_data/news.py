"""Headlines for a set of tickers from Yahoo Finance search, with a keyword sentiment tag.

Each symbol is searched separately; a symbol whose search fails is logged
and skipped so one bad ticker never empties the feed.
"""

import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from wealthdesk.exceptions import ProviderError
from wealthdesk.logging import get_logger
from wealthdesk.market_data.http import JsonFetcher
from wealthdesk.market_data.providers.base import dig
from wealthdesk.market_data.symbols import normalize_symbol

logger = get_logger(__name__)

DEFAULT_NEWS_SYMBOLS = ("SPY", "QQQ")
MAX_NEWS_SYMBOLS = 5
NEWS_PER_SYMBOL = 10
MAX_NEWS_ITEMS = 15
_THUMBNAIL_MIN_WIDTH = 300


class Sentiment(str, Enum):
    POSITIVE = "POSITIVE"
    NEGATIVE = "NEGATIVE"
    NEUTRAL = "NEUTRAL"


_POSITIVE_WORDS = frozenset(
    "surge surges gain gains rise rises jump jumps rally rallies soar soars beat beats "
    "record high profit growth bullish upgrade outperform buy strong boom".split()
)
_NEGATIVE_WORDS = frozenset(
    "fall falls drop drops decline declines plunge plunges crash crashes loss losses "
    "miss misses low bearish downgrade underperform sell weak warning risk cut cuts".split()
)
_WORD = re.compile(r"[a-z]+")


def classify_sentiment(title: str) -> Sentiment:
    """Net count of positive minus negative keywords among the title's words."""
    words = set(_WORD.findall(title.lower()))
    score = len(words & _POSITIVE_WORDS) - len(words & _NEGATIVE_WORDS)
    if score > 0:
        return Sentiment.POSITIVE
    if score < 0:
        return Sentiment.NEGATIVE
    return Sentiment.NEUTRAL


def relative_time(published_at: int, now: float | None = None) -> str:
    """Age label such as "12m ago", "3h ago" or "2d ago"; older items get their calendar date."""
    now = time.time() if now is None else now
    minutes = max(0, int(now - published_at) // 60)
    if minutes < 60:
        return f"{minutes}m ago"
    if minutes < 24 * 60:
        return f"{minutes // 60}h ago"
    if minutes < 7 * 24 * 60:
        return f"{minutes // (24 * 60)}d ago"
    return datetime.fromtimestamp(published_at, tz=timezone.utc).strftime("%Y-%m-%d")


@dataclass(frozen=True)
class NewsItem:
    id: str
    title: str
    source: str
    published_at: int  # epoch seconds
    url: str
    sentiment: Sentiment
    image_url: str | None = None
    related_tickers: list[str] = field(default_factory=list)


def _thumbnail(item: dict) -> str | None:
    resolutions = [r for r in (dig(item, "thumbnail", "resolutions") or []) if isinstance(r, dict)]
    best = next((r for r in resolutions if (r.get("width") or 0) >= _THUMBNAIL_MIN_WIDTH), None)
    if best is None and resolutions:
        best = resolutions[0]
    return best.get("url") if best else None


class YahooNewsClient:
    """Searches Yahoo Finance for recent headlines per ticker.

    Args:
        fetcher: JSON transport (direct or proxied).
        host: Yahoo API host, query2 by default.
    """

    def __init__(self, fetcher: JsonFetcher, *, host: str = "https://query2.finance.yahoo.com") -> None:
        self._fetcher = fetcher
        self._host = host.rstrip("/")

    async def _search(self, symbol: str) -> list[dict]:
        payload = await self._fetcher.get_json(
            f"{self._host}/v1/finance/search",
            params={
                "q": symbol,
                "quotesCount": "0",
                "newsCount": str(NEWS_PER_SYMBOL),
                "enableFuzzyQuery": "false",
            },
        )
        items = dig(payload, "news") or []
        return [item for item in items if isinstance(item, dict)]

    async def fetch_news(self, symbols: list[str]) -> list[NewsItem]:
        """Newest first, de-duplicated across symbols, at most MAX_NEWS_ITEMS."""
        wanted = list(symbols) or list(DEFAULT_NEWS_SYMBOLS)
        seen: set[str] = set()
        news: list[NewsItem] = []

        for symbol in wanted[:MAX_NEWS_SYMBOLS]:
            try:
                items = await self._search(symbol)
            except ProviderError as exc:
                logger.warning("news_search_failed", symbol=symbol, error=str(exc))
                continue

            for item in items:
                uuid = item.get("uuid")
                title = item.get("title")
                if not uuid or not title or uuid in seen:
                    continue
                seen.add(uuid)
                news.append(
                    NewsItem(
                        id=str(uuid),
                        title=str(title),
                        source=str(item.get("publisher") or ""),
                        published_at=int(item.get("providerPublishTime") or 0),
                        url=str(item.get("link") or ""),
                        sentiment=classify_sentiment(str(title)),
                        image_url=_thumbnail(item),
                        related_tickers=[normalize_symbol(t) for t in item.get("relatedTickers") or [symbol]],
                    )
                )

        news.sort(key=lambda n: n.published_at, reverse=True)
        logger.debug("news_fetched", symbols=wanted[:MAX_NEWS_SYMBOLS], items=len(news))
        return news[:MAX_NEWS_ITEMS]
