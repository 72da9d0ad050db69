"""Adapter contract and the uniform result type returned by every provider.

Adapters decode a provider's raw envelope with a narrow extractor and
return either a validated record or a typed failure. The raw provider shape
never escapes this package.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Iterable
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Generic, TypeVar

from wealthdesk.exceptions import FailureKind, ProviderEmptyResult, ProviderError, ProviderMalformedResponse
from wealthdesk.logging import get_logger
from wealthdesk.models import HistoricalSeries, PricePoint, Quote, TimeRange

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ProviderFailure:
    """Why one provider could not serve one request."""

    kind: FailureKind
    message: str
    source: str

    @classmethod
    def from_error(cls, source: str, exc: ProviderError) -> ProviderFailure:
        return cls(kind=exc.kind, message=str(exc), source=source)


@dataclass
class ProviderResult(Generic[T]):
    """Either a value tagged with its source, or a failure."""

    value: T | None = None
    source: str = ""
    failure: ProviderFailure | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def success(cls, value: T, source: str) -> ProviderResult[T]:
        return cls(value=value, source=source)

    @classmethod
    def fail(cls, failure: ProviderFailure) -> ProviderResult[T]:
        return cls(source=failure.source, failure=failure)


class ProviderAdapter(ABC):
    """Base for all upstream adapters.

    Subclasses implement extractors that raise ProviderError subclasses;
    _guard turns those into failed results at the adapter boundary.
    """

    name: str = "provider"

    async def _guard(self, call: Awaitable[T]) -> ProviderResult[T]:
        try:
            value = await call
        except ProviderError as exc:
            logger.debug("provider_failed", source=self.name, kind=exc.kind.value, error=str(exc))
            return ProviderResult.fail(ProviderFailure.from_error(self.name, exc))
        except (KeyError, IndexError, TypeError, ArithmeticError) as exc:
            # Shape drift inside an extractor
            error = ProviderMalformedResponse(f"unexpected payload shape ({exc!r})")
            logger.debug("provider_malformed", source=self.name, error=str(error))
            return ProviderResult.fail(ProviderFailure.from_error(self.name, error))
        return ProviderResult.success(value, self.name)


class MarketDataAdapter(ProviderAdapter):
    """Adapter that serves live quotes and historical series."""

    async def fetch_quote(self, symbol: str) -> ProviderResult[Quote]:
        return await self._guard(self._quote(symbol))

    async def fetch_history(
        self, symbol: str, time_range: TimeRange
    ) -> ProviderResult[HistoricalSeries]:
        return await self._guard(self._history(symbol, time_range))

    @abstractmethod
    async def _quote(self, symbol: str) -> Quote:
        """Fetch and extract a quote, raising ProviderError on failure."""
        ...

    @abstractmethod
    async def _history(self, symbol: str, time_range: TimeRange) -> HistoricalSeries:
        """Fetch and extract a series, raising ProviderError on failure."""
        ...


# ──────────────────────────────────────────────
# Extractor helpers
# ──────────────────────────────────────────────


def to_decimal(value: Any) -> Decimal | None:
    """Coerce a JSON scalar to a finite Decimal, or None."""
    if value is None or isinstance(value, bool) or value == "":
        return None
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not result.is_finite():
        return None
    return result


def require_decimal(value: Any, what: str) -> Decimal:
    """Like to_decimal, but a missing value is a malformed response."""
    result = to_decimal(value)
    if result is None:
        raise ProviderMalformedResponse(f"missing or non-numeric {what}")
    return result


def dig(payload: Any, *path: str | int) -> Any:
    """Follow a path of keys/indexes through decoded JSON; None when any hop is missing."""
    current = payload
    for step in path:
        if isinstance(step, int):
            if not isinstance(current, list) or not -len(current) <= step < len(current):
                return None
        elif not isinstance(current, dict):
            return None
        current = current[step] if isinstance(step, int) else current.get(step)
        if current is None:
            return None
    return current


def build_series(
    symbol: str,
    points: Iterable[PricePoint],
    *,
    source: str,
    currency: str,
    time_range: TimeRange,
    last_updated: str | None = None,
) -> HistoricalSeries:
    """HistoricalSeries.from_points, where a series left without any close is an empty result."""
    series = HistoricalSeries.from_points(
        symbol,
        points,
        source=source,
        currency=currency,
        time_range=time_range,
        last_updated=last_updated,
    )
    if not series.points:
        raise ProviderEmptyResult(f"{source} returned no priced bars for {symbol}")
    return series
