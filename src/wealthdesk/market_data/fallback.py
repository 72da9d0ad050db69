"""Ordered provider fallback per asset class and operation.

A chain tries its strategies strictly in order and returns the first
success. Every attempt is independent: a failure never poisons the next
strategy. A fatal failure (invalid request) stops the chain at once.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from wealthdesk.exceptions import AllStrategiesExhausted, FailureKind
from wealthdesk.logging import get_logger
from wealthdesk.market_data.providers.base import ProviderFailure, ProviderResult
from wealthdesk.models import AssetClass, Operation

logger = get_logger(__name__)

StrategyCall = Callable[..., Awaitable[ProviderResult[Any]]]


@dataclass(frozen=True)
class Strategy:
    """A named provider call: ``await call(symbol, **kwargs)``."""

    name: str
    call: StrategyCall


class FallbackChain:
    """Fixed, ordered strategies per operation for one asset class."""

    def __init__(
        self,
        asset_class: AssetClass,
        strategies: dict[Operation, list[Strategy]],
    ) -> None:
        self.asset_class = asset_class
        self._strategies = {op: list(items) for op, items in strategies.items()}

    def strategy_names(self, operation: Operation) -> list[str]:
        return [s.name for s in self._strategies.get(operation, [])]

    async def resolve(self, symbol: str, operation: Operation, **kwargs: Any) -> ProviderResult[Any]:
        """Run strategies in order until one succeeds.

        Raises:
            AllStrategiesExhausted: every strategy failed, or a fatal failure
                aborted the chain. Carries each attempt's failure in order.
        """
        failures: list[ProviderFailure] = []

        for strategy in self._strategies.get(operation, []):
            try:
                result = await strategy.call(symbol, **kwargs)
            except Exception as exc:
                failure = ProviderFailure(
                    kind=FailureKind.NETWORK_ERROR,
                    message=f"unexpected error: {exc!r}",
                    source=strategy.name,
                )
            else:
                if result.ok:
                    if failures:
                        logger.info(
                            "fallback_succeeded",
                            symbol=symbol,
                            operation=operation.value,
                            source=result.source,
                            failed_attempts=len(failures),
                        )
                    return result
                failure = result.failure

            failures.append(failure)
            logger.warning(
                "strategy_failed",
                asset_class=self.asset_class.value,
                symbol=symbol,
                operation=operation.value,
                source=failure.source,
                kind=failure.kind.value,
                error=failure.message,
            )
            if failure.kind.is_fatal:
                break

        error = AllStrategiesExhausted(symbol, operation.value, failures)
        logger.warning(
            "chain_exhausted",
            asset_class=self.asset_class.value,
            symbol=symbol,
            operation=operation.value,
            reason=error.reason,
            attempts=len(failures),
        )
        raise error
