"""Custom exceptions for wealthdesk.

Provider-level errors are raised by the HTTP helpers and converted into
failed ProviderResult values at the adapter boundary. Only
AllStrategiesExhausted ever reaches callers of the market data service.
Storage errors stay inside the sync engine except DataImportError and
UnknownCollectionError, which callers must act on.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from wealthdesk.market_data.providers.base import ProviderFailure


class WealthdeskError(Exception):
    """Base exception for all wealthdesk errors."""


class FailureKind(str, Enum):
    """Uniform failure signal produced by every provider adapter."""

    TIMEOUT = "timeout"
    EMPTY_RESULT = "empty_result"
    MALFORMED_RESPONSE = "malformed_response"
    NOT_FOUND = "not_found"
    HTTP_ERROR = "http_error"
    NETWORK_ERROR = "network_error"
    INVALID_REQUEST = "invalid_request"

    @property
    def is_fatal(self) -> bool:
        """Fatal failures abort a fallback chain; nothing downstream will help."""
        return self is FailureKind.INVALID_REQUEST


# ──────────────────────────────────────────────
# Provider errors
# ──────────────────────────────────────────────


class ProviderError(WealthdeskError):
    """Raised inside an adapter when an upstream call fails."""

    kind: FailureKind = FailureKind.NETWORK_ERROR


class ProviderTimeout(ProviderError):
    """Upstream did not answer within the request timeout."""

    kind = FailureKind.TIMEOUT


class ProviderEmptyResult(ProviderError):
    """Upstream answered with a structurally valid but empty payload."""

    kind = FailureKind.EMPTY_RESULT


class ProviderMalformedResponse(ProviderError):
    """Upstream payload could not be decoded or lacks required fields."""

    kind = FailureKind.MALFORMED_RESPONSE


class ProviderNotFound(ProviderError):
    """Upstream does not know the requested instrument."""

    kind = FailureKind.NOT_FOUND


class ProviderHTTPError(ProviderError):
    """Upstream answered with a non-success HTTP status."""

    kind = FailureKind.HTTP_ERROR

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ProviderRequestInvalid(ProviderError):
    """The request itself cannot be served by any provider."""

    kind = FailureKind.INVALID_REQUEST


class AllStrategiesExhausted(WealthdeskError):
    """Every strategy of a fallback chain failed (or a fatal failure aborted it)."""

    def __init__(
        self,
        symbol: str,
        operation: str,
        failures: list[ProviderFailure],
    ) -> None:
        self.symbol = symbol
        self.operation = operation
        self.failures = list(failures)
        details = " | ".join(f"{f.source}: {f.message}" for f in self.failures)
        super().__init__(
            f"{operation} for {symbol} failed across all providers: {details or 'no strategies configured'}"
        )

    @property
    def details(self) -> str:
        return " | ".join(f"{f.source}: {f.message}" for f in self.failures)

    @property
    def reason(self) -> str:
        """Return "not_found" when every provider agreed there is no data, else "unavailable"."""
        no_data = {FailureKind.NOT_FOUND, FailureKind.EMPTY_RESULT, FailureKind.INVALID_REQUEST}
        if self.failures and all(f.kind in no_data for f in self.failures):
            return "not_found"
        return "unavailable"

    @property
    def user_message(self) -> str:
        if self.reason == "not_found":
            return f"No data available for {self.symbol}."
        return f"{self.symbol} market data is temporarily unreachable, retry later."


# ──────────────────────────────────────────────
# Storage errors
# ──────────────────────────────────────────────


class RemoteUnavailable(WealthdeskError):
    """The remote document store could not be reached or rejected the call."""


class UnknownCollectionError(WealthdeskError):
    """Raised when a collection name is not in the registry."""


class DataImportError(WealthdeskError):
    """Raised when an import payload is rejected; nothing has been written."""
