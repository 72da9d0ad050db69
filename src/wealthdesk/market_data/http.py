"""JSON-over-HTTPS transport shared by the provider adapters.

Every call carries a bounded timeout and maps transport problems onto the
ProviderError family, so adapters only ever deal with decoded JSON or a
typed error. Floats are decoded as Decimal.
"""

import json
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any
from urllib.parse import quote

import httpx

from wealthdesk.exceptions import (
    FailureKind,
    ProviderEmptyResult,
    ProviderError,
    ProviderHTTPError,
    ProviderMalformedResponse,
    ProviderNotFound,
    ProviderTimeout,
)
from wealthdesk.logging import get_logger

logger = get_logger(__name__)


def decode_json(text: str) -> Any:
    """Decode a JSON body with Decimal floats; NaN/Infinity become None."""
    if not text or not text.strip():
        raise ProviderEmptyResult("empty body")
    try:
        return json.loads(text, parse_float=Decimal, parse_constant=lambda _: None)
    except ValueError as exc:
        raise ProviderMalformedResponse(f"invalid JSON ({exc})") from exc


class JsonFetcher(ABC):
    """Fetch a URL and return its decoded JSON body."""

    @abstractmethod
    async def get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        """Return the decoded body or raise a ProviderError subclass."""
        ...


class HttpJsonFetcher(JsonFetcher):
    """Direct fetch through a shared httpx.AsyncClient."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        timeout: float = 10.0,
        headers: dict[str, str] | None = None,
    ) -> None:
        self._client = client
        self._timeout = timeout
        self._headers = {"Accept": "application/json", **(headers or {})}

    async def get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        try:
            response = await self._client.get(
                url,
                params=params,
                headers=self._headers,
                timeout=self._timeout,
            )
        except httpx.TimeoutException as exc:
            raise ProviderTimeout(f"{url} timed out after {self._timeout}s") from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"{url} network error: {exc}") from exc

        if response.status_code == 404:
            raise ProviderNotFound(f"{url} -> HTTP 404")
        if not response.is_success:
            raise ProviderHTTPError(
                f"{url} -> HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return decode_json(response.text)


def apply_proxy_prefix(prefix: str, target: str) -> str:
    """Prefix a target URL; prefixes ending in "=" or "?" take it URL-encoded."""
    if prefix.endswith(("=", "?")):
        return f"{prefix}{quote(target, safe='')}"
    return f"{prefix}{target}"


class ProxyRotatingFetcher(JsonFetcher):
    """Fetch through a fixed, ordered list of CORS-proxy prefixes.

    Every call restarts from the first prefix; a prefix that worked last
    time gets no preference. The first decodable answer wins.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        prefixes: list[str],
        *,
        timeout: float = 10.0,
        headers: dict[str, str] | None = None,
    ) -> None:
        self._direct = HttpJsonFetcher(client, timeout=timeout, headers=headers)
        self._prefixes = list(prefixes)

    @property
    def prefixes(self) -> list[str]:
        return list(self._prefixes)

    async def get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        target = str(httpx.URL(url, params=params)) if params else url
        if not self._prefixes:
            raise ProviderError("no proxy prefixes configured")

        attempts: list[str] = []
        kinds: set[FailureKind] = set()
        for prefix in self._prefixes:
            proxied = apply_proxy_prefix(prefix, target)
            try:
                return await self._direct.get_json(proxied)
            except ProviderError as exc:
                attempts.append(f"{prefix} -> {exc}")
                kinds.add(exc.kind)
                logger.debug("proxy_attempt_failed", prefix=prefix, error=str(exc))

        message = "all proxies failed: " + " | ".join(attempts)
        if kinds == {FailureKind.NOT_FOUND}:
            raise ProviderNotFound(message)
        if kinds == {FailureKind.TIMEOUT}:
            raise ProviderTimeout(message)
        raise ProviderError(message)
