"""Exchange rates from open.er-api.com."""

from wealthdesk.exceptions import ProviderEmptyResult, ProviderNotFound
from wealthdesk.market_data.http import JsonFetcher
from wealthdesk.market_data.providers.base import ProviderAdapter, ProviderResult, dig, require_decimal
from wealthdesk.models import FxRate


class ExchangeRateApiAdapter(ProviderAdapter):
    """Latest rates for one base currency; picks the requested quote currency."""

    name = "open.er-api"

    def __init__(self, fetcher: JsonFetcher, *, base_url: str = "https://open.er-api.com/v6") -> None:
        self._fetcher = fetcher
        self._base_url = base_url.rstrip("/")

    async def fetch_rate(self, base: str, quote: str) -> ProviderResult[FxRate]:
        return await self._guard(self._rate(base.upper(), quote.upper()))

    async def _rate(self, base: str, quote: str) -> FxRate:
        payload = await self._fetcher.get_json(f"{self._base_url}/latest/{base}")
        if isinstance(payload, dict) and payload.get("result") == "error":
            raise ProviderNotFound(f"open.er-api rejected {base}: {payload.get('error-type', 'unknown')}")

        rates = dig(payload, "rates")
        if not isinstance(rates, dict) or not rates:
            raise ProviderEmptyResult(f"open.er-api returned no rates for {base}")
        if quote not in rates:
            raise ProviderNotFound(f"open.er-api has no {base}/{quote} rate")

        return FxRate(base=base, quote=quote, rate=require_decimal(rates[quote], quote), source=self.name)
