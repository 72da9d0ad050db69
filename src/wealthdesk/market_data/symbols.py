"""Symbol normalization and asset-class routing.

Crypto symbols are recognised through a static map to CoinGecko coin IDs.
Anything not in the map is treated as an equity.
"""

# Base asset -> CoinGecko coin ID
CRYPTO_SYMBOL_MAP: dict[str, str] = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "USDT": "tether",
    "BNB": "binancecoin",
    "SOL": "solana",
    "USDC": "usd-coin",
    "XRP": "ripple",
    "DOGE": "dogecoin",
    "ADA": "cardano",
    "AVAX": "avalanche-2",
    "SHIB": "shiba-inu",
    "DOT": "polkadot",
    "MATIC": "matic-network",
    "POLYGON": "matic-network",
    "LTC": "litecoin",
    "TRX": "tron",
    "LINK": "chainlink",
    "UNI": "uniswap",
    "ATOM": "cosmos",
    "XLM": "stellar",
    "ALGO": "algorand",
    "VET": "vechain",
    "ICP": "internet-computer",
    "FIL": "filecoin",
    "NEAR": "near",
    "APT": "aptos",
    "ARB": "arbitrum",
    "OP": "optimism",
    "SUI": "sui",
    "ETC": "ethereum-classic",
}

_QUOTE_SUFFIXES = ("-USD", "-EUR", "-USDT")


def normalize_symbol(symbol: str) -> str:
    """Trim and upper-case a user-entered ticker."""
    return str(symbol).strip().upper()


def base_asset(symbol: str) -> str:
    """Strip a quote-currency suffix: "BTC-USD" -> "BTC"."""
    upper = normalize_symbol(symbol)
    for suffix in _QUOTE_SUFFIXES:
        if upper.endswith(suffix):
            return upper[: -len(suffix)]
    return upper


def coingecko_id(symbol: str) -> str | None:
    """Return the CoinGecko coin ID for a crypto symbol, or None if unmapped."""
    return CRYPTO_SYMBOL_MAP.get(base_asset(symbol))


def is_crypto(symbol: str) -> bool:
    return coingecko_id(symbol) is not None


def yahoo_crypto_symbol(symbol: str) -> str:
    """Yahoo lists crypto as "BASE-USD"."""
    upper = normalize_symbol(symbol)
    if "-" in upper:
        return upper
    return f"{upper}-USD"
