"""
Symbol classification and provider-specific spellings.

Pure functions only: the requested symbol is never modified, every provider
spelling is derived from it on demand.
"""

from typing import Dict

from quote_engine.services.data.types import InstrumentClass, ProviderID


# Crypto ticker -> CoinGecko coin id
CRYPTO_IDS: Dict[str, str] = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "SOL": "solana",
    "ADA": "cardano",
    "XRP": "ripple",
    "DOT": "polkadot",
    "DOGE": "dogecoin",
}

CRYPTO_QUOTE_SUFFIXES = ("-EUR", "-USD")

# Provider -> {internal suffix: provider suffix}
SUFFIX_TRANSLATIONS: Dict[ProviderID, Dict[str, str]] = {
    ProviderID.YAHOO_FINANCE: {".DEX": ".DE"},
    ProviderID.STOOQ: {".DEX": ".DE", ".T": ".JP", ".L": ".UK"},
    ProviderID.ALPHA_VANTAGE: {".DE": ".DEX", ".L": ".LON", ".TO": ".TRT"},
}

STOOQ_DEFAULT_MARKET = ".us"


def _split_crypto(symbol: str):
    """Return (base ticker, quote suffix) or (None, None) if not crypto."""
    upper = symbol.strip().upper()
    for suffix in CRYPTO_QUOTE_SUFFIXES:
        if upper.endswith(suffix):
            base = upper[:-len(suffix)]
            return (base, suffix) if base in CRYPTO_IDS else (None, None)
    if upper in CRYPTO_IDS:
        return upper, ""
    return None, None


def classify(symbol: str) -> InstrumentClass:
    """
    Classify a requested symbol.

    Args:
        symbol: Requested symbol (e.g. "BTC-EUR", "RHM.DE", "URTH")

    Returns:
        InstrumentClass.CRYPTO for known crypto tickers, else EQUITY
    """
    base, _ = _split_crypto(symbol)
    return InstrumentClass.CRYPTO if base else InstrumentClass.EQUITY


def crypto_currency(symbol: str) -> str:
    """Pricing currency for a crypto symbol: "usd" for -USD pairs, else "eur"."""
    _, suffix = _split_crypto(symbol)
    return "usd" if suffix == "-USD" else "eur"


def coingecko_id(symbol: str) -> str:
    """
    CoinGecko coin id for a crypto symbol.

    Raises:
        KeyError: If symbol is not a known crypto ticker
    """
    base, _ = _split_crypto(symbol)
    if not base:
        raise KeyError(symbol)
    return CRYPTO_IDS[base]


def to_provider_symbol(symbol: str, provider: ProviderID) -> str:
    """
    Spell a requested symbol the way a provider expects it.

    Args:
        symbol: Requested symbol
        provider: Target provider

    Returns:
        Provider-specific symbol

    Examples:
        BTC-EUR, COINGECKO  -> bitcoin
        BTC, YAHOO_FINANCE  -> BTC-USD
        SAP.DEX, YAHOO      -> SAP.DE
        RHM.DE, ALPHA_V.    -> RHM.DEX
        VOD.L, ALPHA_V.     -> VOD.LON
        AAPL, STOOQ         -> aapl.us
        7203.T, STOOQ       -> 7203.jp
    """
    if provider == ProviderID.COINGECKO:
        return coingecko_id(symbol)

    upper = symbol.strip().upper()

    base, suffix = _split_crypto(upper)
    if base and not suffix:
        # Equity-style providers only list crypto as a USD pair
        return f"{base}-USD"

    for internal, native in SUFFIX_TRANSLATIONS.get(provider, {}).items():
        if upper.endswith(internal):
            upper = upper[:-len(internal)] + native
            break

    if provider == ProviderID.STOOQ:
        if "." not in upper:
            upper = upper + STOOQ_DEFAULT_MARKET
        return upper.lower()

    return upper
