"""Stooq data source adapter (equities-only fallback, latest quote only)."""

from typing import Optional

from loguru import logger

from quote_engine.adapters.data_sources.base import get_json, new_session, to_float
from quote_engine.core.errors import PayloadError, ProviderError, ProviderSentinelError
from quote_engine.services.data import classifier
from quote_engine.services.data.types import InstrumentClass, ProviderID, Quote


NO_DATA = "N/D"

# Stooq market suffix -> listing currency
MARKET_CURRENCIES = {
    "us": "USD",
    "de": "EUR",
    "f": "EUR",
    "uk": "GBP",
    "jp": "JPY",
    "hk": "HKD",
    "pl": "PLN",
    "hu": "HUF",
}


class StooqAdapter:
    """
    Stooq quote adapter.

    Free, no auth. Stooq publishes no previous close, so quotes carry
    previous_close = price and change 0.
    """

    QUOTE_URL = "https://stooq.com/q/l/"

    provider = ProviderID.STOOQ
    supports_batch = False
    supports_history = False
    min_call_interval = 0.0

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout

    def fetch_quote(self, symbol: str) -> Quote:
        """
        Fetch the latest quote for one equity symbol.

        Raises:
            PayloadError: For crypto symbols, unknown markets or malformed
                payloads
            ProviderSentinelError: When Stooq answers "N/D"
        """
        if classifier.classify(symbol) != InstrumentClass.EQUITY:
            raise PayloadError(self.provider, f"{symbol} is not an equity")

        stooq_symbol = classifier.to_provider_symbol(symbol, self.provider)
        currency = self.currency_for(stooq_symbol)
        if currency is None:
            # Unknown markets are never labelled USD
            raise PayloadError(self.provider, f"unknown listing currency for {stooq_symbol}")

        params = {"s": stooq_symbol, "f": "sd2t2ohlcvn", "h": "", "e": "json"}

        try:
            with new_session() as session:
                data = get_json(session, self.provider, self.QUOTE_URL,
                                params=params, timeout=self.timeout)
        except ProviderError as e:
            logger.error(f"Stooq quote fetch failed for {symbol}: {e.reason}")
            raise

        rows = data.get("symbols") if isinstance(data, dict) else None
        if not rows or not isinstance(rows[0], dict):
            raise PayloadError(self.provider, f"no symbols node for {stooq_symbol}")
        row = rows[0]

        if row.get("close") in (None, "", NO_DATA):
            raise ProviderSentinelError(self.provider, f"no data for {stooq_symbol}")

        price = to_float(row.get("close"))
        if price is None:
            raise PayloadError(self.provider, f"unparsable close {row.get('close')!r}")

        return Quote.build(
            symbol=symbol,
            price=price,
            previous_close=price,
            source=self.provider,
            day_high=to_float(row.get("high")),
            day_low=to_float(row.get("low")),
            volume=to_float(row.get("volume")),
            name=row.get("name") or symbol,
            currency=currency
        )

    @staticmethod
    def currency_for(stooq_symbol: str) -> Optional[str]:
        """Listing currency from the Stooq market suffix, None if unknown."""
        _, _, market = stooq_symbol.lower().rpartition(".")
        return MARKET_CURRENCIES.get(market)
