"""
CoinGecko data source adapter.

Provides access to:
- Batched crypto quotes (price + 24h change + 24h volume)
- Daily close history

Free API, no key required (an optional pro key raises the rate limit).
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from loguru import logger

from quote_engine.adapters.data_sources.base import get_json, new_session, to_float
from quote_engine.core.errors import PayloadError, ProviderError
from quote_engine.services.data import classifier
from quote_engine.services.data.types import (
    HistoryPoint,
    Period,
    ProviderID,
    Quote,
    QuoteBatch,
    normalize_history,
)


class CoinGeckoAdapter:
    """
    CoinGecko API adapter.

    Free tier: 10-50 calls/minute. Quotes are batched into one /simple/price
    call; history only carries close prices, so open=high=low=close and
    volume is 0.
    """

    BASE_URL = "https://api.coingecko.com/api/v3"

    # Period -> market_chart "days"
    DAYS_MAP = {
        Period.ONE_WEEK: 7,
        Period.ONE_MONTH: 30,
        Period.THREE_MONTHS: 90,
        Period.SIX_MONTHS: 180,
        Period.ONE_YEAR: 365,
        Period.THREE_YEARS: 1095,
        Period.MAX: "max",
    }

    provider = ProviderID.COINGECKO
    supports_batch = True
    supports_history = True
    min_call_interval = 0.0

    def __init__(self, api_key: Optional[str] = None, timeout: float = 10.0):
        """
        Initialize CoinGecko adapter.

        Args:
            api_key: Optional API key for higher rate limits (Pro)
            timeout: Request timeout in seconds
        """
        self.api_key = api_key
        self.timeout = timeout

    def _session(self):
        session = new_session()
        if self.api_key:
            session.headers.update({"x-cg-pro-api-key": self.api_key})
        return session

    def fetch_quotes(self, symbols: Sequence[str]) -> QuoteBatch:
        """
        Fetch quotes for several crypto symbols in one request.

        Args:
            symbols: Requested crypto symbols (e.g. "BTC-EUR", "ETH-USD", "SOL")

        Returns:
            QuoteBatch keyed by requested symbol; symbols missing from the
            payload are simply absent

        Raises:
            ProviderError: If the request fails or the payload is unusable
        """
        ids: Dict[str, str] = {}
        for symbol in symbols:
            try:
                ids[symbol] = classifier.coingecko_id(symbol)
            except KeyError:
                logger.debug(f"CoinGecko has no coin id for {symbol}")

        if not ids:
            raise PayloadError(self.provider, "no CoinGecko ids for requested symbols")

        currencies = sorted({classifier.crypto_currency(s) for s in ids})
        params = {
            "ids": ",".join(sorted(set(ids.values()))),
            "vs_currencies": ",".join(currencies),
            "include_24hr_change": "true",
            "include_24hr_vol": "true",
        }

        try:
            with self._session() as session:
                data = get_json(
                    session, self.provider, f"{self.BASE_URL}/simple/price",
                    params=params, timeout=self.timeout
                )
        except ProviderError as e:
            logger.error(f"CoinGecko batch quote failed for {list(ids)}: {e.reason}")
            raise

        if not isinstance(data, dict):
            raise PayloadError(self.provider, "unexpected /simple/price payload")

        quotes: Dict[str, Quote] = {}
        for symbol, coin_id in ids.items():
            coin = data.get(coin_id)
            if not isinstance(coin, dict):
                continue
            cur = classifier.crypto_currency(symbol)
            price = to_float(coin.get(cur))
            if price is None:
                continue
            change_24h = to_float(coin.get(f"{cur}_24h_change")) or 0.0
            previous_close = price / (1 + change_24h / 100)

            quotes[symbol] = Quote.build(
                symbol=symbol,
                price=price,
                previous_close=previous_close,
                source=self.provider,
                volume=to_float(coin.get(f"{cur}_24h_vol")),
                name=coin_id.capitalize(),
                currency=cur
            )

        logger.debug(f"CoinGecko returned {len(quotes)}/{len(ids)} quotes")
        return QuoteBatch(quotes=quotes)

    def fetch_quote(self, symbol: str) -> Quote:
        """Fetch a single crypto quote (one-element batch)."""
        batch = self.fetch_quotes([symbol])
        if symbol not in batch.quotes:
            raise PayloadError(self.provider, f"no data for {symbol}")
        return batch.quotes[symbol]

    def fetch_history(self, symbol: str, period: Period) -> List[HistoryPoint]:
        """
        Fetch daily close history for a crypto symbol.

        Args:
            symbol: Requested crypto symbol
            period: History window

        Returns:
            Ascending, date-unique list of HistoryPoint

        Raises:
            ProviderError: On request failure or empty series
        """
        try:
            coin_id = classifier.coingecko_id(symbol)
        except KeyError:
            raise PayloadError(self.provider, f"no CoinGecko id for {symbol}")

        params = {
            "vs_currency": classifier.crypto_currency(symbol),
            "days": self.DAYS_MAP.get(period, 180),
            "interval": "daily",
        }

        try:
            with self._session() as session:
                data = get_json(
                    session, self.provider,
                    f"{self.BASE_URL}/coins/{coin_id}/market_chart",
                    params=params, timeout=self.timeout
                )
        except ProviderError as e:
            logger.error(f"CoinGecko history failed for {symbol}: {e.reason}")
            raise

        prices = data.get("prices") if isinstance(data, dict) else None
        if not prices:
            raise PayloadError(self.provider, "no CoinGecko history data")

        points = []
        for entry in prices:
            try:
                ts, price = entry[0], float(entry[1])
            except (IndexError, TypeError, ValueError):
                logger.warning(f"Skipping malformed CoinGecko price entry: {entry!r}")
                continue
            day = datetime.fromtimestamp(ts / 1000, tz=timezone.utc).date()
            points.append(HistoryPoint(
                date=day, open=price, high=price, low=price, close=price, volume=0.0
            ))

        if not points:
            raise PayloadError(self.provider, "no usable CoinGecko history points")

        return normalize_history(points)
