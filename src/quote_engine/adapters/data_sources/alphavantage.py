"""
Alpha Vantage data source adapter.

Provides access to:
- Global quotes (single symbol per call)
- Daily / weekly price history
- News & sentiment feed

Free tier: 25 API calls/day, 5 calls/minute.
API key required (free registration).
"""

from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

from quote_engine.adapters.data_sources.base import get_json, new_session, to_float
from quote_engine.core.errors import (
    CredentialError,
    PayloadError,
    ProviderError,
    ProviderSentinelError,
)
from quote_engine.services.data import classifier
from quote_engine.services.data.types import (
    HistoryPoint,
    NewsItem,
    Period,
    ProviderID,
    Quote,
    normalize_history,
)


# Exchange suffix -> listing currency
EXCHANGE_CURRENCIES = {
    "DEX": "EUR",
    "LON": "GBP",
    "TRT": "CAD",
    "TRV": "CAD",
    "BSE": "INR",
    "SHH": "CNY",
    "SHZ": "CNY",
}


class AlphaVantageAdapter:
    """
    Alpha Vantage API adapter.

    Free tier limitations:
    - 25 API calls per day
    - 5 API calls per minute

    Rate-limit notices and error messages arrive inside HTTP 200 bodies and
    are raised as ProviderSentinelError. Sequential calls must be spaced by
    min_call_interval; the orchestrator enforces that.
    """

    BASE_URL = "https://www.alphavantage.co/query"

    # Period -> days kept from the series
    DAYS_MAP = {
        Period.ONE_WEEK: 7,
        Period.ONE_MONTH: 30,
        Period.THREE_MONTHS: 90,
        Period.SIX_MONTHS: 180,
        Period.ONE_YEAR: 365,
        Period.THREE_YEARS: 1095,
        Period.MAX: 3650,
    }

    RATE_LIMIT_FIELDS = ("Note", "Information")
    MAX_NEWS_TICKERS = 5

    provider = ProviderID.ALPHA_VANTAGE
    supports_batch = False
    supports_history = True

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        min_call_interval: float = 0.3
    ):
        """
        Initialize Alpha Vantage adapter.

        Args:
            api_key: Alpha Vantage API key; without one every call fails
                with CredentialError
            timeout: Request timeout in seconds (API can be slow)
            min_call_interval: Delay between sequential calls in seconds
        """
        self.api_key = api_key
        self.timeout = timeout
        self.min_call_interval = min_call_interval

    def _query(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """
        Call the query endpoint and screen the body for sentinels.

        Raises:
            CredentialError: If no API key is configured
            ProviderSentinelError: On "Error Message" or rate-limit notices
            ProviderError: On transport/status/payload failures
        """
        if not self.api_key:
            raise CredentialError(self.provider, "no API key configured")

        with new_session() as session:
            data = get_json(
                session, self.provider, self.BASE_URL,
                params={**params, "apikey": self.api_key},
                timeout=self.timeout
            )

        if not isinstance(data, dict):
            raise PayloadError(self.provider, "unexpected payload shape")
        if "Error Message" in data:
            raise ProviderSentinelError(self.provider, str(data["Error Message"]))
        for field_name in self.RATE_LIMIT_FIELDS:
            if field_name in data:
                logger.warning(f"Alpha Vantage rate limit: {data[field_name]}")
                raise ProviderSentinelError(self.provider, f"rate limit: {data[field_name]}")

        return data

    def fetch_quote(self, symbol: str) -> Quote:
        """
        Fetch current quote via GLOBAL_QUOTE.

        Args:
            symbol: Requested symbol

        Returns:
            Quote (Alpha Vantage quotes US listings in USD)
        """
        av_symbol = classifier.to_provider_symbol(symbol, self.provider)
        currency = self._currency(av_symbol)
        try:
            data = self._query({"function": "GLOBAL_QUOTE", "symbol": av_symbol})
        except ProviderError as e:
            logger.error(f"Alpha Vantage quote fetch failed for {symbol}: {e.reason}")
            raise

        quote_data = data.get("Global Quote")
        price = to_float(quote_data.get("05. price")) if isinstance(quote_data, dict) else None
        if price is None:
            raise PayloadError(self.provider, f"no quote data for {av_symbol}")

        return Quote.build(
            symbol=symbol,
            price=price,
            previous_close=to_float(quote_data.get("08. previous close")),
            source=self.provider,
            day_high=to_float(quote_data.get("03. high")),
            day_low=to_float(quote_data.get("04. low")),
            volume=to_float(quote_data.get("06. volume")),
            name=symbol,
            currency=currency
        )

    def _currency(self, av_symbol: str) -> str:
        """Listing currency: no suffix means a US listing."""
        if "." not in av_symbol:
            return "USD"
        exchange = av_symbol.rsplit(".", 1)[1]
        currency = EXCHANGE_CURRENCIES.get(exchange)
        if currency is None:
            raise PayloadError(self.provider, f"unknown listing currency for {av_symbol}")
        return currency

    def fetch_history(
        self,
        symbol: str,
        period: Period,
        today: Optional[date] = None
    ) -> List[HistoryPoint]:
        """
        Fetch daily (<= 6M) or weekly (longer) history.

        Args:
            symbol: Requested symbol
            period: History window
            today: Reference date for the cutoff (defaults to UTC today)

        Returns:
            Ascending, date-unique list of HistoryPoint within the window
        """
        av_symbol = classifier.to_provider_symbol(symbol, self.provider)
        if period.is_long:
            function, series_key = "TIME_SERIES_WEEKLY", "Weekly Time Series"
        else:
            function, series_key = "TIME_SERIES_DAILY", "Time Series (Daily)"

        try:
            data = self._query({
                "function": function,
                "symbol": av_symbol,
                "outputsize": "full",
            })
        except ProviderError as e:
            logger.error(f"Alpha Vantage history fetch failed for {symbol}: {e.reason}")
            raise

        series = data.get(series_key)
        if not isinstance(series, dict) or not series:
            raise PayloadError(self.provider, f"no {series_key} for {av_symbol}")

        today = today or datetime.now(timezone.utc).date()
        cutoff = today - timedelta(days=self.DAYS_MAP.get(period, 180))

        points = []
        for date_str, bar in series.items():
            try:
                day = datetime.strptime(date_str, "%Y-%m-%d").date()
                if day < cutoff:
                    continue
                points.append(HistoryPoint(
                    date=day,
                    open=float(bar["1. open"]),
                    high=float(bar["2. high"]),
                    low=float(bar["3. low"]),
                    close=float(bar["4. close"]),
                    volume=float(bar.get("5. volume") or 0)
                ))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Failed to parse Alpha Vantage bar {date_str}: {e}")
                continue

        if not points:
            raise PayloadError(self.provider, f"no history points for {av_symbol} in window")

        return normalize_history(points)

    def fetch_news(self, tickers: Sequence[str], limit: int = 15) -> List[NewsItem]:
        """
        Fetch the latest news & sentiment items.

        Args:
            tickers: Up to 5 tickers (extra ones are dropped)
            limit: Max items

        Returns:
            List of NewsItem, newest first as delivered
        """
        tickers = [t for t in tickers if t][:self.MAX_NEWS_TICKERS]
        try:
            data = self._query({
                "function": "NEWS_SENTIMENT",
                "tickers": ",".join(tickers),
                "limit": str(limit),
                "sort": "LATEST",
            })
        except ProviderError as e:
            logger.error(f"Alpha Vantage news fetch failed for {tickers}: {e.reason}")
            raise

        items = []
        for entry in data.get("feed") or []:
            if not isinstance(entry, dict) or not entry.get("title"):
                continue
            items.append(NewsItem(
                title=entry["title"],
                link=entry.get("url", ""),
                publisher=entry.get("source"),
                published_at=parse_news_time(entry.get("time_published")),
                summary=entry.get("summary"),
                sentiment=entry.get("overall_sentiment_label"),
                sentiment_score=to_float(entry.get("overall_sentiment_score")),
                related_tickers=tuple(
                    t["ticker"] for t in entry.get("ticker_sentiment") or []
                    if isinstance(t, dict) and t.get("ticker")
                ),
                thumbnail=entry.get("banner_image") or None
            ))
        return items[:limit]


def parse_news_time(value: Optional[str]) -> Optional[datetime]:
    """Parse Alpha Vantage "YYYYMMDDTHHMMSS" timestamps as UTC."""
    if not value or len(value) < 8:
        return None
    for fmt in ("%Y%m%dT%H%M%S", "%Y%m%dT%H%M", "%Y%m%d"):
        try:
            return datetime.strptime(value, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return None
