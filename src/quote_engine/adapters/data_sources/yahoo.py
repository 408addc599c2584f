"""
Yahoo Finance data source adapter.

Two request shapes:
- chart endpoint (no auth): quote-lite, history and the FX reference rate,
  tried against two interchangeable host mirrors
- batch quote endpoint (cookie + crumb): all equities in one round trip,
  with EURUSD=X requested alongside so USD quotes can be rescaled to EUR

Stocks, ETFs, indices, crypto pairs and FX. No API key required.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

from quote_engine.adapters.data_sources.base import (
    BROWSER_HEADERS,
    get_json,
    new_session,
    to_float,
)
from quote_engine.adapters.data_sources.yahoo_session import YahooSession
from quote_engine.core.errors import CredentialError, PayloadError, ProviderError
from quote_engine.services.data import classifier
from quote_engine.services.data.types import (
    HistoryPoint,
    Period,
    ProviderID,
    Quote,
    QuoteBatch,
    normalize_history,
)


FX_SYMBOL = "EURUSD=X"


class YahooFinanceAdapter:
    """
    Yahoo Finance adapter using the public JSON endpoints.
    """

    CHART_HOSTS = ("query1.finance.yahoo.com", "query2.finance.yahoo.com")
    QUOTE_URL = "https://query2.finance.yahoo.com/v7/finance/quote"

    # Period -> chart range/interval
    PERIOD_MAP = {
        Period.ONE_WEEK: ("5d", "1d"),
        Period.ONE_MONTH: ("1mo", "1d"),
        Period.THREE_MONTHS: ("3mo", "1d"),
        Period.SIX_MONTHS: ("6mo", "1d"),
        Period.ONE_YEAR: ("1y", "1wk"),
        Period.THREE_YEARS: ("3y", "1wk"),
        Period.MAX: ("max", "1mo"),
    }

    provider = ProviderID.YAHOO_FINANCE
    supports_batch = True
    supports_history = True
    min_call_interval = 0.0

    def __init__(self, timeout: float = 10.0):
        """
        Args:
            timeout: Request timeout in seconds
        """
        self.timeout = timeout

    # ---------- batch quote (authenticated) ----------

    def fetch_quotes(self, symbols: Sequence[str]) -> QuoteBatch:
        """
        Fetch quotes for many symbols in one authenticated call.

        A fresh cookie/crumb is acquired per call. The EUR/USD reference
        rate is requested alongside and returned as QuoteBatch.fx_rate.

        Without a crumb the symbols are fetched one by one from the chart
        endpoint and fx_rate is left unset.

        Args:
            symbols: Requested symbols

        Returns:
            QuoteBatch keyed by requested symbol; symbols Yahoo did not
            return are absent

        Raises:
            CredentialError: If the crumb cannot be acquired and no chart
                quote succeeds either
            ProviderError: If the quote call fails or the payload is unusable
        """
        wanted: Dict[str, List[str]] = {}
        for symbol in symbols:
            yahoo_symbol = classifier.to_provider_symbol(symbol, self.provider)
            wanted.setdefault(yahoo_symbol, []).append(symbol)

        request_symbols = list(wanted)
        if FX_SYMBOL not in wanted:
            request_symbols.append(FX_SYMBOL)

        with new_session(BROWSER_HEADERS) as session:
            yahoo_session = YahooSession(session, timeout=self.timeout)
            try:
                crumb = yahoo_session.acquire()
            except CredentialError as e:
                logger.warning(
                    f"Yahoo crumb unavailable ({e.reason}), using chart quotes instead"
                )
                return self._chart_quotes(symbols, e)

            try:
                data = get_json(
                    session, self.provider, self.QUOTE_URL,
                    params={"symbols": ",".join(request_symbols), "crumb": crumb},
                    timeout=self.timeout
                )
                results = self._quote_results(data)
            except ProviderError as e:
                yahoo_session.invalidate()
                logger.error(f"Yahoo batch quote failed for {list(wanted)}: {e.reason}")
                raise

        fx_rate = None
        quotes: Dict[str, Quote] = {}
        for item in results:
            yahoo_symbol = item.get("symbol")
            if yahoo_symbol == FX_SYMBOL:
                fx_rate = to_float(item.get("regularMarketPrice"))
            for requested in wanted.get(yahoo_symbol, []):
                quote = self._quote_from_result(requested, item)
                if quote is not None:
                    quotes[requested] = quote

        logger.debug(
            f"Yahoo batch returned {len(quotes)}/{len(symbols)} quotes, fx_rate={fx_rate}"
        )
        return QuoteBatch(quotes=quotes, fx_rate=fx_rate)

    def _chart_quotes(self, symbols: Sequence[str], cause: CredentialError) -> QuoteBatch:
        quotes: Dict[str, Quote] = {}
        for symbol in symbols:
            try:
                quotes[symbol] = self.fetch_quote(symbol)
            except ProviderError as e:
                logger.debug(f"Yahoo chart quote failed for {symbol}: {e.reason}")

        if not quotes:
            raise cause
        return QuoteBatch(quotes=quotes)

    def _quote_results(self, data: Any) -> List[Dict[str, Any]]:
        node = data.get("quoteResponse") if isinstance(data, dict) else None
        if not isinstance(node, dict) or not isinstance(node.get("result"), list):
            raise PayloadError(self.provider, "missing quoteResponse.result")
        return [item for item in node["result"] if isinstance(item, dict)]

    def _quote_from_result(self, symbol: str, item: Dict[str, Any]) -> Optional[Quote]:
        price = to_float(item.get("regularMarketPrice"))
        if price is None:
            return None
        return Quote.build(
            symbol=symbol,
            price=price,
            previous_close=to_float(item.get("regularMarketPreviousClose")),
            source=self.provider,
            day_high=to_float(item.get("regularMarketDayHigh")),
            day_low=to_float(item.get("regularMarketDayLow")),
            volume=to_float(item.get("regularMarketVolume")),
            name=item.get("shortName") or item.get("longName") or symbol,
            currency=item.get("currency") or "USD"
        )

    # ---------- chart endpoint (no auth) ----------

    def _fetch_chart(self, yahoo_symbol: str, range_: str, interval: str) -> Dict[str, Any]:
        """
        GET the chart endpoint, trying each host mirror in order.

        Returns:
            chart.result[0]

        Raises:
            ProviderError: Last error if every mirror fails
        """
        params = {"interval": interval, "range": range_, "includePrePost": "false"}
        last_error: Optional[ProviderError] = None

        with new_session(BROWSER_HEADERS) as session:
            for host in self.CHART_HOSTS:
                url = f"https://{host}/v8/finance/chart/{yahoo_symbol}"
                try:
                    data = get_json(session, self.provider, url, params=params,
                                    timeout=self.timeout)
                    return self._chart_result(data, host)
                except ProviderError as e:
                    logger.warning(f"Yahoo {host} failed for {yahoo_symbol}: {e.reason}")
                    last_error = e

        raise last_error or PayloadError(self.provider, "Yahoo Finance unavailable")

    def _chart_result(self, data: Any, host: str) -> Dict[str, Any]:
        chart = data.get("chart") if isinstance(data, dict) else None
        if not isinstance(chart, dict):
            raise PayloadError(self.provider, f"no chart node from {host}")

        results = chart.get("result")
        if not results or not isinstance(results[0], dict):
            error = chart.get("error") or {}
            detail = error.get("description") if isinstance(error, dict) else None
            raise PayloadError(self.provider, detail or f"no data from {host}")

        return results[0]

    def fetch_quote(self, symbol: str) -> Quote:
        """
        Fetch a quote-lite for one symbol from the chart endpoint.

        Args:
            symbol: Requested symbol

        Returns:
            Quote from chart meta

        Raises:
            ProviderError: If all mirrors fail or meta is missing
        """
        yahoo_symbol = classifier.to_provider_symbol(symbol, self.provider)
        result = self._fetch_chart(yahoo_symbol, "1d", "1d")

        meta = result.get("meta")
        price = to_float(meta.get("regularMarketPrice")) if isinstance(meta, dict) else None
        if price is None:
            raise PayloadError(self.provider, f"no chart meta price for {yahoo_symbol}")

        previous_close = (
            to_float(meta.get("chartPreviousClose"))
            or to_float(meta.get("previousClose"))
            or price
        )

        return Quote.build(
            symbol=symbol,
            price=price,
            previous_close=previous_close,
            source=self.provider,
            day_high=to_float(meta.get("regularMarketDayHigh")),
            day_low=to_float(meta.get("regularMarketDayLow")),
            volume=to_float(meta.get("regularMarketVolume")),
            name=meta.get("shortName") or meta.get("longName") or symbol,
            currency=meta.get("currency") or "USD"
        )

    def fetch_history(self, symbol: str, period: Period) -> List[HistoryPoint]:
        """
        Fetch OHLCV history from the chart endpoint.

        Args:
            symbol: Requested symbol
            period: History window

        Returns:
            Ascending, date-unique list of HistoryPoint (null closes dropped)

        Raises:
            ProviderError: If all mirrors fail or no points remain
        """
        yahoo_symbol = classifier.to_provider_symbol(symbol, self.provider)
        range_, interval = self.PERIOD_MAP.get(period, self.PERIOD_MAP[Period.SIX_MONTHS])
        result = self._fetch_chart(yahoo_symbol, range_, interval)

        timestamps = result.get("timestamp") or []
        try:
            quote = result["indicators"]["quote"][0]
        except (KeyError, IndexError, TypeError):
            raise PayloadError(self.provider, f"no indicators for {yahoo_symbol}")

        def column(name: str) -> list:
            values = quote.get(name) or []
            return values + [None] * (len(timestamps) - len(values))

        opens, highs, lows = column("open"), column("high"), column("low")
        closes, volumes = column("close"), column("volume")

        points = []
        for i, ts in enumerate(timestamps):
            close = to_float(closes[i])
            if close is None:
                continue
            points.append(HistoryPoint(
                date=datetime.fromtimestamp(ts, tz=timezone.utc).date(),
                open=to_float(opens[i]) or close,
                high=to_float(highs[i]) or close,
                low=to_float(lows[i]) or close,
                close=close,
                volume=to_float(volumes[i]) or 0.0
            ))

        if not points:
            raise PayloadError(self.provider, f"no history points for {yahoo_symbol}")

        return normalize_history(points)

    def fetch_fx_rate(self) -> float:
        """
        Fetch the EUR/USD rate from the chart endpoint.

        Raises:
            ProviderError: If the rate is unavailable
        """
        result = self._fetch_chart(FX_SYMBOL, "1d", "1d")
        meta = result.get("meta") or {}
        rate = to_float(meta.get("regularMarketPrice"))
        if rate is None:
            raise PayloadError(self.provider, "no EUR/USD rate in chart meta")
        return rate
