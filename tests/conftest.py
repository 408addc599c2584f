"""Shared pytest fixtures and configuration."""
import time
import threading
from datetime import date, timedelta
from unittest.mock import MagicMock

import pytest
from loguru import logger

from quote_engine.core.config import EngineConfig
from quote_engine.core.errors import PayloadError
from quote_engine.services.data.types import (
    HistoryPoint,
    InstrumentClass,
    ProviderID,
    Quote,
    QuoteBatch,
)


class FakeAdapter:
    """
    In-memory provider adapter.

    quotes maps symbol -> price or an exception instance to raise.
    history maps symbol -> list of closes or an exception instance.
    Every call is recorded as (method, symbol(s), start_time).
    """

    def __init__(
        self,
        provider,
        quotes=None,
        history=None,
        supports_batch=False,
        supports_history=False,
        min_call_interval=0.0,
        currency="EUR",
        fx_rate=None,
        batch_error=None,
        delay=0.0,
        slow_symbols=()
    ):
        self.provider = provider
        self.quotes = quotes or {}
        self.history = history or {}
        self.supports_batch = supports_batch
        self.supports_history = supports_history
        self.min_call_interval = min_call_interval
        self.currency = currency
        self.fx_rate = fx_rate
        self.batch_error = batch_error
        self.delay = delay
        self.slow_symbols = set(slow_symbols)
        self.calls = []
        self._lock = threading.Lock()

    def _record(self, method, arg):
        with self._lock:
            self.calls.append((method, arg, time.monotonic()))

    def _wait(self, symbol):
        if self.delay and (not self.slow_symbols or symbol in self.slow_symbols):
            time.sleep(self.delay)

    def _quote(self, symbol, price):
        return Quote.build(
            symbol=symbol,
            price=price,
            previous_close=price * 0.98,
            source=self.provider,
            currency=self.currency
        )

    def fetch_quotes(self, symbols):
        self._record("fetch_quotes", tuple(symbols))
        if self.batch_error is not None:
            raise self.batch_error
        quotes = {
            s: self._quote(s, self.quotes[s])
            for s in symbols
            if isinstance(self.quotes.get(s), (int, float))
        }
        return QuoteBatch(quotes=quotes, fx_rate=self.fx_rate)

    def fetch_quote(self, symbol):
        self._record("fetch_quote", symbol)
        self._wait(symbol)
        value = self.quotes.get(symbol)
        if isinstance(value, Exception):
            raise value
        if value is None:
            raise PayloadError(self.provider, f"no data for {symbol}")
        return self._quote(symbol, value)

    def fetch_history(self, symbol, period):
        self._record("fetch_history", symbol)
        self._wait(symbol)
        value = self.history.get(symbol)
        if isinstance(value, Exception):
            raise value
        if not value:
            raise PayloadError(self.provider, f"no history for {symbol}")
        start = date(2025, 1, 1)
        return [
            HistoryPoint(date=start + timedelta(days=i), open=c, high=c, low=c, close=c)
            for i, c in enumerate(value)
        ]

    def fetch_fx_rate(self):
        self._record("fetch_fx_rate", None)
        if self.fx_rate is None:
            raise PayloadError(self.provider, "no fx rate")
        return self.fx_rate

    def called_symbols(self, method):
        return [arg for m, arg, _ in self.calls if m == method]


@pytest.fixture
def fake_adapter():
    """Factory for FakeAdapter instances."""
    return FakeAdapter


@pytest.fixture
def test_config():
    """Config without FX conversion and with a short deadline."""
    return EngineConfig(
        resolve_timeout=5.0,
        max_workers=8,
        alpha_vantage_delay=0.0,
        convert_usd_to_eur=False
    )


@pytest.fixture
def default_fakes(fake_adapter):
    """One fake per provider, shaped like the real adapters' capabilities."""
    return {
        ProviderID.COINGECKO: fake_adapter(
            ProviderID.COINGECKO,
            supports_batch=True,
            supports_history=True
        ),
        ProviderID.YAHOO_FINANCE: fake_adapter(
            ProviderID.YAHOO_FINANCE,
            supports_batch=True,
            supports_history=True
        ),
        ProviderID.ALPHA_VANTAGE: fake_adapter(
            ProviderID.ALPHA_VANTAGE,
            supports_history=True
        ),
        ProviderID.STOOQ: fake_adapter(ProviderID.STOOQ),
    }


@pytest.fixture
def mock_response():
    """Factory for MagicMock HTTP responses."""
    def _make(payload=None, status_code=200, text=""):
        response = MagicMock()
        response.status_code = status_code
        response.json.return_value = payload
        response.text = text
        return response
    return _make


@pytest.fixture
def log_messages():
    """Capture loguru messages emitted during a test."""
    messages = []
    handler_id = logger.add(lambda m: messages.append(m), level="DEBUG", format="{message}")
    yield messages
    logger.remove(handler_id)


@pytest.fixture
def equity_chain_only_yahoo():
    return {
        InstrumentClass.CRYPTO: (ProviderID.COINGECKO,),
        InstrumentClass.EQUITY: (ProviderID.YAHOO_FINANCE,),
    }
