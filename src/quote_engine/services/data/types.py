"""
Shared types for provider resolution.

Canonical shapes every adapter normalizes into (Quote, HistoryPoint), the
per-symbol FetchOutcome produced by the orchestrator, and the AggregateResult
handed to the boundary layer.
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from quote_engine.core.errors import InvalidInputError


class InstrumentClass(Enum):
    """Instrument class used to pick a provider chain."""
    CRYPTO = "crypto"
    EQUITY = "equity"


class ProviderID(Enum):
    """Upstream market data provider."""
    COINGECKO = "coingecko"
    YAHOO_FINANCE = "yahoo"
    ALPHA_VANTAGE = "alphavantage"
    STOOQ = "stooq"


class Mode(Enum):
    """What a resolution returns per symbol."""
    QUOTE = "quote"
    HISTORY = "history"
    INDEX = "index"


class Period(Enum):
    """History window. Each adapter maps it to its own range vocabulary."""
    ONE_WEEK = "1W"
    ONE_MONTH = "1M"
    THREE_MONTHS = "3M"
    SIX_MONTHS = "6M"
    ONE_YEAR = "1Y"
    THREE_YEARS = "3Y"
    MAX = "MAX"

    @classmethod
    def parse(cls, value, default: Optional["Period"] = None) -> "Period":
        """
        Parse a period string.

        Accepts the enum values case-insensitively plus the German dashboard
        aliases "1J" and "3J".

        Args:
            value: Period, string or None
            default: Returned when value is None or empty

        Returns:
            Parsed Period

        Raises:
            InvalidInputError: If value is not a known period
        """
        if isinstance(value, Period):
            return value
        if value is None or str(value).strip() == "":
            if default is None:
                raise InvalidInputError("period required")
            return default

        text = str(value).strip().upper()
        text = _PERIOD_ALIASES.get(text, text)
        for period in cls:
            if period.value == text:
                return period
        raise InvalidInputError(
            f"Unknown period: {value}. Supported: {[p.value for p in cls]}"
        )

    @property
    def is_long(self) -> bool:
        """True for periods served from weekly/monthly bars."""
        return self in (Period.ONE_YEAR, Period.THREE_YEARS, Period.MAX)


_PERIOD_ALIASES = {"1J": "1Y", "3J": "3Y"}


@dataclass(frozen=True)
class Quote:
    """
    Normalized current-price snapshot.

    Always build through Quote.build() so change and change_percent are
    derived from price and previous_close.
    """
    symbol: str
    price: float
    previous_close: float
    change: float
    change_percent: float
    day_high: float
    day_low: float
    volume: float
    name: str
    currency: str
    source: ProviderID

    @classmethod
    def build(
        cls,
        symbol: str,
        price: float,
        previous_close: Optional[float],
        source: ProviderID,
        day_high: Optional[float] = None,
        day_low: Optional[float] = None,
        volume: Optional[float] = None,
        name: Optional[str] = None,
        currency: str = "USD"
    ) -> "Quote":
        """
        Create a quote with derived change fields.

        A missing previous close falls back to price (change 0).
        """
        price = float(price)
        prev = float(previous_close) if previous_close else price
        change = price - prev
        change_percent = (change / prev) * 100 if prev else 0.0

        return cls(
            symbol=symbol,
            price=price,
            previous_close=prev,
            change=change,
            change_percent=change_percent,
            day_high=float(day_high) if day_high else price,
            day_low=float(day_low) if day_low else price,
            volume=float(volume or 0),
            name=name or symbol,
            currency=currency.upper(),
            source=source
        )

    def rescaled(self, rate: float, currency: str) -> "Quote":
        """Divide all price fields by rate; change_percent is unchanged."""
        return replace(
            self,
            price=self.price / rate,
            previous_close=self.previous_close / rate,
            change=self.change / rate,
            day_high=self.day_high / rate,
            day_low=self.day_low / rate,
            currency=currency
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "price": self.price,
            "previousClose": self.previous_close,
            "change": self.change,
            "changePercent": self.change_percent,
            "dayHigh": self.day_high,
            "dayLow": self.day_low,
            "volume": self.volume,
            "name": self.name,
            "currency": self.currency,
            "source": self.source.value,
        }


@dataclass(frozen=True)
class QuoteBatch:
    """Result of one batched quote call."""
    quotes: Mapping[str, Quote]
    fx_rate: Optional[float] = None  # EUR/USD when the provider returned it


@dataclass(frozen=True)
class HistoryPoint:
    """One daily/weekly/monthly OHLCV observation."""
    date: date
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }


def normalize_history(points: Iterable[HistoryPoint]) -> List[HistoryPoint]:
    """Sort ascending by date and drop duplicate dates (last one wins)."""
    by_date: Dict[date, HistoryPoint] = {}
    for point in points:
        by_date[point.date] = point
    return [by_date[d] for d in sorted(by_date)]


@dataclass(frozen=True)
class IndexPoint:
    date: date
    close: float
    return_pct: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "close": self.close,
            "returnPct": self.return_pct,
        }


@dataclass(frozen=True)
class IndexSeries:
    """History re-based to cumulative percent return from its first point."""
    symbol: str
    name: str
    points: Tuple[IndexPoint, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "name": self.name,
            "data": [p.to_dict() for p in self.points],
        }


@dataclass(frozen=True)
class NewsItem:
    title: str
    link: str
    publisher: Optional[str] = None
    published_at: Optional[datetime] = None
    summary: Optional[str] = None
    sentiment: Optional[str] = None
    sentiment_score: Optional[float] = None
    related_tickers: Tuple[str, ...] = ()
    thumbnail: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "link": self.link,
            "publisher": self.publisher,
            "publishedAt": self.published_at.isoformat() if self.published_at else None,
            "summary": self.summary,
            "sentiment": self.sentiment,
            "sentimentScore": self.sentiment_score,
            "relatedTickers": list(self.related_tickers),
            "thumbnail": self.thumbnail,
        }


@dataclass(frozen=True)
class ProviderAttempt:
    """One failed provider attempt for one symbol."""
    provider: ProviderID
    message: str

    def __str__(self):
        return f"{self.provider.value}({self.message})"


@dataclass(frozen=True)
class FetchOutcome:
    """
    Per-symbol result of walking a provider chain.

    Successful outcomes keep the attempts that failed before the winning
    provider so the diagnostics show the full chain.
    """
    symbol: str
    value: Any = None
    provider: Optional[ProviderID] = None
    attempts: Tuple[ProviderAttempt, ...] = ()

    @property
    def ok(self) -> bool:
        return self.provider is not None

    @classmethod
    def success(cls, symbol: str, value: Any, provider: ProviderID,
                attempts: Iterable[ProviderAttempt] = ()) -> "FetchOutcome":
        return cls(symbol=symbol, value=value, provider=provider, attempts=tuple(attempts))

    @classmethod
    def failure(cls, symbol: str, attempts: Iterable[ProviderAttempt]) -> "FetchOutcome":
        return cls(symbol=symbol, attempts=tuple(attempts))


@dataclass(frozen=True)
class FailureDetail:
    """Diagnostics entry for a symbol with at least one failed attempt."""
    symbol: str
    attempts: Tuple[ProviderAttempt, ...]
    resolved_by: Optional[ProviderID] = None

    def describe(self) -> str:
        chain = "; ".join(str(a) for a in self.attempts) or "no provider available"
        if self.resolved_by is not None:
            return f"{self.symbol}: {chain} -> resolved by {self.resolved_by.value}"
        return f"{self.symbol}: {chain}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "attempts": [
                {"provider": a.provider.value, "message": a.message}
                for a in self.attempts
            ],
            "resolvedBy": self.resolved_by.value if self.resolved_by else None,
            "message": self.describe(),
        }


MIXED_SOURCE = "mixed"
NO_SOURCE = "none"


@dataclass(frozen=True)
class NewsResult:
    """News feed response; failures are reported in errors."""
    items: Tuple[NewsItem, ...] = ()
    source: Optional[ProviderID] = None
    errors: Tuple[ProviderAttempt, ...] = ()
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": [item.to_dict() for item in self.items],
            "source": self.source.value if self.source else NO_SOURCE,
            "errors": [str(e) for e in self.errors],
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class AggregateResult:
    """
    Final result of one resolution.

    data maps each resolved symbol (as requested) to a Quote, a list of
    HistoryPoint or an IndexSeries depending on mode. Unresolvable symbols
    are absent from data and present in errors.
    """
    mode: Mode
    data: Mapping[str, Any]
    sources: FrozenSet[ProviderID]
    errors: Tuple[FailureDetail, ...]
    period: Optional[Period] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        object.__setattr__(self, "data", MappingProxyType(dict(self.data)))

    @property
    def source(self) -> str:
        """Provenance label: the single provider used, "mixed" or "none"."""
        if not self.sources:
            return NO_SOURCE
        if len(self.sources) == 1:
            return next(iter(self.sources)).value
        return MIXED_SOURCE

    @property
    def unresolved(self) -> List[str]:
        return [e.symbol for e in self.errors if e.resolved_by is None]

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe representation for the boundary layer."""
        data: Dict[str, Any] = {}
        for symbol, value in self.data.items():
            if isinstance(value, list):
                data[symbol] = [p.to_dict() for p in value]
            else:
                data[symbol] = value.to_dict()

        return {
            "mode": self.mode.value,
            "period": self.period.value if self.period else None,
            "data": data,
            "source": self.source,
            "sources": sorted(p.value for p in self.sources),
            "errors": [e.to_dict() for e in self.errors],
            "timestamp": self.timestamp.isoformat(),
        }

    def __repr__(self):
        return (f"AggregateResult({self.mode.value} | resolved={len(self.data)} | "
                f"source={self.source} | errors={len(self.errors)})")
