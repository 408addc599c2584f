"""
Provider resolution and aggregation engine.

Resolves market quotes, price history and index performance series across
CoinGecko, Yahoo Finance, Alpha Vantage and Stooq with per-class fallback
chains, EUR normalization and per-symbol diagnostics.

Usage:
    from quote_engine import EngineConfig, FallbackOrchestrator

    orchestrator = FallbackOrchestrator(EngineConfig.from_env())
    result = orchestrator.quotes(["BTC-EUR", "RHM.DE", "URTH"])
    print(result.source, result.errors)
"""

from quote_engine.core.config import EngineConfig
from quote_engine.core.errors import InvalidInputError, ProviderError
from quote_engine.services.data.orchestrator import FallbackOrchestrator
from quote_engine.services.data.types import (
    AggregateResult,
    HistoryPoint,
    IndexSeries,
    InstrumentClass,
    Mode,
    Period,
    ProviderID,
    Quote
)

__version__ = "0.1.0"

__all__ = [
    "EngineConfig",
    "FallbackOrchestrator",
    "AggregateResult",
    "Quote",
    "HistoryPoint",
    "IndexSeries",
    "InstrumentClass",
    "Mode",
    "Period",
    "ProviderID",
    "ProviderError",
    "InvalidInputError"
]
