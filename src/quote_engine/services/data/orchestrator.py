"""
Fallback orchestrator.

Resolves a set of requested symbols against per-class provider priority
chains:

1. Partition symbols by instrument class.
2. QUOTE mode: call the head provider once per partition when it can batch
   (CoinGecko for crypto, Yahoo for equities).
3. Every symbol still unresolved walks the rest of its chain one provider at
   a time, concurrently across symbols.
4. First success wins; exhausted chains become diagnostics entries and never
   appear in the data map.

Each resolution owns its executors, pacers and FX normalizer; nothing is
shared between requests.
"""

import threading
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from loguru import logger

from quote_engine.adapters.data_sources.alphavantage import AlphaVantageAdapter
from quote_engine.adapters.data_sources.base import ProviderAdapter, supports
from quote_engine.adapters.data_sources.coingecko import CoinGeckoAdapter
from quote_engine.adapters.data_sources.stooq import StooqAdapter
from quote_engine.adapters.data_sources.yahoo import YahooFinanceAdapter
from quote_engine.core.config import EngineConfig
from quote_engine.core.errors import (
    CredentialError,
    InvalidInputError,
    PayloadError,
    ProviderError,
    TransportError,
)
from quote_engine.core.logging_config import ResolutionLogger
from quote_engine.services.data import classifier, indices
from quote_engine.services.data.aggregator import ResultAggregator
from quote_engine.services.data.fx import FxNormalizer
from quote_engine.services.data.types import (
    AggregateResult,
    FetchOutcome,
    InstrumentClass,
    Mode,
    NewsResult,
    Period,
    ProviderAttempt,
    ProviderID,
    QuoteBatch,
)


TIMED_OUT = "timed out"


def build_default_adapters(config: EngineConfig) -> Dict[ProviderID, ProviderAdapter]:
    """Create one adapter per provider from config."""
    return {
        ProviderID.COINGECKO: CoinGeckoAdapter(
            api_key=config.coingecko_api_key,
            timeout=config.request_timeout
        ),
        ProviderID.YAHOO_FINANCE: YahooFinanceAdapter(timeout=config.request_timeout),
        ProviderID.ALPHA_VANTAGE: AlphaVantageAdapter(
            api_key=config.alpha_vantage_key,
            timeout=config.request_timeout,
            min_call_interval=config.alpha_vantage_delay
        ),
        ProviderID.STOOQ: StooqAdapter(timeout=config.request_timeout),
    }


class CallPacer:
    """
    Serialises calls to one provider with a fixed gap between them.

    The gap is measured from the end of the previous call, so n sequential
    calls take at least (n - 1) * interval. Only callers of the same pacer
    wait on each other. A call whose turn would come after the deadline is
    not made.
    """

    def __init__(self, provider: ProviderID, interval: float):
        self.provider = provider
        self.interval = interval
        self._lock = threading.Lock()
        self._last_call_end: Optional[float] = None

    def call(self, fn: Callable[[], Any], deadline: Optional[float] = None) -> Any:
        """
        Run fn once its turn comes.

        Raises:
            TransportError: If the turn would start at or after deadline;
                fn is not called
        """
        with self._lock:
            delay = 0.0
            if self._last_call_end is not None:
                delay = max(0.0, self._last_call_end + self.interval - time.monotonic())
            if deadline is not None and time.monotonic() + delay >= deadline:
                raise TransportError(self.provider, TIMED_OUT)
            if delay > 0:
                time.sleep(delay)
            try:
                return fn()
            finally:
                self._last_call_end = time.monotonic()


@dataclass
class _SymbolState:
    """Mutable per-symbol slot, guarded by the resolution lock."""
    symbol: str
    chain: Tuple[ProviderID, ...]
    attempts: List[ProviderAttempt] = field(default_factory=list)
    current: Optional[ProviderID] = None
    outcome: Optional[FetchOutcome] = None


class FallbackOrchestrator:
    """
    Resolves quotes, history and index series across providers.

    Usage:
        orchestrator = FallbackOrchestrator(EngineConfig.from_env())
        result = orchestrator.quotes(["BTC-EUR", "RHM.DE", "URTH"])
        result.data["RHM.DE"].price
        result.source        # "yahoo", "coingecko", "mixed" or "none"
        result.errors        # per-symbol diagnostics
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        adapters: Optional[Mapping[ProviderID, ProviderAdapter]] = None
    ):
        """
        Initialize orchestrator.

        Args:
            config: Engine configuration (defaults to EngineConfig())
            adapters: ProviderID -> adapter overrides; defaults are built
                from config
        """
        self.config = config or EngineConfig()
        self.adapters: Dict[ProviderID, ProviderAdapter] = (
            dict(adapters) if adapters is not None else build_default_adapters(self.config)
        )
        self.aggregator = ResultAggregator()

        logger.info(
            f"FallbackOrchestrator initialized with {len(self.adapters)} providers: "
            f"{[p.value for p in self.adapters]}"
        )

    # ---------- public API ----------

    def resolve(
        self,
        symbols: Iterable[str],
        mode: Mode = Mode.QUOTE,
        period: Optional[Any] = None
    ) -> AggregateResult:
        """
        Resolve symbols through their provider chains.

        Args:
            symbols: Requested symbols (non-empty); a comma-separated string
                is accepted too
            mode: QUOTE, HISTORY or INDEX
            period: History window (ignored for quotes, defaults to
                config.default_period otherwise)

        Returns:
            AggregateResult with every resolved symbol and diagnostics for
            the rest

        Raises:
            InvalidInputError: Empty/malformed symbols or unknown period,
                before any provider is contacted
        """
        requested = self.validate_symbols(symbols)
        try:
            mode = Mode(mode)
        except ValueError as e:
            raise InvalidInputError(f"Unknown mode: {mode}") from e
        resolved_period = None
        if mode != Mode.QUOTE:
            resolved_period = Period.parse(period, default=self.config.default_period)

        return _Resolution(self, requested, mode, resolved_period).execute()

    def quotes(self, symbols: Iterable[str]) -> AggregateResult:
        return self.resolve(symbols, Mode.QUOTE)

    def history(self, symbols: Iterable[str], period: Optional[Any] = None) -> AggregateResult:
        return self.resolve(symbols, Mode.HISTORY, period)

    def indices(
        self,
        keys: Optional[Iterable[str]] = None,
        period: Optional[Any] = None
    ) -> AggregateResult:
        """Index series for catalog keys or tickers (whole catalog if None)."""
        if keys is None:
            keys = list(indices.INDEX_CATALOG)
        return self.resolve(keys, Mode.INDEX, period)

    def news(self, tickers: Iterable[str], limit: int = 15) -> NewsResult:
        """
        Latest news & sentiment for up to five tickers.

        Provider failures are reported in NewsResult.errors, never raised.
        """
        requested = self.validate_symbols(tickers)
        adapter = self.adapters.get(ProviderID.ALPHA_VANTAGE)
        if adapter is None or not hasattr(adapter, "fetch_news"):
            return NewsResult(errors=(
                ProviderAttempt(ProviderID.ALPHA_VANTAGE, "news provider not configured"),
            ))

        try:
            items = adapter.fetch_news(requested, limit=limit)
        except ProviderError as e:
            logger.warning(f"News fetch failed: {e.reason}")
            return NewsResult(errors=(ProviderAttempt(ProviderID.ALPHA_VANTAGE, e.reason),))

        return NewsResult(items=tuple(items), source=ProviderID.ALPHA_VANTAGE)

    # ---------- helpers ----------

    @staticmethod
    def validate_symbols(symbols: Iterable[str]) -> List[str]:
        """
        Normalize the request: strip, drop blanks, de-duplicate in order.

        Raises:
            InvalidInputError: If nothing usable remains or an entry is not
                a string
        """
        if symbols is None:
            raise InvalidInputError("symbols required")
        if isinstance(symbols, str):
            symbols = symbols.split(",")

        requested: List[str] = []
        for symbol in symbols:
            if not isinstance(symbol, str):
                raise InvalidInputError(f"symbol must be a string, got {symbol!r}")
            symbol = symbol.strip()
            if symbol and symbol not in requested:
                requested.append(symbol)

        if not requested:
            raise InvalidInputError("symbols parameter required")
        return requested

    def chain_for(self, instrument_class: InstrumentClass, mode: Mode) -> Tuple[ProviderID, ...]:
        """
        Provider chain for a class and mode.

        Providers that are not configured, or lack history support in
        HISTORY/INDEX mode, are skipped.
        """
        chains = self.config.quote_chains if mode == Mode.QUOTE else self.config.history_chains
        chain = []
        for provider in chains.get(instrument_class, ()):
            adapter = self.adapters.get(provider)
            if adapter is None:
                continue
            if mode != Mode.QUOTE and not supports(adapter, "history"):
                continue
            chain.append(provider)
        return tuple(chain)


class _Resolution:
    """
    State and execution of one resolve() call.

    Unpaced providers share one bounded pool. Each paced provider gets its
    own single-thread lane, so a pacer sleep never holds a pool worker.
    A chain walk is a sequence of steps: each step tries one provider and,
    on failure, submits the next step to the next provider's executor.
    """

    def __init__(
        self,
        orchestrator: FallbackOrchestrator,
        symbols: List[str],
        mode: Mode,
        period: Optional[Period]
    ):
        self.orchestrator = orchestrator
        self.config = orchestrator.config
        self.adapters = orchestrator.adapters
        self.symbols = symbols
        self.mode = mode
        self.period = period
        self.log = ResolutionLogger(request_id=uuid.uuid4().hex[:8], mode=mode.value)
        self.pacers: Dict[ProviderID, CallPacer] = {
            provider: CallPacer(provider, adapter.min_call_interval)
            for provider, adapter in self.adapters.items()
            if getattr(adapter, "min_call_interval", 0) > 0
        }
        self.fx_rate: Optional[float] = None
        self.deadline = 0.0

        self._done = threading.Condition()
        self._pending = 0
        self._closed = False
        self._pool: Optional[ThreadPoolExecutor] = None
        self._lanes: Dict[ProviderID, ThreadPoolExecutor] = {}

    # ---------- execution ----------

    def execute(self) -> AggregateResult:
        started = time.monotonic()
        self.deadline = started + self.config.resolve_timeout

        states = {
            symbol: _SymbolState(
                symbol=symbol,
                chain=self.orchestrator.chain_for(self._classify(symbol), self.mode)
            )
            for symbol in self.symbols
        }

        self._pool = ThreadPoolExecutor(
            max_workers=self.config.max_workers,
            thread_name_prefix="quote-engine"
        )
        self._lanes = {
            provider: ThreadPoolExecutor(
                max_workers=1,
                thread_name_prefix=f"quote-engine-{provider.value}"
            )
            for provider in self.pacers
        }
        try:
            if self.mode == Mode.QUOTE:
                self._run_batches(states)
            self._run_chains(states)
        finally:
            with self._done:
                self._closed = True
            # Never wait for a stuck provider
            for executor in [self._pool, *self._lanes.values()]:
                executor.shutdown(wait=False, cancel_futures=True)

        outcomes = {symbol: state.outcome for symbol, state in states.items()}
        if self.mode == Mode.QUOTE and self.config.convert_usd_to_eur:
            outcomes = self._normalize_currency(outcomes)

        result = self.orchestrator.aggregator.aggregate(
            self.symbols, outcomes, self.mode, self.period
        )

        for detail in result.errors:
            if detail.resolved_by is None:
                self.log.symbol_unresolved(detail.symbol, detail.describe())
        self.log.resolution_complete(
            requested=len(self.symbols),
            resolved=len(result.data),
            source=result.source,
            errors=len(result.errors),
            elapsed_ms=(time.monotonic() - started) * 1000
        )
        return result

    def _remaining(self) -> float:
        return max(0.0, self.deadline - time.monotonic())

    def _classify(self, symbol: str) -> InstrumentClass:
        if self.mode == Mode.INDEX:
            return classifier.classify(indices.lookup(symbol).symbol)
        return classifier.classify(symbol)

    def _submit(self, provider: ProviderID, fn: Callable, *args) -> Future:
        executor = self._lanes.get(provider, self._pool)
        return executor.submit(fn, *args)

    def _call(self, provider: ProviderID, fn: Callable[[], Any]) -> Any:
        pacer = self.pacers.get(provider)
        if pacer:
            return pacer.call(fn, deadline=self.deadline)
        if self._remaining() <= 0:
            raise TransportError(provider, TIMED_OUT)
        return fn()

    def _record(self, state: _SymbolState, provider: ProviderID, reason: str,
                error: Optional[Exception] = None) -> None:
        state.attempts.append(ProviderAttempt(provider, reason))
        if isinstance(error, CredentialError):
            self.log.credential_failed(provider.value, reason, symbol=state.symbol)
        self.log.provider_failed(state.symbol, provider.value, reason)

    # ---------- phase 1: batched head provider ----------

    def _run_batches(self, states: Dict[str, _SymbolState]) -> None:
        groups: Dict[ProviderID, List[_SymbolState]] = {}
        for state in states.values():
            if not state.chain:
                continue
            head = state.chain[0]
            if supports(self.adapters[head], "batch"):
                groups.setdefault(head, []).append(state)

        futures: Dict[Future, Tuple[ProviderID, List[_SymbolState]]] = {}
        for provider, members in groups.items():
            adapter = self.adapters[provider]
            symbols = [s.symbol for s in members]
            future = self._submit(
                provider, self._call, provider, lambda a=adapter, s=symbols: a.fetch_quotes(s)
            )
            futures[future] = (provider, members)

        if not futures:
            return

        wait(futures, timeout=self._remaining())

        for future, (provider, members) in futures.items():
            if not future.done():
                for state in members:
                    self._record(state, provider, TIMED_OUT)
                    state.chain = ()
                continue

            error = future.exception()
            if error is not None:
                reason = error.reason if isinstance(error, ProviderError) else repr(error)
                if not isinstance(error, ProviderError):
                    logger.opt(exception=error).error(
                        f"Unexpected {provider.value} batch error"
                    )
                for state in members:
                    self._record(state, provider, reason, error)
                    state.chain = state.chain[1:]
                continue

            batch: QuoteBatch = future.result()
            if batch.fx_rate is not None:
                self.fx_rate = batch.fx_rate
            for state in members:
                quote = batch.quotes.get(state.symbol)
                if quote is not None:
                    state.outcome = FetchOutcome.success(
                        state.symbol, quote, provider, state.attempts
                    )
                    self.log.symbol_resolved(state.symbol, provider.value, len(state.attempts))
                else:
                    self._record(state, provider, "symbol not in batch response")
                    state.chain = state.chain[1:]

    # ---------- phase 2: per-symbol chain walks ----------

    def _run_chains(self, states: Dict[str, _SymbolState]) -> None:
        walking: List[_SymbolState] = []
        for state in states.values():
            if state.outcome is not None:
                continue
            if not state.chain:
                state.outcome = FetchOutcome.failure(state.symbol, state.attempts)
                continue
            walking.append(state)

        if not walking:
            return

        with self._done:
            self._pending = len(walking)
            for state in walking:
                self._schedule(state, 0)

            self._done.wait_for(lambda: self._pending == 0, timeout=self._remaining())

            self._closed = True
            for state in walking:
                if state.outcome is None:
                    self._time_out(state)

    def _schedule(self, state: _SymbolState, index: int) -> None:
        """Queue step `index` of a chain walk. Caller holds the lock."""
        provider = state.chain[index]
        state.current = provider
        future = self._submit(provider, self._step, state, index)
        future.add_done_callback(lambda f, s=state: self._report_crash(f, s))

    def _step(self, state: _SymbolState, index: int) -> None:
        provider = state.chain[index]
        adapter = self.adapters[provider]
        try:
            value = self._call(provider, lambda: self._fetch_one(adapter, state.symbol))
        except ProviderError as e:
            self._advance(state, index, e.reason, e)
            return
        except Exception as e:
            logger.exception(f"Unexpected {provider.value} error for {state.symbol}")
            self._advance(state, index, repr(e), e)
            return

        with self._done:
            if self._closed:
                return
            self.log.symbol_resolved(state.symbol, provider.value, len(state.attempts))
            state.outcome = FetchOutcome.success(
                state.symbol, value, provider, list(state.attempts)
            )
            state.current = None
            self._settle()

    def _advance(self, state: _SymbolState, index: int, reason: str,
                 error: Exception) -> None:
        """Record a failed step and move on to the next provider, if any."""
        with self._done:
            if self._closed:
                return
            self._record(state, state.chain[index], reason, error)
            state.current = None
            if index + 1 < len(state.chain) and self._remaining() > 0:
                self._schedule(state, index + 1)
                return
            state.outcome = FetchOutcome.failure(state.symbol, list(state.attempts))
            self._settle()

    def _settle(self) -> None:
        self._pending -= 1
        self._done.notify_all()

    def _time_out(self, state: _SymbolState) -> None:
        """Fail a walk still in flight at the deadline. Caller holds the lock."""
        attempts = list(state.attempts)
        provider = state.current
        if provider is not None and (not attempts or attempts[-1].provider != provider):
            attempts.append(ProviderAttempt(provider, TIMED_OUT))
            self.log.provider_failed(state.symbol, provider.value, TIMED_OUT)
        state.outcome = FetchOutcome.failure(state.symbol, attempts)

    def _report_crash(self, future: Future, state: _SymbolState) -> None:
        if future.cancelled() or future.exception() is None:
            return
        # _step catches adapter errors; this is a bug in the walk itself
        logger.opt(exception=future.exception()).error(
            f"Chain walk crashed for {state.symbol}"
        )

    def _fetch_one(self, adapter: Any, symbol: str) -> Any:
        if self.mode == Mode.QUOTE:
            return adapter.fetch_quote(symbol)

        if self.mode == Mode.HISTORY:
            points = adapter.fetch_history(symbol, self.period)
            if not points:
                raise PayloadError(adapter.provider, "empty history")
            return points

        info = indices.lookup(symbol)
        points = adapter.fetch_history(info.symbol, self.period)
        try:
            return indices.to_index_series(info.symbol, info.name, points)
        except ValueError as e:
            raise PayloadError(adapter.provider, str(e)) from e

    # ---------- FX ----------

    def _normalize_currency(
        self,
        outcomes: Dict[str, Optional[FetchOutcome]]
    ) -> Dict[str, Optional[FetchOutcome]]:
        to_convert = [
            symbol for symbol, outcome in outcomes.items()
            if outcome is not None and outcome.ok and FxNormalizer.needs_conversion(outcome.value)
        ]
        if not to_convert:
            return outcomes

        # Past the deadline only the prefetched rate or the default is used
        rate_source = None
        if self._remaining() > 0:
            rate_source = self.adapters.get(ProviderID.YAHOO_FINANCE)
        if rate_source is not None and not hasattr(rate_source, "fetch_fx_rate"):
            rate_source = None

        rate = FxNormalizer(rate_source=rate_source).get_eur_usd_rate(self.fx_rate)

        converted = dict(outcomes)
        for symbol in to_convert:
            outcome = outcomes[symbol]
            converted[symbol] = replace(outcome, value=FxNormalizer.to_eur(outcome.value, rate))
        return converted
