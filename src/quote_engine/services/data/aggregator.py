"""
Result aggregator.

Folds per-symbol fetch outcomes into one AggregateResult: resolved values
keyed by the requested symbol, the set of providers that supplied them and a
diagnostics entry for every symbol that saw at least one failed attempt.
"""

from typing import Dict, Iterable, List, Mapping, Optional, Set

from loguru import logger

from quote_engine.services.data.types import (
    AggregateResult,
    FailureDetail,
    FetchOutcome,
    Mode,
    Period,
    ProviderID,
)


class ResultAggregator:
    """
    Builds AggregateResult instances from FetchOutcome maps.

    Stateless; one instance can be shared.
    """

    def aggregate(
        self,
        symbols: Iterable[str],
        outcomes: Mapping[str, Optional[FetchOutcome]],
        mode: Mode,
        period: Optional[Period] = None
    ) -> AggregateResult:
        """
        Aggregate outcomes in request order.

        Args:
            symbols: Requested symbols (order is kept in data and errors)
            outcomes: symbol -> FetchOutcome; a missing entry counts as a
                failure with no attempts
            mode: Resolution mode
            period: History window (None for quotes)

        Returns:
            AggregateResult
        """
        data: Dict[str, object] = {}
        sources: Set[ProviderID] = set()
        errors: List[FailureDetail] = []

        for symbol in symbols:
            outcome = outcomes.get(symbol)
            if outcome is None:
                outcome = FetchOutcome.failure(symbol, ())

            if outcome.ok:
                data[symbol] = outcome.value
                sources.add(outcome.provider)
                if outcome.attempts:
                    errors.append(FailureDetail(symbol, outcome.attempts, outcome.provider))
            else:
                errors.append(FailureDetail(symbol, outcome.attempts))

        result = AggregateResult(
            mode=mode,
            data=data,
            sources=frozenset(sources),
            errors=tuple(errors),
            period=period
        )
        logger.debug(f"Aggregated {result!r}")
        return result
