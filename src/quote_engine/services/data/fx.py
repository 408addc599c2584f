"""
EUR/USD normalization.

The rate comes from the Yahoo batch quote when that call already returned it;
otherwise one unauthenticated chart request is made. Anything implausible
falls back to a fixed default.
"""

from typing import Optional

from loguru import logger

from quote_engine.core.errors import ProviderError
from quote_engine.services.data.types import InstrumentClass, Quote
from quote_engine.services.data import classifier


DEFAULT_EUR_USD = 1.08
MIN_PLAUSIBLE_RATE = 0.5
MAX_PLAUSIBLE_RATE = 2.5


def is_plausible(rate: Optional[float]) -> bool:
    return rate is not None and MIN_PLAUSIBLE_RATE <= rate <= MAX_PLAUSIBLE_RATE


class FxNormalizer:
    """
    Best-effort EUR/USD rate provider and USD->EUR rescaler.

    The fallback fetch happens at most once per instance; create one per
    resolution.
    """

    def __init__(self, rate_source=None, default_rate: float = DEFAULT_EUR_USD):
        """
        Args:
            rate_source: Object with fetch_fx_rate() -> float (the Yahoo
                adapter), used when no prefetched rate is available
            default_rate: Rate used when everything else fails
        """
        self.rate_source = rate_source
        self.default_rate = default_rate
        self._rate: Optional[float] = None

    def get_eur_usd_rate(self, prefetched: Optional[float] = None) -> float:
        """
        Return the EUR/USD rate (USD per 1 EUR).

        Args:
            prefetched: Rate already obtained from an earlier batch call

        Returns:
            Plausible rate, never raises
        """
        if self._rate is not None:
            return self._rate

        if is_plausible(prefetched):
            self._rate = prefetched
            return self._rate
        if prefetched is not None:
            logger.warning(f"Ignoring implausible prefetched EUR/USD rate {prefetched}")

        rate = None
        if self.rate_source is not None:
            try:
                rate = self.rate_source.fetch_fx_rate()
            except ProviderError as e:
                logger.warning(f"EUR/USD fallback fetch failed: {e.reason}")

        if is_plausible(rate):
            self._rate = rate
        else:
            if rate is not None:
                logger.warning(f"EUR/USD rate {rate} out of range, using default")
            self._rate = self.default_rate

        logger.debug(f"EUR/USD rate: {self._rate}")
        return self._rate

    @staticmethod
    def needs_conversion(quote: Quote) -> bool:
        """USD-quoted equities are rescaled; crypto keeps the requested currency."""
        return (
            quote.currency == "USD"
            and classifier.classify(quote.symbol) == InstrumentClass.EQUITY
        )

    @staticmethod
    def to_eur(quote: Quote, rate: float) -> Quote:
        """Rescale a USD quote to EUR; change_percent is currency-invariant."""
        return quote.rescaled(rate, "EUR")
