"""Unit tests for the result aggregator."""
import pytest

from quote_engine.services.data.aggregator import ResultAggregator
from quote_engine.services.data.types import (
    FetchOutcome,
    Mode,
    ProviderAttempt,
    ProviderID,
    Quote,
)


def _quote(symbol, provider):
    return Quote.build(symbol=symbol, price=10.0, previous_close=9.0, source=provider)


@pytest.fixture
def aggregator():
    return ResultAggregator()


class TestProvenanceLabel:
    """Test the source label derived from contributing providers."""

    def test_single_provider_label(self, aggregator):
        """Test one contributing provider is named directly."""
        # ARRANGE
        outcomes = {
            "AAPL": FetchOutcome.success("AAPL", _quote("AAPL", ProviderID.YAHOO_FINANCE),
                                         ProviderID.YAHOO_FINANCE),
            "MSFT": FetchOutcome.success("MSFT", _quote("MSFT", ProviderID.YAHOO_FINANCE),
                                         ProviderID.YAHOO_FINANCE),
        }

        # ACT
        result = aggregator.aggregate(["AAPL", "MSFT"], outcomes, Mode.QUOTE)

        # ASSERT
        assert result.source == "yahoo"
        assert result.errors == ()

    def test_multiple_providers_label_mixed(self, aggregator):
        """Test two contributing providers give "mixed"."""
        # ARRANGE
        outcomes = {
            "BTC-EUR": FetchOutcome.success("BTC-EUR", _quote("BTC-EUR", ProviderID.COINGECKO),
                                            ProviderID.COINGECKO),
            "AAPL": FetchOutcome.success("AAPL", _quote("AAPL", ProviderID.STOOQ),
                                         ProviderID.STOOQ),
        }

        # ACT
        result = aggregator.aggregate(["BTC-EUR", "AAPL"], outcomes, Mode.QUOTE)

        # ASSERT
        assert result.source == "mixed"
        assert result.to_dict()["sources"] == ["coingecko", "stooq"]

    def test_no_success_label_none(self, aggregator):
        """Test total failure is labelled "none"."""
        # ARRANGE
        attempts = [ProviderAttempt(ProviderID.STOOQ, "no data for x.us")]
        outcomes = {"X": FetchOutcome.failure("X", attempts)}

        # ACT
        result = aggregator.aggregate(["X"], outcomes, Mode.QUOTE)

        # ASSERT
        assert result.source == "none"
        assert dict(result.data) == {}
        assert result.unresolved == ["X"]


class TestDiagnostics:
    """Test per-symbol failure details."""

    def test_failed_symbols_absent_from_data(self, aggregator):
        """Test a symbol is either in data or in unresolved, never both."""
        # ARRANGE
        outcomes = {
            "A": FetchOutcome.success("A", _quote("A", ProviderID.YAHOO_FINANCE),
                                      ProviderID.YAHOO_FINANCE),
            "B": FetchOutcome.failure("B", [ProviderAttempt(ProviderID.YAHOO_FINANCE, "x")]),
        }

        # ACT
        result = aggregator.aggregate(["A", "B"], outcomes, Mode.QUOTE)

        # ASSERT
        assert set(result.data) == {"A"}
        assert set(result.data).isdisjoint(result.unresolved)

    def test_missing_outcome_counts_as_failure(self, aggregator):
        """Test a symbol without outcome gets an empty-attempt diagnostic."""
        # ACT
        result = aggregator.aggregate(["A"], {}, Mode.QUOTE)

        # ASSERT
        assert result.errors[0].describe() == "A: no provider available"

    def test_describe_lists_attempts_in_order(self, aggregator):
        """Test the failure message follows chain order."""
        # ARRANGE
        attempts = [
            ProviderAttempt(ProviderID.YAHOO_FINANCE, "HTTP 401"),
            ProviderAttempt(ProviderID.ALPHA_VANTAGE, "rate limit: Thank you"),
        ]
        outcomes = {"SAP.DE": FetchOutcome.failure("SAP.DE", attempts)}

        # ACT
        result = aggregator.aggregate(["SAP.DE"], outcomes, Mode.QUOTE)

        # ASSERT
        assert result.errors[0].describe() == (
            "SAP.DE: yahoo(HTTP 401); alphavantage(rate limit: Thank you)"
        )

    def test_data_is_read_only(self, aggregator):
        """Test the result data mapping cannot be mutated."""
        result = aggregator.aggregate(["A"], {}, Mode.QUOTE)

        with pytest.raises(TypeError):
            result.data["A"] = 1
