"""Unit tests for Stooq data source adapter."""
from unittest.mock import patch

import pytest

from quote_engine.adapters.data_sources.stooq import StooqAdapter
from quote_engine.core.errors import PayloadError, ProviderSentinelError
from quote_engine.services.data.fx import FxNormalizer
from quote_engine.services.data.types import ProviderID


class TestStooqQuote:
    """Test latest-quote parsing."""

    @patch('requests.Session.get')
    def test_fetch_quote(self, mock_get, mock_response):
        """Test a quote row is normalized with no change."""
        # ARRANGE
        mock_get.return_value = mock_response({"symbols": [{
            "symbol": "AAPL.US", "date": "2025-03-10", "time": "22:00:00",
            "open": 188.0, "high": 191.0, "low": 187.5, "close": 190.0,
            "volume": 50000000, "name": "APPLE",
        }]})

        # ACT
        quote = StooqAdapter().fetch_quote("AAPL")

        # ASSERT
        assert mock_get.call_args.kwargs["params"]["s"] == "aapl.us"
        assert quote.price == 190.0
        assert quote.previous_close == 190.0
        assert quote.change == 0.0
        assert quote.currency == "USD"
        assert quote.source == ProviderID.STOOQ

    @patch('requests.Session.get')
    def test_no_data_sentinel(self, mock_get, mock_response):
        """Test "N/D" closes are sentinel failures."""
        mock_get.return_value = mock_response({"symbols": [
            {"symbol": "ZZZZ.US", "close": "N/D"}
        ]})

        with pytest.raises(ProviderSentinelError):
            StooqAdapter().fetch_quote("ZZZZ")

    @patch('requests.Session.get')
    def test_crypto_rejected_without_request(self, mock_get):
        with pytest.raises(PayloadError):
            StooqAdapter().fetch_quote("BTC-EUR")
        mock_get.assert_not_called()

    @pytest.mark.parametrize("symbol, currency", [
        ("aapl.us", "USD"), ("rhm.de", "EUR"), ("vod.uk", "GBP"), ("7203.jp", "JPY"),
        ("xyz", None), ("abc.zz", None)
    ])
    def test_currency_for(self, symbol, currency):
        assert StooqAdapter.currency_for(symbol) == currency

    @patch('requests.Session.get')
    def test_tokyo_listing_priced_in_jpy(self, mock_get, mock_response):
        """Test a Tokyo listing keeps JPY and is not rescaled as USD."""
        # ARRANGE
        mock_get.return_value = mock_response({"symbols": [
            {"symbol": "7203.JP", "close": 2500.0, "name": "TOYOTA"}
        ]})

        # ACT
        quote = StooqAdapter().fetch_quote("7203.T")

        # ASSERT
        assert mock_get.call_args.kwargs["params"]["s"] == "7203.jp"
        assert quote.currency == "JPY"
        assert quote.price == 2500.0
        assert not FxNormalizer.needs_conversion(quote)

    @patch('requests.Session.get')
    def test_unknown_market_raises_without_request(self, mock_get):
        """Test an unmapped market suffix is never labelled USD."""
        with pytest.raises(PayloadError):
            StooqAdapter().fetch_quote("ABC.ZZ")

        mock_get.assert_not_called()
