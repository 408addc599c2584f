"""Unit tests for Yahoo Finance data source adapter and crumb session."""
from unittest.mock import MagicMock, patch

import pytest
import requests

from quote_engine.adapters.data_sources.yahoo import FX_SYMBOL, YahooFinanceAdapter
from quote_engine.adapters.data_sources.yahoo_session import SessionState, YahooSession
from quote_engine.core.errors import CredentialError, PayloadError, TransportError
from quote_engine.services.data.types import Period, ProviderID


def _chart(meta=None, timestamps=None, quote=None, error=None):
    if error:
        return {"chart": {"result": None, "error": {"description": error}}}
    return {
        "chart": {
            "result": [{
                "meta": meta or {},
                "timestamp": timestamps or [],
                "indicators": {"quote": [quote or {}]},
            }],
            "error": None,
        }
    }


@pytest.fixture
def cookie_session():
    """Real session pre-loaded with a Yahoo cookie."""
    session = requests.Session()
    session.cookies.set("A3", "d=test", domain=".yahoo.com")
    return session


class TestYahooSession:
    """Test cookie + crumb acquisition."""

    def test_acquire_valid_crumb(self, mock_response):
        """Test a valid crumb moves the session to VALID."""
        # ARRANGE
        session = MagicMock()
        session.cookies = {"A3": "d=test"}
        session.get.side_effect = [
            mock_response(status_code=404),
            mock_response(text="abcDEF123/x\n"),
        ]
        yahoo_session = YahooSession(session)

        # ACT
        crumb = yahoo_session.acquire()

        # ASSERT
        assert crumb == "abcDEF123/x"
        assert yahoo_session.state == SessionState.VALID
        assert yahoo_session.crumb == crumb

    def test_no_cookie_fails(self, mock_response):
        """Test a landing response without Set-Cookie is a credential failure."""
        # ARRANGE
        session = MagicMock()
        session.cookies = {}
        session.get.return_value = mock_response(status_code=404)
        yahoo_session = YahooSession(session)

        # ACT & ASSERT
        with pytest.raises(CredentialError):
            yahoo_session.acquire()
        assert yahoo_session.state == SessionState.NO_CREDENTIAL

    def test_crumb_http_error_is_credential_error(self, mock_response):
        # ARRANGE
        session = MagicMock()
        session.cookies = {"A3": "d=test"}
        session.get.side_effect = [mock_response(), mock_response(status_code=401)]

        # ACT & ASSERT
        with pytest.raises(CredentialError, match="HTTP 401"):
            YahooSession(session).acquire()

    @pytest.mark.parametrize("crumb", ["", "x" * 65, '{"error":"x"}', "<html>"])
    def test_invalid_crumbs_rejected(self, crumb):
        with pytest.raises(CredentialError):
            YahooSession.validate_crumb(crumb)

    def test_invalidate_drops_crumb(self, mock_response):
        # ARRANGE
        session = MagicMock()
        session.cookies = {"A3": "d=test"}
        session.get.side_effect = [mock_response(), mock_response(text="crumb1")]
        yahoo_session = YahooSession(session)
        yahoo_session.acquire()

        # ACT
        yahoo_session.invalidate()

        # ASSERT
        assert yahoo_session.crumb is None
        assert yahoo_session.state == SessionState.NO_CREDENTIAL


class TestYahooBatchQuotes:
    """Test authenticated batch quotes."""

    def test_fetch_quotes_returns_fx_rate(self, cookie_session, mock_response):
        """Test one batch call returns quotes plus the EUR/USD rate."""
        # ARRANGE
        def router(url, params=None, timeout=None, **kwargs):
            if "getcrumb" in url:
                return mock_response(text="crumb123")
            if "v7/finance/quote" in url:
                assert params["crumb"] == "crumb123"
                assert params["symbols"] == f"RHM.DE,AAPL,{FX_SYMBOL}"
                return mock_response({"quoteResponse": {"result": [
                    {"symbol": "RHM.DE", "regularMarketPrice": 550.0,
                     "regularMarketPreviousClose": 540.0, "currency": "EUR",
                     "shortName": "Rheinmetall"},
                    {"symbol": "AAPL", "regularMarketPrice": 190.0, "currency": "USD"},
                    {"symbol": FX_SYMBOL, "regularMarketPrice": 1.09},
                ]}})
            return mock_response(status_code=404)

        adapter = YahooFinanceAdapter()

        # ACT
        with patch('quote_engine.adapters.data_sources.yahoo.new_session',
                   return_value=cookie_session), \
                patch.object(requests.Session, 'get', side_effect=router):
            batch = adapter.fetch_quotes(["RHM.DE", "AAPL"])

        # ASSERT
        assert batch.fx_rate == 1.09
        assert batch.quotes["RHM.DE"].name == "Rheinmetall"
        assert batch.quotes["RHM.DE"].change == pytest.approx(10.0)
        assert batch.quotes["AAPL"].currency == "USD"
        assert FX_SYMBOL not in batch.quotes

    def test_missing_result_node_raises(self, cookie_session, mock_response):
        """Test a payload without quoteResponse.result is a payload error."""
        # ARRANGE
        def router(url, params=None, timeout=None, **kwargs):
            if "getcrumb" in url:
                return mock_response(text="crumb123")
            if "v7/finance/quote" in url:
                return mock_response({"finance": {"error": "Unauthorized"}})
            return mock_response(status_code=404)

        # ACT & ASSERT
        with patch('quote_engine.adapters.data_sources.yahoo.new_session',
                   return_value=cookie_session), \
                patch.object(requests.Session, 'get', side_effect=router):
            with pytest.raises(PayloadError):
                YahooFinanceAdapter().fetch_quotes(["AAPL"])

    @patch('requests.Session.get')
    def test_no_cookie_raises_credential_error(self, mock_get, mock_response):
        mock_get.return_value = mock_response(status_code=404)

        with pytest.raises(CredentialError):
            YahooFinanceAdapter().fetch_quotes(["AAPL"])

    def test_missing_crumb_falls_back_to_chart_quotes(self, mock_response, log_messages):
        """Test a failed crumb degrades to per-symbol chart quotes."""
        # ARRANGE
        def router(url, params=None, timeout=None, **kwargs):
            if "v8/finance/chart/AAPL" in url:
                return mock_response(_chart(meta={
                    "regularMarketPrice": 190.0,
                    "chartPreviousClose": 188.0,
                    "currency": "USD",
                }))
            return mock_response(status_code=404)

        # ACT
        with patch.object(requests.Session, 'get', side_effect=router):
            batch = YahooFinanceAdapter().fetch_quotes(["AAPL", "ZZZZ"])

        # ASSERT
        assert list(batch.quotes) == ["AAPL"]
        assert batch.quotes["AAPL"].price == 190.0
        assert batch.fx_rate is None
        assert any("using chart quotes" in m for m in log_messages)


class TestYahooChart:
    """Test unauthenticated chart requests."""

    @patch('requests.Session.get')
    def test_second_mirror_used_when_first_fails(self, mock_get, mock_response):
        """Test query2 is tried after query1 fails."""
        # ARRANGE
        mock_get.side_effect = [
            requests.ConnectionError("dns failure"),
            mock_response(_chart(meta={
                "regularMarketPrice": 101.0,
                "chartPreviousClose": 100.0,
                "currency": "USD",
                "shortName": "iShares MSCI World",
            })),
        ]

        # ACT
        quote = YahooFinanceAdapter().fetch_quote("URTH")

        # ASSERT
        assert mock_get.call_count == 2
        assert "query1" in mock_get.call_args_list[0].args[0]
        assert "query2" in mock_get.call_args_list[1].args[0]
        assert quote.price == 101.0
        assert quote.change_percent == pytest.approx(1.0)
        assert quote.source == ProviderID.YAHOO_FINANCE

    @patch('requests.Session.get')
    def test_all_mirrors_fail_raises_last_error(self, mock_get):
        mock_get.side_effect = requests.Timeout("timed out")

        with pytest.raises(TransportError):
            YahooFinanceAdapter().fetch_quote("URTH")

    @patch('requests.Session.get')
    def test_chart_error_description_surfaces(self, mock_get, mock_response):
        mock_get.return_value = mock_response(_chart(error="No data found, symbol may be delisted"))

        with pytest.raises(PayloadError, match="delisted"):
            YahooFinanceAdapter().fetch_quote("ZZZZ")

    @patch('requests.Session.get')
    def test_fetch_history_drops_null_closes(self, mock_get, mock_response):
        """Test null closes are skipped and range follows the period."""
        # ARRANGE
        mock_get.return_value = mock_response(_chart(
            timestamps=[1735689600, 1735776000, 1735862400],
            quote={
                "open": [1.0, None, 3.0],
                "high": [1.5, None, 3.5],
                "low": [0.5, None, 2.5],
                "close": [1.2, None, 3.2],
                "volume": [100, None, 300],
            }
        ))

        # ACT
        points = YahooFinanceAdapter().fetch_history("SAP.DEX", Period.ONE_YEAR)

        # ASSERT
        url = mock_get.call_args.args[0]
        assert url.endswith("/SAP.DE")
        assert mock_get.call_args.kwargs["params"]["range"] == "1y"
        assert mock_get.call_args.kwargs["params"]["interval"] == "1wk"
        assert [p.close for p in points] == [1.2, 3.2]

    @patch('requests.Session.get')
    def test_fetch_fx_rate(self, mock_get, mock_response):
        mock_get.return_value = mock_response(_chart(meta={"regularMarketPrice": 1.085}))

        assert YahooFinanceAdapter().fetch_fx_rate() == 1.085
