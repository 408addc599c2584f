"""Provider adapter interface and shared HTTP helpers.

Adapters are interface objects: each one exposes the capabilities below and
the orchestrator selects them through the priority-chain table. There is no
shared base class; the HTTP helpers are plain functions.
"""

from typing import Any, Dict, Optional, Protocol, runtime_checkable

import requests
from loguru import logger

from quote_engine.core.errors import PayloadError, TransportError, UpstreamStatusError
from quote_engine.services.data.types import ProviderID, Quote


BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "application/json",
    "Accept-Language": "en-US,en;q=0.9",
}

DEFAULT_HEADERS = {
    "User-Agent": "quote-engine/1.0",
    "Accept": "application/json",
}


@runtime_checkable
class ProviderAdapter(Protocol):
    """Capability interface every provider adapter satisfies.

    Attributes:
        provider: ProviderID of the upstream
        supports_batch: fetch_quotes() is available
        supports_history: fetch_history() is available
        min_call_interval: Seconds to wait between sequential calls (0 = none)
    """

    provider: ProviderID
    supports_batch: bool
    supports_history: bool
    min_call_interval: float

    def fetch_quote(self, symbol: str) -> Quote:
        """Fetch a quote for one requested symbol.

        Raises:
            ProviderError: On any failure
        """
        ...


def supports(adapter: Any, capability: str) -> bool:
    """Check an optional capability ("batch" or "history")."""
    return bool(getattr(adapter, f"supports_{capability}", False))


def new_session(headers: Optional[Dict[str, str]] = None) -> requests.Session:
    """Create a requests session with default headers applied."""
    session = requests.Session()
    session.headers.update(headers or DEFAULT_HEADERS)
    return session


def get_response(
    session: requests.Session,
    provider: ProviderID,
    url: str,
    params: Optional[Dict[str, Any]] = None,
    timeout: float = 10.0
) -> requests.Response:
    """
    GET a URL and map failures to the provider error taxonomy.

    Raises:
        TransportError: On connection errors and timeouts
        UpstreamStatusError: On non-2xx status
    """
    try:
        response = session.get(url, params=params, timeout=timeout)
    except requests.Timeout as e:
        raise TransportError(provider, f"timeout: {e}") from e
    except requests.RequestException as e:
        raise TransportError(provider, f"request failed: {e}") from e

    if not 200 <= response.status_code < 300:
        raise UpstreamStatusError(provider, response.status_code)

    return response


def get_json(
    session: requests.Session,
    provider: ProviderID,
    url: str,
    params: Optional[Dict[str, Any]] = None,
    timeout: float = 10.0
) -> Any:
    """
    GET a URL and decode its JSON body.

    Raises:
        TransportError: On connection errors and timeouts
        UpstreamStatusError: On non-2xx status
        PayloadError: On an undecodable or empty body
    """
    response = get_response(session, provider, url, params=params, timeout=timeout)

    try:
        data = response.json()
    except ValueError as e:
        raise PayloadError(provider, f"invalid JSON: {e}") from e

    if data is None or data == {} or data == []:
        raise PayloadError(provider, "empty payload")

    logger.trace(f"{provider.value} GET {url} -> {response.status_code}")
    return data


def to_float(value: Any) -> Optional[float]:
    """Parse a numeric field, returning None for missing/unparsable values."""
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None

