"""
Yahoo Finance session manager.

The batch quote endpoint needs a session cookie plus a short anti-automation
token ("crumb"). Acquisition is two steps: hit a landing resource to harvest
the cookie, then exchange it for a crumb. Credentials live only as long as the
YahooSession object; nothing is cached across requests.
"""

from enum import Enum
from typing import Optional

import requests
from loguru import logger

from quote_engine.adapters.data_sources.base import get_response
from quote_engine.core.errors import CredentialError, ProviderError
from quote_engine.services.data.types import ProviderID


class SessionState(Enum):
    NO_CREDENTIAL = "no_credential"
    ACQUIRING = "acquiring"
    VALID = "valid"


class YahooSession:
    """
    Cookie + crumb holder for one request.

    State machine: NO_CREDENTIAL -> ACQUIRING -> VALID, and back to
    NO_CREDENTIAL via invalidate() when a request using the crumb fails.
    Acquisition is never retried here.
    """

    LANDING_URL = "https://fc.yahoo.com"
    CRUMB_URL = "https://query2.finance.yahoo.com/v1/test/getcrumb"
    MAX_CRUMB_LENGTH = 64

    provider = ProviderID.YAHOO_FINANCE

    def __init__(self, session: requests.Session, timeout: float = 10.0):
        """
        Args:
            session: HTTP session that will carry the cookie
            timeout: Request timeout in seconds
        """
        self.session = session
        self.timeout = timeout
        self.state = SessionState.NO_CREDENTIAL
        self._crumb: Optional[str] = None

    @property
    def crumb(self) -> Optional[str]:
        return self._crumb if self.state == SessionState.VALID else None

    def acquire(self) -> str:
        """
        Acquire (or reuse) a valid crumb.

        Returns:
            Crumb string

        Raises:
            CredentialError: If the cookie or crumb cannot be obtained or the
                crumb fails validation
        """
        if self.state == SessionState.VALID and self._crumb:
            return self._crumb

        self.state = SessionState.ACQUIRING
        try:
            self._harvest_cookie()
            crumb = self._fetch_crumb()
            self.validate_crumb(crumb)
        except CredentialError:
            self.invalidate()
            raise
        except ProviderError as e:
            self.invalidate()
            raise CredentialError(self.provider, f"crumb acquisition failed: {e.reason}") from e

        self._crumb = crumb
        self.state = SessionState.VALID
        logger.debug("Yahoo crumb acquired")
        return crumb

    def invalidate(self) -> None:
        """Drop the crumb after a failed request."""
        self._crumb = None
        self.state = SessionState.NO_CREDENTIAL

    def _harvest_cookie(self) -> None:
        # The landing page usually answers 404; only the Set-Cookie matters
        try:
            self.session.get(self.LANDING_URL, timeout=self.timeout, allow_redirects=True)
        except requests.RequestException as e:
            raise CredentialError(self.provider, f"cookie request failed: {e}") from e

        if not self.session.cookies:
            raise CredentialError(self.provider, "no session cookie received")

    def _fetch_crumb(self) -> str:
        response = get_response(
            self.session, self.provider, self.CRUMB_URL, timeout=self.timeout
        )
        return (response.text or "").strip()

    @classmethod
    def validate_crumb(cls, crumb: Optional[str]) -> None:
        """
        Reject crumbs that are empty, too long, or look like JSON/HTML.

        Raises:
            CredentialError: On any violation
        """
        if not crumb:
            raise CredentialError(cls.provider, "empty crumb")
        if len(crumb) > cls.MAX_CRUMB_LENGTH:
            raise CredentialError(cls.provider, f"crumb too long ({len(crumb)} chars)")
        if crumb[0] in "{<":
            raise CredentialError(cls.provider, "crumb looks like JSON/HTML payload")
