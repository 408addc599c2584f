"""
Error taxonomy for provider resolution.

Every failure an adapter can hit is raised as a ProviderError subclass so the
orchestrator can record it against the provider and move on to the next one
in the chain. InvalidInputError is the only error that aborts a whole
resolution, and it is raised before any provider is contacted.
"""

from typing import Optional


class ProviderError(Exception):
    """Base error for a single provider attempt."""

    def __init__(self, provider, reason: str):
        """
        Initialize provider error.

        Args:
            provider: ProviderID of the upstream that failed
            reason: Human-readable failure reason
        """
        self.provider = provider
        self.reason = reason
        super().__init__(f"{_provider_name(provider)}: {reason}")


class TransportError(ProviderError):
    """Network, DNS or timeout failure."""


class UpstreamStatusError(ProviderError):
    """Upstream answered with a non-2xx HTTP status."""

    def __init__(self, provider, status: int, reason: Optional[str] = None):
        self.status = status
        super().__init__(provider, reason or f"HTTP {status}")


class PayloadError(ProviderError):
    """Malformed, empty or unexpectedly shaped payload."""


class ProviderSentinelError(ProviderError):
    """Soft failure reported inside a 2xx body (rate-limit notices, N/D)."""


class CredentialError(ProviderError):
    """Session, token or API key acquisition/validation failed."""


class InvalidInputError(ValueError):
    """Empty or malformed request; raised before any provider is called."""


def _provider_name(provider) -> str:
    return getattr(provider, "value", None) or str(provider)
