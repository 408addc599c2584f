"""
Engine configuration.

Everything the orchestrator needs (API keys, timeouts, provider priority
chains) lives in one EngineConfig passed in at construction time. Nothing is
read from the environment after that.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from quote_engine.services.data.types import InstrumentClass, Period, ProviderID


ProviderChains = Dict[InstrumentClass, Tuple[ProviderID, ...]]


def default_quote_chains() -> ProviderChains:
    return {
        InstrumentClass.CRYPTO: (ProviderID.COINGECKO,),
        InstrumentClass.EQUITY: (
            ProviderID.YAHOO_FINANCE,
            ProviderID.ALPHA_VANTAGE,
            ProviderID.STOOQ,
        ),
    }


def default_history_chains() -> ProviderChains:
    return {
        InstrumentClass.CRYPTO: (ProviderID.COINGECKO, ProviderID.YAHOO_FINANCE),
        InstrumentClass.EQUITY: (ProviderID.YAHOO_FINANCE, ProviderID.ALPHA_VANTAGE),
    }


@dataclass
class EngineConfig:
    """
    Configuration for FallbackOrchestrator and its adapters.

    Attributes:
        alpha_vantage_key: Alpha Vantage API key (None disables the provider)
        coingecko_api_key: Optional CoinGecko pro key
        request_timeout: Per-HTTP-request timeout in seconds
        resolve_timeout: Overall deadline for one resolution in seconds
        max_workers: Upper bound on concurrent fetch tasks
        alpha_vantage_delay: Fixed delay between sequential Alpha Vantage calls
        default_period: Period used when history/index requests omit one
        convert_usd_to_eur: Rescale USD equity quotes to EUR
        quote_chains: Provider priority per instrument class for quotes
        history_chains: Provider priority per instrument class for history
    """
    alpha_vantage_key: Optional[str] = None
    coingecko_api_key: Optional[str] = None
    request_timeout: float = 10.0
    resolve_timeout: float = 25.0
    max_workers: int = 8
    alpha_vantage_delay: float = 0.3
    default_period: Period = Period.SIX_MONTHS
    convert_usd_to_eur: bool = True
    quote_chains: ProviderChains = field(default_factory=default_quote_chains)
    history_chains: ProviderChains = field(default_factory=default_history_chains)

    def __post_init__(self):
        if self.resolve_timeout <= 0:
            raise ValueError(f"resolve_timeout must be positive, got {self.resolve_timeout}")
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")
        if self.alpha_vantage_delay < 0:
            raise ValueError(
                f"alpha_vantage_delay must be >= 0, got {self.alpha_vantage_delay}"
            )

    @classmethod
    def from_env(cls, **overrides) -> "EngineConfig":
        """
        Build config from environment variables.

        Reads ALPHAVANTAGE_KEY (or ALPHAVANTAGE_API_KEY), COINGECKO_API_KEY,
        QUOTE_ENGINE_REQUEST_TIMEOUT, QUOTE_ENGINE_RESOLVE_TIMEOUT,
        QUOTE_ENGINE_MAX_WORKERS and QUOTE_ENGINE_AV_DELAY. Keyword overrides
        win over the environment.
        """
        values = {
            "alpha_vantage_key": (
                os.getenv("ALPHAVANTAGE_KEY") or os.getenv("ALPHAVANTAGE_API_KEY")
            ),
            "coingecko_api_key": os.getenv("COINGECKO_API_KEY"),
        }

        numeric = {
            "request_timeout": ("QUOTE_ENGINE_REQUEST_TIMEOUT", float),
            "resolve_timeout": ("QUOTE_ENGINE_RESOLVE_TIMEOUT", float),
            "max_workers": ("QUOTE_ENGINE_MAX_WORKERS", int),
            "alpha_vantage_delay": ("QUOTE_ENGINE_AV_DELAY", float),
        }
        for name, (env_var, cast) in numeric.items():
            raw = os.getenv(env_var)
            if raw:
                try:
                    values[name] = cast(raw)
                except ValueError as e:
                    raise ValueError(f"Invalid {env_var}={raw!r}: {e}") from e

        values.update(overrides)
        return cls(**values)
