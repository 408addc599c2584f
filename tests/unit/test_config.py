"""Unit tests for engine configuration."""
import pytest

from quote_engine.core.config import EngineConfig
from quote_engine.services.data.types import InstrumentClass, Period, ProviderID


class TestDefaults:
    """Test default chains and values."""

    def test_default_quote_chains(self):
        config = EngineConfig()

        assert config.quote_chains[InstrumentClass.CRYPTO] == (ProviderID.COINGECKO,)
        assert config.quote_chains[InstrumentClass.EQUITY] == (
            ProviderID.YAHOO_FINANCE,
            ProviderID.ALPHA_VANTAGE,
            ProviderID.STOOQ,
        )
        assert config.default_period == Period.SIX_MONTHS

    def test_chains_are_not_shared_between_instances(self):
        first, second = EngineConfig(), EngineConfig()
        first.quote_chains[InstrumentClass.CRYPTO] = ()

        assert second.quote_chains[InstrumentClass.CRYPTO] == (ProviderID.COINGECKO,)

    @pytest.mark.parametrize("kwargs", [
        {"resolve_timeout": 0},
        {"max_workers": 0},
        {"alpha_vantage_delay": -1},
    ])
    def test_invalid_values_rejected(self, kwargs):
        with pytest.raises(ValueError):
            EngineConfig(**kwargs)


class TestFromEnv:
    """Test environment loading."""

    def test_reads_keys_and_numbers(self, monkeypatch):
        """Test values are read from the environment."""
        # ARRANGE
        monkeypatch.setenv("ALPHAVANTAGE_KEY", "av_key")
        monkeypatch.setenv("COINGECKO_API_KEY", "cg_key")
        monkeypatch.setenv("QUOTE_ENGINE_RESOLVE_TIMEOUT", "12.5")
        monkeypatch.setenv("QUOTE_ENGINE_MAX_WORKERS", "3")

        # ACT
        config = EngineConfig.from_env()

        # ASSERT
        assert config.alpha_vantage_key == "av_key"
        assert config.coingecko_api_key == "cg_key"
        assert config.resolve_timeout == 12.5
        assert config.max_workers == 3

    def test_alternate_alpha_vantage_variable(self, monkeypatch):
        monkeypatch.delenv("ALPHAVANTAGE_KEY", raising=False)
        monkeypatch.setenv("ALPHAVANTAGE_API_KEY", "other")

        assert EngineConfig.from_env().alpha_vantage_key == "other"

    def test_overrides_win(self, monkeypatch):
        monkeypatch.setenv("QUOTE_ENGINE_MAX_WORKERS", "3")

        assert EngineConfig.from_env(max_workers=5).max_workers == 5

    def test_invalid_number_raises(self, monkeypatch):
        monkeypatch.setenv("QUOTE_ENGINE_AV_DELAY", "fast")

        with pytest.raises(ValueError, match="QUOTE_ENGINE_AV_DELAY"):
            EngineConfig.from_env()
