"""
Tests for configuration management
"""

import pytest
from decimal import Decimal

from pydantic import ValidationError

from curvepay.config import ChainConfig, DataStoreConfig, LoggingConfig, PipelineConfig


class TestConfigurationLoading:
    """Test configuration loading and validation"""

    def test_chain_config_defaults(self):
        """Test chain config loads with defaults"""
        config = ChainConfig()

        assert config.network == "base-mainnet"
        assert config.curve_asset_symbol == "XRGE"
        assert config.stable_decimals == 6
        assert config.allowance_reset_assets == ["KTA"]

    def test_pipeline_config_defaults(self):
        """Test pipeline tuning defaults"""
        config = PipelineConfig()

        assert config.slippage_tolerance == Decimal("0.05")
        assert config.curve_approval_haircut == Decimal("0.98")
        assert config.detector_warmup_seconds == 5.0
        assert config.detector_poll_interval == 1.0
        assert config.detector_max_attempts == 60

    def test_addresses_are_checksummed(self):
        """Test that contract addresses are normalized"""
        config = ChainConfig(swap_router_address="0x4752ba5dbc23f44d87826276bf6fd6b1c372ad24")
        assert config.swap_router_address == "0x4752ba5DBc23f44D87826276BF6Fd6b1C372aD24"

    def test_invalid_address_rejected(self):
        with pytest.raises(ValidationError):
            ChainConfig(bonding_curve_address="0x1234")

    def test_empty_optional_address_allowed(self):
        config = ChainConfig(intermediate_b_address="")
        assert config.intermediate_b_address == ""

    def test_haircut_bounds(self):
        with pytest.raises(ValidationError):
            PipelineConfig(curve_approval_haircut=Decimal("1.5"))

    def test_config_environment_variables(self, monkeypatch):
        """Test that config loads from environment variables"""
        monkeypatch.setenv("DETECTOR_MAX_ATTEMPTS", "10")
        monkeypatch.setenv("SLIPPAGE_TOLERANCE", "0.01")
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")

        assert PipelineConfig().detector_max_attempts == 10
        assert PipelineConfig().slippage_tolerance == Decimal("0.01")
        assert LoggingConfig().log_level == "DEBUG"
        assert DataStoreConfig().supabase_url == "https://example.supabase.co"
