"""
CurvePay Configuration Management
Uses pydantic-settings for type-safe environment variable loading
"""

from decimal import Decimal
from typing import Literal
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from web3 import Web3


def _checksum(v: str) -> str:
    if not v:
        return v
    if not Web3.is_address(v):
        raise ValueError(f"Invalid address: {v}")
    return Web3.to_checksum_address(v)


class ChainConfig(BaseSettings):
    """Chain endpoints and contract addresses"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Network Configuration
    network: Literal["base-mainnet", "base-sepolia"] = Field(default="base-mainnet")
    rpc_url: str = Field(default="https://mainnet.base.org")
    receipt_timeout: int = Field(default=120, description="Seconds to wait for a receipt")

    # Curve asset (the only asset the bonding curve accepts as payment)
    curve_asset_symbol: str = Field(default="XRGE")
    curve_asset_address: str = Field(default="0x147120faEC9277ec02d957584CFCD92B56A24317")
    curve_asset_decimals: int = Field(default=18)

    # Contracts
    bonding_curve_address: str = Field(
        default="0xCeE9c18C448487a1deAac3E14974C826142C50b5",
        description="Bonding curve contract (buy/sell/quotes)"
    )
    factory_address: str = Field(
        default="0xCeE9c18C448487a1deAac3E14974C826142C50b5",
        description="Factory that mints new song tokens"
    )
    swap_router_address: str = Field(
        default="0x4752ba5DBc23f44D87826276BF6Fd6b1C372aD24",
        description="Swap aggregator / router used for multi-hop payments"
    )
    wrapped_native_address: str = Field(default="0x4200000000000000000000000000000000000006")
    song_token_decimals: int = Field(default=18)
    song_created_event: str = Field(
        default="SongCreated(address,address,string,string)",
        description="Factory creation event signature; the new token is its first indexed topic"
    )

    # Payment assets
    native_symbol: str = Field(default="ETH")
    intermediate_a_symbol: str = Field(default="KTA")
    intermediate_a_address: str = Field(default="0xc0634090F2Fe6c6d75e61Be2b949464aBB498973")
    intermediate_a_decimals: int = Field(default=18)
    intermediate_b_symbol: str = Field(default="")
    intermediate_b_address: str = Field(default="", description="Empty disables the asset")
    intermediate_b_decimals: int = Field(default=18)
    stable_symbol: str = Field(default="USDC")
    stable_address: str = Field(default="0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913")
    stable_decimals: int = Field(default=6)

    # Tokens that reject a new approval while a non-zero allowance is outstanding
    allowance_reset_assets: list[str] = Field(default=["KTA"])

    @field_validator(
        "curve_asset_address",
        "bonding_curve_address",
        "factory_address",
        "swap_router_address",
        "wrapped_native_address",
        "intermediate_a_address",
        "intermediate_b_address",
        "stable_address",
    )
    @classmethod
    def validate_address(cls, v):
        return _checksum(v)


class PipelineConfig(BaseSettings):
    """Tuning for the purchase pipeline and the confirmation detector"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    slippage_tolerance: Decimal = Field(default=Decimal("0.05"), ge=0, lt=1)
    # Applied to the observed swap output before the curve approval and buy.
    # TODO: replace with decimal-aware rounding of the observed amount once the
    # precision loss between approval and spend is pinned down.
    curve_approval_haircut: Decimal = Field(default=Decimal("0.98"), gt=0, le=1)

    detector_warmup_seconds: float = Field(default=5.0, ge=0)
    detector_poll_interval: float = Field(default=1.0, gt=0)
    detector_max_attempts: int = Field(default=60, ge=1)

    approval_fallback_delay: float = Field(
        default=3.0,
        ge=0,
        description="Fixed wait used only when the chain client cannot wait for receipts"
    )
    swap_deadline_seconds: int = Field(default=600)


class DataStoreConfig(BaseSettings):
    """External data store (Supabase)"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    supabase_url: str = Field(default="")
    supabase_anon_key: str = Field(default="")
    purchases_table: str = Field(default="song_purchases")
    songs_table: str = Field(default="songs")
    access_token: str = Field(default="", description="Bearer token for authenticated writes")


class LoggingConfig(BaseSettings):
    """Logging output"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_format: Literal["json", "text"] = Field(default="text")


# Singleton instances
_chain_config: ChainConfig | None = None
_pipeline_config: PipelineConfig | None = None
_datastore_config: DataStoreConfig | None = None
_logging_config: LoggingConfig | None = None


def get_chain_config() -> ChainConfig:
    """Get or create chain configuration singleton"""
    global _chain_config
    if _chain_config is None:
        _chain_config = ChainConfig()
    return _chain_config


def get_pipeline_config() -> PipelineConfig:
    """Get or create pipeline configuration singleton"""
    global _pipeline_config
    if _pipeline_config is None:
        _pipeline_config = PipelineConfig()
    return _pipeline_config


def get_datastore_config() -> DataStoreConfig:
    """Get or create data store configuration singleton"""
    global _datastore_config
    if _datastore_config is None:
        _datastore_config = DataStoreConfig()
    return _datastore_config


def get_logging_config() -> LoggingConfig:
    """Get or create logging configuration singleton"""
    global _logging_config
    if _logging_config is None:
        _logging_config = LoggingConfig()
    return _logging_config
