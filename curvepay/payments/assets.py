"""
Payment asset registry built from chain configuration
"""

from typing import Dict, List, Optional

from curvepay.config import ChainConfig, get_chain_config
from curvepay.errors import UnsupportedPaymentAsset
from curvepay.models import Asset, AssetKind


class AssetRegistry:
    """Lookup of the payment assets a purchase can be made with"""

    def __init__(self, assets: List[Asset]):
        self._by_symbol: Dict[str, Asset] = {a.symbol.upper(): a for a in assets}
        curve_assets = [a for a in assets if a.kind == AssetKind.CURVE]
        if len(curve_assets) != 1:
            raise ValueError("Exactly one curve asset must be configured")
        self.curve_asset = curve_assets[0]

    @classmethod
    def from_config(cls, config: Optional[ChainConfig] = None) -> "AssetRegistry":
        config = config or get_chain_config()
        reset = {s.upper() for s in config.allowance_reset_assets}

        def erc20(symbol: str, kind: AssetKind, address: str, decimals: int) -> Asset:
            return Asset(
                symbol=symbol,
                kind=kind,
                address=address,
                decimals=decimals,
                requires_allowance_reset=symbol.upper() in reset,
            )

        assets = [
            Asset(symbol=config.native_symbol, kind=AssetKind.NATIVE, decimals=18),
            erc20(
                config.curve_asset_symbol,
                AssetKind.CURVE,
                config.curve_asset_address,
                config.curve_asset_decimals,
            ),
            erc20(
                config.intermediate_a_symbol,
                AssetKind.INTERMEDIATE,
                config.intermediate_a_address,
                config.intermediate_a_decimals,
            ),
            erc20(
                config.stable_symbol,
                AssetKind.STABLE,
                config.stable_address,
                config.stable_decimals,
            ),
        ]
        if config.intermediate_b_address and config.intermediate_b_symbol:
            assets.append(
                erc20(
                    config.intermediate_b_symbol,
                    AssetKind.INTERMEDIATE,
                    config.intermediate_b_address,
                    config.intermediate_b_decimals,
                )
            )
        return cls(assets)

    def get(self, symbol: str) -> Asset:
        asset = self._by_symbol.get(symbol.upper())
        if asset is None:
            raise UnsupportedPaymentAsset(f"Unsupported payment asset: {symbol}")
        return asset

    def symbols(self) -> List[str]:
        return [a.symbol for a in self._by_symbol.values()]

    def __contains__(self, symbol: str) -> bool:
        return symbol.upper() in self._by_symbol
