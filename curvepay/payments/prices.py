"""
USD price feed for informational pre-trade estimates

Prices only ever feed the "you will receive roughly" estimate and the swap's
minimum-output bound. The amount the curve buy consumes is always re-derived
from the observed swap output.
"""

from decimal import Decimal, InvalidOperation
from typing import Dict, Optional

import httpx
import structlog

from curvepay.models import Asset

logger = structlog.get_logger()

COINGECKO_URL = "https://api.coingecko.com/api/v3/simple/price"
DEXSCREENER_URL = "https://api.dexscreener.com/latest/dex/tokens"


def _valid_price(value) -> Optional[Decimal]:
    try:
        price = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return None
    if not price.is_finite() or price <= 0:
        return None
    return price


class PriceFeed:
    """Fetches USD prices: CoinGecko for the native asset, DexScreener for tokens"""

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: float = 5.0):
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def usd_price(self, asset: Asset) -> Optional[Decimal]:
        try:
            if asset.is_native:
                return await self._native_price()
            return await self._token_price(asset.address)
        except httpx.HTTPError as e:
            logger.warning("price_fetch_failed", asset=asset.symbol, error=str(e))
            return None

    async def _native_price(self) -> Optional[Decimal]:
        response = await self.client.get(
            COINGECKO_URL, params={"ids": "ethereum", "vs_currencies": "usd"}
        )
        response.raise_for_status()
        data = response.json()
        return _valid_price((data.get("ethereum") or {}).get("usd"))

    async def _token_price(self, address: str) -> Optional[Decimal]:
        response = await self.client.get(f"{DEXSCREENER_URL}/{address}")
        response.raise_for_status()
        pairs = response.json().get("pairs") or []
        # DexScreener lists pairs by liquidity; take the first priced one
        for pair in pairs:
            price = _valid_price(pair.get("priceUsd"))
            if price is not None:
                return price
        return None

    async def prices(self, *assets: Asset) -> Dict[str, Optional[Decimal]]:
        return {asset.symbol: await self.usd_price(asset) for asset in assets}

    async def close(self):
        await self.client.aclose()
