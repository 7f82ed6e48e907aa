"""
Chain read/write capability

The core never holds keys. A ChainClient submits transaction requests to a
wallet or RPC collaborator that signs them, and reads contract state.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from curvepay.models import Asset


@dataclass(frozen=True)
class LogEntry:
    address: str
    topics: List[str]
    data: str = "0x"


@dataclass(frozen=True)
class TxReceipt:
    """Chain-agnostic view of a transaction receipt"""
    tx_hash: str
    status: int
    logs: List[LogEntry] = field(default_factory=list)
    block_number: Optional[int] = None
    gas_used: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.status == 1


@dataclass(frozen=True)
class CurveState:
    """
    Bonding curve state for one song token.
    Price per unit is base_price + price_increment * supply_sold.
    """
    token: str
    supply_sold: Decimal
    base_price: Decimal
    price_increment: Decimal
    fee_bps: int = 0

    def price_at(self, supply: Decimal) -> Decimal:
        return self.base_price + self.price_increment * supply

    @property
    def spot_price(self) -> Decimal:
        return self.price_at(self.supply_sold)


class WalletPrecondition(ABC):
    """Checked before every signature request a pipeline makes"""

    @abstractmethod
    async def ensure_connected(self, address: str) -> None:
        """Raise WalletNotConnected if `address` cannot sign right now"""


class ChainClient(ABC):
    """Generic submit-transaction / read-state operations"""

    # False when the collaborator can only submit and never reports receipts
    supports_receipts: bool = True

    @abstractmethod
    async def get_balance(self, asset: Asset, owner: str) -> Decimal:
        """Balance of `asset` held by `owner`, in whole units"""

    @abstractmethod
    async def get_token_balance(self, token: str, owner: str) -> Decimal:
        """Song-token balance of `owner`"""

    @abstractmethod
    async def approve(self, owner: str, asset: Asset, spender: str, amount: Decimal) -> str:
        """Grant `spender` an allowance; returns the tx hash"""

    @abstractmethod
    async def swap(
        self,
        owner: str,
        asset_in: Asset,
        asset_out: Asset,
        amount_in: Decimal,
        min_amount_out: Decimal,
    ) -> str:
        """Submit an aggregator swap; its return value is never trusted"""

    @abstractmethod
    async def buy(
        self,
        owner: str,
        curve_token: str,
        payment_asset: Asset,
        amount: Decimal,
        min_tokens_out: Decimal,
    ) -> str:
        """Buy song tokens from the curve"""

    @abstractmethod
    async def sell(
        self,
        owner: str,
        curve_token: str,
        token_amount: Decimal,
        min_curve_out: Decimal,
    ) -> str:
        """Sell song tokens back to the curve"""

    @abstractmethod
    async def create_curve(self, owner: str, name: str, symbol: str, metadata_uri: str) -> str:
        """Ask the factory to mint a new song token and curve"""

    @abstractmethod
    async def read_curve_state(self, curve_token: str) -> Optional[CurveState]:
        """None when no curve has been deployed for `curve_token`"""

    async def wait_for_receipt(self, tx_hash: str) -> TxReceipt:
        raise NotImplementedError("This chain client cannot wait for receipts")
