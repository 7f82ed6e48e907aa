"""
Web3 implementation of the chain capability
Transactions are sent with eth_sendTransaction so the connected wallet/node signs them
"""

import asyncio
import time
from decimal import Decimal, ROUND_DOWN
from typing import Any, Callable, Optional

import structlog
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted

from curvepay.chain.abi import BONDING_CURVE_ABI, ERC20_ABI, SWAP_ROUTER_ABI
from curvepay.chain.base import (
    ChainClient,
    CurveState,
    LogEntry,
    TxReceipt,
    WalletPrecondition,
)
from curvepay.config import ChainConfig, get_chain_config, get_pipeline_config
from curvepay.errors import (
    ConfirmationTimedOut,
    TransactionReverted,
    UserRejected,
    WalletNotConnected,
)
from curvepay.models import Asset

logger = structlog.get_logger()

# EIP-1193 "User Rejected Request"
USER_REJECTED_CODE = 4001


def to_base_units(amount: Decimal, decimals: int) -> int:
    """Whole units -> integer base units, rounding down"""
    return int((amount * (Decimal(10) ** decimals)).to_integral_value(rounding=ROUND_DOWN))


def from_base_units(amount: int, decimals: int) -> Decimal:
    return Decimal(amount) / (Decimal(10) ** decimals)


def rpc_error_code(exc: BaseException) -> Optional[int]:
    """Extract a JSON-RPC error code from a web3 exception, if any"""
    for arg in exc.args:
        if isinstance(arg, dict) and "code" in arg:
            return arg["code"]
    response = getattr(exc, "rpc_response", None)
    if isinstance(response, dict):
        error = response.get("error") or {}
        if isinstance(error, dict):
            return error.get("code")
    return None


class Web3ChainClient(ChainClient):
    """
    ChainClient backed by a Web3 HTTP provider.

    The provider must expose the payer's account (a wallet bridge or a node
    with unlocked accounts); no private key ever passes through this class.
    """

    def __init__(self, config: Optional[ChainConfig] = None, w3: Optional[Web3] = None):
        self.config = config or get_chain_config()
        self.w3 = w3 or Web3(Web3.HTTPProvider(self.config.rpc_url))
        self.curve = self.w3.eth.contract(
            address=Web3.to_checksum_address(self.config.bonding_curve_address),
            abi=BONDING_CURVE_ABI,
        )
        self.factory = self.w3.eth.contract(
            address=Web3.to_checksum_address(self.config.factory_address),
            abi=BONDING_CURVE_ABI,
        )
        self.router = self.w3.eth.contract(
            address=Web3.to_checksum_address(self.config.swap_router_address),
            abi=SWAP_ROUTER_ABI,
        )
        self.receipt_timeout = self.config.receipt_timeout
        self.swap_deadline_seconds = get_pipeline_config().swap_deadline_seconds

    def _erc20(self, address: str):
        return self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=ERC20_ABI)

    async def _send(self, label: str, build: Callable[[], Any], params: dict) -> str:
        """Submit a transaction and translate wallet/contract errors"""
        try:
            tx_hash = await asyncio.to_thread(build().transact, params)
        except ContractLogicError as e:
            logger.warning("transaction_reverted_on_submit", action=label, error=str(e))
            raise TransactionReverted(str(e)) from e
        except Exception as e:
            if rpc_error_code(e) == USER_REJECTED_CODE:
                logger.info("transaction_rejected_by_user", action=label)
                raise UserRejected() from e
            raise

        tx_hex = Web3.to_hex(tx_hash)
        logger.info("transaction_submitted", action=label, tx_hash=tx_hex)
        return tx_hex

    # ===== READS =====

    async def get_balance(self, asset: Asset, owner: str) -> Decimal:
        owner = Web3.to_checksum_address(owner)
        if asset.is_native:
            raw = await asyncio.to_thread(self.w3.eth.get_balance, owner)
        else:
            raw = await asyncio.to_thread(
                self._erc20(asset.address).functions.balanceOf(owner).call
            )
        return from_base_units(raw, asset.decimals)

    async def get_token_balance(self, token: str, owner: str) -> Decimal:
        call = self._erc20(token).functions.balanceOf(Web3.to_checksum_address(owner)).call
        raw = await asyncio.to_thread(call)
        return from_base_units(raw, self.config.song_token_decimals)

    async def read_curve_state(self, curve_token: str) -> Optional[CurveState]:
        token = Web3.to_checksum_address(curve_token)
        functions = self.curve.functions
        if not await asyncio.to_thread(functions.isSongToken(token).call):
            return None

        price_decimals = self.config.curve_asset_decimals
        supply, base_price, increment, fee_bps = await asyncio.gather(
            asyncio.to_thread(functions.bondingCurveSupply(token).call),
            asyncio.to_thread(functions.basePrice().call),
            asyncio.to_thread(functions.priceIncrement().call),
            asyncio.to_thread(functions.tradingFeeBps().call),
        )

        return CurveState(
            token=token,
            supply_sold=from_base_units(supply, self.config.song_token_decimals),
            base_price=from_base_units(base_price, price_decimals),
            price_increment=from_base_units(increment, price_decimals),
            fee_bps=int(fee_bps),
        )

    async def wait_for_receipt(self, tx_hash: str) -> TxReceipt:
        try:
            raw = await asyncio.to_thread(
                self.w3.eth.wait_for_transaction_receipt, tx_hash, timeout=self.receipt_timeout
            )
        except TimeExhausted as e:
            logger.warning("receipt_wait_timed_out", tx_hash=tx_hash, timeout=self.receipt_timeout)
            raise ConfirmationTimedOut(tx_hash=tx_hash) from e
        return TxReceipt(
            tx_hash=tx_hash,
            status=int(raw["status"]),
            block_number=raw.get("blockNumber"),
            gas_used=raw.get("gasUsed"),
            logs=[
                LogEntry(
                    address=log["address"],
                    topics=[Web3.to_hex(t) for t in log["topics"]],
                    data=Web3.to_hex(log["data"]),
                )
                for log in raw.get("logs", [])
            ],
        )

    # ===== WRITES =====

    async def approve(self, owner: str, asset: Asset, spender: str, amount: Decimal) -> str:
        value = to_base_units(amount, asset.decimals)
        token = self._erc20(asset.address)
        return await self._send(
            f"approve_{asset.symbol}",
            lambda: token.functions.approve(Web3.to_checksum_address(spender), value),
            {"from": Web3.to_checksum_address(owner)},
        )

    async def swap(
        self,
        owner: str,
        asset_in: Asset,
        asset_out: Asset,
        amount_in: Decimal,
        min_amount_out: Decimal,
    ) -> str:
        owner = Web3.to_checksum_address(owner)
        deadline = int(time.time()) + self.swap_deadline_seconds
        min_out = to_base_units(min_amount_out, asset_out.decimals)
        value_in = to_base_units(amount_in, asset_in.decimals)

        if asset_in.is_native:
            path = [self.config.wrapped_native_address, asset_out.address]
            return await self._send(
                "swap_native",
                lambda: self.router.functions.swapExactETHForTokens(min_out, path, owner, deadline),
                {"from": owner, "value": value_in},
            )

        path = [asset_in.address, asset_out.address]
        return await self._send(
            f"swap_{asset_in.symbol}",
            lambda: self.router.functions.swapExactTokensForTokens(
                value_in, min_out, path, owner, deadline
            ),
            {"from": owner},
        )

    async def buy(
        self,
        owner: str,
        curve_token: str,
        payment_asset: Asset,
        amount: Decimal,
        min_tokens_out: Decimal,
    ) -> str:
        owner = Web3.to_checksum_address(owner)
        token = Web3.to_checksum_address(curve_token)
        min_out = to_base_units(min_tokens_out, self.config.song_token_decimals)
        value = to_base_units(amount, payment_asset.decimals)

        if payment_asset.is_native:
            return await self._send(
                "buy_with_native",
                lambda: self.curve.functions.buyWithETH(token, min_out),
                {"from": owner, "value": value},
            )
        return await self._send(
            "buy_with_curve_asset",
            lambda: self.curve.functions.buyWithXRGE(token, value, min_out),
            {"from": owner},
        )

    async def sell(
        self,
        owner: str,
        curve_token: str,
        token_amount: Decimal,
        min_curve_out: Decimal,
    ) -> str:
        token = Web3.to_checksum_address(curve_token)
        amount = to_base_units(token_amount, self.config.song_token_decimals)
        min_out = to_base_units(min_curve_out, self.config.curve_asset_decimals)
        return await self._send(
            "sell",
            lambda: self.curve.functions.sell(token, amount, min_out),
            {"from": Web3.to_checksum_address(owner)},
        )

    async def create_curve(self, owner: str, name: str, symbol: str, metadata_uri: str) -> str:
        return await self._send(
            "create_song",
            lambda: self.factory.functions.createSong(name, symbol, metadata_uri),
            {"from": Web3.to_checksum_address(owner)},
        )


class RpcAccountPrecondition(WalletPrecondition):
    """Connected when the provider is reachable and exposes the address"""

    def __init__(self, w3: Web3):
        self.w3 = w3

    async def ensure_connected(self, address: str) -> None:
        if not self.w3.is_connected():
            raise WalletNotConnected("RPC provider is not reachable")
        accounts = {a.lower() for a in self.w3.eth.accounts}
        if address.lower() not in accounts:
            raise WalletNotConnected(f"Wallet {address} is not available on the provider")
