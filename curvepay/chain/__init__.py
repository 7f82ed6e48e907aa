"""
Chain capability for CurvePay
Read contract state and submit wallet-signed transactions
"""

from curvepay.chain.base import (
    ChainClient,
    CurveState,
    LogEntry,
    TxReceipt,
    WalletPrecondition,
)
from curvepay.chain.web3_client import RpcAccountPrecondition, Web3ChainClient

__all__ = [
    "ChainClient",
    "CurveState",
    "LogEntry",
    "TxReceipt",
    "WalletPrecondition",
    "RpcAccountPrecondition",
    "Web3ChainClient",
]
