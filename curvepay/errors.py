"""
Error taxonomy for purchase pipelines and deployments

Every error carries whether retrying is safe and a message suitable for the
person who signed the transactions. Nothing in CurvePay retries on its own.
"""

from typing import Optional


VERIFY_BALANCES_WARNING = (
    "Do not retry blindly: the transaction may still complete. "
    "Verify your balances before starting a new purchase."
)


class CurvePayError(Exception):
    """Base class for all CurvePay errors"""

    retry_safe: bool = False
    user_message: str = "Something went wrong"

    def __init__(self, message: Optional[str] = None, tx_hash: Optional[str] = None):
        super().__init__(message or self.user_message)
        self.tx_hash = tx_hash

    @property
    def kind(self) -> str:
        return type(self).__name__


class UserRejected(CurvePayError):
    """Signature request declined in the wallet. No funds moved."""

    retry_safe = True
    user_message = "Transaction rejected in wallet. No funds were moved; you can try again."


class TransactionReverted(CurvePayError):
    """Transaction mined but reverted. Gas spent, no state change."""

    retry_safe = True
    user_message = "Transaction reverted on-chain. No tokens changed hands; you can try again."


class SwapYieldedNoOutput(CurvePayError):
    """Polling budget exhausted without a positive balance delta"""

    retry_safe = False
    user_message = "Swap yielded no output within the polling window. " + VERIFY_BALANCES_WARNING


class ConfirmationTimedOut(CurvePayError):
    """Transaction submitted but no receipt arrived in time. It may still be mined."""

    retry_safe = False
    user_message = (
        "Transaction submitted but not confirmed in time; it may still complete. "
        + VERIFY_BALANCES_WARNING
    )


class AmbiguousDeployment(CurvePayError):
    """Deployment confirmed but the creation event is missing from the receipt"""

    retry_safe = False
    user_message = (
        "Deployment transaction confirmed but the new token address could not be "
        "found in its receipt. Do not deploy again; the address must be recovered manually."
    )


class RecorderWriteFailed(CurvePayError):
    """Audit record could not be written. Never surfaced to the user."""

    retry_safe = False
    user_message = "Purchase record write failed"


class PipelineConflict(CurvePayError):
    """Another pipeline is already running for the same payer and token"""

    retry_safe = True
    user_message = "A purchase for this token is already in progress."


class PipelineAlreadyExecuted(CurvePayError):
    """A pipeline was asked to run twice"""

    user_message = "This purchase has already been started. Start a new purchase instead."


class WalletNotConnected(CurvePayError):
    retry_safe = True
    user_message = "Wallet not connected. Connect your wallet and try again."


class CurveNotDeployed(CurvePayError):
    retry_safe = True
    user_message = "This song hasn't been deployed to the bonding curve yet."


class AlreadyDeployed(CurvePayError):
    user_message = "This song is already deployed to the bonding curve."


class UnsupportedPaymentAsset(CurvePayError):
    retry_safe = True
    user_message = "This payment asset is not supported."
