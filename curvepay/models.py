"""
CurvePay Core Data Models
Shared models for quotes, payment pipelines and deployments
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from curvepay.chain.base import WalletPrecondition


class AssetKind(str, Enum):
    """How an asset relates to the bonding curve"""
    NATIVE = "native"
    CURVE = "curve"
    INTERMEDIATE = "intermediate"
    STABLE = "stable"


class StepKind(str, Enum):
    APPROVE = "approve"
    SWAP = "swap"
    BUY = "buy"
    SELL = "sell"


class StepStatus(str, Enum):
    PENDING = "pending"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class PipelineStatus(str, Enum):
    """Overall pipeline status"""
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class PipelineState(str, Enum):
    """Orchestrator state machine positions"""
    IDLE = "idle"
    APPROVING = "approving"
    AWAITING_SWAP_SUBMIT = "awaiting_swap_submit"
    AWAITING_SWAP_CONFIRM = "awaiting_swap_confirm"
    APPROVING_CURVE_ASSET = "approving_curve_asset"
    BUYING = "buying"
    SELLING = "selling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


TERMINAL_STATES = (PipelineState.SUCCEEDED, PipelineState.FAILED)


class Asset(BaseModel):
    """A payment asset known to the resolver"""
    model_config = ConfigDict(frozen=True)

    symbol: str
    kind: AssetKind
    address: Optional[str] = None  # None for the native asset
    decimals: int = 18
    requires_allowance_reset: bool = False

    @property
    def is_native(self) -> bool:
        return self.kind == AssetKind.NATIVE


class PaymentIntent(BaseModel):
    """A user's confirmed request to buy song tokens with a payment asset"""
    model_config = ConfigDict(frozen=True)

    payer: str
    payment_asset: str = Field(description="Symbol of the asset the payer spends")
    payment_amount: Decimal = Field(gt=0)
    target_curve_token: str
    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Used by the purchase recorder
    content_id: Optional[str] = None
    issuer: Optional[str] = None

    @property
    def key(self) -> Tuple[str, str]:
        return (self.payer.lower(), self.target_curve_token.lower())


class SaleIntent(BaseModel):
    """A user's confirmed request to sell song tokens back to the curve"""
    model_config = ConfigDict(frozen=True)

    seller: str
    curve_token: str
    token_amount: Decimal = Field(gt=0)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def key(self) -> Tuple[str, str]:
        return (self.seller.lower(), self.curve_token.lower())


@dataclass
class SwapStep:
    """One on-chain step of a pipeline"""
    kind: StepKind
    input_asset: str
    # None until the orchestrator derives it from an observed swap output
    input_amount: Optional[Decimal] = None
    status: StepStatus = StepStatus.PENDING
    tx_handle: Optional[str] = None
    spender: Optional[str] = None
    output_asset: Optional[str] = None
    note: str = ""


@dataclass
class Pipeline:
    """
    Ordered steps converting one intent into song-token ownership.
    Mutated only by the SwapOrchestrator.
    """
    intent: Union[PaymentIntent, SaleIntent]
    steps: List[SwapStep]
    precondition: "WalletPrecondition"
    pipeline_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: PipelineStatus = PipelineStatus.IDLE
    state: PipelineState = PipelineState.IDLE
    estimated_curve_amount: Optional[Decimal] = None
    observed_curve_amount: Optional[Decimal] = None
    tokens_received: Optional[Decimal] = None
    error: Optional[Exception] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    @property
    def owner(self) -> str:
        if isinstance(self.intent, SaleIntent):
            return self.intent.seller
        return self.intent.payer

    @property
    def curve_token(self) -> str:
        if isinstance(self.intent, SaleIntent):
            return self.intent.curve_token
        return self.intent.target_curve_token

    @property
    def is_terminal(self) -> bool:
        return self.status in (PipelineStatus.SUCCEEDED, PipelineStatus.FAILED)

    @property
    def requires_swap(self) -> bool:
        return any(step.kind == StepKind.SWAP for step in self.steps)

    @property
    def final_step(self) -> SwapStep:
        return self.steps[-1]


class BondingCurveQuote(BaseModel):
    """Derived on demand from current curve state, never persisted"""
    token_id: str
    input_amount: Decimal
    output_amount: Optional[Decimal] = None
    price_impact_percent: Optional[Decimal] = None
    average_price: Optional[Decimal] = None
    spot_price: Optional[Decimal] = None
    available: bool = True

    @classmethod
    def unavailable(cls, token_id: str, input_amount: Decimal) -> "BondingCurveQuote":
        """Quote for a token whose curve has not been deployed"""
        return cls(token_id=token_id, input_amount=input_amount, available=False)


class BalanceSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    asset: str
    owner: str
    amount: Decimal
    observed_at: datetime = Field(default_factory=datetime.utcnow)


class PurchaseOutcome(BaseModel):
    """What the caller shows the user once a pipeline is terminal"""
    pipeline_id: str
    success: bool
    state: PipelineState
    tokens_received: Optional[Decimal] = None
    curve_amount_spent: Optional[Decimal] = None
    tx_hash: Optional[str] = None
    error_kind: Optional[str] = None
    retry_safe: Optional[bool] = None
    message: str = ""


class PurchaseRecord(BaseModel):
    """Non-authoritative holder analytics entry"""
    token_id: str
    buyer: str
    issuer: Optional[str] = None
    content_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class DeploymentResult(BaseModel):
    content_id: str
    token_address: str
    tx_hash: str
    persisted: bool = True
    error: Optional[str] = None
