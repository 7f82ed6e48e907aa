"""
Payment Asset Resolver
Decides whether a purchase is direct or needs a swap into the curve asset
"""

from decimal import Decimal
from typing import List, Optional

import structlog

from curvepay.chain.base import WalletPrecondition
from curvepay.config import ChainConfig, get_chain_config
from curvepay.models import (
    Asset,
    AssetKind,
    PaymentIntent,
    Pipeline,
    SaleIntent,
    StepKind,
    SwapStep,
)
from curvepay.payments.assets import AssetRegistry
from curvepay.payments.prices import PriceFeed

logger = structlog.get_logger()

# SwapStep.note values the orchestrator dispatches on
ALLOWANCE_RESET = "allowance_reset"
SOURCE_APPROVAL = "source_approval"
CURVE_APPROVAL = "curve_approval"

# Assets the bonding curve accepts without a swap
DIRECT_KINDS = (AssetKind.NATIVE, AssetKind.CURVE)


class PaymentAssetResolver:
    """
    Builds the ordered steps for a PaymentIntent:

    - native asset:  Buy (payable)
    - curve asset:   Approve(curve asset -> curve) -> Buy
    - anything else: Approve(source -> router) -> Swap(source -> curve asset)
                     -> Approve(curve asset -> curve) -> Buy

    Sources that need a zeroed allowance first get an extra Approve(0) up front.
    """

    def __init__(
        self,
        registry: AssetRegistry,
        config: Optional[ChainConfig] = None,
        price_feed: Optional[PriceFeed] = None,
    ):
        self.registry = registry
        self.config = config or get_chain_config()
        self.price_feed = price_feed

    @property
    def curve_asset(self) -> Asset:
        return self.registry.curve_asset

    def build_steps(self, intent: PaymentIntent) -> List[SwapStep]:
        source = self.registry.get(intent.payment_asset)
        amount = intent.payment_amount
        curve = self.config.bonding_curve_address

        if source.kind == AssetKind.NATIVE:
            return [SwapStep(kind=StepKind.BUY, input_asset=source.symbol, input_amount=amount)]

        if source.kind == AssetKind.CURVE:
            return [
                SwapStep(
                    kind=StepKind.APPROVE,
                    input_asset=source.symbol,
                    input_amount=amount,
                    spender=curve,
                    note=CURVE_APPROVAL,
                ),
                SwapStep(kind=StepKind.BUY, input_asset=source.symbol, input_amount=amount),
            ]

        router = self.config.swap_router_address
        steps = []
        if source.requires_allowance_reset:
            steps.append(
                SwapStep(
                    kind=StepKind.APPROVE,
                    input_asset=source.symbol,
                    input_amount=Decimal("0"),
                    spender=router,
                    note=ALLOWANCE_RESET,
                )
            )
        steps.extend([
            SwapStep(
                kind=StepKind.APPROVE,
                input_asset=source.symbol,
                input_amount=amount,
                spender=router,
                note=SOURCE_APPROVAL,
            ),
            SwapStep(
                kind=StepKind.SWAP,
                input_asset=source.symbol,
                input_amount=amount,
                output_asset=self.curve_asset.symbol,
            ),
            # Amounts below are unknown until the swap output is observed
            SwapStep(
                kind=StepKind.APPROVE,
                input_asset=self.curve_asset.symbol,
                spender=curve,
                note=CURVE_APPROVAL,
            ),
            SwapStep(kind=StepKind.BUY, input_asset=self.curve_asset.symbol),
        ])
        return steps

    async def estimate_curve_amount(self, asset: Asset, amount: Decimal) -> Optional[Decimal]:
        """Informational curve-asset equivalent of `amount` of `asset`"""
        if asset.kind == AssetKind.CURVE:
            return amount
        if self.price_feed is None:
            return None

        source_usd = await self.price_feed.usd_price(asset)
        curve_usd = await self.price_feed.usd_price(self.curve_asset)
        if not source_usd or not curve_usd:
            return None
        return amount * source_usd / curve_usd

    async def resolve(self, intent: PaymentIntent, precondition: WalletPrecondition) -> Pipeline:
        steps = self.build_steps(intent)
        source = self.registry.get(intent.payment_asset)
        estimate = await self.estimate_curve_amount(source, intent.payment_amount)

        pipeline = Pipeline(
            intent=intent,
            steps=steps,
            precondition=precondition,
            estimated_curve_amount=estimate,
        )
        logger.info(
            "pipeline_resolved",
            pipeline_id=pipeline.pipeline_id,
            payment_asset=source.symbol,
            direct=source.kind in DIRECT_KINDS,
            steps=[s.kind.value for s in steps],
            estimated_curve_amount=str(estimate) if estimate is not None else None,
        )
        return pipeline

    def resolve_sale(self, intent: SaleIntent, precondition: WalletPrecondition) -> Pipeline:
        step = SwapStep(
            kind=StepKind.SELL,
            input_asset=intent.curve_token,
            input_amount=intent.token_amount,
            output_asset=self.curve_asset.symbol,
        )
        return Pipeline(intent=intent, steps=[step], precondition=precondition)
