"""
Swap Orchestrator
Drives a purchase pipeline through its approve / swap / approve / buy states.

Transitions:
    IDLE -> APPROVING -> AWAITING_SWAP_SUBMIT -> AWAITING_SWAP_CONFIRM
         -> APPROVING_CURVE_ASSET -> BUYING -> SUCCEEDED
    any state -> FAILED

A pipeline runs at most once. Failed pipelines are never retried; a retry
needs a new, user-confirmed intent.
"""

import asyncio
from datetime import datetime
from decimal import Decimal
from typing import Awaitable, Callable, Dict, List, Optional, Set, Tuple, Union

import structlog

from curvepay.chain.base import ChainClient, TxReceipt, WalletPrecondition
from curvepay.chain.events import decode_tokens_bought
from curvepay.config import ChainConfig, PipelineConfig, get_chain_config, get_pipeline_config
from curvepay.errors import (
    ConfirmationTimedOut,
    CurveNotDeployed,
    CurvePayError,
    PipelineAlreadyExecuted,
    PipelineConflict,
    TransactionReverted,
)
from curvepay.models import (
    PaymentIntent,
    Pipeline,
    PipelineState,
    PipelineStatus,
    PurchaseOutcome,
    SaleIntent,
    StepKind,
    StepStatus,
    SwapStep,
)
from curvepay.payments.detector import DetectionStrategy
from curvepay.payments.resolver import CURVE_APPROVAL, PaymentAssetResolver
from curvepay.quotes.engine import QuoteEngine
from curvepay.recording.recorder import PurchaseRecorder

logger = structlog.get_logger()

ZERO = Decimal("0")


def apply_haircut(observed: Decimal, haircut: Decimal) -> Decimal:
    """Portion of an observed swap output the curve approval and buy may spend"""
    return observed * haircut


def min_out(expected: Optional[Decimal], slippage: Decimal) -> Decimal:
    if not expected or expected <= 0:
        return ZERO
    return expected * (1 - slippage)


class SwapOrchestrator:
    """
    Owns every pipeline it creates. Pipelines for distinct intents share no
    mutable state; at most one pipeline per (payer, token) is in flight.
    """

    def __init__(
        self,
        chain: ChainClient,
        resolver: PaymentAssetResolver,
        detector: DetectionStrategy,
        quotes: QuoteEngine,
        recorder: Optional[PurchaseRecorder] = None,
        config: Optional[PipelineConfig] = None,
        chain_config: Optional[ChainConfig] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.chain = chain
        self.resolver = resolver
        self.detector = detector
        self.quotes = quotes
        self.recorder = recorder
        self.config = config or get_pipeline_config()
        self.chain_config = chain_config or get_chain_config()
        self._sleep = sleep
        self._active: Dict[Tuple[str, str], Optional[Pipeline]] = {}
        self._submitted_intents: Set[Union[PaymentIntent, SaleIntent]] = set()

    # ===== INTAKE =====

    def _reserve(self, key: Tuple[str, str], intent) -> None:
        if key in self._active:
            logger.warning("pipeline_intake_rejected", owner=key[0], token=key[1])
            raise PipelineConflict()
        if intent in self._submitted_intents:
            raise PipelineAlreadyExecuted()
        self._active[key] = None
        self._submitted_intents.add(intent)

    def _release(self, pipeline: Pipeline) -> None:
        key = pipeline.intent.key
        if self._active.get(key) is pipeline:
            del self._active[key]

    async def submit(self, intent: PaymentIntent, precondition: WalletPrecondition) -> Pipeline:
        """Create the pipeline for a confirmed purchase intent"""
        self._reserve(intent.key, intent)
        try:
            if await self.quotes.spot_price(intent.target_curve_token) is None:
                raise CurveNotDeployed()
            pipeline = await self.resolver.resolve(intent, precondition)
        except Exception:
            del self._active[intent.key]
            raise
        self._active[intent.key] = pipeline
        return pipeline

    async def submit_sale(self, intent: SaleIntent, precondition: WalletPrecondition) -> Pipeline:
        """Create the pipeline for a confirmed sale intent"""
        self._reserve(intent.key, intent)
        try:
            if await self.quotes.spot_price(intent.curve_token) is None:
                raise CurveNotDeployed()
            pipeline = self.resolver.resolve_sale(intent, precondition)
        except Exception:
            del self._active[intent.key]
            raise
        self._active[intent.key] = pipeline
        return pipeline

    def active_pipelines(self) -> List[Pipeline]:
        return [p for p in self._active.values() if p is not None]

    def abandon(self, pipeline: Pipeline) -> None:
        """
        Drop a submitted pipeline that was never executed, freeing its
        (owner, token) slot. The intent itself stays spent.
        """
        if pipeline.status != PipelineStatus.IDLE:
            raise PipelineAlreadyExecuted("Only a pipeline that has not started can be abandoned")
        pipeline.status = PipelineStatus.FAILED
        pipeline.ended_at = datetime.utcnow()
        self._transition(pipeline, PipelineState.FAILED)
        self._release(pipeline)
        logger.info("pipeline_abandoned", pipeline_id=pipeline.pipeline_id)

    # ===== EXECUTION =====

    async def execute(self, pipeline: Pipeline) -> PurchaseOutcome:
        """Run every step in order; returns once the pipeline is terminal"""
        if pipeline.status != PipelineStatus.IDLE:
            raise PipelineAlreadyExecuted()

        pipeline.status = PipelineStatus.RUNNING
        pipeline.started_at = datetime.utcnow()
        step: Optional[SwapStep] = None

        try:
            for step in pipeline.steps:
                await self._run_step(pipeline, step)
        except CurvePayError as e:
            self._fail(pipeline, step, e)
            return self._failure_outcome(pipeline, e)
        except Exception as e:
            logger.error("pipeline_unexpected_error", pipeline_id=pipeline.pipeline_id, error=str(e))
            self._fail(pipeline, step, e)
            raise
        finally:
            self._release(pipeline)

        self._transition(pipeline, PipelineState.SUCCEEDED)
        pipeline.status = PipelineStatus.SUCCEEDED
        pipeline.ended_at = datetime.utcnow()

        if self.recorder is not None and isinstance(pipeline.intent, PaymentIntent):
            await self.recorder.record(pipeline)

        return self._success_outcome(pipeline)

    async def _run_step(self, pipeline: Pipeline, step: SwapStep) -> None:
        if step.kind == StepKind.APPROVE:
            await self._approve(pipeline, step)
        elif step.kind == StepKind.SWAP:
            await self._swap(pipeline, step)
        elif step.kind == StepKind.BUY:
            await self._buy(pipeline, step)
        elif step.kind == StepKind.SELL:
            await self._sell(pipeline, step)

    async def _approve(self, pipeline: Pipeline, step: SwapStep) -> None:
        if step.note == CURVE_APPROVAL:
            self._transition(pipeline, PipelineState.APPROVING_CURVE_ASSET)
        else:
            self._transition(pipeline, PipelineState.APPROVING)

        if step.input_amount is None:
            raise RuntimeError("Curve approval amount was never derived from the swap output")

        asset = self.resolver.registry.get(step.input_asset)
        await pipeline.precondition.ensure_connected(pipeline.owner)
        tx_hash = await self.chain.approve(pipeline.owner, asset, step.spender, step.input_amount)
        self._submitted(step, tx_hash)
        await self._await_acceptance(tx_hash)
        step.status = StepStatus.CONFIRMED

    async def _swap(self, pipeline: Pipeline, step: SwapStep) -> None:
        self._transition(pipeline, PipelineState.AWAITING_SWAP_SUBMIT)
        if step.status != StepStatus.PENDING or step.tx_handle is not None:
            raise PipelineAlreadyExecuted("Swap already submitted for this pipeline")

        source = self.resolver.registry.get(step.input_asset)
        curve_asset = self.resolver.curve_asset
        await pipeline.precondition.ensure_connected(pipeline.owner)

        baseline = await self.detector.snapshot(curve_asset, pipeline.owner)
        tx_hash = await self.chain.swap(
            pipeline.owner,
            source,
            curve_asset,
            step.input_amount,
            min_out(pipeline.estimated_curve_amount, self.config.slippage_tolerance),
        )
        self._submitted(step, tx_hash)

        self._transition(pipeline, PipelineState.AWAITING_SWAP_CONFIRM)
        observed = await self.detector.wait_for_output(curve_asset, baseline, tx_hash)
        step.status = StepStatus.CONFIRMED
        pipeline.observed_curve_amount = observed

        spend = apply_haircut(observed, self.config.curve_approval_haircut)
        for later in pipeline.steps:
            if later.input_asset == curve_asset.symbol and later.input_amount is None:
                later.input_amount = spend

        logger.info(
            "swap_output_applied",
            pipeline_id=pipeline.pipeline_id,
            estimated=str(pipeline.estimated_curve_amount) if pipeline.estimated_curve_amount is not None else None,
            observed=str(observed),
            spend=str(spend),
        )

    async def _buy(self, pipeline: Pipeline, step: SwapStep) -> None:
        self._transition(pipeline, PipelineState.BUYING)
        if step.input_amount is None:
            raise RuntimeError("Buy amount was never derived from the swap output")

        asset = self.resolver.registry.get(step.input_asset)
        token = pipeline.curve_token
        # The curve quotes in curve asset; a native buy is quoted on its estimate
        quoted_amount = pipeline.estimated_curve_amount if asset.is_native else step.input_amount
        expected = None
        if quoted_amount:
            quote = await self.quotes.get_buy_quote(token, quoted_amount)
            if not quote.available:
                raise CurveNotDeployed()
            expected = quote.output_amount

        await pipeline.precondition.ensure_connected(pipeline.owner)
        tx_hash = await self.chain.buy(
            pipeline.owner,
            token,
            asset,
            step.input_amount,
            min_out(expected, self.config.slippage_tolerance),
        )
        self._submitted(step, tx_hash)

        receipt = await self._await_acceptance(tx_hash)
        step.status = StepStatus.CONFIRMED
        if receipt is not None:
            pipeline.tokens_received = decode_tokens_bought(
                receipt,
                self.chain_config.bonding_curve_address,
                self.chain_config.song_token_decimals,
            )

    async def _sell(self, pipeline: Pipeline, step: SwapStep) -> None:
        self._transition(pipeline, PipelineState.SELLING)
        quote = await self.quotes.get_sell_quote(pipeline.curve_token, step.input_amount)
        if not quote.available:
            raise CurveNotDeployed()

        await pipeline.precondition.ensure_connected(pipeline.owner)
        tx_hash = await self.chain.sell(
            pipeline.owner,
            pipeline.curve_token,
            step.input_amount,
            min_out(quote.output_amount, self.config.slippage_tolerance),
        )
        self._submitted(step, tx_hash)
        await self._await_acceptance(tx_hash)
        step.status = StepStatus.CONFIRMED

    async def _await_acceptance(self, tx_hash: str) -> Optional[TxReceipt]:
        """Wait for the receipt; fall back to a fixed delay when none can be awaited"""
        if self.chain.supports_receipts:
            receipt = await self.chain.wait_for_receipt(tx_hash)
            if not receipt.succeeded:
                raise TransactionReverted(tx_hash=tx_hash)
            return receipt

        logger.warning(
            "receipt_unavailable_using_fixed_delay",
            tx_hash=tx_hash,
            delay=self.config.approval_fallback_delay,
        )
        await self._sleep(self.config.approval_fallback_delay)
        return None

    # ===== STATE =====

    def _submitted(self, step: SwapStep, tx_hash: str) -> None:
        step.tx_handle = tx_hash
        step.status = StepStatus.SUBMITTED

    def _transition(self, pipeline: Pipeline, new_state: PipelineState) -> None:
        old_state = pipeline.state
        pipeline.state = new_state
        logger.info(
            "pipeline_state_transition",
            pipeline_id=pipeline.pipeline_id,
            from_state=old_state.value,
            to_state=new_state.value,
        )

    def _fail(self, pipeline: Pipeline, step: Optional[SwapStep], error: Exception) -> None:
        # A step whose receipt never arrived may still be mined; it stays SUBMITTED
        if (
            step is not None
            and step.status != StepStatus.CONFIRMED
            and not isinstance(error, ConfirmationTimedOut)
        ):
            step.status = StepStatus.FAILED
        pipeline.error = error
        self._transition(pipeline, PipelineState.FAILED)
        pipeline.status = PipelineStatus.FAILED
        pipeline.ended_at = datetime.utcnow()
        logger.warning(
            "pipeline_failed",
            pipeline_id=pipeline.pipeline_id,
            step=step.kind.value if step else None,
            error_kind=type(error).__name__,
            error=str(error),
        )

    def _success_outcome(self, pipeline: Pipeline) -> PurchaseOutcome:
        final = pipeline.final_step
        if final.kind == StepKind.SELL:
            message = f"Sold {final.input_amount} tokens"
        elif pipeline.tokens_received is not None:
            message = f"Bought {pipeline.tokens_received} tokens"
        else:
            message = "Purchase confirmed. Purchased amount unknown, verify your balance."

        return PurchaseOutcome(
            pipeline_id=pipeline.pipeline_id,
            success=True,
            state=pipeline.state,
            tokens_received=pipeline.tokens_received,
            curve_amount_spent=final.input_amount if final.kind == StepKind.BUY else None,
            tx_hash=final.tx_handle,
            message=message,
        )

    def _failure_outcome(self, pipeline: Pipeline, error: CurvePayError) -> PurchaseOutcome:
        unfinished = next(
            (s for s in pipeline.steps if s.status in (StepStatus.FAILED, StepStatus.SUBMITTED)),
            None,
        )
        retry_safe = error.retry_safe
        message = error.user_message

        # Once the swap has landed the payment asset is gone; a retry would pay twice
        if pipeline.observed_curve_amount is not None:
            curve_symbol = self.resolver.curve_asset.symbol
            retry_safe = False
            message = (
                f"Your payment was swapped into {pipeline.observed_curve_amount} {curve_symbol}, "
                f"which is now in your wallet, but the song token purchase did not complete "
                f"({error.kind}). Do not pay again with {pipeline.intent.payment_asset}: "
                f"verify your balances and buy with {curve_symbol} directly."
            )

        return PurchaseOutcome(
            pipeline_id=pipeline.pipeline_id,
            success=False,
            state=pipeline.state,
            tx_hash=error.tx_hash or (unfinished.tx_handle if unfinished else None),
            error_kind=error.kind,
            retry_safe=retry_safe,
            message=message,
        )
