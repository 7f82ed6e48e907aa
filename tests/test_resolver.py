"""
Unit tests for payment asset resolution
"""

import pytest
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

from curvepay.errors import UnsupportedPaymentAsset
from curvepay.models import AssetKind, PipelineState, PipelineStatus, StepKind, StepStatus
from curvepay.payments.assets import AssetRegistry
from curvepay.payments.resolver import (
    ALLOWANCE_RESET,
    CURVE_APPROVAL,
    SOURCE_APPROVAL,
    PaymentAssetResolver,
)
from curvepay.config import ChainConfig
from tests.factories import (
    KTAIntentFactory,
    NativeIntentFactory,
    PaymentIntentFactory,
    SaleIntentFactory,
    USDCIntentFactory,
)
from tests.fakes import ConnectedWallet


def _kinds(steps):
    return [step.kind for step in steps]


class TestAssetRegistry:
    """Test AssetRegistry built from ChainConfig"""

    def test_default_assets(self, registry):
        assert set(registry.symbols()) == {"ETH", "XRGE", "KTA", "USDC"}
        assert registry.curve_asset.symbol == "XRGE"
        assert registry.get("usdc").decimals == 6
        assert registry.get("ETH").kind == AssetKind.NATIVE
        assert registry.get("KTA").requires_allowance_reset is True
        assert registry.get("USDC").requires_allowance_reset is False

    def test_unknown_asset_rejected(self, registry):
        with pytest.raises(UnsupportedPaymentAsset):
            registry.get("DOGE")
        assert "DOGE" not in registry

    def test_optional_second_intermediate(self):
        config = ChainConfig(
            intermediate_b_symbol="DEGEN",
            intermediate_b_address="0x4ed4e862860bed51a9570b96d89af5e1b0efefed",
        )
        registry = AssetRegistry.from_config(config)

        assert "DEGEN" in registry
        assert registry.get("DEGEN").kind == AssetKind.INTERMEDIATE

    def test_requires_single_curve_asset(self, registry):
        assets = [registry.get("ETH"), registry.get("USDC")]
        with pytest.raises(ValueError):
            AssetRegistry(assets)


class TestBuildSteps:
    """Test step construction per payment asset"""

    def test_native_is_single_payable_buy(self, resolver):
        steps = resolver.build_steps(NativeIntentFactory())

        assert _kinds(steps) == [StepKind.BUY]
        assert steps[0].input_asset == "ETH"
        assert steps[0].input_amount == Decimal("0.01")

    def test_curve_asset_is_direct(self, resolver, chain_config):
        steps = resolver.build_steps(PaymentIntentFactory(payment_amount=Decimal("10")))

        assert _kinds(steps) == [StepKind.APPROVE, StepKind.BUY]
        assert steps[0].spender == chain_config.bonding_curve_address
        assert steps[0].note == CURVE_APPROVAL
        assert all(s.input_amount == Decimal("10") for s in steps)

    def test_stable_needs_swap(self, resolver, chain_config):
        steps = resolver.build_steps(USDCIntentFactory(payment_amount=Decimal("25")))

        assert _kinds(steps) == [StepKind.APPROVE, StepKind.SWAP, StepKind.APPROVE, StepKind.BUY]

        source_approval, swap, curve_approval, buy = steps
        assert source_approval.spender == chain_config.swap_router_address
        assert source_approval.note == SOURCE_APPROVAL
        assert source_approval.input_amount == Decimal("25")
        assert swap.input_asset == "USDC"
        assert swap.output_asset == "XRGE"
        assert curve_approval.spender == chain_config.bonding_curve_address
        assert curve_approval.note == CURVE_APPROVAL
        # Unknown until the swap output is observed
        assert curve_approval.input_amount is None
        assert buy.input_amount is None
        assert buy.input_asset == "XRGE"

    def test_allowance_reset_precedes_source_approval(self, resolver):
        steps = resolver.build_steps(KTAIntentFactory())

        assert _kinds(steps) == [
            StepKind.APPROVE,
            StepKind.APPROVE,
            StepKind.SWAP,
            StepKind.APPROVE,
            StepKind.BUY,
        ]
        assert steps[0].note == ALLOWANCE_RESET
        assert steps[0].input_amount == Decimal("0")
        assert steps[1].note == SOURCE_APPROVAL

    def test_all_steps_start_pending(self, resolver):
        steps = resolver.build_steps(USDCIntentFactory())
        assert all(s.status == StepStatus.PENDING and s.tx_handle is None for s in steps)

    def test_unsupported_asset(self, resolver):
        with pytest.raises(UnsupportedPaymentAsset):
            resolver.build_steps(PaymentIntentFactory(payment_asset="DOGE"))


class TestEstimate:
    """Test informational curve-asset estimates"""

    @pytest.mark.asyncio
    async def test_curve_asset_estimates_itself(self, resolver, registry):
        estimate = await resolver.estimate_curve_amount(registry.curve_asset, Decimal("7"))
        assert estimate == Decimal("7")

    @pytest.mark.asyncio
    async def test_no_feed_means_no_estimate(self, resolver, registry):
        assert await resolver.estimate_curve_amount(registry.get("USDC"), Decimal("7")) is None

    @pytest.mark.asyncio
    async def test_estimate_from_usd_prices(self, registry, chain_config):
        prices = {"USDC": Decimal("1"), "XRGE": Decimal("0.5")}
        feed = MagicMock()
        feed.usd_price = AsyncMock(side_effect=lambda asset: prices[asset.symbol])
        resolver = PaymentAssetResolver(registry, chain_config, feed)

        estimate = await resolver.estimate_curve_amount(registry.get("USDC"), Decimal("25"))

        assert estimate == Decimal("50")

    @pytest.mark.asyncio
    async def test_missing_price_means_no_estimate(self, registry, chain_config):
        feed = MagicMock()
        feed.usd_price = AsyncMock(return_value=None)
        resolver = PaymentAssetResolver(registry, chain_config, feed)

        assert await resolver.estimate_curve_amount(registry.get("KTA"), Decimal("1")) is None


class TestResolve:
    """Test full pipeline resolution"""

    @pytest.mark.asyncio
    async def test_resolve_builds_idle_pipeline(self, resolver):
        wallet = ConnectedWallet()
        intent = USDCIntentFactory()

        pipeline = await resolver.resolve(intent, wallet)

        assert pipeline.intent is intent
        assert pipeline.precondition is wallet
        assert pipeline.status == PipelineStatus.IDLE
        assert pipeline.state == PipelineState.IDLE
        assert pipeline.requires_swap is True
        assert pipeline.estimated_curve_amount is None

    @pytest.mark.asyncio
    async def test_direct_pipeline_has_no_swap(self, resolver):
        pipeline = await resolver.resolve(PaymentIntentFactory(), ConnectedWallet())

        assert pipeline.requires_swap is False
        assert pipeline.estimated_curve_amount == Decimal("10")

    def test_resolve_sale(self, resolver):
        intent = SaleIntentFactory(token_amount=Decimal("100"))

        pipeline = resolver.resolve_sale(intent, ConnectedWallet())

        assert _kinds(pipeline.steps) == [StepKind.SELL]
        assert pipeline.steps[0].input_amount == Decimal("100")
        assert pipeline.owner == intent.seller
        assert pipeline.curve_token == intent.curve_token
