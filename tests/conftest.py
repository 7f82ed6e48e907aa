"""
Pytest configuration and shared fixtures
"""

from decimal import Decimal

import pytest
from eth_account import Account

from curvepay.chain.base import CurveState
from curvepay.config import ChainConfig, PipelineConfig
from curvepay.payments.assets import AssetRegistry
from curvepay.payments.detector import BalanceDiffDetector
from curvepay.payments.orchestrator import SwapOrchestrator
from curvepay.payments.resolver import PaymentAssetResolver
from curvepay.quotes.engine import QuoteEngine
from tests.factories import SONG_TOKEN
from tests.fakes import ConnectedWallet, FakeChain, no_sleep


@pytest.fixture
def chain_config() -> ChainConfig:
    return ChainConfig()


@pytest.fixture
def pipeline_config() -> PipelineConfig:
    return PipelineConfig()


@pytest.fixture
def registry(chain_config) -> AssetRegistry:
    return AssetRegistry.from_config(chain_config)


@pytest.fixture
def fake_chain() -> FakeChain:
    """Chain with one deployed song at a flat 0.001 XRGE per token"""
    chain = FakeChain()
    chain.curve_states[SONG_TOKEN.lower()] = CurveState(
        token=SONG_TOKEN,
        supply_sold=Decimal("1000000"),
        base_price=Decimal("0.001"),
        price_increment=Decimal("0"),
    )
    return chain


@pytest.fixture
def wallet() -> ConnectedWallet:
    return ConnectedWallet()


@pytest.fixture
def payer_address() -> str:
    return Account.create().address


@pytest.fixture
def resolver(registry, chain_config) -> PaymentAssetResolver:
    return PaymentAssetResolver(registry, chain_config)


@pytest.fixture
def detector(fake_chain, pipeline_config) -> BalanceDiffDetector:
    return BalanceDiffDetector(fake_chain, sleep=no_sleep, config=pipeline_config)


@pytest.fixture
def orchestrator(fake_chain, resolver, detector, pipeline_config, chain_config) -> SwapOrchestrator:
    return SwapOrchestrator(
        chain=fake_chain,
        resolver=resolver,
        detector=detector,
        quotes=QuoteEngine(fake_chain),
        config=pipeline_config,
        chain_config=chain_config,
        sleep=no_sleep,
    )
