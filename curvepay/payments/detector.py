"""
Confirmation Detector

Aggregator swaps expose no uniformly decodable output amount, so the result
of a swap is inferred by diffing the payer's balance of the output asset
against a snapshot taken immediately before submission.
"""

import asyncio
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Awaitable, Callable, Optional

import structlog

from curvepay.chain.base import ChainClient
from curvepay.config import PipelineConfig, get_pipeline_config
from curvepay.errors import SwapYieldedNoOutput
from curvepay.models import Asset, BalanceSnapshot

logger = structlog.get_logger()


class DetectionStrategy(ABC):
    """How the orchestrator learns what a swap produced"""

    @abstractmethod
    async def snapshot(self, asset: Asset, owner: str) -> BalanceSnapshot:
        """Observe state before the triggering transaction is submitted"""

    @abstractmethod
    async def wait_for_output(
        self, asset: Asset, baseline: BalanceSnapshot, tx_hash: Optional[str] = None
    ) -> Decimal:
        """
        Return the positive amount the transaction produced, or raise
        SwapYieldedNoOutput when it cannot be observed in time.
        """


class BalanceDiffDetector(DetectionStrategy):
    """
    Balance-difference polling.

    After a warm-up delay, polls the balance every `poll_interval` seconds for
    at most `max_attempts` reads. The first positive delta is final, even if a
    later poll would show more.
    """

    def __init__(
        self,
        chain: ChainClient,
        warmup_seconds: Optional[float] = None,
        poll_interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        config: Optional[PipelineConfig] = None,
    ):
        config = config or get_pipeline_config()
        self.chain = chain
        self.warmup_seconds = config.detector_warmup_seconds if warmup_seconds is None else warmup_seconds
        self.poll_interval = config.detector_poll_interval if poll_interval is None else poll_interval
        self.max_attempts = config.detector_max_attempts if max_attempts is None else max_attempts
        self._sleep = sleep

    async def snapshot(self, asset: Asset, owner: str) -> BalanceSnapshot:
        amount = await self.chain.get_balance(asset, owner)
        snap = BalanceSnapshot(asset=asset.symbol, owner=owner, amount=amount)
        logger.info("balance_snapshot", asset=asset.symbol, owner=owner, amount=str(amount))
        return snap

    async def wait_for_output(
        self, asset: Asset, baseline: BalanceSnapshot, tx_hash: Optional[str] = None
    ) -> Decimal:
        await self._sleep(self.warmup_seconds)

        for attempt in range(1, self.max_attempts + 1):
            balance = await self.chain.get_balance(asset, baseline.owner)
            delta = balance - baseline.amount
            if delta > 0:
                logger.info(
                    "swap_output_detected",
                    tx_hash=tx_hash,
                    asset=baseline.asset,
                    delta=str(delta),
                    attempt=attempt,
                )
                return delta
            if attempt < self.max_attempts:
                await self._sleep(self.poll_interval)

        logger.warning(
            "swap_output_not_detected",
            tx_hash=tx_hash,
            asset=baseline.asset,
            attempts=self.max_attempts,
        )
        raise SwapYieldedNoOutput(tx_hash=tx_hash)
