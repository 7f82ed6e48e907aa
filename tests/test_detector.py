"""
Unit tests for balance-difference swap detection
"""

import pytest
from decimal import Decimal

from curvepay.errors import SwapYieldedNoOutput
from curvepay.payments.detector import BalanceDiffDetector
from tests.fakes import FakeChain, RecordingSleep


@pytest.fixture
def xrge(registry):
    return registry.curve_asset


class TestBalanceDiffDetector:
    """Test BalanceDiffDetector polling"""

    @pytest.mark.asyncio
    async def test_returns_first_positive_delta(self, xrge, payer_address):
        """A later, larger balance never replaces the first observed delta"""
        chain = FakeChain()
        chain.scripts["XRGE"] = [
            Decimal("100"),    # snapshot
            Decimal("100"),
            Decimal("148.7"),
            Decimal("200"),
        ]
        sleep = RecordingSleep()
        detector = BalanceDiffDetector(
            chain, warmup_seconds=5.0, poll_interval=1.0, max_attempts=60, sleep=sleep
        )

        baseline = await detector.snapshot(xrge, payer_address)
        observed = await detector.wait_for_output(xrge, baseline, "0xabc")

        assert observed == Decimal("48.7")
        assert sleep.calls == [5.0, 1.0]
        assert chain.balance_reads["XRGE"] == 3

    @pytest.mark.asyncio
    async def test_output_on_fourth_sample_stops_polling(self, xrge, payer_address):
        chain = FakeChain()
        chain.scripts["XRGE"] = [
            Decimal("100"),    # snapshot
            Decimal("100"),
            Decimal("100"),
            Decimal("100"),
            Decimal("112.5"),
            Decimal("125"),
        ]
        sleep = RecordingSleep()
        detector = BalanceDiffDetector(
            chain, warmup_seconds=5.0, poll_interval=1.0, max_attempts=60, sleep=sleep
        )

        baseline = await detector.snapshot(xrge, payer_address)
        observed = await detector.wait_for_output(xrge, baseline)

        assert observed == Decimal("12.5")
        assert chain.balance_reads["XRGE"] == 5
        assert sleep.calls == [5.0, 1.0, 1.0, 1.0]
        assert chain.scripts["XRGE"] == [Decimal("125")]

    @pytest.mark.asyncio
    async def test_warmup_before_first_poll(self, xrge, payer_address):
        chain = FakeChain()
        chain.scripts["XRGE"] = [Decimal("0"), Decimal("1")]
        sleep = RecordingSleep()
        detector = BalanceDiffDetector(
            chain, warmup_seconds=5.0, poll_interval=1.0, max_attempts=3, sleep=sleep
        )

        baseline = await detector.snapshot(xrge, payer_address)
        observed = await detector.wait_for_output(xrge, baseline)

        assert observed == Decimal("1")
        assert sleep.calls == [5.0]

    @pytest.mark.asyncio
    async def test_budget_exhausted_raises(self, xrge, payer_address):
        """60 reads one second apart, then give up"""
        chain = FakeChain()
        chain.balances["XRGE"] = Decimal("100")
        sleep = RecordingSleep()
        detector = BalanceDiffDetector(
            chain, warmup_seconds=5.0, poll_interval=1.0, max_attempts=60, sleep=sleep
        )

        baseline = await detector.snapshot(xrge, payer_address)
        with pytest.raises(SwapYieldedNoOutput) as exc_info:
            await detector.wait_for_output(xrge, baseline, "0xdead")

        assert chain.balance_reads["XRGE"] == 61
        assert sleep.calls == [5.0] + [1.0] * 59
        assert exc_info.value.tx_hash == "0xdead"
        assert exc_info.value.retry_safe is False

    @pytest.mark.asyncio
    async def test_decreasing_balance_is_not_output(self, xrge, payer_address):
        chain = FakeChain()
        chain.scripts["XRGE"] = [Decimal("100"), Decimal("90")]
        detector = BalanceDiffDetector(
            chain, warmup_seconds=0, poll_interval=1.0, max_attempts=3, sleep=RecordingSleep()
        )

        baseline = await detector.snapshot(xrge, payer_address)
        with pytest.raises(SwapYieldedNoOutput):
            await detector.wait_for_output(xrge, baseline)

    def test_defaults_come_from_config(self, pipeline_config):
        detector = BalanceDiffDetector(FakeChain(), config=pipeline_config)

        assert detector.warmup_seconds == 5.0
        assert detector.poll_interval == 1.0
        assert detector.max_attempts == 60

    @pytest.mark.asyncio
    async def test_snapshot_records_owner_and_amount(self, xrge, payer_address):
        chain = FakeChain()
        chain.balances["XRGE"] = Decimal("12.5")
        detector = BalanceDiffDetector(chain, sleep=RecordingSleep())

        snap = await detector.snapshot(xrge, payer_address)

        assert snap.amount == Decimal("12.5")
        assert snap.owner == payer_address
        assert snap.asset == "XRGE"
