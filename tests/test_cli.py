"""
Tests for the curvepay command line parser
"""

import argparse

import pytest
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

from curvepay.cli.main import _decimal, _positive_decimal, build_parser, run
from curvepay.errors import UserRejected


class TestParser:
    """Test argument parsing"""

    def test_buy_arguments(self):
        args = build_parser().parse_args(
            ["--json", "buy", "0xToken", "25", "--asset", "USDC", "--payer", "0xPayer"]
        )

        assert args.command == "buy"
        assert args.json is True
        assert args.amount == Decimal("25")
        assert args.asset == "USDC"
        assert args.content_id is None

    def test_deploy_requires_issuer(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["deploy", "--content-id", "song-1", "--title", "Night Drive"])

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_decimal_validation(self):
        assert _decimal("0.5") == Decimal("0.5")
        with pytest.raises(argparse.ArgumentTypeError):
            _decimal("lots")
        with pytest.raises(argparse.ArgumentTypeError):
            _decimal("-1")
        with pytest.raises(argparse.ArgumentTypeError):
            _decimal("NaN")
        with pytest.raises(argparse.ArgumentTypeError):
            _decimal("Infinity")

    def test_positive_decimal(self):
        assert _positive_decimal("0.01") == Decimal("0.01")
        with pytest.raises(argparse.ArgumentTypeError):
            _positive_decimal("0")

    @pytest.mark.parametrize("command", [
        ["buy", "0xToken", "0", "--asset", "USDC", "--payer", "0xPayer"],
        ["plan", "0xToken", "0", "--asset", "USDC", "--payer", "0xPayer"],
        ["sell", "0xToken", "0", "--seller", "0xSeller"],
    ])
    def test_zero_amount_rejected(self, command):
        with pytest.raises(SystemExit):
            build_parser().parse_args(command)

    def test_zero_quote_allowed(self):
        args = build_parser().parse_args(["quote", "0xToken", "0"])
        assert args.amount == Decimal("0")


class TestRun:
    """Test command dispatch and error reporting"""

    @pytest.mark.asyncio
    async def test_value_error_reported(self):
        args = build_parser().parse_args(["--json", "sell-quote", "0xToken", "5000"])
        with patch("curvepay.cli.main.CurvePayCLI") as cli_class:
            cli = cli_class.return_value
            cli.sell_quote = AsyncMock(side_effect=ValueError("Cannot sell more than sold"))
            cli.close = AsyncMock()
            cli._output = MagicMock()

            assert await run(args) == 1

        payload = cli._output.call_args.args[0]
        assert payload == {"error": "InvalidInput", "message": "Cannot sell more than sold"}
        cli.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_domain_error_reported(self):
        args = build_parser().parse_args(["quote", "0xToken", "1"])
        with patch("curvepay.cli.main.CurvePayCLI") as cli_class:
            cli = cli_class.return_value
            cli.quote = AsyncMock(side_effect=UserRejected())
            cli.close = AsyncMock()
            cli._output = MagicMock()

            assert await run(args) == 1

        payload = cli._output.call_args.args[0]
        assert payload["error"] == "UserRejected"
        assert payload["retry_safe"] is True

    @pytest.mark.asyncio
    async def test_success_returns_zero(self):
        args = build_parser().parse_args(["quote", "0xToken", "1"])
        with patch("curvepay.cli.main.CurvePayCLI") as cli_class:
            cli = cli_class.return_value
            cli.quote = AsyncMock()
            cli.close = AsyncMock()

            assert await run(args) == 0

        cli.quote.assert_awaited_once_with("0xToken", Decimal("1"))
