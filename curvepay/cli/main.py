#!/usr/bin/env python3
"""
curvepay: command line access to quotes, purchases and deployments

Usage:
    curvepay quote <token> <amount> [--json]
    curvepay sell-quote <token> <amount> [--json]
    curvepay plan <token> <amount> --asset USDC --payer 0x... [--json]
    curvepay buy <token> <amount> --asset USDC --payer 0x... [--content-id ID] [--issuer 0x...]
    curvepay sell <token> <amount> --seller 0x...
    curvepay deploy --content-id ID --title TITLE --issuer 0x... [--ticker TICK]
"""

import argparse
import asyncio
import json as json_lib
import sys
from decimal import Decimal, InvalidOperation
from typing import Optional

import structlog
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from curvepay.chain.web3_client import RpcAccountPrecondition, Web3ChainClient
from curvepay.config import get_chain_config, get_datastore_config
from curvepay.database.client import get_store_client
from curvepay.deployment.initiator import DeploymentInitiator
from curvepay.errors import CurvePayError
from curvepay.logging_config import configure_logging
from curvepay.models import BondingCurveQuote, PaymentIntent, PurchaseOutcome, SaleIntent
from curvepay.payments.assets import AssetRegistry
from curvepay.payments.detector import BalanceDiffDetector
from curvepay.payments.orchestrator import SwapOrchestrator
from curvepay.payments.prices import PriceFeed
from curvepay.payments.resolver import PaymentAssetResolver
from curvepay.quotes.engine import QuoteEngine
from curvepay.recording.recorder import PurchaseRecorder

logger = structlog.get_logger()
console = Console()


async def _static_token() -> str:
    token = get_datastore_config().access_token
    if not token:
        raise ValueError("ACCESS_TOKEN must be set for authenticated writes")
    return token


class CurvePayCLI:
    """Wires the chain client, resolver and orchestrator together"""

    def __init__(self, json_output: bool = False):
        self.json_output = json_output
        self.chain_config = get_chain_config()
        self.chain = Web3ChainClient(self.chain_config)
        self.precondition = RpcAccountPrecondition(self.chain.w3)
        self.registry = AssetRegistry.from_config(self.chain_config)
        self.quotes = QuoteEngine(self.chain)
        self.price_feed = PriceFeed()
        self.resolver = PaymentAssetResolver(self.registry, self.chain_config, self.price_feed)

    def _output(self, data: dict, human_message: str = None):
        """Output data in JSON or human-readable format"""
        if self.json_output:
            print(json_lib.dumps(data, indent=2, default=str))
        elif human_message:
            console.print(human_message)

    def _orchestrator(self, record: bool) -> SwapOrchestrator:
        recorder = None
        if record:
            recorder = PurchaseRecorder(get_store_client(), _static_token)
        return SwapOrchestrator(
            chain=self.chain,
            resolver=self.resolver,
            detector=BalanceDiffDetector(self.chain),
            quotes=self.quotes,
            recorder=recorder,
            chain_config=self.chain_config,
        )

    def _show_quote(self, quote: BondingCurveQuote, unit_in: str, unit_out: str):
        if not quote.available:
            self._output(
                {"token": quote.token_id, "available": False},
                "[yellow]Song not deployed to bonding curve[/yellow]",
            )
            return

        impact = quote.price_impact_percent
        if self.json_output:
            self._output(quote.model_dump(mode="json"))
            return

        table = Table(title="Bonding Curve Quote", show_header=False)
        table.add_column("Field", style="cyan")
        table.add_column("Value", style="white")
        table.add_row("You pay", f"{quote.input_amount} {unit_in}")
        table.add_row("You receive", f"~{quote.output_amount:.6f} {unit_out}")
        table.add_row("Spot price", f"{quote.spot_price}")
        table.add_row("Price impact", f"{impact:.2f}%" if impact is not None else "n/a")
        console.print(table)

    async def quote(self, token: str, amount: Decimal):
        quote = await self.quotes.get_buy_quote(token, amount)
        self._show_quote(quote, self.registry.curve_asset.symbol, "tokens")

    async def sell_quote(self, token: str, amount: Decimal):
        quote = await self.quotes.get_sell_quote(token, amount)
        self._show_quote(quote, "tokens", self.registry.curve_asset.symbol)

    async def plan(self, token: str, amount: Decimal, asset: str, payer: str):
        intent = PaymentIntent(
            payer=payer, payment_asset=asset, payment_amount=amount, target_curve_token=token
        )
        pipeline = await self.resolver.resolve(intent, self.precondition)

        if self.json_output:
            self._output({
                "steps": [
                    {"kind": s.kind.value, "asset": s.input_asset, "amount": s.input_amount}
                    for s in pipeline.steps
                ],
                "estimated_curve_amount": pipeline.estimated_curve_amount,
            })
            return

        table = Table(title=f"{asset.upper()} -> Song", show_header=True, header_style="bold magenta")
        table.add_column("#", justify="right")
        table.add_column("Step", style="cyan")
        table.add_column("Asset", style="green")
        table.add_column("Amount", justify="right", style="yellow")
        for i, step in enumerate(pipeline.steps, 1):
            table.add_row(
                str(i),
                step.kind.value,
                step.input_asset,
                str(step.input_amount) if step.input_amount is not None else "from swap output",
            )
        console.print(table)
        if pipeline.estimated_curve_amount is not None:
            console.print(
                f"Estimated {self.registry.curve_asset.symbol}: "
                f"~{pipeline.estimated_curve_amount:.4f} (informational)"
            )

    def _show_outcome(self, outcome: PurchaseOutcome):
        if self.json_output:
            self._output(outcome.model_dump(mode="json"))
            return
        if outcome.success:
            console.print(Panel(outcome.message, title="Success", border_style="green"))
        else:
            style = "yellow" if outcome.retry_safe else "red"
            console.print(Panel(outcome.message, title=outcome.error_kind, border_style=style))

    async def buy(
        self,
        token: str,
        amount: Decimal,
        asset: str,
        payer: str,
        content_id: Optional[str] = None,
        issuer: Optional[str] = None,
    ):
        orchestrator = self._orchestrator(record=content_id is not None)
        intent = PaymentIntent(
            payer=payer,
            payment_asset=asset,
            payment_amount=amount,
            target_curve_token=token,
            content_id=content_id,
            issuer=issuer,
        )
        pipeline = await orchestrator.submit(intent, self.precondition)
        with console.status(f"[bold green]Buying with {asset.upper()}..."):
            outcome = await orchestrator.execute(pipeline)
        self._show_outcome(outcome)

    async def sell(self, token: str, amount: Decimal, seller: str):
        orchestrator = self._orchestrator(record=False)
        intent = SaleIntent(seller=seller, curve_token=token, token_amount=amount)
        pipeline = await orchestrator.submit_sale(intent, self.precondition)
        with console.status("[bold green]Selling..."):
            outcome = await orchestrator.execute(pipeline)
        self._show_outcome(outcome)

    async def deploy(self, content_id: str, title: str, issuer: str, ticker: Optional[str] = None):
        initiator = DeploymentInitiator(
            self.chain, get_store_client(), _static_token, self.chain_config
        )
        result = await initiator.deploy(issuer, content_id, title, self.precondition, ticker=ticker)
        if result.persisted:
            message = f"[green]Song is live on the bonding curve: {result.token_address}[/green]"
        else:
            message = (
                f"[yellow]Deployed at {result.token_address} but saving the address failed: "
                f"{result.error}[/yellow]"
            )
        self._output(result.model_dump(mode="json"), message)

    async def close(self):
        await self.price_feed.close()


def _decimal(value: str) -> Decimal:
    try:
        amount = Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"Invalid amount: {value}")
    if not amount.is_finite():
        raise argparse.ArgumentTypeError(f"Invalid amount: {value}")
    if amount < 0:
        raise argparse.ArgumentTypeError("Amount must not be negative")
    return amount


def _positive_decimal(value: str) -> Decimal:
    amount = _decimal(value)
    if amount == 0:
        raise argparse.ArgumentTypeError("Amount must be greater than zero")
    return amount


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="curvepay", description="Song token purchases")
    parser.add_argument("--json", action="store_true", help="Machine readable output")
    sub = parser.add_subparsers(dest="command", required=True)

    for name in ("quote", "sell-quote"):
        p = sub.add_parser(name)
        p.add_argument("token")
        p.add_argument("amount", type=_decimal)

    p = sub.add_parser("plan")
    p.add_argument("token")
    p.add_argument("amount", type=_positive_decimal)
    p.add_argument("--asset", required=True)
    p.add_argument("--payer", required=True)

    p = sub.add_parser("buy")
    p.add_argument("token")
    p.add_argument("amount", type=_positive_decimal)
    p.add_argument("--asset", required=True)
    p.add_argument("--payer", required=True)
    p.add_argument("--content-id")
    p.add_argument("--issuer")

    p = sub.add_parser("sell")
    p.add_argument("token")
    p.add_argument("amount", type=_positive_decimal)
    p.add_argument("--seller", required=True)

    p = sub.add_parser("deploy")
    p.add_argument("--content-id", required=True)
    p.add_argument("--title", required=True)
    p.add_argument("--issuer", required=True)
    p.add_argument("--ticker")

    return parser


async def run(args: argparse.Namespace) -> int:
    cli = CurvePayCLI(json_output=args.json)
    try:
        if args.command == "quote":
            await cli.quote(args.token, args.amount)
        elif args.command == "sell-quote":
            await cli.sell_quote(args.token, args.amount)
        elif args.command == "plan":
            await cli.plan(args.token, args.amount, args.asset, args.payer)
        elif args.command == "buy":
            await cli.buy(
                args.token, args.amount, args.asset, args.payer, args.content_id, args.issuer
            )
        elif args.command == "sell":
            await cli.sell(args.token, args.amount, args.seller)
        elif args.command == "deploy":
            await cli.deploy(args.content_id, args.title, args.issuer, args.ticker)
    except CurvePayError as e:
        logger.error("command_failed", command=args.command, error_kind=e.kind)
        cli._output(
            {"error": e.kind, "message": e.user_message, "retry_safe": e.retry_safe},
            f"[red]{e.user_message}[/red]",
        )
        return 1
    except ValueError as e:
        logger.error("command_failed", command=args.command, error=str(e))
        cli._output({"error": "InvalidInput", "message": str(e)}, f"[red]{e}[/red]")
        return 1
    finally:
        await cli.close()
    return 0


def main():
    """Main entry point for the curvepay CLI"""
    configure_logging()
    args = build_parser().parse_args()
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
