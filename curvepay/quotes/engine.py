"""
Bonding curve quote engine

Read-only: quotes are recomputed from current curve state on every call and
never persisted. The curve prices unit `s` at `base_price + price_increment * s`,
so buying `n` units starting at supply `s0` costs

    p0 * n + price_increment * n**2 / 2        where p0 = price at s0

and selling `n` units back returns `p0 * n - price_increment * n**2 / 2`.
"""

from decimal import Decimal, ROUND_DOWN, localcontext
from typing import Optional

import structlog

from curvepay.chain.base import ChainClient, CurveState
from curvepay.models import BondingCurveQuote

logger = structlog.get_logger()

BPS = Decimal("10000")
ZERO = Decimal("0")
HUNDRED = Decimal("100")
# On-chain amounts carry 18 decimals; quotes never promise more than that
QUANTUM = Decimal("1e-18")


def _after_fee(amount: Decimal, fee_bps: int) -> Decimal:
    return amount * (BPS - Decimal(fee_bps)) / BPS


def _round_down(value: Decimal) -> Decimal:
    with localcontext() as ctx:
        ctx.prec = 80
        return value.quantize(QUANTUM, rounding=ROUND_DOWN)


def tokens_for_curve_amount(state: CurveState, net_amount: Decimal) -> Decimal:
    """Units bought for `net_amount` of curve asset (fees already removed)"""
    if net_amount <= 0:
        return ZERO
    p0 = state.spot_price
    b = state.price_increment
    if b == 0:
        if p0 <= 0:
            return ZERO
        return net_amount / p0
    # Positive root of b/2 * n^2 + p0 * n - net = 0
    discriminant = p0 * p0 + 2 * b * net_amount
    return (discriminant.sqrt() - p0) / b


def proceeds_for_tokens(state: CurveState, tokens: Decimal) -> Decimal:
    """Gross curve asset returned for selling `tokens` back to the curve"""
    if tokens <= 0:
        return ZERO
    return state.spot_price * tokens - state.price_increment * tokens * tokens / 2


def price_impact_percent(state: CurveState, average_price: Decimal) -> Optional[Decimal]:
    """
    Change in implied market cap when the circulating supply is re-marked from
    the spot price to the trade's average execution price. None when the
    pre-trade market cap is zero.
    """
    pre_cap = state.spot_price * state.supply_sold
    if pre_cap == 0:
        return None
    post_cap = average_price * state.supply_sold
    return (post_cap - pre_cap) / pre_cap * HUNDRED


def buy_quote(state: CurveState, curve_asset_in: Decimal) -> BondingCurveQuote:
    """Pure buy quote for a given curve state"""
    if curve_asset_in < 0:
        raise ValueError("Buy amount must not be negative")

    if curve_asset_in == 0:
        return BondingCurveQuote(
            token_id=state.token,
            input_amount=curve_asset_in,
            output_amount=ZERO,
            price_impact_percent=ZERO,
            spot_price=state.spot_price,
        )

    tokens_out = _round_down(
        tokens_for_curve_amount(state, _after_fee(curve_asset_in, state.fee_bps))
    )
    if tokens_out <= 0:
        return BondingCurveQuote(
            token_id=state.token,
            input_amount=curve_asset_in,
            output_amount=ZERO,
            price_impact_percent=ZERO,
            spot_price=state.spot_price,
        )

    average_price = curve_asset_in / tokens_out
    return BondingCurveQuote(
        token_id=state.token,
        input_amount=curve_asset_in,
        output_amount=tokens_out,
        price_impact_percent=price_impact_percent(state, average_price),
        average_price=average_price,
        spot_price=state.spot_price,
    )


def sell_quote(state: CurveState, tokens_in: Decimal) -> BondingCurveQuote:
    """Pure sell quote for a given curve state"""
    if tokens_in < 0:
        raise ValueError("Sell amount must not be negative")
    if tokens_in > state.supply_sold:
        raise ValueError(
            f"Cannot sell {tokens_in} tokens; only {state.supply_sold} sold on the curve"
        )

    if tokens_in == 0:
        return BondingCurveQuote(
            token_id=state.token,
            input_amount=tokens_in,
            output_amount=ZERO,
            price_impact_percent=ZERO,
            spot_price=state.spot_price,
        )

    curve_out = _round_down(_after_fee(proceeds_for_tokens(state, tokens_in), state.fee_bps))
    average_price = curve_out / tokens_in
    return BondingCurveQuote(
        token_id=state.token,
        input_amount=tokens_in,
        output_amount=curve_out,
        price_impact_percent=price_impact_percent(state, average_price),
        average_price=average_price,
        spot_price=state.spot_price,
    )


class QuoteEngine:
    """Reads curve state through the chain client and prices trades against it"""

    def __init__(self, chain: ChainClient):
        self.chain = chain

    async def get_buy_quote(self, token_id: str, curve_asset_in: Decimal) -> BondingCurveQuote:
        state = await self.chain.read_curve_state(token_id)
        if state is None:
            logger.info("quote_unavailable", token_id=token_id, side="buy")
            return BondingCurveQuote.unavailable(token_id, curve_asset_in)
        return buy_quote(state, curve_asset_in)

    async def get_sell_quote(self, token_id: str, tokens_in: Decimal) -> BondingCurveQuote:
        state = await self.chain.read_curve_state(token_id)
        if state is None:
            logger.info("quote_unavailable", token_id=token_id, side="sell")
            return BondingCurveQuote.unavailable(token_id, tokens_in)
        return sell_quote(state, tokens_in)

    async def spot_price(self, token_id: str) -> Optional[Decimal]:
        state = await self.chain.read_curve_state(token_id)
        return state.spot_price if state else None
