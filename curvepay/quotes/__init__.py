"""
Bonding curve quotes
"""

from curvepay.quotes.engine import QuoteEngine, buy_quote, sell_quote

__all__ = ["QuoteEngine", "buy_quote", "sell_quote"]
