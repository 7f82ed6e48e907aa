"""
CurvePay Payment Module
Resolves payment assets into pipelines and drives them to completion
"""

from curvepay.payments.assets import AssetRegistry
from curvepay.payments.detector import BalanceDiffDetector, DetectionStrategy
from curvepay.payments.orchestrator import SwapOrchestrator, apply_haircut
from curvepay.payments.prices import PriceFeed
from curvepay.payments.resolver import PaymentAssetResolver

__all__ = [
    "AssetRegistry",
    "BalanceDiffDetector",
    "DetectionStrategy",
    "SwapOrchestrator",
    "apply_haircut",
    "PriceFeed",
    "PaymentAssetResolver",
]
